# catalog.py
# Registry of every callable action: backend tools and internal tools share
# one namespace. Descriptors are fixed at construction; argument schemas are
# compiled into pydantic models once so validation is a plain model_validate.

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from browser_ai.models import Action, ActionDescriptor, ActionKind

PLANNING_ACTION = "todo_write"

PLANNING_DESCRIPTOR = ActionDescriptor(
    name=PLANNING_ACTION,
    description=(
        "Internal task planning and tracking for browser automation. Creates and manages "
        "a structured task list to track progress through complex multi-step operations."
    ),
    kind=ActionKind.INTERNAL,
    parameter_schema={
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "The complete list of tasks (full state replacement)",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "Unique identifier for the task"},
                        "content": {
                            "type": "string",
                            "minLength": 1,
                            "description": "Task description including verification criteria",
                        },
                        "status": {
                            "type": "string",
                            "enum": ["pending", "in_progress", "completed"],
                            "description": "Current status of the task",
                        },
                        "priority": {
                            "type": "string",
                            "enum": ["high", "medium", "low"],
                            "description": "Task priority level",
                        },
                    },
                    "required": ["id", "content", "status", "priority"],
                    "additionalProperties": False,
                },
            }
        },
        "required": ["todos"],
        "additionalProperties": False,
    },
)


class DuplicateActionError(ValueError):
    """Raised when two descriptors share a name."""


# ---------------------------------------------------------------------------
# JSON Schema → pydantic
# ---------------------------------------------------------------------------

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
    "null": type(None),
}


def _annotation(prop: Any) -> Any:
    """Map one property schema to a type annotation. Unknown shapes map to Any."""
    if not isinstance(prop, dict):
        return Any

    enum = prop.get("enum")
    if isinstance(enum, list) and enum:
        try:
            return Literal[tuple(enum)]
        except TypeError:
            return Any

    kind = prop.get("type")
    if isinstance(kind, list):
        members = tuple(_JSON_TYPES[k] for k in kind if k in _JSON_TYPES)
        if not members:
            return Any
        return members[0] if len(members) == 1 else Union[members]
    return _JSON_TYPES.get(kind, Any)


def compile_schema(name: str, schema: Any) -> type[BaseModel]:
    """
    Build a pydantic model validating an object against a JSON Schema.

    Property names are carried as aliases so names like "json" or "_ref"
    never collide with BaseModel attributes.
    """
    schema = schema if isinstance(schema, dict) else {}
    properties = schema.get("properties")
    properties = properties if isinstance(properties, dict) else {}
    required = set(schema.get("required") or [])

    fields: dict[str, Any] = {}
    for index, (key, prop) in enumerate(properties.items()):
        annotation = _annotation(prop)
        constraints: dict[str, Any] = {"alias": key}
        if isinstance(prop, dict) and isinstance(prop.get("minLength"), int) and annotation is str:
            constraints["min_length"] = prop["minLength"]
        if key in required:
            fields[f"field_{index}"] = (annotation, Field(..., **constraints))
        else:
            fields[f"field_{index}"] = (Optional[annotation], Field(None, **constraints))

    extra = "forbid" if schema.get("additionalProperties") is False else "allow"
    return create_model(
        f"{name}_arguments",
        __config__=ConfigDict(extra=extra, populate_by_name=False, strict=True),
        **fields,
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ToolCatalog:
    """
    Every action the model may call, in registration order.

    Internal descriptors are callable but omitted from describe_external_only(),
    which is what the model-facing prompt embeds.
    """

    def __init__(self, descriptors: list[ActionDescriptor]) -> None:
        self._descriptors: dict[str, ActionDescriptor] = {}
        self._validators: dict[str, type[BaseModel]] = {}

        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise DuplicateActionError(f"Action '{descriptor.name}' is registered twice.")
            self._descriptors[descriptor.name] = descriptor
            self._validators[descriptor.name] = compile_schema(descriptor.name, descriptor.parameter_schema)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, name: str) -> ActionDescriptor | None:
        return self._descriptors.get(name)

    def names(self) -> list[str]:
        return list(self._descriptors)

    def is_internal(self, name: str) -> bool:
        descriptor = self._descriptors.get(name)
        return descriptor is not None and descriptor.kind is ActionKind.INTERNAL

    def describe(self) -> str:
        return "\n".join(f"- {d.name}: {d.description}" for d in self._descriptors.values())

    def describe_external_only(self) -> str:
        return "\n".join(
            f"- {d.name}: {d.description}"
            for d in self._descriptors.values()
            if d.kind is ActionKind.EXTERNAL
        )

    def validate(self, action: Action) -> bool:
        validator = self._validators.get(action.name)
        if validator is None:
            return False
        if not isinstance(action.arguments, dict):
            return False
        try:
            validator.model_validate(action.arguments)
        except (ValidationError, TypeError, ValueError):
            return False
        return True
