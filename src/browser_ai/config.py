# config.py
# Environment-driven settings. Values are read once per process.

import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PLAYWRIGHT_PACKAGE = "@playwright/mcp@latest"


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    llm_model: str = "claude-3-5-sonnet-20241022"
    llm_base_url: str = "https://api.anthropic.com/v1/"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000
    max_iterations: int = 30
    playwright_command: str = "npx"
    playwright_args: list[str] = field(
        default_factory=lambda: [DEFAULT_PLAYWRIGHT_PACKAGE, "--browser", "chromium"]
    )
    token_path: Path = field(default_factory=lambda: Path.home() / ".local" / "browser-ai" / "auth.json")
    api_key: str | None = None
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        package = os.getenv("PLAYWRIGHT_MCP_PATH", DEFAULT_PLAYWRIGHT_PACKAGE)
        browser = os.getenv("PLAYWRIGHT_BROWSER", "chromium")
        token_path = os.getenv("BROWSER_AI_TOKEN_PATH")

        return cls(
            llm_model=os.getenv("LLM_MODEL", cls.llm_model),
            llm_base_url=os.getenv("LLM_BASE_URL", cls.llm_base_url),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", str(cls.llm_temperature))),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", str(cls.llm_max_tokens))),
            max_iterations=int(os.getenv("MAX_ITERATIONS", str(cls.max_iterations))),
            playwright_args=[*shlex.split(package), "--browser", browser],
            token_path=Path(token_path).expanduser() if token_path else cls().token_path,
            api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            debug=_get_bool("DEBUG"),
        )

    def with_playwright_path(self, package: str) -> "Settings":
        """Swap the backend package while keeping the trailing browser flags."""
        return replace(self, playwright_args=[*shlex.split(package), *self.playwright_args[-2:]])
