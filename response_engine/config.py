"""Engine configuration loaded from environment variables.

Uses ``pydantic-settings`` for env-var loading (prefix
``RESPONSE_ENGINE_``), type coercion, and ``.env`` file support.
The engine only *consumes* configuration — every public entry point also
accepts an explicit ``settings=`` argument so independent parser
instances never share mutable state.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_IGNORED_PATHS: list[str] = [
    ".git",
    "node_modules",
    ".next",
    ".nuxt",
    "dist",
    "build",
    ".cache",
    ".DS_Store",
    "Thumbs.db",
]


class Settings(BaseSettings):
    """Response engine settings — sourced from environment / ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="RESPONSE_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hint only: biases detector tie-breaks, never forces a parser.
    RESPONSE_FORMAT: Optional[Literal["json", "marker"]] = None

    # When False the JSON parser ignores ``diffs`` / ``replacements``.
    DIFF_MODE_ENABLED: bool = True

    MAX_RESPONSE_SIZE: int = Field(default=500_000, gt=0)

    # -- repair pass toggles --
    CLEAN_CONTENT: bool = True
    REPAIR_BRACKETS: bool = True
    REPAIR_JSX: bool = True
    REPAIR_IMPORTS: bool = True
    REPAIR_RETURNS: bool = True

    IGNORED_PATHS: list[str] = Field(default_factory=lambda: list(_DEFAULT_IGNORED_PATHS))

    LOG_LEVEL: str = "INFO"

    @field_validator("RESPONSE_FORMAT", mode="before")
    @classmethod
    def _blank_format_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    def enabled_repair_passes(self) -> frozenset[str]:
        """Names of the repair passes switched on."""
        toggles = {
            "clean_content": self.CLEAN_CONTENT,
            "bracket_balance": self.REPAIR_BRACKETS,
            "jsx_balance": self.REPAIR_JSX,
            "import_fixer": self.REPAIR_IMPORTS,
            "return_fixer": self.REPAIR_RETURNS,
        }
        return frozenset(name for name, on in toggles.items() if on)


settings = Settings()
