"""Centralized configuration for caselaw-search using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every variable is prefixed with ``CASELAW_SEARCH_`` (for example
    ``CASELAW_SEARCH_MAX_SNIPPETS_PER_DOCUMENT=5``) and validated at startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="CASELAW_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Result shaping
    default_max_results: int = Field(default=20, ge=1, description="Results returned when the caller sets no limit")
    max_results_limit: int = Field(default=1000, ge=1, description="Upper bound accepted for max_results")
    max_snippets_per_document: int = Field(default=3, ge=0, description="Snippet lines attached to each result")
    max_snippet_results: int = Field(
        default=5, ge=0, description="Number of top-ranked results that receive snippets"
    )

    # Execution
    default_timeout_ms: int = Field(default=0, ge=0, description="Query deadline in milliseconds (0 disables)")
    regex_prefix_min_chars: int = Field(
        default=3,
        ge=1,
        description="Minimum literal prefix length before a regex query is narrowed through the index",
    )
    strict_invariants: bool = Field(
        default=False,
        description="Treat index invariant violations as fatal assertions (development builds)",
    )

    # Persistence
    snapshot_path: Path | None = Field(default=None, description="Snapshot file loaded at startup and saved on ingest")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    json_logs: bool = Field(default=True, description="Emit structured JSON logs")

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP server host")
    port: int = Field(default=15080, ge=1, le=65535, description="HTTP server port")

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.default_max_results > self.max_results_limit:
            raise ValueError(
                "default_max_results must not exceed max_results_limit "
                f"({self.default_max_results} > {self.max_results_limit})"
            )
        return self

    def resolve_max_results(self, requested: int | None) -> int:
        """Clamp a caller-supplied result limit to the configured bounds."""
        if requested is None:
            return self.default_max_results
        return max(0, min(requested, self.max_results_limit))

    def resolve_timeout(self, timeout: float | None) -> float | None:
        """Return the effective timeout in seconds, or None for no deadline.

        An explicit timeout of 0 disables the deadline even when
        ``default_timeout_ms`` is set.
        """
        if timeout is not None:
            return timeout if timeout > 0 else None
        if self.default_timeout_ms <= 0:
            return None
        return self.default_timeout_ms / 1000.0
