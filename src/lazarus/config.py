"""Configuration management for Lazarus."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging_utils import configure_logging

DEFAULT_NAMESPACE = "Workers"
DEFAULT_SNAPSHOT_KEY_TEMPLATE = "session-{worker_id}.state"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="LAZARUS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Routing
    namespace: str = Field(default=DEFAULT_NAMESPACE, description="serverID this worker answers to")
    require_namespace: bool = Field(default=False, description="Reject messages that carry no serverID")

    # Scheduling
    idle_delay_seconds: float = Field(
        default=0.01, ge=0, description="Wait before an idle engine is considered quiescent"
    )
    run_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Interrupt the engine once a run exceeds this duration"
    )

    # Snapshots
    snapshot_dir: Optional[Path] = Field(None, description="Directory for snapshot files; in-memory when unset")
    snapshot_key_template: str = Field(
        default=DEFAULT_SNAPSHOT_KEY_TEMPLATE, description="Store key for one worker's snapshot"
    )
    min_format_version: int = Field(default=1, ge=1, description="Oldest snapshot format still accepted")

    # Engine
    init_script: Optional[Path] = Field(None, description="Script queued for the first tick after a reset")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["default", "json"] = Field(default="default", description="Log format")

    def read_init_script(self) -> str | None:
        """Return the init script source, or None when none is configured."""
        if self.init_script is None:
            return None
        path = self.init_script.expanduser()
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        Settings instance
    """
    settings = Settings(**overrides)  # type: ignore[arg-type]

    configure_logging(level=settings.log_level, log_format=settings.log_format)

    return settings
