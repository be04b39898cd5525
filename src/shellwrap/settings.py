"""Server settings for shellwrap.

Settings Loading Priority (highest to lowest):
    1. Constructor arguments (CLI flags)
    2. Environment variables (SHELLWRAP_* prefix)
    3. .env file
    4. Default values
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Process-level settings: where the config lives and how to log.

    Tool definitions and the security policy live in the YAML config file;
    these settings only locate it and configure the surrounding process.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHELLWRAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_file: Path = Field(
        default=Path("shellwrap.yaml"),
        title="Config File",
        description="YAML file declaring tools and the security policy",
    )
    server_name: str = Field(
        default="shellwrap",
        title="Server Name",
        description="Name reported to MCP clients",
    )
    server_version: str = Field(
        default="1.0.0",
        title="Server Version",
        description="Version reported to MCP clients",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        title="Log Level",
        description="Minimum level of log events written to stderr",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
        description="Human-readable console output or JSON lines",
    )
    audit_log_dir: Path | None = Field(
        default=None,
        title="Audit Log Directory",
        description="Directory for daily audit JSONL files (structured log only when unset)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept upper-case level names and the 'warn' alias."""
        if isinstance(v, str):
            v = v.lower()
            if v == "warn":
                return "warning"
        return v

    @field_validator("config_file", "audit_log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v
