"""Configuration for the workspace orchestrator."""

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_ide.validation import ValidationError, validate_domain


class Settings(BaseSettings):
    """Orchestrator settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_IDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service
    environment: Literal["development", "staging", "production"] = "development"

    # Docker engine (unix socket or the socket-proxy's TCP endpoint)
    docker_host: str = Field(
        default="unix:///var/run/docker.sock",
        description="Docker daemon socket or tcp://docker-socket-proxy:2375",
    )
    docker_api_timeout: int = Field(default=60, ge=1, description="Docker API timeout (s)")
    docker_network: str = Field(
        default="agent-ide",
        description="Docker network shared by Traefik and workspace containers",
    )

    # Routing
    domain: str = Field(default="lvh.me", description="Base domain for workspace hosts")
    agent_host_prefix: str = "agent"
    editor_host_prefix: str = "editor"
    traefik_entrypoints: list[str] = Field(default_factory=lambda: ["web"])
    traefik_cert_resolver: str | None = None

    # Container images
    agent_image: str = "ghcr.io/sst/opencode:latest"
    agent_command: list[str] | None = None
    editor_image: str = "codercom/code-server:latest"
    editor_command: list[str] | None = None

    # Ports the services listen on inside their containers
    agent_internal_port: int = 4096
    editor_internal_port: int = 8080

    # Per-workspace assigned ports: base + slot
    workspace_base_port: int = 4000
    editor_base_port: int = 5000
    max_workspaces: int = Field(default=100, ge=1)
    publish_ports: bool = Field(
        default=False,
        description="Also publish the assigned ports on the host (Traefik does not need it)",
    )

    # Timeouts (seconds)
    stop_timeout: int = Field(default=10, ge=0, description="Grace period before SIGKILL")
    exec_timeout: float = Field(default=30.0, gt=0)
    probe_timeout: float = Field(default=10.0, gt=0)
    readiness_timeout: float = Field(default=30.0, gt=0)
    readiness_poll_interval: float = Field(default=0.5, gt=0)

    # Live environment injection target inside the containers
    env_file_path: str = "/etc/profile.d/agent-ide-env.sh"

    # Agent runtime session store
    session_db_path: str = "/root/.local/share/opencode/data.db"
    session_query: str = "SELECT id FROM session ORDER BY created_at DESC LIMIT 1;"
    session_storage_root: str = "/root/.local/share/opencode/storage"

    # State store
    redis_url: str | None = None
    redis_key_prefix: str = "agent_ide"

    # Logging
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    json_logs: bool | None = None  # None: JSON outside development

    # Sentry (reads from SENTRY_ env vars, not AGENT_IDE_)
    sentry_dsn: str | None = Field(default=None, validation_alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.2, validation_alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    @field_validator("domain")
    @classmethod
    def check_domain(cls, v: str) -> str:
        """Reject domains that cannot be used as a hostname suffix."""
        try:
            return validate_domain(v)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def check_host_prefixes(self) -> "Settings":
        """Prefixes must be distinct hyphen-free labels so hosts never collide."""
        for prefix in (self.agent_host_prefix, self.editor_host_prefix):
            if not prefix.isalnum():
                raise ValueError(f"Host prefix must be alphanumeric: {prefix!r}")
        if self.agent_host_prefix.lower() == self.editor_host_prefix.lower():
            raise ValueError("Agent and editor host prefixes must differ")
        return self

    @property
    def use_json_logs(self) -> bool:
        """Whether logs should be rendered as JSON."""
        if self.json_logs is None:
            return self.environment != "development"
        return self.json_logs


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "agent-ide" / "orchestrator.toml"


def load_settings(config_file: str | Path | None = None) -> Settings:
    """Load settings from a TOML file, with environment variable overrides.

    Priority (highest to lowest):
    1. Environment variables (AGENT_IDE_*)
    2. Provided config file
    3. Default config file (~/.config/agent-ide/orchestrator.toml)
    4. Default values

    Args:
        config_file: Optional path to a config file

    Returns:
        Loaded settings
    """
    import tomllib

    config_path = Path(config_file) if config_file else DEFAULT_CONFIG_PATH

    file_config: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
            file_config = data.get("agent_ide", {})

    # Init kwargs outrank env vars in pydantic-settings, so drop the keys the
    # environment already sets.
    env_names = {f"AGENT_IDE_{key}".upper() for key in file_config}
    present = {key.upper() for key in os.environ}
    overridden = env_names & present
    file_config = {
        key: value
        for key, value in file_config.items()
        if f"AGENT_IDE_{key}".upper() not in overridden
    }

    return Settings(**file_config)
