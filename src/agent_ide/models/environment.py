"""Environment models.

An environment is a named set of variables that a user attaches to any number
of workspaces. Variables arrive either as a JSON string (the persisted form)
or as an object (API input); both are coerced here, once, into a flat
``dict[str, str]`` so nothing downstream has to care.
"""

import json
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field, field_validator

from agent_ide.models.workspace import utc_now
from agent_ide.validation import ValidationError

logger = structlog.get_logger()

_SCALAR_TYPES = (int, float, bool)


def parse_variables(raw: Any, *, strict: bool = False) -> dict[str, str]:
    """Coerce a variables payload into a flat string mapping.

    Args:
        raw: JSON string, mapping or None
        strict: Raise ValidationError on malformed input instead of
            degrading to an empty mapping

    Returns:
        The canonical variables mapping
    """
    if raw is None or raw == "":
        return {}

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            if strict:
                raise ValidationError("Invalid variables format") from None
            logger.warning("Ignoring malformed environment variables payload")
            return {}

    if not isinstance(data, dict):
        if strict:
            raise ValidationError("Invalid variables format: expected an object")
        logger.warning(
            "Ignoring non-object environment variables payload",
            payload_type=type(data).__name__,
        )
        return {}

    variables: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(key, str) or not key or "=" in key:
            if strict:
                raise ValidationError(f"Invalid variable name: {key!r}")
            continue
        if isinstance(value, str):
            variables[key] = value
        elif isinstance(value, bool):
            variables[key] = "true" if value else "false"
        elif isinstance(value, _SCALAR_TYPES):
            variables[key] = str(value)
        elif strict:
            raise ValidationError(f"Invalid value for variable {key}: expected a string")
    return variables


class Environment(BaseModel):
    """A named, reusable set of variables owned by a user."""

    id: str
    owner_id: str
    name: str
    description: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("variables", mode="before")
    @classmethod
    def coerce_variables(cls, v: Any) -> dict[str, str]:
        return parse_variables(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        name = v.strip()
        if not name:
            raise ValueError("Environment name is required")
        return name

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None

    @property
    def serialized_variables(self) -> str:
        """Variables in their persisted JSON form."""
        return json.dumps(self.variables)


class WorkspaceEnvironmentLink(BaseModel):
    """Association between a workspace and an environment.

    ``position`` is the caller's selection order and decides which
    environment wins when two define the same variable.
    """

    workspace_id: str
    environment_id: str
    position: int = Field(ge=0)
