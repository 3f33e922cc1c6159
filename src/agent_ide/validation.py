"""Input validation utilities."""

from __future__ import annotations

import re

# Pattern for valid IDs: alphanumeric, underscores, hyphens only
# This prevents path traversal (../) and command injection
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# Hostnames compare case-insensitively, so workspace IDs are lowercase only.
WORKSPACE_ID_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")

# Workspace IDs end up in hostnames and container names, so underscores are
# not allowed and the id may not start or end with a hyphen.
HOST_LABEL_PATTERN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?$")

DNS_LABEL_MAX_LENGTH = 63


class ValidationError(ValueError):
    """Raised when input validation fails."""


class OwnershipError(ValidationError):
    """Raised when a referenced record does not belong to the caller."""


def validate_id(value: str, id_type: str = "ID") -> str:
    """Validate that an ID contains only safe characters.

    Args:
        value: The ID value to validate
        id_type: Description of the ID type for error messages

    Returns:
        The validated ID (unchanged if valid)

    Raises:
        ValidationError: If the ID contains unsafe characters
    """
    if not value:
        raise ValidationError(f"Invalid {id_type}: cannot be empty")

    if not SAFE_ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {id_type}: contains unsafe characters")

    return value


def validate_host_label(value: str, label_type: str = "host label") -> str:
    """Validate a single DNS label (letters, digits and inner hyphens)."""
    if not value:
        raise ValidationError(f"Invalid {label_type}: cannot be empty")

    if len(value) > DNS_LABEL_MAX_LENGTH:
        raise ValidationError(f"Invalid {label_type}: longer than {DNS_LABEL_MAX_LENGTH} characters")

    if not HOST_LABEL_PATTERN.match(value):
        raise ValidationError(f"Invalid {label_type}: only letters, digits and hyphens allowed")

    return value


def validate_workspace_id(workspace_id: str) -> str:
    """Validate a workspace ID.

    Stricter than the other IDs: it becomes part of a network-visible
    hostname and of container names.
    """
    validate_host_label(workspace_id, "workspace_id")
    if not WORKSPACE_ID_PATTERN.match(workspace_id):
        raise ValidationError("Invalid workspace_id: uppercase letters are not allowed")
    return workspace_id


def validate_owner_id(owner_id: str) -> str:
    """Validate an owner (user) ID."""
    return validate_id(owner_id, "owner_id")


def validate_environment_id(environment_id: str) -> str:
    """Validate an environment ID."""
    return validate_id(environment_id, "environment_id")


def validate_domain(domain: str) -> str:
    """Validate a base domain such as ``lvh.me`` or ``ide.example.com``."""
    if not domain:
        raise ValidationError("Invalid domain: cannot be empty")

    for label in domain.split("."):
        validate_host_label(label, "domain")

    return domain.lower()
