"""Merging of ordered environments into one variable mapping."""

from __future__ import annotations

import re
import shlex
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from agent_ide.models.environment import Environment

SHELL_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def merge_environments(environments: Sequence[Environment]) -> dict[str, str]:
    """Merge environments in the given order; the last one defining a key wins.

    Order is the caller's selection order, never creation time or name.
    Environments whose stored payload was malformed already carry an empty
    mapping, so they simply contribute nothing.
    """
    merged: dict[str, str] = {}
    for environment in environments:
        merged.update(environment.variables)
    return merged


def render_env_file(variables: Mapping[str, str]) -> str:
    """Render variables as a sourceable shell file.

    Names that are not valid shell identifiers are left out: the container
    environment set at creation still carries them.
    """
    lines = ["# Managed by agent-ide; rewritten on every environment sync."]
    for name, value in variables.items():
        if not SHELL_NAME_PATTERN.match(name):
            continue
        lines.append(f"export {name}={shlex.quote(value)}")
    return "\n".join(lines) + "\n"
