"""Discovery of the agent runtime's most recent session.

The agent keeps its sessions in a SQLite database inside its container; older
builds keep one ``ses_*`` directory per session instead. The probe asks the
database first and falls back to the storage tree. Finding nothing is a
normal state (no session started yet), not an error.
"""

from __future__ import annotations

import re
import shlex
from typing import TYPE_CHECKING

import structlog

from agent_ide.exceptions import EngineError
from agent_ide.managers.naming import container_ref
from agent_ide.models import ContainerRole, SessionProbeResult
from agent_ide.validation import validate_workspace_id

if TYPE_CHECKING:
    from agent_ide.config import Settings
    from agent_ide.engine import ContainerEngineClient

logger = structlog.get_logger()

SESSION_ID_PATTERN = re.compile(r"ses_[a-zA-Z0-9_]+")

STRATEGY_DATABASE = "database"
STRATEGY_FILESYSTEM = "filesystem"


def extract_session_id(output: str) -> str | None:
    """First session identifier in ``output``, if any."""
    match = SESSION_ID_PATTERN.search(output.strip())
    return match.group(0) if match else None


class SessionDiscoveryProbe:
    """Finds the latest session of a workspace's agent container."""

    def __init__(self, engine: ContainerEngineClient, settings: Settings) -> None:
        self._engine = engine
        self._settings = settings

    def _strategies(self) -> list[tuple[str, list[str]]]:
        find_latest = (
            f"find {shlex.quote(self._settings.session_storage_root)} -type d -name 'ses_*' "
            "2>/dev/null | head -1 | xargs -r basename"
        )
        return [
            (
                STRATEGY_DATABASE,
                ["sqlite3", self._settings.session_db_path, self._settings.session_query],
            ),
            (STRATEGY_FILESYSTEM, ["sh", "-c", find_latest]),
        ]

    async def probe(self, workspace_id: str) -> SessionProbeResult:
        """Return the latest session id, or an absent result.

        Engine failures and timeouts are recorded on the result; they never
        propagate.

        Raises:
            ValidationError: If the workspace id is invalid
        """
        validate_workspace_id(workspace_id)
        ref = container_ref(self._settings, workspace_id, ContainerRole.AGENT)
        result = SessionProbeResult(workspace_id=workspace_id)

        for strategy, command in self._strategies():
            try:
                exec_result = await self._engine.exec(
                    ref, command, timeout=self._settings.probe_timeout
                )
            except EngineError as e:
                logger.warning(
                    "Session probe failed",
                    workspace_id=workspace_id,
                    strategy=strategy,
                    error=str(e),
                )
                result.errors.append(f"{strategy}: {e}")
                continue

            session_id = extract_session_id(exec_result.stdout())
            if session_id:
                result.session_id = session_id
                result.strategy = strategy
                logger.debug(
                    "Session discovered",
                    workspace_id=workspace_id,
                    strategy=strategy,
                    session_id=session_id,
                )
                return result

        logger.debug("No session found", workspace_id=workspace_id)
        return result
