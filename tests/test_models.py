"""Tests for orchestrator models."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from agent_ide.models import (
    ContainerRole,
    Environment,
    SessionProbeResult,
    SyncOutcome,
    SyncResult,
    Workspace,
    WorkspaceEnvironmentLink,
    WorkspaceStatus,
    parse_variables,
)
from agent_ide.validation import ValidationError


class TestParseVariables:
    """Tests for variables coercion."""

    def test_json_string(self) -> None:
        assert parse_variables('{"A": "1", "B": "two"}') == {"A": "1", "B": "two"}

    def test_mapping(self) -> None:
        assert parse_variables({"A": "1"}) == {"A": "1"}

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty(self, raw: object) -> None:
        assert parse_variables(raw) == {}

    def test_scalars_are_stringified(self) -> None:
        assert parse_variables({"N": 3, "F": 1.5, "T": True, "OFF": False}) == {
            "N": "3",
            "F": "1.5",
            "T": "true",
            "OFF": "false",
        }

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"', "42"])
    def test_lenient_malformed_is_empty(self, raw: str) -> None:
        assert parse_variables(raw) == {}

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_strict_malformed_raises(self, raw: str) -> None:
        with pytest.raises(ValidationError, match="Invalid variables format"):
            parse_variables(raw, strict=True)

    def test_lenient_drops_bad_entries(self) -> None:
        raw = {"OK": "1", "": "x", "A=B": "y", "NESTED": {"a": 1}, "LIST": [1]}
        assert parse_variables(raw) == {"OK": "1"}

    @pytest.mark.parametrize("raw", [{"": "x"}, {"A=B": "y"}, {"NESTED": {"a": 1}}])
    def test_strict_rejects_bad_entries(self, raw: dict) -> None:
        with pytest.raises(ValidationError):
            parse_variables(raw, strict=True)


class TestEnvironment:
    """Tests for the Environment model."""

    def test_variables_from_json(self) -> None:
        environment = Environment(id="e1", owner_id="u1", name="dev", variables='{"A": "1"}')
        assert environment.variables == {"A": "1"}

    def test_malformed_persisted_variables_do_not_fail(self) -> None:
        environment = Environment(id="e1", owner_id="u1", name="dev", variables="oops")
        assert environment.variables == {}

    def test_name_is_stripped(self) -> None:
        environment = Environment(id="e1", owner_id="u1", name="  dev  ", description=" d ")
        assert environment.name == "dev"
        assert environment.description == "d"

    def test_blank_name_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            Environment(id="e1", owner_id="u1", name="   ")

    def test_serialized_variables(self) -> None:
        environment = Environment(id="e1", owner_id="u1", name="dev", variables={"A": "1"})
        assert json.loads(environment.serialized_variables) == {"A": "1"}

    def test_json_roundtrip(self) -> None:
        environment = Environment(id="e1", owner_id="u1", name="dev", variables={"A": "1"})
        restored = Environment.model_validate(environment.model_dump(mode="json"))
        assert restored == environment


class TestWorkspace:
    """Tests for the Workspace model."""

    def _workspace(self) -> Workspace:
        return Workspace(
            id="ws1",
            owner_id="user-1",
            name="Demo",
            repo_url="https://github.com/acme/app.git",
            agent_port=4000,
            editor_port=5000,
        )

    def test_defaults(self) -> None:
        workspace = self._workspace()
        assert workspace.status == WorkspaceStatus.CREATING
        assert workspace.branch == "main"
        assert workspace.error_detail is None

    def test_port_for(self) -> None:
        workspace = self._workspace()
        assert workspace.port_for(ContainerRole.AGENT) == 4000
        assert workspace.port_for(ContainerRole.EDITOR) == 5000

    def test_transition_keeps_detail_only_for_error(self) -> None:
        workspace = self._workspace()
        before = workspace.updated_at

        workspace.transition(WorkspaceStatus.ERROR, error_detail="boom")
        assert workspace.error_detail == "boom"
        assert workspace.updated_at >= before

        workspace.transition(WorkspaceStatus.RUNNING, error_detail="ignored")
        assert workspace.status == WorkspaceStatus.RUNNING
        assert workspace.error_detail is None


class TestResults:
    """Tests for outcome types."""

    def test_sync_result_applied(self) -> None:
        assert SyncResult(workspace_id="ws1", outcome=SyncOutcome.APPLIED).applied
        assert not SyncResult(workspace_id="ws1", outcome=SyncOutcome.DEFERRED).applied

    def test_probe_result_found(self) -> None:
        assert not SessionProbeResult(workspace_id="ws1").found
        assert SessionProbeResult(workspace_id="ws1", session_id="ses_1").found

    def test_link_position_non_negative(self) -> None:
        with pytest.raises(PydanticValidationError):
            WorkspaceEnvironmentLink(workspace_id="ws1", environment_id="e1", position=-1)
