"""BuildOrchestrator 状态机单元测试"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from lockbuild.core.exceptions import ConfigError, FetchError, IntegrityMismatchError
from lockbuild.services.orchestrator import (
    BuildOrchestrator,
    BuildReport,
    BuildRequest,
    BuildState,
    advance,
)
from lockbuild.services.orchestrator.models import STATE_SEQUENCE
from lockbuild.services.orchestrator.orchestrator import InvalidTransitionError


def _report() -> BuildReport:
    return BuildReport(request=BuildRequest(project_dir="."))


class TestAdvance:
    def test_full_sequence(self) -> None:
        report = _report()
        for state in STATE_SEQUENCE[1:]:
            advance(report, state)
        assert report.state is BuildState.DONE
        assert report.history == list(STATE_SEQUENCE)
        assert report.success

    def test_skip_rejected(self) -> None:
        report = _report()
        with pytest.raises(InvalidTransitionError, match="init -> fetched"):
            advance(report, BuildState.FETCHED)

    def test_backwards_rejected(self) -> None:
        report = _report()
        advance(report, BuildState.RESOLVED)
        with pytest.raises(InvalidTransitionError):
            advance(report, BuildState.RESOLVED)

    def test_abort_from_any_state(self) -> None:
        report = _report()
        advance(report, BuildState.RESOLVED)
        advance(report, BuildState.ABORTED)
        assert report.state is BuildState.ABORTED
        assert not report.success

    @pytest.mark.parametrize("final", [BuildState.DONE, BuildState.ABORTED])
    def test_terminal_states_are_final(self, final) -> None:
        report = _report()
        report.state = final
        with pytest.raises(InvalidTransitionError, match="已结束"):
            advance(report, BuildState.ABORTED)


class TestReport:
    def test_to_dict_with_domain_error(self) -> None:
        report = _report()
        report.error = IntegrityMismatchError("https://x/a.tgz", "sha512-A", "sha512-B")
        data = report.to_dict()
        assert data["error"]["code"] == "INTEGRITY_MISMATCH"
        assert data["history"] == ["init"]

    def test_to_dict_with_plain_error(self) -> None:
        report = _report()
        report.error = OSError("disk full")
        assert report.to_dict()["error"] == {"code": "UNKNOWN", "message": "disk full"}


def _orchestrator_with_steps() -> tuple[BuildOrchestrator, MagicMock]:
    orch = BuildOrchestrator(container=MagicMock())
    steps = MagicMock()
    orch.steps = steps
    return orch, steps


class TestRun:
    def test_phases_in_order(self) -> None:
        orch, steps = _orchestrator_with_steps()
        report = orch.run(BuildRequest(project_dir="app"))
        called = [c[0] for c in steps.method_calls]
        assert called == [
            "prepare", "resolve", "fetch", "patch", "install", "build", "collect", "cleanup",
        ]
        assert report.state is BuildState.DONE
        assert report.history == list(STATE_SEQUENCE)

    def test_fetch_failure_aborts_before_patch(self) -> None:
        orch, steps = _orchestrator_with_steps()
        steps.fetch.side_effect = FetchError(MagicMock(describe=lambda: "tarball x"), "timeout")
        report = BuildReport(request=BuildRequest(project_dir="app"))
        with pytest.raises(FetchError):
            orch.run(report.request, report)
        assert report.history == [BuildState.INIT, BuildState.RESOLVED, BuildState.ABORTED]
        assert report.steps[-1]["step"] == "fetch"
        assert report.steps[-1]["status"] == "failed"
        steps.patch.assert_not_called()
        steps.install.assert_not_called()
        steps.cleanup.assert_called_once()

    def test_prepare_failure(self) -> None:
        orch, steps = _orchestrator_with_steps()
        steps.prepare.side_effect = ConfigError("lockfile 不存在")
        report = BuildReport(request=BuildRequest(project_dir="app"))
        with pytest.raises(ConfigError):
            orch.run(report.request, report)
        assert report.history == [BuildState.INIT, BuildState.ABORTED]
        assert isinstance(report.error, ConfigError)
        steps.resolve.assert_not_called()
        assert report.duration >= 0
