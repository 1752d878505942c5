import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pytest
import structlog

from yamf.attachments import AttachmentRegistry, EvidenceSink
from yamf.listener import CheckIdentifier, MarkingListener
from yamf.marks import MarkRegistry, check_identity
from yamf.reporting import Reporter
from yamf.results import Outcome, ResultRecord, Summary

log = structlog.get_logger("yamf.pytest")


class MarkingPlugin:
    """
    Pytest plugin marking the checks pytest runs, with mark metadata declared by
    the yamf.marks decorators.

    Checks can record evidence through the evidence fixture:

        @marking(marks=1)
        def test_plot(evidence, tmp_path):
            path = tmp_path / "plot.png"
            ...
            evidence.add(str(path))
    """

    def __init__(
        self, registry: Optional[MarkRegistry] = None, attachment_registry: Optional[AttachmentRegistry] = None
    ) -> None:
        self.listener = MarkingListener(registry=registry, attachment_registry=attachment_registry)
        self._reports: Dict[str, List[pytest.TestReport]] = {}

    @staticmethod
    def _identify(item: pytest.Item) -> CheckIdentifier:
        function = getattr(item, "function", None)
        return CheckIdentifier(
            unique_id=item.nodeid,
            display_name=item.nodeid,
            qualified_name=check_identity(function) if function is not None else None,
        )

    def pytest_sessionstart(self, session: pytest.Session) -> None:
        self.listener.run_started()

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        self.listener.run_finished()

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtest_protocol(self, item: pytest.Item, nextitem: Optional[pytest.Item]):
        """
        Open the evidence scope of item before it is set up and mark it once it
        has been torn down.
        """
        check = self._identify(item)
        self._reports[item.nodeid] = []
        self.listener.check_started(check)
        yield
        self.listener.check_finished(check, self._outcome(check, self._reports.pop(item.nodeid, [])))

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        reports = self._reports.get(report.nodeid)
        if reports is not None:
            reports.append(report)

    def _outcome(self, check: CheckIdentifier, reports: Sequence[pytest.TestReport]) -> Outcome:
        """
        Return the outcome of a check from the reports of its setup, call and teardown.
        Only a failure of the check itself is a failure, errors while setting up or
        tearing down and skips abort the check.
        """
        for report in reports:
            if report.failed:
                if report.when == "call":
                    return Outcome.failed(str(report.longrepr))
                return Outcome.aborted(str(report.longrepr))
            if report.skipped:
                reason = report.longrepr[2] if isinstance(report.longrepr, tuple) else str(report.longrepr)
                self.listener.check_skipped(check, reason)
                return Outcome.aborted(reason)
        return Outcome.success()

    @pytest.fixture
    def evidence(self, request: pytest.FixtureRequest) -> EvidenceSink:
        """ Evidence of the running check """
        return self.listener.attachments.handle(request.node.nodeid)


@dataclass(frozen=True)
class PytestRun:
    records: List[ResultRecord]
    summary: Summary
    exit_code: int


def run_pytest_checks(
    paths: Sequence[str],
    verbosity: str = "short",
    registry: Optional[MarkRegistry] = None,
    reporter: Optional[Reporter] = None,
) -> PytestRun:
    """
    Run the pytest checks in paths and return their marked results. Output of
    pytest itself is discarded.
    """
    plugin = MarkingPlugin(registry=registry)
    stdout = sys.stdout
    with open(os.devnull, "w") as null_out:
        try:
            sys.stdout = null_out
            exit_code = pytest.main([*paths, f"--tb={verbosity}", "-p", "no:cacheprovider"], plugins=[plugin])
        finally:
            sys.stdout = stdout
    run = PytestRun(records=plugin.listener.results(), summary=plugin.listener.summary(), exit_code=int(exit_code))
    log.info("pytest checks marked", records=len(run.records), marks=run.summary.marks, exit_code=run.exit_code)
    if reporter is not None:
        attachments = [item for record in run.records for item in record.attachments]
        reporter.generate_report(run.records, attachments, summary=run.summary)
    return run
