"""
Actions to run checks written for JUnit and mark them.

Details of a run are extracted from the XML reports written by the JUnit console
runner. The console output of the runner is captured as well, parsing the XML
reports is more reliable than parsing it.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

import structlog

from yamf.attachments import AttachmentRegistry, EvidenceItem
from yamf.checks.junit.reports import RunResult, collect_run_result, replay_report
from yamf.checks.junit.runner import RunnerInvoker, RunRequest
from yamf.listener import MarkingListener
from yamf.marks import MarkRegistry
from yamf.reporting import Reporter
from yamf.results import ResultRecord, Summary

log = structlog.get_logger("yamf.actions")


@dataclass(frozen=True)
class MarkingRun:
    """ The marked results of one run of checks """

    records: List[ResultRecord]
    summary: Summary
    run_result: RunResult

    def attachments(self) -> List[EvidenceItem]:
        """ Return the evidence of the run followed by the evidence of each record """
        return [*self.run_result.attachments, *(item for record in self.records for item in record.attachments)]


def run_checks(
    request: RunRequest,
    registry: Optional[MarkRegistry] = None,
    reporter: Optional[Reporter] = None,
    invoker: Optional[RunnerInvoker] = None,
    attachment_registry: Optional[AttachmentRegistry] = None,
) -> MarkingRun:
    """
    Run the checks of request with the JUnit console runner and mark each check
    with the metadata found in registry.

    If a reporter is given, the marked records and all evidence are passed to it.
    Any failure to run the checks or to read the report of the run is raised.
    """
    invoker = RunnerInvoker() if invoker is None else invoker
    invocation = invoker.invoke(request)
    run_result = collect_run_result(invocation.reports_dir, request.framework, invocation.console_output)

    listener = MarkingListener(registry=registry, attachment_registry=attachment_registry)
    replay_report(os.path.join(invocation.reports_dir, request.framework.report_name), listener)

    marking_run = MarkingRun(records=listener.results(), summary=listener.summary(), run_result=run_result)
    log.info(
        "checks marked",
        check_class=request.check_class,
        records=len(marking_run.records),
        marks=marking_run.summary.marks,
        max_marks=marking_run.summary.max_marks,
    )
    if reporter is not None:
        reporter.generate_report(marking_run.records, marking_run.attachments(), summary=marking_run.summary)
    return marking_run
