"""
Reading the XML reports written by the JUnit console runner.

The runner writes one report per engine into its report directory. Only the
report of the engine the checks were written for is required; the run totals
are read from the attributes of its root <testsuite> element.

Evidence printed by a check only reaches the report if the runner captures
standard output, which it does not by default. Put a junit-platform.properties
containing

    junit.platform.output.capture.stdout=true

on the check classpath (or pass --config junit.platform.output.capture.stdout=true
to the runner), otherwise the report has no <system-out> and no evidence is
attached.
"""

import os
import re
import xml.etree.ElementTree as eTree
from dataclasses import dataclass, field
from typing import Generator, List, Optional

import structlog

from yamf.attachments import EvidenceItem
from yamf.checks.junit.runner import CheckFramework
from yamf.exceptions import ReportMissingError, ReportParseError, RunnerInvocationError
from yamf.listener import CheckIdentifier, MarkingListener
from yamf.results import Outcome, Status

log = structlog.get_logger("yamf.reports")

DETAILS_SEPARATOR = "======= {} =======\n"
ATTACHMENT_PATTERN = re.compile(r"\[\[ATTACHMENT\|(.+?)\]\]")
_STATS_FIELDS = ("tests", "failures", "skipped", "errors")


@dataclass
class RunResult:
    """
    Totals of one run of the JUnit runner, its console output and the concatenated
    reports. Counters are added to for every report read.
    """

    console_output: str = ""
    details: str = ""
    tests: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    reports_dir: Optional[str] = None
    attachments: List[EvidenceItem] = field(default_factory=list)

    def add_to_tests(self, count: int) -> None:
        self.tests += count

    def add_to_failed(self, count: int) -> None:
        self.failed += count

    def add_to_skipped(self, count: int) -> None:
        self.skipped += count

    def add_to_errors(self, count: int) -> None:
        self.errors += count


@dataclass(frozen=True)
class TestcaseReport:
    __test__ = False

    identity: str
    outcome: Outcome
    system_out: str = ""

    @property
    def attachment_paths(self) -> List[str]:
        return [path.strip() for path in ATTACHMENT_PATTERN.findall(self.system_out)]


def _parse(report_path: str) -> eTree.Element:
    if not os.path.isfile(report_path):
        raise ReportMissingError("generated junit report does not exist and cannot be parsed for test outcome",
                                 report_path)
    try:
        root = eTree.parse(report_path).getroot()
    except eTree.ParseError as e:
        raise ReportParseError(f"malformed junit report ({e})", report_path) from e
    except OSError as e:
        raise RunnerInvocationError(f"cannot read junit report {report_path}: {e}") from e
    if root.tag != "testsuite":
        raise ReportParseError(f"expected a <testsuite> root element, found <{root.tag}>", report_path)
    return root


def _int_attribute(root: eTree.Element, name: str, report_path: str) -> int:
    value = root.attrib.get(name)
    if value is None:
        raise ReportParseError(f"missing /testsuite/@{name}", report_path)
    try:
        count = int(value)
    except ValueError:
        raise ReportParseError(f"/testsuite/@{name} is not an integer ({value!r})", report_path) from None
    if count < 0:
        raise ReportParseError(f"/testsuite/@{name} is negative ({count})", report_path)
    return count


def extract_stats(report_path: str, run_result: RunResult) -> None:
    """ Add the test, failure, skipped and error counts of the report at report_path to run_result """
    root = _parse(report_path)
    tests, failures, skipped, errors = (_int_attribute(root, name, report_path) for name in _STATS_FIELDS)
    run_result.add_to_tests(tests)
    run_result.add_to_failed(failures)
    run_result.add_to_skipped(skipped)
    run_result.add_to_errors(errors)


def read_details(reports_dir: str) -> str:
    """
    Return the content of all non-hidden files in reports_dir, each preceded by a
    line with its name.
    """
    details = []
    for name in sorted(os.listdir(reports_dir)):
        path = os.path.join(reports_dir, name)
        if name.startswith(".") or not os.path.isfile(path):
            continue
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                details.append(DETAILS_SEPARATOR.format(name) + f.read())
        except OSError as e:
            raise RunnerInvocationError(f"cannot read junit report {path}: {e}") from e
    return "".join(details)


def collect_run_result(reports_dir: str, framework: CheckFramework, console_output: str = "") -> RunResult:
    """
    Return the RunResult of a run that wrote its reports to reports_dir.

    The report of framework must exist; the report of the other engine is added
    to the totals only if the runner wrote one.
    """
    run_result = RunResult(console_output=console_output, reports_dir=reports_dir)
    if os.path.isdir(reports_dir):
        run_result.details = read_details(reports_dir)
    expected = os.path.join(reports_dir, framework.report_name)
    extract_stats(expected, run_result)
    run_result.attachments.append(EvidenceItem(framework.report_name, expected, "application/xml"))
    for other in CheckFramework:
        other_report = os.path.join(reports_dir, other.report_name)
        if other != framework and os.path.isfile(other_report):
            extract_stats(other_report, run_result)
    log.info(
        "junit reports read",
        reports_dir=reports_dir,
        tests=run_result.tests,
        failed=run_result.failed,
        skipped=run_result.skipped,
        errors=run_result.errors,
    )
    return run_result


def _testcase_outcome(testcase: eTree.Element) -> Outcome:
    for tag in ("failure", "error"):
        problem = testcase.find(tag)
        if problem is not None:
            failure_type = problem.attrib.get("type", "")
            message = problem.attrib.get("message", "")
            return Outcome.failed(f"{failure_type}: {message}" if failure_type else message)
    skipped = testcase.find("skipped")
    if skipped is not None:
        reason = skipped.attrib.get("message") or (skipped.text or "").strip()
        return Outcome.aborted(reason or None)
    return Outcome.success()


def iter_testcases(report_path: str) -> Generator[TestcaseReport, None, None]:
    """
    Parse the report at report_path and yield the result of each testcase in it.

    JUnit 5 appends the parameter types to the method name (testAdd(int)); they
    are not part of the check identity.
    """
    root = _parse(report_path)
    for testcase in root.iterfind("testcase"):
        try:
            classname = testcase.attrib["classname"]
            method = testcase.attrib["name"].split("(", 1)[0]
        except KeyError as e:
            raise ReportParseError(f"testcase without {e.args[0]} attribute", report_path) from None
        system_out = testcase.find("system-out")
        yield TestcaseReport(
            identity=f"{classname}::{method}",
            outcome=_testcase_outcome(testcase),
            system_out=(system_out.text or "") if system_out is not None else "",
        )


def replay_report(report_path: str, listener: MarkingListener) -> None:
    """
    Feed the lifecycle of every testcase in the report at report_path to listener:
    started, the evidence it printed as [[ATTACHMENT|path]] lines, and finished.

    The XML report does not tell skipped and aborted checks apart, so both are
    finished as aborted.

    [[ATTACHMENT|path]] lines are only found if the runner captured standard
    output (junit.platform.output.capture.stdout=true, see the module docstring).
    """
    listener.run_started()
    try:
        for number, testcase in enumerate(iter_testcases(report_path)):
            check = CheckIdentifier(
                unique_id=f"[{number}]{testcase.identity}",
                display_name=testcase.identity,
                qualified_name=testcase.identity,
            )
            if testcase.outcome.status == Status.ABORTED:
                listener.check_skipped(check, testcase.outcome.failure)
            listener.check_started(check)
            for path in testcase.attachment_paths:
                listener.attachments.handle(check.unique_id).add(path)
            listener.check_finished(check, testcase.outcome)
    finally:
        listener.run_finished()
