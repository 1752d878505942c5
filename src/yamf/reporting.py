import json
from typing import Dict, List, Optional, Protocol, Sequence, Union, runtime_checkable

import structlog

from yamf.attachments import EvidenceItem
from yamf.results import ResultRecord, Status, Summary

log = structlog.get_logger("yamf.reporting")

ResultData = Dict[str, Union[str, float, bool, List[str], None]]

_STATUSES = {Status.SUCCESS: "pass", Status.FAILURE: "fail", Status.ABORTED: "error"}


@runtime_checkable
class Reporter(Protocol):
    """
    Turns the sorted result records of a run and their evidence into a report.
    summary holds the totals of the run, which also count records that were
    replaced by a later record for the same check.
    """

    def generate_report(
        self,
        records: Sequence[ResultRecord],
        attachments: Sequence[EvidenceItem],
        summary: Optional[Summary] = None,
    ) -> None:
        ...


def format_result(record: ResultRecord) -> ResultData:
    """
    Return the result data of record.
    :param record: a marked check result.
    :return a dictionary with the name of the check, a note for the marker, the marks earned and the
            total marks of the check, its status, whether it must be reviewed by a marker and the paths of
            its evidence.
    """
    return {
        "name": record.name,
        "check": record.identity,
        "output": record.notes,
        "marks_earned": record.marks,
        "marks_total": record.max_marks,
        "status": _STATUSES[record.status],
        "manual_review": record.manual_review_required,
        "attachments": [item.path for item in record.attachments],
    }


class JsonReporter:
    """
    Writes the results as a single json document to output_path, or prints one
    json object per result to stdout if no output path is given.

    The totals of the document are taken from summary if one is given so they
    match the totals of the run.
    """

    def __init__(self, output_path: Optional[str] = None) -> None:
        self.output_path = output_path

    def generate_report(
        self,
        records: Sequence[ResultRecord],
        attachments: Sequence[EvidenceItem],
        summary: Optional[Summary] = None,
    ) -> None:
        results = [format_result(record) for record in records]
        if self.output_path is None:
            for result in results:
                print(json.dumps(result), flush=True)
            return
        if summary is None:
            marks = sum(record.marks for record in records)
            max_marks = sum(record.max_marks for record in records)
        else:
            marks, max_marks = summary.marks, summary.max_marks
        report = {
            "results": results,
            "marks_earned": marks,
            "marks_total": max_marks,
            "attachments": [
                {"name": item.name, "path": item.path, "media_type": item.media_type} for item in attachments
            ],
        }
        with open(self.output_path, "w") as f:
            json.dump(report, f, indent=4)
        log.info("report written", path=self.output_path, results=len(results))
