import enum
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from yamf.attachments import EvidenceItem
from yamf.marks import MarkMetadata

log = structlog.get_logger("yamf.results")


class Status(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    # skipped checks and checks that failed outside their body (setup, assumptions)
    ABORTED = "aborted"


@dataclass(frozen=True)
class Outcome:
    """ How the execution of a single check ended """

    status: Status
    failure: Optional[str] = None

    @classmethod
    def success(cls) -> "Outcome":
        return cls(Status.SUCCESS)

    @classmethod
    def failed(cls, failure: Optional[str] = None) -> "Outcome":
        return cls(Status.FAILURE, failure)

    @classmethod
    def aborted(cls, failure: Optional[str] = None) -> "Outcome":
        return cls(Status.ABORTED, failure)


@dataclass(frozen=True)
class ResultRecord:
    """
    The marking result of one executed check: its outcome, the mark metadata
    declared for it and the evidence captured while it ran.
    """

    identity: str
    status: Status
    metadata: Optional[MarkMetadata]
    failure: Optional[str] = None
    attachments: Tuple[EvidenceItem, ...] = ()

    @property
    def name(self) -> str:
        """ The display name of the check """
        if self.metadata is not None and self.metadata.name:
            return self.metadata.name
        return self.identity

    @property
    def max_marks(self) -> float:
        return self.metadata.marks if self.metadata is not None else 0.0

    @property
    def marks(self) -> float:
        """ The marks earned: all of them if the check succeeded, none otherwise """
        return self.max_marks if self.status == Status.SUCCESS else 0.0

    @property
    def is_success(self) -> bool:
        return self.status == Status.SUCCESS

    @property
    def is_aborted(self) -> bool:
        return self.status == Status.ABORTED

    @property
    def manual_marking_required(self) -> bool:
        return self.metadata is not None and self.metadata.manual_marking_required

    @property
    def manual_review_required(self) -> bool:
        """ True if a marker has to look at this result before the mark can be trusted """
        return self.metadata is None or self.manual_marking_required or self.is_aborted

    @property
    def notes(self) -> str:
        if self.manual_marking_required:
            return self.metadata.manual_marking_instructions or ""
        return self.failure or ""

    @property
    def report_status(self) -> str:
        if self.manual_review_required:
            return "todo"
        return "ok" if self.is_success else "fail"


@dataclass(frozen=True)
class Summary:
    marks: float
    max_marks: float
    records: int


class ResultAggregator:
    """
    Collects the result records of one run. Records may be added concurrently;
    they are read back in order of identity once the run has finished.

    Identities are expected to be unique. If two records share one, only the
    record added last is returned by records() but both count towards summary().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: List[ResultRecord] = []

    def add(self, record: ResultRecord) -> None:
        with self._lock:
            collision = any(r.identity == record.identity for r in self._records)
            self._records.append(record)
        if collision:
            log.warning("duplicate check identity, earlier result hidden", check=record.identity)

    def records(self) -> List[ResultRecord]:
        """ Return the visible records sorted by identity """
        with self._lock:
            records = list(self._records)
        visible: Dict[str, ResultRecord] = {}
        for record in records:
            visible[record.identity] = record
        return sorted(visible.values(), key=lambda r: r.identity)

    def summary(self) -> Summary:
        with self._lock:
            records = list(self._records)
        marks = 0.0
        max_marks = 0.0
        for record in records:
            marks += record.marks
            max_marks += record.max_marks
        return Summary(marks=marks, max_marks=max_marks, records=len(records))

    def attachments(self) -> List[EvidenceItem]:
        """ Return the evidence of all visible records, in record order """
        return [item for record in self.records() for item in record.attachments]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
