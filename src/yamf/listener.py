"""
Listener turning check lifecycle events into result records.

Events come from whatever executes the checks: the pytest plugin forwards them
while pytest runs, and for the JUnit runner they are replayed from its report
once the runner has exited. Either way every event goes through
MarkingListener.handle, which may be called from several threads at once.
"""

import enum
from dataclasses import dataclass
from typing import List, Optional

import structlog

from yamf.attachments import AttachmentRegistry, attachments as default_attachments
from yamf.exceptions import MarkExtractionError
from yamf.marks import MarkMetadata, MarkRegistry, default_registry
from yamf.results import Outcome, ResultAggregator, ResultRecord, Summary

log = structlog.get_logger("yamf.listener")


class EventKind(enum.Enum):
    RUN_STARTED = "run_started"
    CHECK_SKIPPED = "check_skipped"
    CHECK_STARTED = "check_started"
    CHECK_FINISHED = "check_finished"
    RUN_FINISHED = "run_finished"


@dataclass(frozen=True)
class CheckIdentifier:
    """
    Identifies a node of the executed check tree. Only leaf nodes are checks,
    containers (classes, suites, engines) are ignored by the listener.

    qualified_name is the Class::method name mark metadata is registered under;
    it is None if the definition of the check could not be resolved.
    """

    unique_id: str
    display_name: str
    qualified_name: Optional[str] = None
    leaf: bool = True

    @property
    def name(self) -> str:
        return self.qualified_name or f"test identifier {self.unique_id}"


@dataclass(frozen=True)
class LifecycleEvent:
    kind: EventKind
    check: Optional[CheckIdentifier] = None
    outcome: Optional[Outcome] = None
    reason: Optional[str] = None

    @classmethod
    def run_started(cls) -> "LifecycleEvent":
        return cls(EventKind.RUN_STARTED)

    @classmethod
    def run_finished(cls) -> "LifecycleEvent":
        return cls(EventKind.RUN_FINISHED)

    @classmethod
    def check_skipped(cls, check: CheckIdentifier, reason: Optional[str] = None) -> "LifecycleEvent":
        return cls(EventKind.CHECK_SKIPPED, check=check, reason=reason)

    @classmethod
    def check_started(cls, check: CheckIdentifier) -> "LifecycleEvent":
        return cls(EventKind.CHECK_STARTED, check=check)

    @classmethod
    def check_finished(cls, check: CheckIdentifier, outcome: Outcome) -> "LifecycleEvent":
        return cls(EventKind.CHECK_FINISHED, check=check, outcome=outcome)


class MarkingListener:
    """
    Records the result and marks of each finished check of a run.

    One listener is used per run. Checks without mark metadata are logged and left
    out of the results.
    """

    def __init__(
        self,
        registry: Optional[MarkRegistry] = None,
        attachment_registry: Optional[AttachmentRegistry] = None,
        aggregator: Optional[ResultAggregator] = None,
    ) -> None:
        self.registry = default_registry if registry is None else registry
        self.attachments = default_attachments if attachment_registry is None else attachment_registry
        self.aggregator = ResultAggregator() if aggregator is None else aggregator

    def handle(self, event: LifecycleEvent) -> None:
        """ Update the state of this listener with event """
        if event.kind == EventKind.RUN_STARTED:
            log.info("checks started")
            self.attachments.reset()
        elif event.kind == EventKind.RUN_FINISHED:
            log.info("checks finished", results=len(self.aggregator))
            self.attachments.reset()
        elif event.check is None or not event.check.leaf:
            return
        elif event.kind == EventKind.CHECK_SKIPPED:
            log.info("check skipped", check=event.check.name, reason=event.reason)
            self.attachments.start_scope(event.check.unique_id)
        elif event.kind == EventKind.CHECK_STARTED:
            log.info("running check", check=event.check.name)
            self.attachments.start_scope(event.check.unique_id)
        elif event.kind == EventKind.CHECK_FINISHED:
            self._finish(event.check, event.outcome or Outcome.aborted("no outcome reported"))

    def _finish(self, check: CheckIdentifier, outcome: Outcome) -> None:
        log.info("check finished", check=check.name)
        try:
            metadata = self._extract_mark(check)
            if metadata is not None:
                record = ResultRecord(
                    identity=check.qualified_name,
                    status=outcome.status,
                    metadata=metadata,
                    failure=outcome.failure,
                    attachments=self.attachments.drain(check.unique_id),
                )
                self.aggregator.add(record)
                log.info("check marked", check=check.name, status=record.status.value, marks=record.marks)
        except Exception:
            log.exception("cannot extract mark from check", check=check.display_name)
        finally:
            self.attachments.end_scope(check.unique_id)

    def _extract_mark(self, check: CheckIdentifier) -> Optional[MarkMetadata]:
        if not check.qualified_name:
            raise MarkExtractionError(f"cannot resolve the definition of check {check.display_name}")
        metadata = self.registry.lookup(check.qualified_name)
        if metadata is None:
            log.warning("no marking found for check", check=check.display_name)
        return metadata

    def run_started(self) -> None:
        self.handle(LifecycleEvent.run_started())

    def run_finished(self) -> None:
        self.handle(LifecycleEvent.run_finished())

    def check_skipped(self, check: CheckIdentifier, reason: Optional[str] = None) -> None:
        self.handle(LifecycleEvent.check_skipped(check, reason))

    def check_started(self, check: CheckIdentifier) -> None:
        self.handle(LifecycleEvent.check_started(check))

    def check_finished(self, check: CheckIdentifier, outcome: Outcome) -> None:
        self.handle(LifecycleEvent.check_finished(check, outcome))

    def results(self) -> List[ResultRecord]:
        """ Return the records of all marked checks sorted by check identity """
        return self.aggregator.records()

    def summary(self) -> Summary:
        return self.aggregator.summary()
