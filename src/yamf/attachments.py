"""
Evidence captured while checks run.

Each check gets its own scope in an AttachmentRegistry for the time it is
executing. Code running inside a check never talks to the registry directly:
it is handed an EvidenceSink bound to that check, so evidence can only ever
land in the scope of the check that produced it.

A scope is closed by end_scope or drain. Evidence added to a closed (or never
opened) scope is dropped and a warning is logged.
"""

import mimetypes
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

log = structlog.get_logger("yamf.attachments")

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class EvidenceItem:
    """A file captured as evidence. The file itself stays where it was written."""

    name: str
    path: str
    media_type: str = DEFAULT_MEDIA_TYPE

    @classmethod
    def from_path(cls, path: str, name: Optional[str] = None, media_type: Optional[str] = None) -> "EvidenceItem":
        """
        Return an EvidenceItem for path. The name defaults to the file name and the
        media type is guessed from it if not given.
        """
        if media_type is None:
            media_type = mimetypes.guess_type(path)[0] or DEFAULT_MEDIA_TYPE
        return cls(name=name or os.path.basename(path), path=path, media_type=media_type)


class _Scope:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.items: List[EvidenceItem] = []
        self.closed = False


class AttachmentRegistry:
    """
    Process-wide store of evidence keyed by the identity of the check producing it.

    The registry lock only guards the mapping of identities to scopes. Appending to
    or draining a scope happens under that scope's own lock, so checks running in
    parallel do not wait on each other.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scopes: Dict[str, _Scope] = {}

    def reset(self) -> None:
        """ Close and discard all scopes """
        with self._lock:
            scopes, self._scopes = self._scopes, {}
        for scope in scopes.values():
            with scope.lock:
                scope.closed = True
        if scopes:
            log.debug("discarded open evidence scopes", count=len(scopes))

    def start_scope(self, check_id: str) -> None:
        """ Open an empty scope for check_id, keeping the current one if it is already open """
        with self._lock:
            if check_id not in self._scopes:
                self._scopes[check_id] = _Scope()

    def end_scope(self, check_id: str) -> None:
        """ Close the scope for check_id, discarding anything that was not drained """
        with self._lock:
            scope = self._scopes.pop(check_id, None)
        if scope is not None:
            with scope.lock:
                scope.closed = True
                if scope.items:
                    log.warning("evidence discarded when closing scope", check=check_id, count=len(scope.items))

    def add(self, check_id: str, item: EvidenceItem) -> bool:
        """
        Append item to the open scope for check_id. Return False, and log a warning,
        if there is no open scope: such evidence cannot be attributed to a check.
        """
        with self._lock:
            scope = self._scopes.get(check_id)
        if scope is not None:
            with scope.lock:
                if not scope.closed:
                    scope.items.append(item)
                    return True
        log.warning("evidence dropped, no open scope", check=check_id, attachment=item.name)
        return False

    def drain(self, check_id: str) -> Tuple[EvidenceItem, ...]:
        """ Return the evidence for check_id in the order it was added, and close its scope """
        with self._lock:
            scope = self._scopes.pop(check_id, None)
        if scope is None:
            return ()
        with scope.lock:
            scope.closed = True
            items, scope.items = tuple(scope.items), []
        return items

    def is_open(self, check_id: str) -> bool:
        with self._lock:
            return check_id in self._scopes

    def open_scopes(self) -> List[str]:
        with self._lock:
            return sorted(self._scopes)

    def handle(self, check_id: str) -> "EvidenceSink":
        """ Return an EvidenceSink that adds evidence to the scope of check_id only """
        return EvidenceSink(self, check_id)


class EvidenceSink:
    """ Handle given to a running check for recording its evidence """

    def __init__(self, registry: AttachmentRegistry, check_id: str) -> None:
        self._registry = registry
        self._check_id = check_id

    @property
    def check_id(self) -> str:
        return self._check_id

    def add(self, path: str, name: Optional[str] = None, media_type: Optional[str] = None) -> bool:
        """ Record the file at path as evidence of the current check """
        return self._registry.add(self._check_id, EvidenceItem.from_path(path, name, media_type))


attachments = AttachmentRegistry()
