from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

from brainguck.driver import RunResult
from brainguck.visualizer import VisualizerSession

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    session: VisualizerSession
    source: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def result(self) -> Optional[RunResult]:
        return self.session.result


class SessionStore:
    """Keeps at most ``max_sessions`` debugger sessions, dropping the oldest."""

    def __init__(self, max_sessions: int = 64) -> None:
        self.max_sessions = max_sessions
        self._records: "OrderedDict[str, SessionRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def add(self, session: VisualizerSession, source: str) -> SessionRecord:
        record = SessionRecord(session=session, source=source)
        with self._lock:
            self._records[record.session_id] = record
            while len(self._records) > self.max_sessions:
                evicted, _ = self._records.popitem(last=False)
                logger.info("Evicted session %s", evicted)
        return record

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session id: {session_id}")
        return record

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None


__all__ = ["SessionRecord", "SessionStore"]
