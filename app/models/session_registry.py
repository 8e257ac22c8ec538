"""
Active Session Registry - Bộ nhớ đệm các phiên điểm danh đang mở
In-process cache of active sessions, bounded by a TTL and rebuilt from the
database on startup.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class ActiveSession:
    session_id: str
    class_id: int
    lecturer_id: int
    start_time: datetime
    session_date: str

    @classmethod
    def from_row(cls, row: dict) -> "ActiveSession":
        start_time = row['start_time']
        if not isinstance(start_time, datetime):
            start_time = datetime.fromisoformat(str(start_time))
        return cls(
            session_id=row['session_id'],
            class_id=row['class_id'],
            lecturer_id=row['lecturer_id'],
            start_time=start_time,
            session_date=row.get('session_date') or start_time.date().isoformat(),
        )

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'class_id': self.class_id,
            'lecturer_id': self.lecturer_id,
            'start_time': self.start_time.isoformat(),
            'date': self.session_date,
        }


class ActiveSessionRegistry:
    """Thread-safe map ``session_id -> ActiveSession``.

    Entries older than ``ttl`` are treated as gone: lookups evict them and
    report a miss. The persisted row is finalized by
    :meth:`SessionManager.reconcile`.
    """

    def __init__(self, ttl_hours: float = 12, clock: Optional[Callable[[], datetime]] = None):
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock or datetime.now
        self._sessions: Dict[str, ActiveSession] = {}
        self._lock = threading.RLock()

    def is_expired(self, entry: ActiveSession, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return now - entry.start_time > self.ttl

    def register(self, entry: ActiveSession) -> None:
        with self._lock:
            self._sessions[entry.session_id] = entry

    def get(self, session_id: str) -> Optional[ActiveSession]:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            if self.is_expired(entry):
                del self._sessions[session_id]
                return None
            return entry

    def remove(self, session_id: str) -> Optional[ActiveSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def purge_expired(self) -> List[ActiveSession]:
        """Xóa và trả về các phiên đã quá TTL."""
        now = self.clock()
        with self._lock:
            expired = [entry for entry in self._sessions.values() if self.is_expired(entry, now)]
            for entry in expired:
                del self._sessions[entry.session_id]
        return expired

    def snapshot(self) -> List[ActiveSession]:
        with self._lock:
            return list(self._sessions.values())

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
