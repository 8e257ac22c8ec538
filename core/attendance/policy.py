"""Late/absent rules for a recognized student.

Everything here is pure: callers supply the session start, the scan time and
the student's previous statuses, and get back the status to persist.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import ValidationError

PRESENT = "present"
LATE = "late"
ABSENT = "absent"
EXCUSED = "excused"

VALID_STATUSES = (PRESENT, ABSENT, LATE, EXCUSED)

LATE_THRESHOLD_MINUTES = 5
MAX_CONSECUTIVE_LATE = 3


@dataclass(frozen=True)
class RecognitionEvent:
    """One recognized student in a mark request, with defaults resolved."""

    student_id: str
    status: Optional[str] = None
    time: Optional[str] = None
    captured_offline: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "RecognitionEvent":
        if not isinstance(payload, dict):
            raise ValidationError("Each recognized student must be an object")

        student_id = payload.get("student_id", payload.get("studentId"))
        if student_id is None or str(student_id).strip() == "":
            raise ValidationError("student_id is required")

        status = payload.get("status") or None
        if status is not None:
            status = str(status).strip().lower()
            if status not in VALID_STATUSES:
                raise ValidationError(f"Invalid status '{status}'")

        captured_offline = payload.get("captured_offline", payload.get("capturedOffline", False))
        return cls(
            student_id=str(student_id).strip(),
            status=status,
            time=payload.get("time") or None,
            captured_offline=bool(captured_offline),
        )


def minutes_since(start_time: datetime, now: datetime) -> float:
    return (now - start_time).total_seconds() / 60.0


def is_late(start_time: datetime, now: datetime,
            threshold_minutes: float = LATE_THRESHOLD_MINUTES) -> bool:
    return minutes_since(start_time, now) > threshold_minutes


def count_late_streak(previous_statuses: Iterable[str]) -> int:
    """Number of leading ``late`` statuses (most recent first)."""
    streak = 0
    for status in previous_statuses:
        if status != LATE:
            break
        streak += 1
    return streak


def _escalate(prior_streak: int, max_consecutive_late: int) -> Tuple[str, int]:
    streak = prior_streak + 1
    if streak >= max_consecutive_late:
        return ABSENT, 0
    return LATE, streak


def resolve_status(explicit_status: Optional[str], late: bool, prior_streak: int,
                   max_consecutive_late: int = MAX_CONSECUTIVE_LATE) -> Tuple[str, int]:
    """Decide ``(status, consecutive_late_count)`` for one scan.

    ==================  =====  ===========================================
    explicit status     late   result
    ==================  =====  ===========================================
    None / present      no     present, 0
    None / present      yes    late, streak+1 (absent, 0 once >= max)
    anything else       any    unchanged status, streak unchanged
    ==================  =====  ===========================================
    """
    if explicit_status in (None, PRESENT):
        if late:
            return _escalate(prior_streak, max_consecutive_late)
        return PRESENT, 0
    return explicit_status, prior_streak


def tally_statuses(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Count present/absent/late from ``{'status', 'count'}`` aggregate rows."""
    counts = {PRESENT: 0, ABSENT: 0, LATE: 0}
    for row in rows:
        status = row.get("status")
        if status in counts:
            counts[status] += int(row.get("count") or 0)
    return counts
