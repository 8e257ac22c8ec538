"""Attendance status rules and error types."""

from .errors import AttendanceError, Forbidden, NotFound, SessionNotFound, ValidationError
from .policy import (
    ABSENT,
    EXCUSED,
    LATE,
    PRESENT,
    VALID_STATUSES,
    RecognitionEvent,
    count_late_streak,
    is_late,
    resolve_status,
)

__all__ = [
    'AttendanceError',
    'Forbidden',
    'NotFound',
    'SessionNotFound',
    'ValidationError',
    'ABSENT',
    'EXCUSED',
    'LATE',
    'PRESENT',
    'VALID_STATUSES',
    'RecognitionEvent',
    'count_late_streak',
    'is_late',
    'resolve_status',
]
