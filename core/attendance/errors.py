"""Error taxonomy for sessions and attendance records."""
from __future__ import annotations


class AttendanceError(Exception):
    """Base error; ``status_code`` is what the HTTP layer responds with."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(AttendanceError):
    status_code = 400


class NotFound(AttendanceError):
    status_code = 404


class SessionNotFound(NotFound):
    pass


class Forbidden(AttendanceError):
    status_code = 403
