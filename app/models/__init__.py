"""
Models Package - Business logic models
Centralized business logic separated from Flask routes
"""

from .session_registry import ActiveSession, ActiveSessionRegistry
from .session_manager import SessionManager
from .attendance_tracker import AttendanceTracker
from .event_broadcaster import EventBroadcaster

__all__ = [
    'ActiveSession',
    'ActiveSessionRegistry',
    'SessionManager',
    'AttendanceTracker',
    'EventBroadcaster',
]
