"""
Global service references
Được gán trong create_app(); routes và middleware đọc qua module này
"""

db = None
session_registry = None
session_manager = None
attendance_tracker = None
event_broadcaster = None
