"""
Configuration constants và settings
Đọc từ biến môi trường (run.py nạp file .env trước khi import)
"""
import os

from core.attendance.policy import LATE_THRESHOLD_MINUTES as _DEFAULT_LATE_MINUTES
from core.attendance.policy import MAX_CONSECUTIVE_LATE as _DEFAULT_MAX_LATE
from core.liveness.controller import CHALLENGE_TIMEOUT_SEC as _DEFAULT_TIMEOUT
from core.liveness.controller import DETECTION_INTERVAL_MS as _DEFAULT_INTERVAL

# Database
DATABASE_PATH = os.getenv('DATABASE_PATH', 'attendance_system.db')

# Attendance policy
LATE_THRESHOLD_MINUTES = float(os.getenv('LATE_THRESHOLD_MINUTES', str(_DEFAULT_LATE_MINUTES)))
MAX_CONSECUTIVE_LATE = max(1, int(os.getenv('MAX_CONSECUTIVE_LATE', str(_DEFAULT_MAX_LATE))))
PRIOR_RECORDS_LIMIT = 3

# Phiên "active" cũ hơn ngưỡng này bị coi là mồ côi và được đóng khi khởi động
SESSION_TTL_HOURS = float(os.getenv('SESSION_TTL_HOURS', '12'))

# Liveness challenge
CHALLENGE_TIMEOUT_SEC = max(1, int(os.getenv('CHALLENGE_TIMEOUT_SEC', str(_DEFAULT_TIMEOUT))))
DETECTION_INTERVAL_MS = max(1, int(os.getenv('DETECTION_INTERVAL_MS', str(_DEFAULT_INTERVAL))))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_DIR = os.getenv('LOG_DIR', 'logs')

# Flask session
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
SESSION_TIMEOUT = 3600  # 1 hour


def as_flask_config():
    """Gom các hằng số trên thành dict để nạp vào app.config."""
    return {
        'SECRET_KEY': SECRET_KEY,
        'PERMANENT_SESSION_LIFETIME': SESSION_TIMEOUT,
        'DATABASE_PATH': DATABASE_PATH,
        'LATE_THRESHOLD_MINUTES': LATE_THRESHOLD_MINUTES,
        'MAX_CONSECUTIVE_LATE': MAX_CONSECUTIVE_LATE,
        'PRIOR_RECORDS_LIMIT': PRIOR_RECORDS_LIMIT,
        'SESSION_TTL_HOURS': SESSION_TTL_HOURS,
        'CHALLENGE_TIMEOUT_SEC': CHALLENGE_TIMEOUT_SEC,
        'DETECTION_INTERVAL_MS': DETECTION_INTERVAL_MS,
        'LOG_LEVEL': LOG_LEVEL,
        'LOG_DIR': LOG_DIR,
    }
