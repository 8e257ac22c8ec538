"""
Cấu hình logging cho hệ thống điểm danh
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

_DOMAIN_LOGGERS = ('security', 'attendance', 'liveness', 'database', 'api')


def setup_logging(app, log_level='INFO', log_dir='logs', max_log_size=10*1024*1024, backup_count=5):
    """
    Thiết lập logging cho ứng dụng Flask

    Args:
        app: Flask app instance
        log_level: Mức độ log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Thư mục chứa file log
        max_log_size: Kích thước tối đa của file log (bytes)
        backup_count: Số lượng file log backup
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    def rotating(filename, handler_level):
        handler = logging.handlers.RotatingFileHandler(
            log_dir / filename,
            maxBytes=max_log_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        return handler

    file_handler = rotating('attendance_system.log', level)
    error_handler = rotating('errors.log', logging.ERROR)
    security_handler = rotating('security.log', logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Xóa handlers cũ (create_app có thể được gọi nhiều lần)
    for handler in root_logger.handlers[:]:
        if isinstance(handler, (logging.handlers.RotatingFileHandler, logging.StreamHandler)) \
                and getattr(handler, '_attendance_handler', False):
            root_logger.removeHandler(handler)
            handler.close()

    for handler in (file_handler, console_handler, error_handler):
        handler._attendance_handler = True
        root_logger.addHandler(handler)

    security_logger = logging.getLogger('security')
    for handler in security_logger.handlers[:]:
        security_logger.removeHandler(handler)
        handler.close()
    security_logger.addHandler(security_handler)

    for name in _DOMAIN_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)

    app.logger.setLevel(level)

    app.logger.info("=" * 50)
    app.logger.info("ATTENDANCE SYSTEM STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {logging.getLevelName(level)}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class SecurityLogger:
    """Logger chuyên dụng cho các sự kiện bảo mật"""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_login(self, username, ip_address, success=True):
        """Log sự kiện đăng nhập"""
        status = "SUCCESS" if success else "FAILED"
        self.logger.info(f"LOGIN {status} - User: {username}, IP: {ip_address}")

    def log_logout(self, username, ip_address):
        self.logger.info(f"LOGOUT - User: {username}, IP: {ip_address}")

    def log_unauthorized_access(self, endpoint, ip_address, user_id=None):
        """Log truy cập trái phép"""
        user_info = f", User: {user_id}" if user_id else ""
        self.logger.warning(f"UNAUTHORIZED ACCESS - Endpoint: {endpoint}, IP: {ip_address}{user_info}")

    def log_admin_action(self, admin_user, action, details=None):
        """Log hành động của admin (ví dụ: sửa điểm danh thủ công)"""
        details_info = f", Details: {details}" if details else ""
        self.logger.info(f"ADMIN ACTION - User: {admin_user}, Action: {action}{details_info}")


class AttendanceLogger:
    """Logger cho vòng đời phiên và bản ghi điểm danh"""

    def __init__(self):
        self.logger = logging.getLogger('attendance')

    def log_session_started(self, session_id, class_id, lecturer_id, total_students):
        self.logger.info(
            f"SESSION START - Session: {session_id}, Class: {class_id}, "
            f"Lecturer: {lecturer_id}, Students: {total_students}"
        )

    def log_session_ended(self, session_id, counts):
        self.logger.info(
            f"SESSION END - Session: {session_id}, Present: {counts.get('present', 0)}, "
            f"Late: {counts.get('late', 0)}, Absent: {counts.get('absent', 0)}"
        )

    def log_attendance_marked(self, session_id, student_id, status, consecutive_late=0):
        """Log điểm danh"""
        self.logger.info(
            f"Attendance marked - Session: {session_id}, Student ID: {student_id}, "
            f"Status: {status}, Late streak: {consecutive_late}"
        )

    def log_duplicate(self, session_id, student_id):
        self.logger.info(f"Duplicate scan - Session: {session_id}, Student ID: {student_id}")

    def log_mark_error(self, session_id, student_id, error_message):
        self.logger.error(f"Mark error - Session: {session_id}, Student ID: {student_id}, Error: {error_message}")

    def log_override(self, attendance_id, status, actor_id):
        self.logger.info(f"Manual override - Record: {attendance_id}, Status: {status}, By: {actor_id}")


class LivenessLogger:
    """Logger cho kết quả thử thách liveness"""

    def __init__(self):
        self.logger = logging.getLogger('liveness')

    def log_challenge_issued(self, challenge_id, ip_address=None):
        ip_info = f", IP: {ip_address}" if ip_address else ""
        self.logger.info(f"Challenge issued - {challenge_id}{ip_info}")

    def log_outcome(self, challenge_id, passed, attempts):
        outcome = "PASSED" if passed else "FAILED"
        self.logger.info(f"Challenge {outcome} - {challenge_id}, Attempts: {attempts}")


# Các instance logger toàn cục
security_logger = SecurityLogger()
attendance_logger = AttendanceLogger()
liveness_logger = LivenessLogger()


def get_client_ip(request):
    """Lấy IP address của client"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    else:
        return request.remote_addr
