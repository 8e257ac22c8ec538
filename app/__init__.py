"""
App package initialization
Khởi tạo Flask application và cấu hình
"""
from flask import Flask, jsonify

from logging_config import setup_logging
from database import DatabaseManager
from app import globals as app_globals
from app import config
from app.models import (
    ActiveSessionRegistry,
    AttendanceTracker,
    EventBroadcaster,
    SessionManager,
)
from core.attendance.errors import AttendanceError


def _register_error_handlers(app):
    """Lỗi nghiệp vụ -> JSON {success: False, message} với mã HTTP tương ứng."""

    @app.errorhandler(AttendanceError)
    def handle_attendance_error(error):
        if error.status_code >= 500:
            app.logger.error("Lỗi hệ thống: %s", error.message, exc_info=True)
        return jsonify({'success': False, 'message': error.message}), error.status_code

    @app.errorhandler(404)
    def handle_not_found(_error):
        return jsonify({'success': False, 'message': 'Không tìm thấy tài nguyên'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        return jsonify({'success': False, 'message': 'Phương thức không được hỗ trợ'}), 405


def _init_services(app):
    """Khởi tạo database và các service điểm danh"""
    app_globals.db = DatabaseManager(app.config['DATABASE_PATH'])
    app_globals.event_broadcaster = EventBroadcaster(logger=app.logger)
    app_globals.session_registry = ActiveSessionRegistry(ttl_hours=app.config['SESSION_TTL_HOURS'])
    app_globals.session_manager = SessionManager(
        database=app_globals.db,
        registry=app_globals.session_registry,
        broadcaster=app_globals.event_broadcaster,
        logger=app.logger,
    )
    app_globals.attendance_tracker = AttendanceTracker(
        database=app_globals.db,
        session_manager=app_globals.session_manager,
        broadcaster=app_globals.event_broadcaster,
        logger=app.logger,
        late_threshold_minutes=app.config['LATE_THRESHOLD_MINUTES'],
        max_consecutive_late=app.config['MAX_CONSECUTIVE_LATE'],
        prior_records_limit=app.config['PRIOR_RECORDS_LIMIT'],
    )
    app.logger.info("[STARTUP] Services initialized")


def create_app(overrides=None):
    """Factory function để tạo Flask application"""
    app = Flask(__name__)

    app.config.update(config.as_flask_config())
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB
    if overrides:
        app.config.update(overrides)

    setup_logging(app, log_level=app.config['LOG_LEVEL'], log_dir=app.config['LOG_DIR'])
    app.logger.info(f"[STARTUP] Database path: {app.config['DATABASE_PATH']}")

    _init_services(app)

    # Khôi phục các phiên còn mở sau khi khởi động lại
    stats = app_globals.session_manager.reconcile()
    app.logger.info(
        f"[STARTUP] Active sessions: {stats['restored']} restored, {stats['finalized']} finalized"
    )

    from app.middleware.auth import register_auth_middleware
    register_auth_middleware(app)

    from app.routes import register_blueprints
    register_blueprints(app)

    _register_error_handlers(app)
    return app
