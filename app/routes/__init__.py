"""
Routes package
Đăng ký tất cả các blueprints
"""
from .auth import auth_bp
from .api_attendance import attendance_api_bp
from .api_liveness import liveness_api_bp
from .api_events import events_api_bp


def register_blueprints(app):
    """Đăng ký tất cả các blueprints với Flask app."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(attendance_api_bp)
    app.register_blueprint(liveness_api_bp)
    app.register_blueprint(events_api_bp)

    app.logger.info("Đã đăng ký tất cả blueprints")
