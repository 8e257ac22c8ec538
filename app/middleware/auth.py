"""
Authentication middleware
Xử lý authentication, authorization và session management
"""
from functools import wraps

from flask import current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app import globals as app_globals
from logging_config import get_client_ip, security_logger

# Public endpoints không cần authentication
PUBLIC_ENDPOINTS = {
    'auth.login',
    'auth.logout',
    'liveness_api.api_get_challenge',
    'static',
}


def is_public_endpoint(endpoint):
    """Xác định endpoint có được phép truy cập công khai hay không."""
    if not endpoint:
        return False
    if endpoint == 'static' or endpoint.startswith('static.'):
        return True
    return endpoint in PUBLIC_ENDPOINTS


def verify_user_password(user_record, candidate_password):
    """Kiểm tra mật khẩu người dùng."""
    if not user_record:
        return False
    stored_hash = user_record.get('password_hash') or ''
    if not stored_hash:
        return False
    return check_password_hash(stored_hash, candidate_password)


def login_user(user_record):
    """Thiết lập session cho người dùng đã xác thực."""
    session.clear()
    session['user_id'] = user_record['id']
    session['user_role'] = user_record.get('role')
    session['user_name'] = user_record.get('full_name')
    session.permanent = True


def logout_current_user():
    """Đăng xuất người dùng hiện tại."""
    session.clear()


def _unauthenticated():
    return jsonify({'success': False, 'message': 'Yêu cầu đăng nhập'}), 401


def role_required(*roles):
    """Decorator kiểm tra quyền truy cập dựa trên vai trò (superadmin luôn được phép)."""
    allowed_roles = {role.lower() for role in roles if role}

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            user = getattr(g, 'user', None)
            if not user:
                return _unauthenticated()

            user_role = (user.get('role') or '').lower()
            if user_role != 'superadmin' and allowed_roles and user_role not in allowed_roles:
                current_app.logger.warning(
                    "User %s bị chặn truy cập %s (cần %s)",
                    user.get('username'),
                    request.path,
                    ','.join(sorted(allowed_roles)) or 'any',
                )
                security_logger.log_unauthorized_access(request.path, get_client_ip(request), user.get('id'))
                return jsonify({'success': False, 'message': 'Không có quyền truy cập'}), 403

            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def load_logged_in_user():
    """Nạp thông tin người dùng và bảo vệ các route yêu cầu đăng nhập."""
    user_id = session.get('user_id')
    g.user = app_globals.db.get_user_by_id(user_id) if user_id else None

    if is_public_endpoint(request.endpoint):
        return None

    if g.user is None:
        return _unauthenticated()
    return None


def register_auth_middleware(app):
    """Đăng ký authentication middleware với Flask app."""
    app.before_request(load_logged_in_user)
