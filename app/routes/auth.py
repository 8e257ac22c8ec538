"""
Authentication routes
Xử lý đăng nhập, đăng xuất (JSON API)
"""
from flask import Blueprint, g, jsonify, request

from app import globals as app_globals
from app.middleware.auth import login_user, logout_current_user, verify_user_password
from app.utils import get_request_data, public_user
from logging_config import get_client_ip, security_logger

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    """Đăng nhập bằng username/password."""
    data = get_request_data()
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    ip_address = get_client_ip(request)

    if not username or not password:
        return jsonify({'success': False, 'message': 'Vui lòng nhập tên đăng nhập và mật khẩu'}), 400

    user = app_globals.db.get_user_by_username(username)
    if not user or not verify_user_password(user, password):
        security_logger.log_login(username, ip_address, success=False)
        return jsonify({'success': False, 'message': 'Tên đăng nhập hoặc mật khẩu không đúng'}), 401

    login_user(user)
    app_globals.db.update_last_login(user['id'])
    security_logger.log_login(username, ip_address, success=True)
    return jsonify({
        'success': True,
        'message': f"Xin chào, {user.get('full_name') or username}!",
        'user': public_user(user),
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Đăng xuất người dùng hiện tại."""
    user = getattr(g, 'user', None)
    if user:
        security_logger.log_logout(user.get('username'), get_client_ip(request))
    logout_current_user()
    return jsonify({'success': True, 'message': 'Đã đăng xuất thành công'})


@auth_bp.route('/me', methods=['GET'])
def me():
    return jsonify({'success': True, 'user': public_user(g.user)})
