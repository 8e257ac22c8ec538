"""
Data utilities
Helper functions cho data transformation và validation
"""
from flask import request

from core.attendance.errors import ValidationError


def get_request_data():
    """Lấy request data từ JSON hoặc form (body JSON phải là object)."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError('Dữ liệu yêu cầu phải là một JSON object')
        return data
    return request.form.to_dict()


def parse_bool(value, default=None):
    """
    Phân tích giá trị boolean từ string, int, hoặc bool.
    Returns: True, False, hoặc default nếu không xác định được.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ('true', '1', 'yes', 'on'):
            return True
        if lower in ('false', '0', 'no', 'off'):
            return False
    return default


def public_user(user):
    """Bỏ các trường nhạy cảm trước khi trả về client."""
    if not user:
        return None
    return {
        'id': user.get('id'),
        'username': user.get('username'),
        'full_name': user.get('full_name'),
        'role': user.get('role'),
        'email': user.get('email'),
        'linked_student_id': user.get('linked_student_id'),
    }


def pick(data, *keys, default=None):
    """Lấy giá trị đầu tiên có mặt trong data (hỗ trợ snake_case và camelCase)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return default
