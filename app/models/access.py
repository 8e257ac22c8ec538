"""
Phân quyền theo vai trò cho dữ liệu điểm danh
"""
from typing import Any, Dict, List, Optional

from core.attendance.errors import Forbidden

SUPERADMIN = 'superadmin'
ADMIN = 'admin'
LECTURER = 'lecturer'
VIEWER = 'viewer'

ADMIN_ROLES = frozenset({SUPERADMIN, ADMIN})
STAFF_ROLES = (ADMIN, SUPERADMIN, LECTURER)
READ_ROLES = STAFF_ROLES + (VIEWER,)


def actor_role(actor: Optional[Dict[str, Any]]) -> str:
    return ((actor or {}).get('role') or '').lower()


def is_admin(actor: Optional[Dict[str, Any]]) -> bool:
    return actor_role(actor) in ADMIN_ROLES


def same_id(left: Any, right: Any) -> bool:
    """So sánh id không phụ thuộc kiểu (int từ DB, str từ JSON)."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


def lecturer_class_scope(database, actor: Dict[str, Any], class_id: Any = None) -> Optional[List[int]]:
    """
    Tập lớp giảng viên được xem.

    Returns:
        None nếu không giới hạn (admin), ngược lại danh sách class_id
        (rỗng nếu giảng viên chưa phụ trách lớp nào).

    Raises:
        Forbidden: giảng viên yêu cầu một lớp không thuộc quyền.
    """
    if is_admin(actor):
        return None
    class_ids = database.list_class_ids_for_lecturer(actor['id'])
    if class_id not in (None, '') and class_ids:
        if not any(same_id(owned, class_id) for owned in class_ids):
            raise Forbidden('Không có quyền truy cập lớp này')
    return class_ids


def linked_student_id(actor: Dict[str, Any]) -> str:
    student_id = actor.get('linked_student_id')
    if not student_id:
        raise Forbidden('Tài khoản chưa được liên kết với sinh viên nào')
    return student_id
