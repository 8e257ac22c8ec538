"""
Session Manager - Vòng đời phiên điểm danh
Start/end lecture sessions, keep the active-session registry in sync with the
database, and serve the session read endpoints.
"""
import logging
import secrets
import string
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.attendance.errors import Forbidden, NotFound, SessionNotFound, ValidationError
from core.attendance.policy import ABSENT, tally_statuses
from logging_config import attendance_logger

from .access import VIEWER, actor_role, is_admin, lecturer_class_scope, same_id
from .session_registry import ActiveSession, ActiveSessionRegistry

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_session_id(now: datetime) -> str:
    """``<epoch_ms>-<9 ký tự base36 ngẫu nhiên>``"""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(now.timestamp() * 1000)}-{suffix}"


def format_duration(seconds: int) -> str:
    """45 -> '45s', 125 -> '2m 5s', 3900 -> '1h 5m'"""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"


def _parse_time(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _parse_class_id(class_id) -> int:
    if class_id in (None, ''):
        raise ValidationError('Thiếu class_id')
    try:
        return int(class_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError('class_id không hợp lệ') from exc


class SessionManager:
    """Service quản lý phiên điểm danh"""

    def __init__(self, database, registry: ActiveSessionRegistry, broadcaster=None,
                 logger: Optional[logging.Logger] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = database
        self.registry = registry
        self.broadcaster = broadcaster
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or datetime.now

    # ------------------------------------------------------------------
    # Vòng đời phiên
    # ------------------------------------------------------------------
    def start_session(self, class_id, actor: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mở phiên điểm danh cho một lớp.

        Raises:
            ValidationError: thiếu/sai class_id
            NotFound: lớp không tồn tại
            Forbidden: giảng viên không phụ trách lớp
        """
        class_id = _parse_class_id(class_id)
        class_row = self.db.get_class(class_id)
        if not class_row:
            raise NotFound('Không tìm thấy lớp học')
        if not is_admin(actor) and not same_id(class_row['lecturer_id'], actor['id']):
            raise Forbidden('Bạn không phụ trách lớp này')

        now = self.clock()
        total_students = self.db.count_students_in_class(class_id)
        entry = ActiveSession(
            session_id=generate_session_id(now),
            class_id=class_id,
            lecturer_id=actor['id'],
            start_time=now,
            session_date=now.date().isoformat(),
        )
        self.db.create_attendance_session(
            session_id=entry.session_id,
            class_id=class_id,
            lecturer_id=actor['id'],
            start_time=now.isoformat(),
            session_date=entry.session_date,
            total_students=total_students,
        )
        self.registry.register(entry)

        self.db.log_audit(actor['id'], 'START_SESSION', {
            'session_id': entry.session_id,
            'class_id': class_id,
            'total_students': total_students,
        })
        attendance_logger.log_session_started(entry.session_id, class_id, actor['id'], total_students)

        payload = entry.to_dict()
        payload['total_students'] = total_students
        if self.broadcaster:
            self.broadcaster.broadcast_session_started(payload)
        return payload

    def resolve_active(self, session_id) -> ActiveSession:
        if not session_id:
            raise ValidationError('Thiếu session_id')
        entry = self.registry.get(str(session_id))
        if entry is None:
            raise SessionNotFound('Không tìm thấy phiên điểm danh đang mở')
        return entry

    def end_session(self, session_id, actor: Dict[str, Any]) -> Dict[str, Any]:
        """Kết thúc phiên: chốt số liệu từ bản ghi và xóa khỏi registry."""
        entry = self.resolve_active(session_id)
        if not same_id(entry.lecturer_id, actor['id']):
            raise Forbidden('Chỉ giảng viên mở phiên mới được kết thúc phiên')

        counts, end_time = self._finalize(entry.session_id)
        self.registry.remove(entry.session_id)

        self.db.log_audit(actor['id'], 'END_SESSION', {
            'session_id': entry.session_id,
            'counts': counts,
        })
        attendance_logger.log_session_ended(entry.session_id, counts)
        if self.broadcaster:
            self.broadcaster.broadcast_session_ended(entry.session_id, counts, class_id=entry.class_id)
        return {'session_id': entry.session_id, 'end_time': end_time, 'counts': counts}

    def _finalize(self, session_id: str):
        counts = tally_statuses(self.db.count_session_statuses(session_id))
        end_time = self.clock().isoformat()
        self.db.complete_session(
            session_id,
            end_time=end_time,
            present_count=counts['present'],
            absent_count=counts['absent'],
            late_count=counts['late'],
        )
        return counts, end_time

    def reconcile(self) -> Dict[str, int]:
        """
        Đồng bộ registry với các phiên còn 'active' trong database.

        Phiên còn trong TTL được đăng ký lại; phiên quá hạn được chốt
        thành 'completed'.
        """
        self.registry.purge_expired()
        restored = finalized = 0
        for row in self.db.list_active_sessions():
            try:
                entry = ActiveSession.from_row(row)
            except (TypeError, ValueError) as exc:
                self.logger.warning("[Sessions] Bỏ qua phiên %s lỗi dữ liệu: %s", row.get('session_id'), exc)
                continue

            if self.registry.is_expired(entry):
                counts, _ = self._finalize(entry.session_id)
                self.registry.remove(entry.session_id)
                self.db.log_audit(None, 'END_SESSION', {
                    'session_id': entry.session_id,
                    'counts': counts,
                    'reason': 'expired',
                })
                finalized += 1
                continue

            if self.registry.get(entry.session_id) is None:
                self.registry.register(entry)
                restored += 1

        if restored or finalized:
            self.logger.info("[Sessions] Reconciled: %s restored, %s finalized", restored, finalized)
        return {'restored': restored, 'finalized': finalized}

    # ------------------------------------------------------------------
    # Đọc dữ liệu
    # ------------------------------------------------------------------
    def list_sessions(self, actor: Dict[str, Any], class_id=None, start_date=None,
                      end_date=None) -> List[Dict[str, Any]]:
        if actor_role(actor) == VIEWER:
            return []

        class_ids = lecturer_class_scope(self.db, actor, class_id)
        lecturer_id = None
        if class_ids is not None:
            if not class_ids:
                return []
            lecturer_id = actor['id']
            if class_id not in (None, ''):
                class_ids = [_parse_class_id(class_id)]
        elif class_id not in (None, ''):
            class_ids = [_parse_class_id(class_id)]

        rows = self.db.list_sessions(
            status='completed',
            class_ids=class_ids,
            lecturer_id=lecturer_id,
            start_date=start_date,
            end_date=end_date,
        )
        return [self._serialize_session(row, recount=True) for row in rows]

    def get_session_details(self, session_id, actor: Dict[str, Any]) -> Dict[str, Any]:
        if actor_role(actor) == VIEWER:
            raise Forbidden('Bạn chỉ được xem bản ghi điểm danh của chính mình')

        row = self.db.get_session(session_id)
        if not row:
            raise NotFound('Không tìm thấy phiên điểm danh')
        if not is_admin(actor):
            owned = self.db.list_class_ids_for_lecturer(actor['id'])
            if not any(same_id(class_id, row['class_id']) for class_id in owned):
                raise Forbidden('Không có quyền truy cập phiên này')

        records = {rec['student_id']: rec for rec in self.db.get_session_attendance(session_id)}
        students = []
        for student in self.db.get_students_by_class(row['class_id']):
            record = records.get(student['student_id'])
            if record:
                students.append({
                    'student_id': student['student_id'],
                    'student_name': student['full_name'],
                    'attendance_id': record['id'],
                    'status': record['status'],
                    'time': record['attendance_time'],
                    'timestamp': f"{record['attendance_date']} {record['attendance_time']}",
                    'last_scan_time': record.get('last_scan_time'),
                    'consecutive_late_count': record.get('consecutive_late_count') or 0,
                    'remark': record.get('remark'),
                })
            else:
                students.append({
                    'student_id': student['student_id'],
                    'student_name': student['full_name'],
                    'attendance_id': None,
                    'status': ABSENT,
                    'time': None,
                    'timestamp': None,
                    'last_scan_time': None,
                    'consecutive_late_count': 0,
                    'remark': None,
                })

        return {
            'session': self._serialize_session(row, recount=False),
            'student_attendance': students,
        }

    def _serialize_session(self, row: Dict[str, Any], recount: bool) -> Dict[str, Any]:
        counts = {
            'present': row.get('present_count') or 0,
            'absent': row.get('absent_count') or 0,
            'late': row.get('late_count') or 0,
        }
        if recount and (not row.get('end_time') or counts['present'] == 0):
            counts = tally_statuses(self.db.count_session_statuses(row['session_id']))

        start = _parse_time(row.get('start_time'))
        end = _parse_time(row.get('end_time'))
        duration = int(round((end - start).total_seconds())) if start and end else 0
        return {
            'session_id': row['session_id'],
            'date': row.get('session_date'),
            'class_id': row.get('class_id'),
            'class_name': row.get('class_name') or 'N/A',
            'subject': row.get('subject') or 'N/A',
            'lecturer_name': row.get('lecturer_name') or 'N/A',
            'status': row.get('status'),
            'total_students': row.get('total_students') or 0,
            'present_count': counts['present'],
            'absent_count': counts['absent'],
            'late_count': counts['late'],
            'start_time': row.get('start_time'),
            'end_time': row.get('end_time'),
            'duration': format_duration(duration),
            'duration_seconds': duration,
        }
