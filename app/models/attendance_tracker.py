"""
Attendance Tracker - Quản lý logic điểm danh
Classify recognition events into attendance records, apply manual overrides
and serve the attendance read endpoints.
"""
import calendar
import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.attendance.errors import NotFound, ValidationError, Forbidden
from core.attendance.policy import (
    ABSENT,
    EXCUSED,
    LATE,
    LATE_THRESHOLD_MINUTES,
    MAX_CONSECUTIVE_LATE,
    PRESENT,
    VALID_STATUSES,
    RecognitionEvent,
    count_late_streak,
    is_late,
    resolve_status,
)
from logging_config import attendance_logger, security_logger

from .access import VIEWER, actor_role, is_admin, lecturer_class_scope, linked_student_id, same_id

SAVED = 'saved'
DUPLICATE = 'duplicate'
ERROR = 'error'


class AttendanceTracker:
    """Service quản lý logic điểm danh"""

    def __init__(self, database, session_manager, broadcaster=None,
                 logger: Optional[logging.Logger] = None,
                 late_threshold_minutes: float = LATE_THRESHOLD_MINUTES,
                 max_consecutive_late: int = MAX_CONSECUTIVE_LATE,
                 prior_records_limit: int = 3,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = database
        self.sessions = session_manager
        self.broadcaster = broadcaster
        self.logger = logger or logging.getLogger(__name__)
        self.late_threshold_minutes = late_threshold_minutes
        self.max_consecutive_late = max_consecutive_late
        self.prior_records_limit = prior_records_limit
        self.clock = clock or datetime.now

    # ------------------------------------------------------------------
    # Điểm danh từ nhận diện khuôn mặt
    # ------------------------------------------------------------------
    def mark_attendance(self, session_id, class_id, recognized_students,
                        actor: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ghi điểm danh cho một lượt nhận diện.

        Mỗi sinh viên được xử lý độc lập: lỗi của một sinh viên không làm
        hỏng cả lượt.

        Returns:
            dict: {results, saved_count, message}
        """
        if not session_id or class_id in (None, '') or not isinstance(recognized_students, list):
            raise ValidationError('Dữ liệu yêu cầu không hợp lệ')

        try:
            class_id = int(class_id)
        except (TypeError, ValueError) as exc:
            raise ValidationError('class_id không hợp lệ') from exc

        entry = self.sessions.resolve_active(session_id)
        if not same_id(entry.class_id, class_id):
            raise ValidationError('class_id không khớp với lớp của phiên')
        session_row = self.db.get_session(entry.session_id)
        if not session_row:
            raise NotFound('Không tìm thấy dữ liệu phiên điểm danh')
        start_time = datetime.fromisoformat(str(session_row['start_time']))

        results = []
        for payload in recognized_students:
            results.append(self._mark_one(entry.session_id, class_id, start_time, payload, actor))

        saved_count = sum(1 for item in results if item['status'] == SAVED)
        self.db.log_audit(actor['id'], 'MARK_ATTENDANCE', {
            'session_id': entry.session_id,
            'class_id': class_id,
            'count': len(recognized_students),
        })
        if self.broadcaster:
            self.broadcaster.broadcast_attendance_marked(entry.session_id, class_id, results)

        return {
            'results': results,
            'saved_count': saved_count,
            'message': f"Đã điểm danh cho {saved_count} sinh viên",
        }

    def _mark_one(self, session_id: str, class_id, start_time: datetime, payload,
                  actor: Dict[str, Any]) -> Dict[str, Any]:
        raw_id = payload.get('student_id', payload.get('studentId')) if isinstance(payload, dict) else None
        try:
            event = RecognitionEvent.from_payload(payload)
            now = self.clock()
            today = now.date().isoformat()
            late = is_late(start_time, now, self.late_threshold_minutes)

            with self.db.transaction() as conn:
                previous = self.db.get_previous_statuses(
                    conn, event.student_id, class_id, today, self.prior_records_limit
                )
                final_status, streak = resolve_status(
                    event.status, late, count_late_streak(previous), self.max_consecutive_late
                )
                attendance_id = self.db.upsert_attendance(
                    conn,
                    student_id=event.student_id,
                    class_id=class_id,
                    lecturer_id=actor['id'],
                    attendance_date=today,
                    attendance_time=event.time or now.strftime('%H:%M:%S'),
                    last_scan_time=now.isoformat(),
                    status=final_status,
                    consecutive_late_count=streak,
                    captured_offline=event.captured_offline,
                    session_id=session_id,
                )
        except sqlite3.IntegrityError:
            attendance_logger.log_duplicate(session_id, raw_id)
            return {'student_id': raw_id, 'status': DUPLICATE}
        except Exception as exc:
            message = getattr(exc, 'message', None) or str(exc)
            attendance_logger.log_mark_error(session_id, raw_id, message)
            return {'student_id': raw_id, 'status': ERROR, 'error': message}

        attendance_logger.log_attendance_marked(session_id, event.student_id, final_status, streak)
        return {
            'student_id': event.student_id,
            'attendance_id': attendance_id,
            'status': SAVED,
            'is_late': late,
            'final_status': final_status,
            'consecutive_late_count': streak,
        }

    # ------------------------------------------------------------------
    # Sửa điểm danh thủ công
    # ------------------------------------------------------------------
    def manual_override(self, attendance_id, status, remark, actor: Dict[str, Any]) -> Dict[str, Any]:
        if not attendance_id or not status:
            raise ValidationError('Thiếu attendance_id hoặc trạng thái')
        status = str(status).strip().lower()
        if status not in VALID_STATUSES:
            raise ValidationError('Trạng thái không hợp lệ')

        record = self.db.get_attendance(attendance_id)
        if not record:
            raise NotFound('Không tìm thấy bản ghi điểm danh')
        if not is_admin(actor) and not same_id(record.get('class_lecturer_id'), actor['id']):
            raise Forbidden('Bạn không phụ trách lớp của bản ghi này')

        self.db.update_attendance_status(record['id'], status, remark)
        self.db.log_audit(actor['id'], 'MANUAL_OVERRIDE', {
            'attendance_id': record['id'],
            'previous_status': record['status'],
            'status': status,
            'remark': remark,
        })
        attendance_logger.log_override(record['id'], status, actor['id'])
        security_logger.log_admin_action(
            actor.get('username'), 'MANUAL_OVERRIDE', f"record={record['id']} {record['status']}->{status}"
        )
        return self.db.get_attendance(record['id'])

    # ------------------------------------------------------------------
    # Đọc dữ liệu
    # ------------------------------------------------------------------
    def get_record(self, attendance_id, actor: Dict[str, Any]) -> Dict[str, Any]:
        record = self.db.get_attendance(attendance_id)
        if not record:
            raise NotFound('Không tìm thấy bản ghi điểm danh')
        role = actor_role(actor)
        if role == VIEWER:
            if not same_id(record['student_id'], linked_student_id(actor)):
                raise Forbidden('Bạn chỉ được xem bản ghi điểm danh của chính mình')
        elif not is_admin(actor) and not same_id(record.get('class_lecturer_id'), actor['id']):
            raise Forbidden('Không có quyền truy cập bản ghi này')
        return record

    def _scoped_query(self, actor, class_id=None, student_id=None, **filters) -> List[Dict[str, Any]]:
        if actor_role(actor) == VIEWER:
            return self.db.query_attendance(student_id=linked_student_id(actor), **filters)

        class_ids = lecturer_class_scope(self.db, actor, class_id)
        if class_ids is not None and not class_ids:
            return []
        return self.db.query_attendance(
            class_ids=class_ids,
            class_id=class_id if class_id not in (None, '') else None,
            student_id=student_id or None,
            **filters,
        )

    def history(self, actor: Dict[str, Any], class_id=None, student_id=None,
                date_from=None, date_to=None) -> List[Dict[str, Any]]:
        """Lịch sử điểm danh theo quyền: admin xem tất cả, giảng viên xem lớp mình, sinh viên xem của mình."""
        return self._scoped_query(actor, class_id, student_id, date_from=date_from, date_to=date_to)

    def calendar(self, actor: Dict[str, Any], month, year, class_id=None, student_id=None,
                 lecturer_id=None) -> Dict[str, Any]:
        try:
            month = int(month)
            year = int(year)
        except (TypeError, ValueError) as exc:
            raise ValidationError('Cần tháng (1-12) và năm hợp lệ') from exc
        if not 1 <= month <= 12:
            raise ValidationError('Cần tháng (1-12) và năm hợp lệ')

        last_day = calendar.monthrange(year, month)[1]
        filters = {
            'date_from': f"{year:04d}-{month:02d}-01",
            'date_to': f"{year:04d}-{month:02d}-{last_day:02d}",
            'ascending': True,
        }
        if lecturer_id not in (None, '') and is_admin(actor):
            filters['lecturer_id'] = lecturer_id
        details = self._scoped_query(actor, class_id, student_id, **filters)

        by_date: Dict[str, Dict[str, int]] = {}
        totals = {PRESENT: 0, LATE: 0, ABSENT: 0}
        for record in details:
            day = by_date.setdefault(record['attendance_date'], {PRESENT: 0, LATE: 0, ABSENT: 0})
            status = record.get('status') or PRESENT
            if status in (PRESENT, EXCUSED):
                bucket = PRESENT
            elif status == LATE:
                bucket = LATE
            else:
                bucket = ABSENT
            day[bucket] += 1
            totals[bucket] += 1

        total = sum(totals.values())
        percent = int(totals[PRESENT] * 100 / total + 0.5) if total else 0
        return {
            'by_date': by_date,
            'details': details,
            'summary': {
                'total_present': totals[PRESENT],
                'total_late': totals[LATE],
                'total_absent': totals[ABSENT],
                'attendance_percent': percent,
            },
        }
