"""
API routes for attendance
Các API endpoint cho phiên điểm danh và bản ghi điểm danh
"""
from flask import Blueprint, current_app, g, jsonify, request

from app import globals as app_globals
from app.middleware.auth import role_required
from app.models.access import READ_ROLES, STAFF_ROLES
from app.utils import get_request_data, parse_bool, pick
from core.attendance.errors import AttendanceError

attendance_api_bp = Blueprint('attendance_api', __name__, url_prefix='/api/attendance')


def _server_error(message, exc):
    current_app.logger.error(f"{message}: {exc}", exc_info=True)
    return jsonify({'success': False, 'message': message}), 500


@attendance_api_bp.route('/start-session', methods=['POST'])
@role_required(*STAFF_ROLES)
def api_start_session():
    """Mở phiên điểm danh cho một lớp."""
    data = get_request_data()
    class_id = pick(data, 'class_id', 'classId')
    if class_id is None:
        return jsonify({'success': False, 'message': 'Vui lòng chọn lớp học'}), 400

    try:
        payload = app_globals.session_manager.start_session(class_id, g.user)
    except AttendanceError:
        raise
    except Exception as exc:
        return _server_error('Không thể mở phiên điểm danh', exc)

    return jsonify({'success': True, **payload})


@attendance_api_bp.route('/mark', methods=['POST'])
@role_required(*STAFF_ROLES)
def api_mark_attendance():
    """Ghi điểm danh cho các sinh viên vừa được nhận diện (sau khi qua liveness)."""
    data = get_request_data()
    try:
        outcome = app_globals.attendance_tracker.mark_attendance(
            session_id=pick(data, 'session_id', 'sessionId'),
            class_id=pick(data, 'class_id', 'classId'),
            recognized_students=pick(data, 'recognized_students', 'recognizedStudents'),
            actor=g.user,
        )
    except AttendanceError:
        raise
    except Exception as exc:
        return _server_error('Không thể ghi điểm danh', exc)

    return jsonify({'success': True, **outcome})


@attendance_api_bp.route('/manual-override', methods=['PUT'])
@role_required(*STAFF_ROLES)
def api_manual_override():
    """Sửa trạng thái điểm danh thủ công."""
    data = get_request_data()
    try:
        record = app_globals.attendance_tracker.manual_override(
            attendance_id=pick(data, 'attendance_id', 'attendanceId'),
            status=data.get('status'),
            remark=data.get('remark'),
            actor=g.user,
        )
    except AttendanceError:
        raise
    except Exception as exc:
        return _server_error('Không thể cập nhật điểm danh', exc)

    return jsonify({'success': True, 'attendance': record})


@attendance_api_bp.route('/end-session', methods=['POST'])
@role_required(*STAFF_ROLES)
def api_end_session():
    """Kết thúc phiên điểm danh và chốt số liệu."""
    data = get_request_data()
    session_id = pick(data, 'session_id', 'sessionId')
    if not session_id:
        return jsonify({'success': False, 'message': 'Thiếu session_id'}), 400

    try:
        summary = app_globals.session_manager.end_session(session_id, g.user)
    except AttendanceError:
        raise
    except Exception as exc:
        return _server_error('Không thể kết thúc phiên điểm danh', exc)

    return jsonify({
        'success': True,
        'message': 'Đã kết thúc phiên điểm danh',
        'session_id': summary['session_id'],
        'end_time': summary['end_time'],
        'counts': summary['counts'],
    })


@attendance_api_bp.route('/history', methods=['GET'])
@role_required(*READ_ROLES)
def api_attendance_history():
    records = app_globals.attendance_tracker.history(
        g.user,
        class_id=pick(request.args, 'class_id', 'classId'),
        student_id=pick(request.args, 'student_id', 'studentId'),
        date_from=pick(request.args, 'date_from', 'dateFrom'),
        date_to=pick(request.args, 'date_to', 'dateTo'),
    )
    return jsonify({'success': True, 'attendance': records, 'count': len(records)})


@attendance_api_bp.route('/record/<int:attendance_id>', methods=['GET'])
@role_required(*READ_ROLES)
def api_get_record(attendance_id):
    record = app_globals.attendance_tracker.get_record(attendance_id, g.user)
    return jsonify({'success': True, 'attendance': record})


@attendance_api_bp.route('/sessions', methods=['GET'])
@role_required(*READ_ROLES)
def api_list_sessions():
    """Danh sách các phiên đã kết thúc, kèm thời lượng và thống kê."""
    sessions = app_globals.session_manager.list_sessions(
        g.user,
        class_id=pick(request.args, 'class_id', 'classId'),
        start_date=pick(request.args, 'start_date', 'startDate'),
        end_date=pick(request.args, 'end_date', 'endDate'),
    )
    return jsonify({'success': True, 'sessions': sessions, 'count': len(sessions)})


@attendance_api_bp.route('/session/<session_id>', methods=['GET'])
@role_required(*READ_ROLES)
def api_session_details(session_id):
    details = app_globals.session_manager.get_session_details(session_id, g.user)
    return jsonify({'success': True, **details})


@attendance_api_bp.route('/calendar', methods=['GET'])
@role_required(*READ_ROLES)
def api_attendance_calendar():
    """Thống kê điểm danh theo ngày trong một tháng."""
    result = app_globals.attendance_tracker.calendar(
        g.user,
        month=request.args.get('month'),
        year=request.args.get('year'),
        class_id=pick(request.args, 'class_id', 'classId'),
        student_id=pick(request.args, 'student_id', 'studentId'),
        lecturer_id=pick(request.args, 'lecturer_id', 'lecturerId'),
    )
    if not parse_bool(request.args.get('details'), default=True):
        result.pop('details', None)
    return jsonify({'success': True, **result})
