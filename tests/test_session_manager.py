"""
Service-level tests for SessionManager and AttendanceTracker on a temporary database
"""
import pytest

from app.models import ActiveSessionRegistry, AttendanceTracker, EventBroadcaster, SessionManager
from core.attendance.errors import Forbidden, NotFound, SessionNotFound, ValidationError
from tests.fakes import FakeClock, seed


@pytest.fixture
def services(database):
    clock = FakeClock()
    registry = ActiveSessionRegistry(ttl_hours=12, clock=clock)
    broadcaster = EventBroadcaster()
    manager = SessionManager(database, registry, broadcaster=broadcaster, clock=clock)
    tracker = AttendanceTracker(database, manager, broadcaster=broadcaster, clock=clock)
    ids = seed(database)
    users = {
        'admin': database.get_user_by_id(ids.admin),
        'lecturer': database.get_user_by_id(ids.lecturer),
        'other': database.get_user_by_id(ids.other_lecturer),
    }
    return {
        'db': database,
        'clock': clock,
        'registry': registry,
        'broadcaster': broadcaster,
        'manager': manager,
        'tracker': tracker,
        'ids': ids,
        'users': users,
    }


class TestStartSession:

    def test_start_snapshots_enrolment_and_registers(self, services):
        manager, ids, lecturer = services['manager'], services['ids'], services['users']['lecturer']
        payload = manager.start_session(ids.class_a, lecturer)

        assert payload['class_id'] == ids.class_a
        assert payload['date'] == '2025-03-03'
        assert payload['total_students'] == 3
        prefix, suffix = payload['session_id'].split('-')
        assert prefix.isdigit() and len(suffix) == 9

        row = services['db'].get_session(payload['session_id'])
        assert row['status'] == 'active'
        assert row['total_students'] == 3
        assert services['registry'].get(payload['session_id']) is not None
        assert services['db'].get_audit_logs('START_SESSION')[0]['metadata']['class_id'] == ids.class_a

    def test_empty_class_can_be_started(self, services):
        payload = services['manager'].start_session(services['ids'].empty_class, services['users']['lecturer'])
        assert payload['total_students'] == 0

    def test_marks_are_recorded_for_an_empty_class(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        class_id = services['ids'].empty_class
        session_id = manager.start_session(class_id, lecturer)['session_id']

        outcome = tracker.mark_attendance(session_id, class_id, [{'student_id': 'SV099'}], lecturer)

        assert outcome['results'][0]['status'] == 'saved'
        assert outcome['saved_count'] == 1
        assert services['db'].count_attendance_for_session(session_id) == 1

    def test_unknown_class(self, services):
        with pytest.raises(NotFound):
            services['manager'].start_session(9999, services['users']['lecturer'])

    def test_foreign_class_is_forbidden_for_lecturer(self, services):
        with pytest.raises(Forbidden):
            services['manager'].start_session(services['ids'].class_b, services['users']['lecturer'])

    def test_admin_bypasses_ownership(self, services):
        payload = services['manager'].start_session(services['ids'].class_b, services['users']['admin'])
        assert payload['lecturer_id'] == services['ids'].admin

    def test_invalid_class_id(self, services):
        with pytest.raises(ValidationError):
            services['manager'].start_session('abc', services['users']['lecturer'])


class TestEndSession:

    def test_end_finalizes_counts(self, services):
        manager, tracker, clock = services['manager'], services['tracker'], services['clock']
        lecturer, ids = services['users']['lecturer'], services['ids']
        session_id = manager.start_session(ids.class_a, lecturer)['session_id']

        clock.advance(minutes=2)
        tracker.mark_attendance(session_id, ids.class_a, [{'student_id': 'SV001'}], lecturer)
        clock.advance(minutes=5)
        tracker.mark_attendance(session_id, ids.class_a, [{'student_id': 'SV002'}], lecturer)
        clock.advance(minutes=30)
        summary = manager.end_session(session_id, lecturer)

        assert summary['counts'] == {'present': 1, 'absent': 0, 'late': 1}
        row = services['db'].get_session(session_id)
        assert row['status'] == 'completed'
        assert (row['present_count'], row['late_count'], row['absent_count']) == (1, 1, 0)
        assert row['end_time'] == clock().isoformat()
        assert services['registry'].get(session_id) is None

    def test_end_with_no_records(self, services):
        manager, lecturer = services['manager'], services['users']['lecturer']
        session_id = manager.start_session(services['ids'].empty_class, lecturer)['session_id']
        summary = manager.end_session(session_id, lecturer)
        assert summary['counts'] == {'present': 0, 'absent': 0, 'late': 0}

    def test_unknown_session_writes_nothing(self, services):
        with pytest.raises(SessionNotFound):
            services['manager'].end_session('123-abcdefghi', services['users']['lecturer'])
        assert services['db'].get_audit_logs('END_SESSION') == []

    def test_only_the_opening_lecturer_can_end(self, services):
        manager, users = services['manager'], services['users']
        session_id = manager.start_session(services['ids'].class_a, users['lecturer'])['session_id']
        with pytest.raises(Forbidden):
            manager.end_session(session_id, users['other'])
        with pytest.raises(Forbidden):
            manager.end_session(session_id, users['admin'])
        assert services['registry'].get(session_id) is not None

    def test_second_end_is_not_found(self, services):
        manager, lecturer = services['manager'], services['users']['lecturer']
        session_id = manager.start_session(services['ids'].class_a, lecturer)['session_id']
        manager.end_session(session_id, lecturer)
        with pytest.raises(SessionNotFound):
            manager.end_session(session_id, lecturer)


class TestReconcile:

    def test_restart_restores_recent_sessions(self, services):
        manager, lecturer, db = services['manager'], services['users']['lecturer'], services['db']
        session_id = manager.start_session(services['ids'].class_a, lecturer)['session_id']

        clock = services['clock']
        fresh_registry = ActiveSessionRegistry(ttl_hours=12, clock=clock)
        restarted = SessionManager(db, fresh_registry, clock=clock)
        clock.advance(hours=1)

        assert restarted.reconcile() == {'restored': 1, 'finalized': 0}
        assert restarted.resolve_active(session_id).class_id == services['ids'].class_a

    def test_restart_finalizes_stale_sessions(self, services):
        manager, lecturer, db = services['manager'], services['users']['lecturer'], services['db']
        session_id = manager.start_session(services['ids'].class_a, lecturer)['session_id']

        clock = services['clock']
        restarted = SessionManager(db, ActiveSessionRegistry(ttl_hours=12, clock=clock), clock=clock)
        clock.advance(hours=13)

        assert restarted.reconcile() == {'restored': 0, 'finalized': 1}
        assert db.get_session(session_id)['status'] == 'completed'
        with pytest.raises(SessionNotFound):
            restarted.resolve_active(session_id)
        assert db.get_audit_logs('END_SESSION')[0]['metadata']['reason'] == 'expired'

    def test_expired_session_rejects_marks(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        session_id = manager.start_session(services['ids'].class_a, lecturer)['session_id']
        services['clock'].advance(hours=13)
        with pytest.raises(SessionNotFound):
            tracker.mark_attendance(session_id, services['ids'].class_a, [{'student_id': 'SV001'}], lecturer)


class TestMarkAttendance:

    def test_per_student_errors_do_not_abort_batch(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        class_id = services['ids'].class_a
        session_id = manager.start_session(class_id, lecturer)['session_id']

        outcome = tracker.mark_attendance(session_id, class_id, [
            {'student_id': 'SV001'},
            {'status': 'present'},
            {'student_id': 'SV002', 'status': 'unknown'},
            {'student_id': 'SV003', 'status': 'excused'},
        ], lecturer)

        statuses = [item['status'] for item in outcome['results']]
        assert statuses == ['saved', 'error', 'error', 'saved']
        assert outcome['saved_count'] == 2
        assert outcome['results'][3]['final_status'] == 'excused'
        assert services['db'].count_attendance_for_session(session_id) == 2

    def test_integrity_error_is_reported_as_duplicate(self, services, monkeypatch):
        import sqlite3

        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        class_id = services['ids'].class_a
        session_id = manager.start_session(class_id, lecturer)['session_id']

        def collide(*args, **kwargs):
            raise sqlite3.IntegrityError('UNIQUE constraint failed')

        monkeypatch.setattr(services['db'], 'upsert_attendance', collide)
        outcome = tracker.mark_attendance(session_id, class_id, [{'student_id': 'SV001'}], lecturer)
        assert outcome['results'] == [{'student_id': 'SV001', 'status': 'duplicate'}]

    def test_class_must_match_session(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        session_id = manager.start_session(services['ids'].class_a, lecturer)['session_id']
        with pytest.raises(ValidationError):
            tracker.mark_attendance(session_id, services['ids'].class_b, [{'student_id': 'SV001'}], lecturer)

    def test_broadcasts_saved_records(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        class_id = services['ids'].class_a
        session_id = manager.start_session(class_id, lecturer)['session_id']
        client_queue = services['broadcaster'].add_client()

        tracker.mark_attendance(session_id, class_id, [{'student_id': 'SV001'}], lecturer)
        message = client_queue.get_nowait()
        assert message.startswith('event: attendance_marked\n')
        assert '"SV001"' in message


class TestSessionReads:

    def test_details_list_every_enrolled_student(self, services):
        manager, tracker, lecturer = services['manager'], services['tracker'], services['users']['lecturer']
        class_id = services['ids'].class_a
        session_id = manager.start_session(class_id, lecturer)['session_id']
        tracker.mark_attendance(session_id, class_id, [{'student_id': 'SV002'}], lecturer)
        services['clock'].advance(minutes=50, seconds=5)
        manager.end_session(session_id, lecturer)

        details = manager.get_session_details(session_id, lecturer)
        by_student = {item['student_id']: item for item in details['student_attendance']}
        assert set(by_student) == {'SV001', 'SV002', 'SV003'}
        assert by_student['SV002']['status'] == 'present'
        assert by_student['SV001']['status'] == 'absent'
        assert by_student['SV001']['attendance_id'] is None
        assert details['session']['duration'] == '50m 5s'

        with pytest.raises(Forbidden):
            manager.get_session_details(session_id, services['users']['other'])
        with pytest.raises(NotFound):
            manager.get_session_details('missing', lecturer)

    def test_list_sessions_only_completed_and_scoped(self, services):
        manager, users, ids = services['manager'], services['users'], services['ids']
        done = manager.start_session(ids.class_a, users['lecturer'])['session_id']
        manager.start_session(ids.class_a, users['lecturer'])
        manager.end_session(done, users['lecturer'])
        other = manager.start_session(ids.class_b, users['other'])['session_id']
        manager.end_session(other, users['other'])

        mine = manager.list_sessions(users['lecturer'])
        assert [item['session_id'] for item in mine] == [done]
        assert len(manager.list_sessions(users['admin'])) == 2
        with pytest.raises(Forbidden):
            manager.list_sessions(users['lecturer'], class_id=ids.class_b)


@pytest.mark.parametrize('seconds, expected', [(45, '45s'), (125, '2m 5s'), (3900, '1h 5m')])
def test_format_duration(seconds, expected):
    from app.models.session_manager import format_duration
    assert format_duration(seconds) == expected
