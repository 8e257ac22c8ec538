"""
Unit tests for the late/absent decision rules
"""
from datetime import datetime, timedelta

import pytest

from core.attendance.errors import ValidationError
from core.attendance.policy import (
    ABSENT,
    EXCUSED,
    LATE,
    PRESENT,
    RecognitionEvent,
    count_late_streak,
    is_late,
    resolve_status,
    tally_statuses,
)

START = datetime(2025, 3, 3, 8, 0, 0)


class TestIsLate:

    def test_four_minutes_is_on_time(self):
        assert is_late(START, START + timedelta(minutes=4)) is False

    def test_exactly_threshold_is_on_time(self):
        assert is_late(START, START + timedelta(minutes=5)) is False

    def test_past_threshold_is_late(self):
        assert is_late(START, START + timedelta(minutes=5, seconds=1)) is True
        assert is_late(START, START + timedelta(minutes=6)) is True

    def test_custom_threshold(self):
        assert is_late(START, START + timedelta(minutes=3), threshold_minutes=2) is True


class TestLateStreak:

    @pytest.mark.parametrize('statuses, expected', [
        ([], 0),
        ([LATE], 1),
        ([LATE, LATE, PRESENT], 2),
        ([PRESENT, LATE, LATE], 0),
        ([LATE, ABSENT, LATE], 1),
    ])
    def test_counts_leading_late(self, statuses, expected):
        assert count_late_streak(statuses) == expected


class TestResolveStatus:

    def test_on_time_resets_streak(self):
        assert resolve_status(None, False, 2) == (PRESENT, 0)
        assert resolve_status(PRESENT, False, 2) == (PRESENT, 0)

    def test_late_increments_streak(self):
        assert resolve_status(None, True, 0) == (LATE, 1)
        assert resolve_status(None, True, 1) == (LATE, 2)

    def test_third_consecutive_late_becomes_absent(self):
        assert resolve_status(None, True, 2) == (ABSENT, 0)

    def test_explicit_present_is_still_checked_for_lateness(self):
        assert resolve_status(PRESENT, True, 0) == (LATE, 1)
        assert resolve_status(PRESENT, True, 2) == (ABSENT, 0)

    @pytest.mark.parametrize('status', [LATE, ABSENT, EXCUSED])
    def test_other_explicit_statuses_are_kept(self, status):
        assert resolve_status(status, True, 1) == (status, 1)
        assert resolve_status(status, False, 0) == (status, 0)

    def test_custom_maximum(self):
        assert resolve_status(None, True, 0, max_consecutive_late=1) == (ABSENT, 0)


class TestRecognitionEvent:

    def test_defaults(self):
        event = RecognitionEvent.from_payload({'studentId': 'SV001'})
        assert event == RecognitionEvent(student_id='SV001')
        assert event.captured_offline is False

    def test_snake_and_camel_case(self):
        event = RecognitionEvent.from_payload({
            'student_id': ' SV002 ',
            'status': 'Excused',
            'time': '08:03:00',
            'capturedOffline': True,
        })
        assert event.student_id == 'SV002'
        assert event.status == EXCUSED
        assert event.time == '08:03:00'
        assert event.captured_offline is True

    @pytest.mark.parametrize('payload', [None, 'SV001', {}, {'student_id': '  '}])
    def test_missing_student_id(self, payload):
        with pytest.raises(ValidationError):
            RecognitionEvent.from_payload(payload)

    def test_unknown_status(self):
        with pytest.raises(ValidationError) as excinfo:
            RecognitionEvent.from_payload({'student_id': 'SV001', 'status': 'sleeping'})
        assert excinfo.value.status_code == 400


def test_tally_statuses_ignores_excused():
    rows = [
        {'status': PRESENT, 'count': 3},
        {'status': LATE, 'count': 2},
        {'status': EXCUSED, 'count': 1},
    ]
    assert tally_statuses(rows) == {PRESENT: 3, ABSENT: 0, LATE: 2}
