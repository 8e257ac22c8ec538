"""
Tests for the TTL-bounded active session registry
"""
from datetime import datetime

from app.models.session_registry import ActiveSession, ActiveSessionRegistry
from tests.fakes import FakeClock


def make_entry(session_id='s1', start=None):
    start = start or datetime(2025, 3, 3, 8, 0, 0)
    return ActiveSession(session_id=session_id, class_id=1, lecturer_id=2,
                         start_time=start, session_date=start.date().isoformat())


class TestActiveSessionRegistry:

    def test_register_and_get(self):
        clock = FakeClock()
        registry = ActiveSessionRegistry(ttl_hours=2, clock=clock)
        entry = make_entry()
        registry.register(entry)

        assert registry.get('s1') is entry
        assert 's1' in registry
        assert len(registry) == 1
        assert registry.get('missing') is None

    def test_expired_entry_is_evicted_on_lookup(self):
        clock = FakeClock()
        registry = ActiveSessionRegistry(ttl_hours=2, clock=clock)
        registry.register(make_entry())

        clock.advance(hours=1, minutes=59)
        assert registry.get('s1') is not None

        clock.advance(minutes=2)
        assert registry.get('s1') is None
        assert len(registry) == 0

    def test_purge_expired_returns_evicted(self):
        clock = FakeClock()
        registry = ActiveSessionRegistry(ttl_hours=1, clock=clock)
        registry.register(make_entry('old'))
        clock.advance(minutes=90)
        registry.register(make_entry('new', start=clock()))

        expired = registry.purge_expired()
        assert [entry.session_id for entry in expired] == ['old']
        assert [entry.session_id for entry in registry.snapshot()] == ['new']

    def test_remove(self):
        registry = ActiveSessionRegistry(clock=FakeClock())
        registry.register(make_entry())
        assert registry.remove('s1').session_id == 's1'
        assert registry.remove('s1') is None

    def test_from_row_parses_iso_start_time(self):
        entry = ActiveSession.from_row({
            'session_id': 'abc',
            'class_id': 3,
            'lecturer_id': 4,
            'start_time': '2025-03-03T08:00:00',
            'session_date': '2025-03-03',
        })
        assert entry.start_time == datetime(2025, 3, 3, 8, 0, 0)
        assert entry.to_dict()['date'] == '2025-03-03'
