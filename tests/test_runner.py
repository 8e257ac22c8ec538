"""
Unit tests for ChallengeRunner state transitions
"""
import pytest

from core.liveness.challenges import CHALLENGES, Challenge, get_challenge, get_random_challenge
from core.liveness.runner import (
    CANCELLED,
    DETECTING,
    FAILED,
    NO_FACE_HINT_FRAMES,
    SUCCESS,
    ChallengeRunner,
    ChallengeTimeout,
    InvalidTransition,
)
from tests.fakes import CLOSED_EAR, OPEN_EAR, make_detection


def run_frames(runner, detections, start_frame=1):
    progress = None
    for offset, detection in enumerate(detections):
        progress = runner.run(detection, start_frame + offset)
    return progress


def blink_frames():
    return [make_detection(ear=ear) for ear in (OPEN_EAR, CLOSED_EAR, CLOSED_EAR, OPEN_EAR)]


class TestCatalog:

    def test_catalog_entries(self):
        assert [c.id for c in CHALLENGES] == ['blink', 'head_left', 'smile']
        assert get_challenge('blink').required_count == 2
        assert get_challenge('head_left').label == 'Turn Head Left'

    def test_unknown_challenge(self):
        with pytest.raises(KeyError):
            get_challenge('nod')

    def test_random_challenge_comes_from_catalog(self):
        class FirstChoice:
            def choice(self, items):
                return items[0]

        assert get_random_challenge(FirstChoice()) is CHALLENGES[0]
        assert get_random_challenge() in CHALLENGES


class TestBlinkChallenge:

    def test_progress_counts_up_to_required(self):
        runner = ChallengeRunner(get_challenge('blink'))
        progress = run_frames(runner, blink_frames())
        assert progress.to_dict() == {'passed': False, 'progress': 1, 'required': 2}
        assert runner.status == DETECTING

        progress = run_frames(runner, [make_detection()] + blink_frames(), start_frame=5)
        assert progress.passed is True
        assert progress.progress == 2
        assert runner.status == SUCCESS

    def test_frames_after_success_are_ignored(self):
        runner = ChallengeRunner(get_challenge('head_left'))
        first = runner.run(make_detection(nose_x=150.0), 1)
        assert first.passed
        later = runner.run(make_detection(nose_x=100.0), 2)
        assert later is first
        assert runner.status == SUCCESS


class TestNoFace:

    def test_missing_detection_keeps_last_progress(self):
        runner = ChallengeRunner(get_challenge('blink'))
        progress = run_frames(runner, blink_frames())
        assert runner.run(None, 5) is progress
        assert runner.no_face_count == 1

    def test_reposition_hint_after_many_empty_frames(self):
        runner = ChallengeRunner(get_challenge('smile'))
        run_frames(runner, [None] * NO_FACE_HINT_FRAMES)
        assert runner.needs_reposition is False
        runner.run(None, NO_FACE_HINT_FRAMES + 1)
        assert runner.needs_reposition is True

        runner.run(make_detection(), NO_FACE_HINT_FRAMES + 2)
        assert runner.no_face_count == 0
        assert runner.needs_reposition is False


class TestTransitions:

    def test_expire_fails_detecting_runner(self):
        runner = ChallengeRunner(get_challenge('smile'))
        assert runner.expire() is True
        assert runner.status == FAILED
        assert isinstance(runner.error, ChallengeTimeout)
        assert runner.expire() is False

    def test_expired_runner_ignores_frames(self):
        runner = ChallengeRunner(get_challenge('head_left'))
        runner.expire()
        progress = runner.run(make_detection(nose_x=180.0), 1)
        assert progress.passed is False
        assert runner.status == FAILED

    def test_retry_resets_detector_state(self):
        runner = ChallengeRunner(get_challenge('smile'))
        runner.run(make_detection(mouth_width=20.0), 1)
        assert runner.state.smile.neutral_mouth_width == pytest.approx(20.0)
        runner.expire()

        runner.retry()
        assert runner.status == DETECTING
        assert runner.error is None
        assert runner.state.smile.neutral_mouth_width is None
        # The new attempt needs a fresh baseline before it can pass
        assert runner.run(make_detection(mouth_width=30.0), 1).passed is False
        assert runner.run(make_detection(mouth_width=36.0), 2).passed is True

    def test_retry_after_success_is_rejected(self):
        runner = ChallengeRunner(get_challenge('head_left'))
        runner.run(make_detection(nose_x=150.0), 1)
        with pytest.raises(InvalidTransition):
            runner.retry()

    def test_cancel_is_terminal(self):
        runner = ChallengeRunner(get_challenge('blink'))
        runner.expire()
        runner.cancel()
        assert runner.status == CANCELLED
        with pytest.raises(InvalidTransition):
            runner.retry()
        with pytest.raises(InvalidTransition):
            runner.cancel()

    def test_unknown_type_never_passes(self):
        runner = ChallengeRunner(Challenge(id='nod', type='nod', label='Nod'))
        progress = runner.run(make_detection(), 1)
        assert progress.to_dict() == {'passed': False, 'progress': 0, 'required': 1}
        assert runner.status == DETECTING
