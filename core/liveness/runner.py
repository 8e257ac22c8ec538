"""Challenge runner: feeds landmark readings to the right gesture detector."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .challenges import BLINK, HEAD_LEFT, SMILE, Challenge
from .detectors import DetectorState, check_head_turn_left, update_blink, update_smile
from .landmarks import Detection

logger = logging.getLogger(__name__)

DETECTING = "detecting"
SUCCESS = "success"
FAILED = "failed"
CANCELLED = "cancelled"

# Hint the user to re-centre after this many consecutive empty readings.
NO_FACE_HINT_FRAMES = 15


class LivenessError(RuntimeError):
    """Base class for liveness challenge errors."""


class TransientDetectionFailure(LivenessError):
    """The landmark provider found no face in a frame. Safe to ignore."""


class ChallengeTimeout(LivenessError):
    """The challenge was not completed before the countdown reached zero."""


class InvalidTransition(LivenessError):
    """Raised when a user action does not apply to the current state."""


@dataclass
class ChallengeProgress:
    passed: bool = False
    progress: int = 0
    required: int = 1

    def to_dict(self) -> dict:
        return {"passed": self.passed, "progress": self.progress, "required": self.required}


class ChallengeRunner:
    """State machine for one challenge attempt: detecting -> success | failed.

    ``failed`` accepts ``retry()`` (back to detecting with fresh detector
    state) or ``cancel()`` (terminal). ``success`` is terminal.
    """

    def __init__(self, challenge: Challenge) -> None:
        self.challenge = challenge
        self.state = DetectorState.initial()
        self.status = DETECTING
        self.no_face_count = 0
        self.error: Optional[LivenessError] = None
        self.last_progress = ChallengeProgress(required=self._required())

    def _required(self) -> int:
        if self.challenge.type == BLINK:
            return self.challenge.required_count or 2
        return 1

    @property
    def is_detecting(self) -> bool:
        return self.status == DETECTING

    @property
    def needs_reposition(self) -> bool:
        return self.is_detecting and self.no_face_count > NO_FACE_HINT_FRAMES

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------
    def run(self, detection: Optional[Detection], frame_index: int) -> ChallengeProgress:
        if not self.is_detecting:
            return self.last_progress

        if detection is None or detection.landmarks is None:
            self.no_face_count += 1
            return self.last_progress

        self.no_face_count = 0
        progress = self._evaluate(detection, frame_index)
        self.last_progress = progress
        if progress.passed:
            self.status = SUCCESS
            logger.debug("Challenge %s passed at frame %s", self.challenge.id, frame_index)
        return progress

    def _evaluate(self, detection: Detection, frame_index: int) -> ChallengeProgress:
        landmarks = detection.landmarks
        kind = self.challenge.type

        if kind == BLINK:
            reading = update_blink(self.state.blink, landmarks, frame_index)
            required = self._required()
            return ChallengeProgress(
                passed=reading.blink_count >= required,
                progress=min(reading.blink_count, required),
                required=required,
            )
        if kind == HEAD_LEFT:
            passed = check_head_turn_left(landmarks, detection.box)
            return ChallengeProgress(passed=passed, progress=1 if passed else 0, required=1)
        if kind == SMILE:
            passed = update_smile(self.state.smile, landmarks)
            return ChallengeProgress(passed=passed, progress=1 if passed else 0, required=1)

        return ChallengeProgress(passed=False, progress=0, required=1)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def expire(self) -> bool:
        """Countdown reached zero. Returns True if the runner moved to failed."""
        if not self.is_detecting:
            return False
        self.status = FAILED
        self.error = ChallengeTimeout(f"Challenge '{self.challenge.label}' timed out")
        return True

    def retry(self) -> None:
        if self.status in (SUCCESS, CANCELLED):
            raise InvalidTransition(f"Cannot retry a challenge in state '{self.status}'")
        self.reset()

    def cancel(self) -> None:
        if self.status in (SUCCESS, CANCELLED):
            raise InvalidTransition(f"Cannot cancel a challenge in state '{self.status}'")
        self.status = CANCELLED

    def reset(self) -> None:
        self.state.reset()
        self.status = DETECTING
        self.no_face_count = 0
        self.error = None
        self.last_progress = ChallengeProgress(required=self._required())
