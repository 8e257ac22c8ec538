"""Challenge-based liveness verification (blink, head turn, smile)."""

from .challenges import CHALLENGES, Challenge, get_challenge, get_random_challenge
from .controller import LivenessController, LivenessResult, RefreshClock
from .landmarks import Detection, FaceBox, FaceLandmarks, Point
from .runner import (
    ChallengeProgress,
    ChallengeRunner,
    ChallengeTimeout,
    InvalidTransition,
    TransientDetectionFailure,
)

__all__ = [
    'CHALLENGES',
    'Challenge',
    'get_challenge',
    'get_random_challenge',
    'LivenessController',
    'LivenessResult',
    'RefreshClock',
    'Detection',
    'FaceBox',
    'FaceLandmarks',
    'Point',
    'ChallengeProgress',
    'ChallengeRunner',
    'ChallengeTimeout',
    'InvalidTransition',
    'TransientDetectionFailure',
]
