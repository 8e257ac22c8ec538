"""Gesture detectors used by the liveness challenges.

Each detector is a plain function. Detectors that need memory across frames
(blink, smile) receive an explicit state object owned by the caller, so two
challenge attempts never share anything.

Blink detection uses the Eye Aspect Ratio::

    EAR = (|p1 - p5| + |p2 - p4|) / (2 * |p0 - p3|)

with p0..p5 the six eye points (outer corner, two upper lid, inner corner,
two lower lid). Open eyes sit around 0.25-0.35; a closed eye drops under 0.2.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .landmarks import FaceBox, FaceLandmarks, Point

EAR_OPEN_THRESHOLD = 0.25
EAR_CLOSED_THRESHOLD = 0.18
MIN_CLOSED_FRAMES = 2
BLINK_DEBOUNCE_FRAMES = 3

HEAD_TURN_MIN_OFFSET_PX = 30.0
HEAD_TURN_THRESHOLD_RATIO = 0.12

SMILE_EXPANSION_RATIO = 1.15
MOUTH_CORNER_LEFT = 0
MOUTH_CORNER_RIGHT = 6


# ----------------------------------------------------------------------
# State
# ----------------------------------------------------------------------
@dataclass
class BlinkState:
    blink_count: int = 0
    was_closed: bool = False
    closed_frame_count: int = 0
    last_blink_frame: int = -BLINK_DEBOUNCE_FRAMES - 1

    def reset(self) -> None:
        self.blink_count = 0
        self.was_closed = False
        self.closed_frame_count = 0
        self.last_blink_frame = -BLINK_DEBOUNCE_FRAMES - 1


@dataclass
class SmileState:
    neutral_mouth_width: Optional[float] = None

    def reset(self) -> None:
        self.neutral_mouth_width = None


@dataclass
class DetectorState:
    """Per-attempt detector memory. Head turn is stateless."""

    blink: BlinkState
    smile: SmileState

    @classmethod
    def initial(cls) -> "DetectorState":
        return cls(blink=BlinkState(), smile=SmileState())

    def reset(self) -> None:
        self.blink.reset()
        self.smile.reset()


@dataclass
class BlinkReading:
    blink_count: int
    avg_ear: float


# ----------------------------------------------------------------------
# Blink
# ----------------------------------------------------------------------
def calculate_ear(eye_points: Optional[Sequence[Point]]) -> float:
    """Eye Aspect Ratio for one eye. Lower means more closed.

    Returns 1.0 (open) when fewer than six points are available, so a missing
    eye can never register as a blink.
    """
    if not eye_points or len(eye_points) < 6:
        return 1.0
    xs = np.array([p.x for p in eye_points[:6]], dtype=np.float64)
    ys = np.array([p.y for p in eye_points[:6]], dtype=np.float64)
    vertical = np.abs(ys[1] - ys[5]) + np.abs(ys[2] - ys[4])
    horizontal = float(np.abs(xs[0] - xs[3])) or 1.0
    return float(vertical / (2.0 * horizontal))


def update_blink(state: BlinkState, landmarks: FaceLandmarks, frame_index: int) -> BlinkReading:
    """Advance the blink counter with one landmark reading.

    A blink is counted on the closed -> open transition when the eye stayed
    closed for at least ``MIN_CLOSED_FRAMES`` readings and more than
    ``BLINK_DEBOUNCE_FRAMES`` frames passed since the previous counted blink.
    EAR values between the two thresholds keep the previous state.
    """
    left_ear = calculate_ear(landmarks.get_left_eye())
    right_ear = calculate_ear(landmarks.get_right_eye())
    avg_ear = (left_ear + right_ear) / 2.0

    is_closed = avg_ear < EAR_CLOSED_THRESHOLD
    is_open = avg_ear > EAR_OPEN_THRESHOLD

    if is_closed:
        state.closed_frame_count += 1
        state.was_closed = True
    elif is_open and state.was_closed:
        frames_since_last = frame_index - state.last_blink_frame
        if state.closed_frame_count >= MIN_CLOSED_FRAMES and frames_since_last > BLINK_DEBOUNCE_FRAMES:
            state.blink_count += 1
            state.last_blink_frame = frame_index
        state.was_closed = False
        state.closed_frame_count = 0
    elif is_open:
        state.was_closed = False
        state.closed_frame_count = 0

    return BlinkReading(blink_count=state.blink_count, avg_ear=avg_ear)


# ----------------------------------------------------------------------
# Head turn
# ----------------------------------------------------------------------
def head_turn_threshold(face_box: FaceBox) -> float:
    return max(HEAD_TURN_MIN_OFFSET_PX, face_box.width * HEAD_TURN_THRESHOLD_RATIO)


def check_head_turn_left(landmarks: FaceLandmarks, face_box: FaceBox) -> bool:
    """True when the user turned their head to their own left.

    The camera preview is mirrored, so a left turn moves the nose tip to the
    right of the face centre in image coordinates.
    """
    nose = landmarks.get_nose()
    if not nose:
        return False
    nose_tip = nose[3] if len(nose) > 3 else nose[0]
    offset = nose_tip.x - face_box.center_x
    return offset >= head_turn_threshold(face_box)


# ----------------------------------------------------------------------
# Smile
# ----------------------------------------------------------------------
def _distance(a: Point, b: Point) -> float:
    return float(np.hypot(b.x - a.x, b.y - a.y))


def mouth_width(landmarks: FaceLandmarks) -> Optional[float]:
    """Distance between the mouth corners, or None if they are unavailable."""
    mouth = landmarks.get_mouth()
    if mouth and len(mouth) >= 7:
        return _distance(mouth[MOUTH_CORNER_LEFT], mouth[MOUTH_CORNER_RIGHT])
    positions = landmarks.positions
    if positions and len(positions) > 54:
        return _distance(positions[48], positions[54])
    return None


def update_smile(state: SmileState, landmarks: FaceLandmarks) -> bool:
    """Smile check against a neutral baseline.

    The first usable reading of an attempt only records the baseline. Without
    a baseline the detector never passes.
    """
    width = mouth_width(landmarks)
    if width is None:
        return False

    if state.neutral_mouth_width is None:
        state.neutral_mouth_width = width
        return False

    if state.neutral_mouth_width <= 0:
        return False
    return width / state.neutral_mouth_width >= SMILE_EXPANSION_RATIO
