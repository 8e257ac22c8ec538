"""Value types for facial landmark readings.

The landmark detector itself is an external capability; anything that takes a
frame and returns a :class:`Detection` (or ``None`` when no face is visible)
can drive the liveness challenges.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional, Protocol, Sequence, Union


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class FaceBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2


# 68-point layout (iBUG 300-W) used by most landmark models.
_LEFT_EYE = slice(36, 42)
_RIGHT_EYE = slice(42, 48)
_NOSE = slice(27, 36)
_MOUTH = slice(48, 68)


@dataclass
class FaceLandmarks:
    """Landmark groups for a single face.

    Groups are stored explicitly so providers with a non 68-point layout can
    still supply the six eye points, the nose and the mouth outline.
    """

    left_eye: List[Point] = field(default_factory=list)
    right_eye: List[Point] = field(default_factory=list)
    nose: List[Point] = field(default_factory=list)
    mouth: List[Point] = field(default_factory=list)
    positions: List[Point] = field(default_factory=list)

    @classmethod
    def from_68(cls, points: Sequence[Any]) -> "FaceLandmarks":
        """Build landmark groups from a flat 68-point sequence.

        Each element may be a :class:`Point` or any ``(x, y)`` pair.
        """
        pts = [p if isinstance(p, Point) else Point(float(p[0]), float(p[1])) for p in points]
        if len(pts) < 68:
            raise ValueError(f"Expected 68 landmark points, got {len(pts)}")
        return cls(
            left_eye=pts[_LEFT_EYE],
            right_eye=pts[_RIGHT_EYE],
            nose=pts[_NOSE],
            mouth=pts[_MOUTH],
            positions=pts,
        )

    def get_left_eye(self) -> List[Point]:
        return self.left_eye

    def get_right_eye(self) -> List[Point]:
        return self.right_eye

    def get_nose(self) -> List[Point]:
        return self.nose

    def get_mouth(self) -> List[Point]:
        return self.mouth


@dataclass
class Detection:
    box: FaceBox
    landmarks: FaceLandmarks
    score: float = 1.0


class LandmarkProvider(Protocol):
    """Anything that finds a face and its landmarks in a frame.

    ``detect`` may be a plain function or a coroutine function; it returns
    ``None`` whenever no face is visible in the frame.
    """

    def detect(self, frame: Any) -> Union[Optional[Detection], Awaitable[Optional[Detection]]]:
        ...
