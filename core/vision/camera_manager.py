"""Webcam frame source for the liveness controller.

The controller only needs ``read() -> frame | None``; everything else here is
device bookkeeping (lazy open, resolution hints, optional downscale so the
landmark provider sees a bounded image).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """The device cannot be opened or has been switched off."""


class CaptureOpener(Protocol):
    def open(self, index: int) -> cv2.VideoCapture:
        ...


class OpenCVOpener:
    def open(self, index: int) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(index)
        if not capture or not capture.isOpened():
            raise CameraError(f"Cannot open camera index {index}")
        return capture


@dataclass(frozen=True)
class CameraSettings:
    index: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    # Frames wider than this are downscaled before landmark detection.
    max_width: Optional[int] = None
    skip_frames: int = 3
    # Off by default: head-turn direction is measured on the raw image.
    mirror: bool = False


class CameraManager:
    """Lazily opened capture device handing frames to the liveness loop.

    A failed grab yields ``None`` and bumps ``dropped_frames``; the controller
    treats that as "no face this refresh". Reading while disabled raises
    :class:`CameraError`.
    """

    def __init__(self, settings: Optional[CameraSettings] = None,
                 opener: Optional[CaptureOpener] = None, **overrides) -> None:
        base = settings or CameraSettings()
        self.settings = replace(base, **overrides) if overrides else base
        self.opener = opener or OpenCVOpener()
        self.capture = None
        self.enabled = True
        self.dropped_frames = 0
        self.frames_read = 0

    def __enter__(self) -> "CameraManager":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self.capture is not None and self.capture.isOpened()

    def open(self):
        if self.is_open:
            return self.capture
        if not self.enabled:
            raise CameraError("Camera disabled")

        capture = self.opener.open(self.settings.index)
        if self.settings.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        if self.settings.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
        # The first frames after opening are often black or overexposed.
        for _ in range(max(0, self.settings.skip_frames)):
            capture.read()

        self.capture = capture
        logger.info("Camera %s opened (%sx%s)", self.settings.index, *self.frame_size)
        return capture

    def close(self) -> None:
        capture, self.capture = self.capture, None
        if capture is not None:
            capture.release()
            logger.info("Camera %s released after %s frames", self.settings.index, self.frames_read)

    @property
    def frame_size(self) -> Tuple[int, int]:
        if self.capture is None:
            return (0, 0)
        return (
            int(self.capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            int(self.capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )

    def read(self) -> Optional[np.ndarray]:
        if not self.enabled:
            raise CameraError("Camera disabled")
        ok, frame = self.open().read()
        if not ok or frame is None:
            self.dropped_frames += 1
            logger.debug("Dropped camera frame (%s so far)", self.dropped_frames)
            return None

        self.frames_read += 1
        if self.settings.mirror:
            frame = cv2.flip(frame, 1)
        return self._fit(frame)

    def _fit(self, frame: np.ndarray) -> np.ndarray:
        max_width = self.settings.max_width
        height, width = frame.shape[:2]
        if not max_width or width <= max_width:
            return frame
        scale = max_width / float(width)
        return cv2.resize(frame, (max_width, max(1, int(round(height * scale)))),
                          interpolation=cv2.INTER_AREA)

    def set_enabled(self, value: bool) -> None:
        self.enabled = bool(value)
        if not self.enabled:
            self.close()
