"""Cooperative detection loop that drives a liveness challenge.

The controller runs on a single asyncio event loop. It waits for display
refreshes from a :class:`FrameClock`, but calls the landmark provider at most
once per ``detection_interval_ms`` so the detector cost stays bounded no
matter how fast the display refreshes. A separate countdown task fails the
attempt when the timeout elapses; the caller then chooses ``retry()`` or
``cancel()``.

Frames come from ``frame_source.read()`` (or the callable itself); when none is
given the controller opens the default webcam through
:class:`core.vision.camera_manager.CameraManager`, lazily on the first read.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from core.vision.camera_manager import CameraManager

from .challenges import Challenge, get_random_challenge
from .landmarks import Detection
from .runner import (
    FAILED,
    SUCCESS,
    ChallengeProgress,
    ChallengeRunner,
    LivenessError,
    TransientDetectionFailure,
)

CHALLENGE_TIMEOUT_SEC = 6
DETECTION_INTERVAL_MS = 80


class FrameClock(Protocol):
    async def wait_for_frame(self) -> float:
        """Suspend until the next display refresh; return a timestamp in ms."""
        ...


class RefreshClock:
    """Frame clock that ticks at a fixed refresh rate."""

    def __init__(self, fps: float = 60.0) -> None:
        self.period = 1.0 / max(fps, 1.0)

    async def wait_for_frame(self) -> float:
        await asyncio.sleep(self.period)
        return time.monotonic() * 1000.0


@dataclass
class LivenessResult:
    passed: bool
    challenge: Challenge
    attempts: int = 1
    error: Optional[LivenessError] = None
    torn_down: bool = False


class LivenessController:
    """Runs one challenge until success, cancel or teardown."""

    def __init__(
        self,
        provider: Any,
        frame_source: Any = None,
        challenge: Optional[Challenge] = None,
        *,
        timeout_seconds: int = CHALLENGE_TIMEOUT_SEC,
        detection_interval_ms: float = DETECTION_INTERVAL_MS,
        frame_clock: Optional[FrameClock] = None,
        countdown_tick: float = 1.0,
        on_success: Optional[Callable[[], None]] = None,
        on_fail: Optional[Callable[[Optional[LivenessError]], None]] = None,
        on_retry: Optional[Callable[[], None]] = None,
        on_timeout: Optional[Callable[["LivenessController"], None]] = None,
        on_progress: Optional[Callable[[ChallengeProgress], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.challenge = challenge or get_random_challenge()
        self.runner = ChallengeRunner(self.challenge)
        self.timeout_seconds = max(1, int(timeout_seconds))
        self.detection_interval_ms = float(detection_interval_ms)
        self.frame_clock = frame_clock or RefreshClock()
        self.countdown_tick = countdown_tick
        self.time_left = self.timeout_seconds
        self.frame_index = 0
        self.attempts = 0
        self.mounted = True

        self._detect = getattr(provider, "detect", provider)
        # A camera opened here is released on teardown; a caller-provided source is not.
        self._owns_source = frame_source is None
        self.frame_source = CameraManager() if self._owns_source else frame_source
        self._read_frame = getattr(self.frame_source, "read", self.frame_source)
        self._on_success = on_success
        self._on_fail = on_fail
        self._on_retry = on_retry
        self._on_timeout = on_timeout
        self._on_progress = on_progress
        self._logger = logger or logging.getLogger(__name__)

        self._success_fired = False
        self._done: Optional[asyncio.Future] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def status(self) -> str:
        return self.runner.status

    async def run(self) -> LivenessResult:
        loop = asyncio.get_running_loop()
        self._done = loop.create_future()
        self._start_attempt()
        try:
            return await self._done
        finally:
            self._cancel_tasks()

    def retry(self) -> None:
        """Restart a failed attempt with fresh detector state and countdown."""
        self.runner.retry()
        self._cancel_tasks()
        self._logger.info("[Liveness] Retry challenge %s", self.challenge.id)
        if self._on_retry:
            self._on_retry()
        if self.mounted:
            self._start_attempt()

    def cancel(self) -> None:
        """Give up on the challenge; the caller sees a failed result."""
        error = self.runner.error
        self.runner.cancel()
        self._cancel_tasks()
        self._logger.info("[Liveness] Challenge %s cancelled after %s attempt(s)",
                          self.challenge.id, self.attempts)
        if self._on_fail:
            self._on_fail(error)
        self._resolve(LivenessResult(False, self.challenge, self.attempts, error))

    def teardown(self) -> None:
        """Stop immediately. No callback fires after this call."""
        self.mounted = False
        self._cancel_tasks()
        if self._owns_source:
            self.frame_source.close()
        self._resolve(LivenessResult(False, self.challenge, self.attempts, self.runner.error,
                                     torn_down=True))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _start_attempt(self) -> None:
        self.attempts += 1
        self.time_left = self.timeout_seconds
        self.frame_index = 0
        self._timer_task = asyncio.ensure_future(self._countdown())
        self._loop_task = asyncio.ensure_future(self._detection_loop())

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task() if self._has_running_loop() else None
        for task in (self._timer_task, self._loop_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._timer_task = None
        self._loop_task = None

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _resolve(self, result: LivenessResult) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(result)

    def _active(self) -> bool:
        return self.mounted and self.runner.is_detecting

    async def _countdown(self) -> None:
        while self._active():
            await asyncio.sleep(self.countdown_tick)
            if not self._active():
                return
            self.time_left -= 1
            if self.time_left > 0:
                continue
            self.time_left = 0
            if self.runner.expire():
                self._logger.info("[Liveness] Challenge %s timed out (attempt %s)",
                                  self.challenge.id, self.attempts)
                if self._on_timeout:
                    self._on_timeout(self)
            return

    async def _detection_loop(self) -> None:
        last_run: Optional[float] = None
        while self._active():
            now = await self.frame_clock.wait_for_frame()
            if not self._active():
                return
            if last_run is not None and now - last_run < self.detection_interval_ms:
                continue

            try:
                frame = self._read_frame()
            except Exception as exc:
                self._logger.warning("[Liveness] Cannot read frame: %s", exc)
                continue
            if frame is None:
                continue
            last_run = now
            self.frame_index += 1
            frame_index = self.frame_index

            try:
                detection = await self._call_provider(frame)
            except TransientDetectionFailure:
                detection = None
            except Exception as exc:
                self._logger.warning("[Liveness] Landmark detection error: %s", exc)
                continue

            # The provider call may resolve after success/failure/teardown.
            if not self._active():
                return

            progress = self.runner.run(detection, frame_index)
            if self._on_progress:
                self._on_progress(progress)
            if self.runner.status == SUCCESS:
                self._finish_success()
                return

    async def _call_provider(self, frame: Any) -> Optional[Detection]:
        result = self._detect(frame)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _finish_success(self) -> None:
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        if self._success_fired:
            return
        self._success_fired = True
        self._logger.info("[Liveness] Challenge %s passed (attempt %s, frame %s)",
                          self.challenge.id, self.attempts, self.frame_index)
        if self._on_success:
            self._on_success()
        self._resolve(LivenessResult(True, self.challenge, self.attempts))

    @property
    def failed(self) -> bool:
        return self.runner.status == FAILED
