"""Camera access for liveness challenges."""

from .camera_manager import CameraError, CameraManager, CameraSettings, OpenCVOpener

__all__ = ['CameraError', 'CameraManager', 'CameraSettings', 'OpenCVOpener']
