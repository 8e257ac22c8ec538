"""
Test doubles shared by the liveness and attendance tests
"""
import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

from werkzeug.security import generate_password_hash

from core.liveness.landmarks import Detection, FaceBox, FaceLandmarks, Point

OPEN_EAR = 0.30
CLOSED_EAR = 0.10


def eye(ear, origin_x=0.0, origin_y=0.0):
    """Six eye points whose EAR equals ``ear`` (eye width 10px)."""
    h = ear * 5.0
    return [
        Point(origin_x, origin_y),
        Point(origin_x + 3, origin_y - h),
        Point(origin_x + 6, origin_y - h),
        Point(origin_x + 10, origin_y),
        Point(origin_x + 6, origin_y + h),
        Point(origin_x + 3, origin_y + h),
    ]


def make_landmarks(ear=OPEN_EAR, nose_x=100.0, mouth_width=20.0):
    mouth = [Point(90.0 + i, 150.0) for i in range(12)]
    mouth[0] = Point(90.0, 150.0)
    mouth[6] = Point(90.0 + mouth_width, 150.0)
    return FaceLandmarks(
        left_eye=eye(ear, 60, 80),
        right_eye=eye(ear, 120, 80),
        nose=[Point(nose_x, 90.0 + i * 5) for i in range(9)],
        mouth=mouth,
    )


def make_detection(ear=OPEN_EAR, nose_x=100.0, mouth_width=20.0, box_width=200.0):
    return Detection(
        box=FaceBox(x=0.0, y=0.0, width=box_width, height=box_width),
        landmarks=make_landmarks(ear=ear, nose_x=nose_x, mouth_width=mouth_width),
    )


class FakeFrameClock:
    """Frame clock that advances ``step_ms`` per refresh without real waiting."""

    def __init__(self, step_ms=16.0):
        self.step_ms = step_ms
        self.now = 0.0
        self.ticks = 0

    async def wait_for_frame(self):
        await asyncio.sleep(0)
        self.ticks += 1
        self.now += self.step_ms
        return self.now


class FakeClock:
    """Callable wall clock for services (``clock()`` -> datetime)."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 3, 8, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value):
        self.now = value
        return self.now


PASSWORD = 'secret-pass'


def seed(database):
    """Users, classes and students shared by the service and API tests."""
    password_hash = generate_password_hash(PASSWORD)
    ids = SimpleNamespace()
    ids.admin = database.create_user('admin', password_hash, 'Quản trị viên', role='admin')
    ids.lecturer = database.create_user('lec1', password_hash, 'Giảng viên 1', role='lecturer')
    ids.other_lecturer = database.create_user('lec2', password_hash, 'Giảng viên 2', role='lecturer')
    ids.viewer = database.create_user('viewer', password_hash, 'Sinh viên 1', role='viewer',
                                      linked_student_id='SV001')
    ids.unlinked_viewer = database.create_user('viewer2', password_hash, 'Khách', role='viewer')

    ids.class_a = database.create_class('Lập trình Python', ids.lecturer, subject='CS101')
    ids.class_b = database.create_class('Cơ sở dữ liệu', ids.other_lecturer, subject='CS202')
    ids.empty_class = database.create_class('Lớp trống', ids.lecturer)
    for student_id, name in (('SV001', 'Nguyễn Văn A'), ('SV002', 'Trần Thị B'), ('SV003', 'Lê Văn C')):
        database.add_student(student_id, name, ids.class_a)
    database.add_student('SV010', 'Phạm Văn D', ids.class_b)
    return ids


class FakeCapture:

    def __init__(self, frames):
        self.frames = list(frames)
        self.released = False
        self.props = {}

    def isOpened(self):
        return not self.released

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        frame = self.frames.pop(0) if self.frames else None
        return frame is not None, frame

    def release(self):
        self.released = True


class FakeOpener:

    def __init__(self, capture):
        self.capture = capture
        self.opened = []

    def open(self, index):
        self.opened.append(index)
        return self.capture
