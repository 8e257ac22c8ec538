"""
API routes for Server-Sent Events (SSE)
Các API endpoint cho real-time events
"""
import queue

from flask import Blueprint, Response, g, stream_with_context

from app import globals as app_globals
from app.middleware.auth import role_required
from app.models.access import STAFF_ROLES, lecturer_class_scope

events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')

HEARTBEAT_SECONDS = 30


def iter_client_events(broadcaster, client_queue, heartbeat_seconds=HEARTBEAT_SECONDS):
    """Sinh các message SSE cho một client cho đến khi client ngắt kết nối."""
    try:
        yield broadcaster.format_sse_message({'type': 'connected'})
        while True:
            try:
                yield client_queue.get(timeout=heartbeat_seconds)
            except queue.Empty:
                # Heartbeat để giữ kết nối
                yield ": heartbeat\n\n"
    finally:
        broadcaster.remove_client(client_queue)


@events_api_bp.route('/stream')
@role_required(*STAFF_ROLES)
def api_events_stream():
    """Server-Sent Events stream: session_started, attendance_marked, session_ended"""
    broadcaster = app_globals.event_broadcaster
    # Giảng viên chỉ nhận sự kiện của các lớp mình phụ trách
    client_queue = broadcaster.add_client(lecturer_class_scope(app_globals.db, g.user))
    response = Response(
        stream_with_context(iter_client_events(broadcaster, client_queue)),
        mimetype='text/event-stream',
    )
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['X-Accel-Buffering'] = 'no'
    return response
