"""
Event Broadcaster - Quản lý Server-Sent Events (SSE)
Phát sự kiện phiên/điểm danh real-time tới các client đang kết nối
"""
import json
import queue
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

SESSION_STARTED = 'session_started'
ATTENDANCE_MARKED = 'attendance_marked'
SESSION_ENDED = 'session_ended'


class EventBroadcaster:
    """
    Service quản lý SSE events cho thông báo real-time.

    Mỗi client có một queue riêng và (tuỳ chọn) tập class_id được theo dõi;
    client không có bộ lọc (admin) nhận mọi sự kiện.
    """

    def __init__(self, logger=None, max_queue_size: int = 50):
        self.clients: Dict[queue.Queue, Optional[frozenset]] = {}
        self.clients_lock = threading.Lock()
        self.logger = logger
        self.max_queue_size = max_queue_size

    def add_client(self, class_ids: Optional[Iterable[Any]] = None) -> queue.Queue:
        """Thêm client mới và trả về queue của client đó"""
        client_queue = queue.Queue(maxsize=self.max_queue_size)
        scope = None if class_ids is None else frozenset(int(class_id) for class_id in class_ids)

        with self.clients_lock:
            self.clients[client_queue] = scope
            total = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] New client connected. Total: {total}")

        return client_queue

    def remove_client(self, client_queue: queue.Queue):
        """Xóa client khi disconnect"""
        with self.clients_lock:
            if self.clients.pop(client_queue, False) is False:
                return
            remaining = len(self.clients)

        if self.logger:
            self.logger.info(f"[SSE] Client disconnected. Remaining: {remaining}")

    def broadcast_event(self, event_data: Dict[str, Any], class_id: Any = None):
        """
        Broadcast event đến các client đang theo dõi lớp ``class_id``

        Args:
            event_data: Dictionary chứa event data
                - type: Loại event (session_started, attendance_marked, session_ended)
                - data: Dữ liệu của event
                - timestamp: Thời gian (tự động thêm nếu không có)
            class_id: Lớp của sự kiện; None = gửi cho tất cả
        """
        if 'timestamp' not in event_data:
            event_data['timestamp'] = datetime.now().isoformat()

        message = self.format_sse_message(event_data)
        target = int(class_id) if class_id is not None else None

        delivered = 0
        stale_clients = []
        with self.clients_lock:
            for client_queue, scope in self.clients.items():
                if scope is not None and target is not None and target not in scope:
                    continue
                try:
                    client_queue.put_nowait(message)
                    delivered += 1
                except queue.Full:
                    # Client không đọc kịp, ngắt kết nối
                    stale_clients.append(client_queue)

        for client_queue in stale_clients:
            if self.logger:
                self.logger.warning("[SSE] Client queue full, removing client")
            self.remove_client(client_queue)

        if self.logger:
            self.logger.debug(f"[SSE] Broadcast {event_data.get('type', 'unknown')} to {delivered} clients")

    @staticmethod
    def format_sse_message(event_data: Dict[str, Any]) -> str:
        """Định dạng SSE: ``event: type\\ndata: json\\n\\n``"""
        event_type = event_data.get('type', 'message')
        return f"event: {event_type}\ndata: {json.dumps(event_data, default=str)}\n\n"

    def broadcast_session_started(self, session_payload: Dict[str, Any]):
        self.broadcast_event({'type': SESSION_STARTED, 'data': session_payload},
                             class_id=session_payload.get('class_id'))

    def broadcast_attendance_marked(self, session_id: str, class_id: Any, results: List[Dict[str, Any]]):
        """Broadcast kết quả một lượt điểm danh (chỉ các bản ghi đã lưu)"""
        saved = [item for item in results if item.get('status') == 'saved']
        self.broadcast_event({
            'type': ATTENDANCE_MARKED,
            'data': {
                'session_id': session_id,
                'class_id': class_id,
                'records': saved,
            },
        }, class_id=class_id)

    def broadcast_session_ended(self, session_id: str, counts: Optional[Dict[str, int]] = None,
                                class_id: Any = None):
        self.broadcast_event({
            'type': SESSION_ENDED,
            'data': {'session_id': session_id, 'counts': counts or {}},
        }, class_id=class_id)

    def get_client_count(self) -> int:
        """Lấy số lượng clients đang kết nối"""
        with self.clients_lock:
            return len(self.clients)
