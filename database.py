"""
Database module for Attendance System
Quản lý cơ sở dữ liệu SQLite cho phiên điểm danh và bản ghi điểm danh
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime

logger = logging.getLogger('database')


class DatabaseManager:
    def __init__(self, db_path="attendance_system.db"):
        self.db_path = db_path
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Tạo kết nối database (tự commit khi thành công, rollback khi lỗi)."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row  # Cho phép truy cập theo tên cột
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Giao dịch ghi độc quyền: đọc và ghi bên trong là nguyên tử."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute('BEGIN IMMEDIATE')
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        """Khởi tạo database và các bảng"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Người dùng (superadmin/admin/lecturer/viewer)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username VARCHAR(50) UNIQUE NOT NULL,
                    password_hash VARCHAR(255) NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    role VARCHAR(20) DEFAULT 'lecturer',
                    email VARCHAR(100),
                    linked_student_id VARCHAR(20),
                    is_active BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    last_login TIMESTAMP
                )
            ''')

            # Lớp học (chỉ các cột mà phiên điểm danh cần)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS classes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    class_name VARCHAR(100) NOT NULL,
                    subject VARCHAR(100),
                    lecturer_id INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (lecturer_id) REFERENCES users(id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(20) UNIQUE NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    class_id INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (class_id) REFERENCES classes(id)
                )
            ''')

            # Phiên điểm danh
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id VARCHAR(40) UNIQUE NOT NULL,
                    class_id INTEGER NOT NULL,
                    lecturer_id INTEGER NOT NULL,
                    session_date DATE NOT NULL,
                    start_time TIMESTAMP NOT NULL,
                    end_time TIMESTAMP,
                    total_students INTEGER DEFAULT 0,
                    status VARCHAR(20) DEFAULT 'active',
                    present_count INTEGER DEFAULT 0,
                    absent_count INTEGER DEFAULT 0,
                    late_count INTEGER DEFAULT 0,
                    FOREIGN KEY (class_id) REFERENCES classes(id),
                    FOREIGN KEY (lecturer_id) REFERENCES users(id)
                )
            ''')

            # Bản ghi điểm danh: đúng một bản ghi cho (sinh viên, lớp, ngày, phiên)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(20) NOT NULL,
                    class_id INTEGER NOT NULL,
                    lecturer_id INTEGER,
                    attendance_date DATE NOT NULL,
                    attendance_time VARCHAR(8),
                    last_scan_time TIMESTAMP,
                    status VARCHAR(20) DEFAULT 'present',
                    consecutive_late_count INTEGER DEFAULT 0,
                    captured_offline BOOLEAN DEFAULT 0,
                    session_id VARCHAR(40) NOT NULL,
                    remark TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (student_id, class_id, attendance_date, session_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    actor_user_id INTEGER,
                    action VARCHAR(40) NOT NULL,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Tạo indexes để tối ưu hiệu suất
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_session ON attendance(session_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_student_class '
                           'ON attendance(student_id, class_id, attendance_date)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_sessions_status ON attendance_sessions(status)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_classes_lecturer ON classes(lecturer_id)')

            logger.info("Database initialized successfully (%s)", self.db_path)

    # === NGƯỜI DÙNG ===

    def create_user(self, username, password_hash, full_name, role='lecturer', email=None,
                    linked_student_id=None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute('''
                    INSERT INTO users (username, password_hash, full_name, role, email, linked_student_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (username, password_hash, full_name, role, email, linked_student_id))
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Tên đăng nhập {username} đã tồn tại") from exc
            return cursor.lastrowid

    def get_user_by_id(self, user_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE id = ? AND is_active = 1', (user_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_user_by_username(self, username):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE username = ? AND is_active = 1', (username,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def update_last_login(self, user_id):
        with self.get_connection() as conn:
            conn.execute('UPDATE users SET last_login = ? WHERE id = ?',
                         (datetime.now().isoformat(), user_id))

    # === LỚP HỌC & SINH VIÊN ===

    def create_class(self, class_name, lecturer_id, subject=None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO classes (class_name, subject, lecturer_id) VALUES (?, ?, ?)
            ''', (class_name, subject, lecturer_id))
            return cursor.lastrowid

    def get_class(self, class_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM classes WHERE id = ?', (class_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def list_class_ids_for_lecturer(self, lecturer_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT id FROM classes WHERE lecturer_id = ?', (lecturer_id,))
            return [row['id'] for row in cursor.fetchall()]

    def add_student(self, student_id, full_name, class_id=None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO students (student_id, full_name, class_id) VALUES (?, ?, ?)
            ''', (student_id, full_name, class_id))
            return cursor.lastrowid

    def count_students_in_class(self, class_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT COUNT(*) FROM students WHERE class_id = ?', (class_id,))
            return cursor.fetchone()[0]

    def get_students_by_class(self, class_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT student_id, full_name FROM students WHERE class_id = ? ORDER BY full_name
            ''', (class_id,))
            return [dict(row) for row in cursor.fetchall()]

    # === PHIÊN ĐIỂM DANH ===

    def create_attendance_session(self, session_id, class_id, lecturer_id, start_time,
                                  session_date, total_students, status='active'):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO attendance_sessions (
                    session_id, class_id, lecturer_id, session_date, start_time, total_students, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (session_id, class_id, lecturer_id, session_date, start_time, total_students, status))
            return cursor.lastrowid

    def get_session(self, session_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT ast.*, c.class_name, c.subject, u.full_name AS lecturer_name
                FROM attendance_sessions ast
                LEFT JOIN classes c ON ast.class_id = c.id
                LEFT JOIN users u ON ast.lecturer_id = u.id
                WHERE ast.session_id = ?
            ''', (session_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def list_active_sessions(self):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT * FROM attendance_sessions WHERE status = 'active' ORDER BY start_time
            ''')
            return [dict(row) for row in cursor.fetchall()]

    def count_session_statuses(self, session_id):
        """Đếm số bản ghi theo trạng thái của một phiên."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT status, COUNT(*) AS count FROM attendance
                WHERE session_id = ?
                GROUP BY status
            ''', (session_id,))
            return [dict(row) for row in cursor.fetchall()]

    def complete_session(self, session_id, end_time, present_count, absent_count, late_count):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                UPDATE attendance_sessions
                SET end_time = ?, present_count = ?, absent_count = ?, late_count = ?,
                    status = 'completed'
                WHERE session_id = ?
            ''', (end_time, present_count, absent_count, late_count, session_id))
            return cursor.rowcount > 0

    def list_sessions(self, status=None, class_ids=None, lecturer_id=None,
                      start_date=None, end_date=None, limit=500):
        clauses, params = [], []
        if status:
            clauses.append('ast.status = ?')
            params.append(status)
        if class_ids is not None:
            if not class_ids:
                return []
            clauses.append(f"ast.class_id IN ({','.join('?' * len(class_ids))})")
            params.extend(class_ids)
        if lecturer_id is not None:
            clauses.append('ast.lecturer_id = ?')
            params.append(lecturer_id)
        if start_date:
            clauses.append('ast.session_date >= ?')
            params.append(start_date)
        if end_date:
            clauses.append('ast.session_date <= ?')
            params.append(end_date)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ''
        params.append(limit)

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                SELECT ast.*, c.class_name, c.subject, u.full_name AS lecturer_name
                FROM attendance_sessions ast
                LEFT JOIN classes c ON ast.class_id = c.id
                LEFT JOIN users u ON ast.lecturer_id = u.id
                {where}
                ORDER BY ast.session_date DESC, ast.start_time DESC
                LIMIT ?
            ''', params)
            return [dict(row) for row in cursor.fetchall()]

    # === ĐIỂM DANH ===

    def get_previous_statuses(self, conn, student_id, class_id, before_date, limit):
        """Trạng thái các buổi trước (mới nhất trước) trong cùng giao dịch."""
        cursor = conn.execute('''
            SELECT status FROM attendance
            WHERE student_id = ? AND class_id = ? AND attendance_date < ?
            ORDER BY attendance_date DESC, attendance_time DESC
            LIMIT ?
        ''', (student_id, class_id, before_date, limit))
        return [row['status'] for row in cursor.fetchall()]

    def upsert_attendance(self, conn, student_id, class_id, lecturer_id, attendance_date,
                          attendance_time, last_scan_time, status, consecutive_late_count,
                          captured_offline, session_id):
        """Ghi bản ghi điểm danh theo khóa (sinh viên, lớp, ngày, phiên) và trả về id."""
        conn.execute('''
            INSERT INTO attendance (
                student_id, class_id, lecturer_id, attendance_date, attendance_time,
                last_scan_time, status, consecutive_late_count, captured_offline, session_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (student_id, class_id, attendance_date, session_id) DO UPDATE SET
                lecturer_id = excluded.lecturer_id,
                attendance_time = excluded.attendance_time,
                last_scan_time = excluded.last_scan_time,
                status = excluded.status,
                consecutive_late_count = excluded.consecutive_late_count,
                captured_offline = excluded.captured_offline
        ''', (student_id, class_id, lecturer_id, attendance_date, attendance_time,
              last_scan_time, status, consecutive_late_count, int(bool(captured_offline)),
              session_id))
        cursor = conn.execute('''
            SELECT id FROM attendance
            WHERE student_id = ? AND class_id = ? AND attendance_date = ? AND session_id = ?
        ''', (student_id, class_id, attendance_date, session_id))
        row = cursor.fetchone()
        return row['id'] if row else None

    def get_attendance(self, attendance_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT a.*, s.full_name AS student_name, c.class_name,
                       c.lecturer_id AS class_lecturer_id
                FROM attendance a
                LEFT JOIN students s ON a.student_id = s.student_id
                LEFT JOIN classes c ON a.class_id = c.id
                WHERE a.id = ?
            ''', (attendance_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def update_attendance_status(self, attendance_id, status, remark=None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                UPDATE attendance SET status = ?, remark = ? WHERE id = ?
            ''', (status, remark, attendance_id))
            return cursor.rowcount > 0

    def count_attendance_for_session(self, session_id, student_id=None):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            if student_id is None:
                cursor.execute('SELECT COUNT(*) FROM attendance WHERE session_id = ?', (session_id,))
            else:
                cursor.execute('SELECT COUNT(*) FROM attendance WHERE session_id = ? AND student_id = ?',
                               (session_id, student_id))
            return cursor.fetchone()[0]

    def get_session_attendance(self, session_id):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT a.*, s.full_name AS student_name
                FROM attendance a
                LEFT JOIN students s ON a.student_id = s.student_id
                WHERE a.session_id = ?
                ORDER BY a.attendance_time
            ''', (session_id,))
            return [dict(row) for row in cursor.fetchall()]

    def query_attendance(self, class_ids=None, class_id=None, student_id=None, lecturer_id=None,
                         date_from=None, date_to=None, ascending=False, limit=1000):
        clauses, params = [], []
        if class_ids is not None:
            if not class_ids:
                return []
            clauses.append(f"a.class_id IN ({','.join('?' * len(class_ids))})")
            params.extend(class_ids)
        if class_id is not None:
            clauses.append('a.class_id = ?')
            params.append(class_id)
        if student_id:
            clauses.append('a.student_id = ?')
            params.append(student_id)
        if lecturer_id is not None:
            clauses.append('a.lecturer_id = ?')
            params.append(lecturer_id)
        if date_from:
            clauses.append('a.attendance_date >= ?')
            params.append(date_from)
        if date_to:
            clauses.append('a.attendance_date <= ?')
            params.append(date_to)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ''
        order = 'ASC' if ascending else 'DESC'
        params.append(limit)

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f'''
                SELECT a.*, s.full_name AS student_name, c.class_name, c.subject,
                       u.full_name AS lecturer_name
                FROM attendance a
                LEFT JOIN students s ON a.student_id = s.student_id
                LEFT JOIN classes c ON a.class_id = c.id
                LEFT JOIN users u ON a.lecturer_id = u.id
                {where}
                ORDER BY a.attendance_date {order}, a.attendance_time {order}
                LIMIT ?
            ''', params)
            return [dict(row) for row in cursor.fetchall()]

    # === NHẬT KÝ ===

    def log_audit(self, actor_user_id, action, metadata=None):
        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO audit_logs (actor_user_id, action, metadata) VALUES (?, ?, ?)
            ''', (actor_user_id, action, json.dumps(metadata or {}, default=str)))

    def get_audit_logs(self, action=None, limit=100):
        with self.get_connection() as conn:
            cursor = conn.cursor()
            if action:
                cursor.execute('SELECT * FROM audit_logs WHERE action = ? ORDER BY id DESC LIMIT ?',
                               (action, limit))
            else:
                cursor.execute('SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?', (limit,))
            rows = []
            for row in cursor.fetchall():
                item = dict(row)
                item['metadata'] = json.loads(item['metadata']) if item.get('metadata') else {}
                rows.append(item)
            return rows
