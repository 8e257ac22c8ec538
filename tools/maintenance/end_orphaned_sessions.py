"""Finalize attendance sessions left 'active' (server restart, closed browser...).

Usage:
    python tools/maintenance/end_orphaned_sessions.py [--db PATH] [--ttl-hours N | --all] [--dry-run]
"""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app import config  # noqa: E402
from app.models import ActiveSession, ActiveSessionRegistry, SessionManager  # noqa: E402
from database import DatabaseManager  # noqa: E402


def build_parser():
    parser = argparse.ArgumentParser(description="Đóng các phiên điểm danh bị bỏ dở")
    parser.add_argument('--db', default=config.DATABASE_PATH, help="Đường dẫn file SQLite")
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--ttl-hours', type=float, default=config.SESSION_TTL_HOURS,
                       help="Chỉ đóng phiên mở lâu hơn số giờ này")
    group.add_argument('--all', action='store_true', help="Đóng mọi phiên đang mở")
    parser.add_argument('--dry-run', action='store_true', help="Chỉ liệt kê, không ghi")
    return parser


def main(argv=None, clock=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')

    database = DatabaseManager(args.db)
    ttl_hours = 0 if args.all else args.ttl_hours
    registry = ActiveSessionRegistry(ttl_hours=ttl_hours, clock=clock)

    if args.dry_run:
        stale = [
            row['session_id'] for row in database.list_active_sessions()
            if registry.is_expired(ActiveSession.from_row(row))
        ]
        for session_id in stale:
            print(f"[dry-run] Sẽ đóng phiên {session_id}")
        return {'restored': 0, 'finalized': 0, 'pending': len(stale)}

    manager = SessionManager(database, registry, clock=clock or datetime.now)
    stats = manager.reconcile()
    print(f"Đã đóng {stats['finalized']} phiên, {stats['restored']} phiên vẫn còn hiệu lực.")
    return stats


if __name__ == "__main__":
    main()
