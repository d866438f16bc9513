"""
Администрирование очередей: глубина, очистка, просмотр и возврат DLQ.

Примеры:
    python scripts/queue_admin.py stats
    python scripts/queue_admin.py dlq order_queue --limit 20
    python scripts/queue_admin.py redrive order_queue
    python scripts/queue_admin.py purge email_queue
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from panel_worker.common.config import get_settings
from panel_worker.common.errors import AppError
from panel_worker.common.logging import setup_logging
from panel_worker.queue.task_queue import TaskQueue


def _args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Queue administration")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Depth of every configured queue and its DLQ")

    purge = sub.add_parser("purge", help="Drop all pending tasks of a queue")
    purge.add_argument("queue")
    purge.add_argument("--dlq", action="store_true", help="Purge the dead-letter list instead")

    dlq = sub.add_parser("dlq", help="Show dead-lettered tasks")
    dlq.add_argument("queue")
    dlq.add_argument("--limit", type=int, default=20)

    redrive = sub.add_parser("redrive", help="Move dead-lettered tasks back to the queue")
    redrive.add_argument("queue")
    redrive.add_argument("--limit", type=int, default=100)
    return p.parse_args(argv)


def _stats() -> list[dict]:
    rows = []
    for name in get_settings().queue_list():
        q = TaskQueue(name)
        rows.append({"queue": name, "pending": q.count(), "dlq": q.dead_letter_count()})
    return rows


def run(argv: Sequence[str] | None = None) -> int:
    args = _args(argv)

    if args.command == "stats":
        for row in _stats():
            print(f"{row['queue']}: pending={row['pending']} dlq={row['dlq']}")
        return 0

    q = TaskQueue(args.queue)
    if args.command == "purge":
        if args.dlq:
            q.purge_dead_letters()
            print(f"{q.dlq}: purged")
        else:
            q.delete()
            print(f"{q.name}: purged")
        return 0

    if args.command == "dlq":
        for d in q.list_dead_letters(limit=args.limit):
            print(json.dumps({"key": d.key, **d.record}, ensure_ascii=False))
        return 0

    if args.command == "redrive":
        moved = q.redrive_dead_letters(limit=args.limit)
        print(f"{q.name}: redriven={moved}")
        return 0

    return 2


def main() -> None:
    setup_logging()
    try:
        code = run()
    except AppError as e:
        print(f"[queue_admin] {e.code}: {e.message}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
