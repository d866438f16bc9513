"""
Утилиты времени.

Назначение:
- unix-секунды для записей задач и update_time заказов
- naive UTC datetime для колонок БД (class_expire и т.п.)
"""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """
    Текущее время в UTC без tzinfo (так хранятся DateTime-колонки).
    """
    return utc_now().replace(tzinfo=None)


def unix_now() -> int:
    """
    Текущее время в unix-секундах (int).
    """
    return int(time.time())
