"""
Генерация идентификаторов.

Назначение:
- id задач очереди (уникален на каждую постановку)
"""

from __future__ import annotations

import secrets


def new_task_id() -> str:
    """
    Идентификатор задачи: 32 hex-символа.
    Используется в ключе payload "<queue>:<id>".
    """
    return secrets.token_hex(16)
