"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations

import re
from typing import Any

_EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$")


def is_email(value: Any) -> bool:
    """
    Синтаксическая проверка адреса (без DNS/MX).
    """
    if not isinstance(value, str) or len(value) > 254:
        return False
    local, _, _ = value.partition("@")
    if not local or len(local) > 64 or local.startswith(".") or local.endswith(".") or ".." in local:
        return False
    return bool(_EMAIL_RE.fullmatch(value))


def truncate(text: str, max_len: int = 100) -> str:
    """
    Обрезка строки для логов (payload задач целиком не логируем).
    """
    if len(text) <= max_len:
        return text
    return text[:max_len] + "...(truncated)"

