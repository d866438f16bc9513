"""
Базовый контракт отправки писем.

Назначение:
- EmailJob зависит только от протокола, а не от SMTP
- в тестах подставляется фейковый mailer
"""

from __future__ import annotations

from typing import Any, Protocol


class Mailer(Protocol):
    """
    Контракт отправителя: успех - возврат, любая ошибка - исключение.
    """

    def send(
        self,
        *,
        to: str,
        subject: str,
        template: str,
        context: dict[str, Any],
    ) -> str | None: ...
