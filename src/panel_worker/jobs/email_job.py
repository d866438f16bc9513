"""
Обработчик задач "email".

Алгоритм:
- проверяем data.to_email; нет или невалиден - drop (повтор бессмысленен)
- контекст шаблона: data.context (объект) или legacy data.array (JSON-строка)
- отправляем через Mailer; ошибка отправки пробрасывается - воркер повторит задачу
"""

from __future__ import annotations

import json
from typing import Any

from panel_worker.common.config import get_settings
from panel_worker.common.logging import get_project_logger
from panel_worker.common.utils import is_email
from panel_worker.delivery.base import Mailer
from panel_worker.queue.tasks import Task

from .base import JobResult, drop_result, ok_result

log = get_project_logger()


def _template_context(data: dict[str, Any]) -> dict[str, Any]:
    ctx = data.get("context")
    if isinstance(ctx, dict):
        return ctx
    legacy = data.get("array")
    if isinstance(legacy, str) and legacy.strip():
        try:
            decoded = json.loads(legacy)
        except ValueError:
            log.warning("email_context_decode_failed")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    if isinstance(legacy, dict):
        return legacy
    return {}


class EmailJob:
    def __init__(self, mailer: Mailer) -> None:
        self.mailer = mailer

    def handle(self, task: Task) -> JobResult:
        data = task.data if isinstance(task.data, dict) else {}
        to_email = data.get("to_email")

        if not is_email(to_email):
            log.warning(
                "email_recipient_invalid",
                extra={"payload": {"task_id": task.id, "to_email": str(to_email)[:100]}},
            )
            return drop_result("invalid_recipient")

        log.info("email_sending", extra={"payload": {"task_id": task.id, "to": to_email}})
        self.mailer.send(
            to=to_email,
            subject=str(data.get("subject") or get_settings().app_name),
            template=str(data.get("template") or ""),
            context=_template_context(data),
        )
        return ok_result()
