"""
Реестр обработчиков: тип задачи -> обработчик.

Строится один раз при старте воркера и передаётся в цикл явно.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager

from panel_worker.delivery.base import Mailer
from panel_worker.domain.enums import TaskType
from panel_worker.storage.repositories import ActivationStores

from .base import JobHandler
from .email_job import EmailJob
from .order_job import OrderJob


class JobRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, task_type: str, handler: JobHandler) -> None:
        if task_type in self._handlers:
            raise ValueError(f"handler already registered: {task_type}")
        self._handlers[task_type] = handler

    def get(self, task_type: str) -> JobHandler | None:
        return self._handlers.get(task_type)

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._handlers


def build_registry(
    *,
    mailer: Mailer,
    stores_factory: Callable[[], AbstractContextManager[ActivationStores]],
) -> JobRegistry:
    registry = JobRegistry()
    registry.register(TaskType.email.value, EmailJob(mailer))
    registry.register(TaskType.order.value, OrderJob(stores_factory))
    return registry
