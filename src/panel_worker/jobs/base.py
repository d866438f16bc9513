"""
Базовые интерфейсы обработчиков задач.

Назначение:
- единый контракт handle(task) -> JobResult
- явный исход вместо угадывания по типу исключения:
  ok - подтвердить, retry - повторить, drop - подтвердить без повторов
- исключение из обработчика воркер всё равно трактует как retry
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from panel_worker.domain.enums import JobStatus
from panel_worker.queue.tasks import Task


@dataclass(frozen=True)
class JobResult:
    status: JobStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.ok


def ok_result(reason: str | None = None) -> JobResult:
    return JobResult(status=JobStatus.ok, reason=reason)


def retry_result(reason: str) -> JobResult:
    return JobResult(status=JobStatus.retry, reason=reason)


def drop_result(reason: str) -> JobResult:
    return JobResult(status=JobStatus.drop, reason=reason)


class JobHandler(Protocol):
    """
    Контракт обработчика одного типа задач.
    """

    def handle(self, task: Task) -> JobResult: ...
