"""
Метрики Prometheus для воркера очередей.

Назначение:
- счётчики обработки задач по очередям и исходам
- задержка обработчиков по типам задач
- глубина очередей и DLQ
- опциональный HTTP-экспорт /metrics (METRICS_PORT)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

# Исходы обработки задач: acked|dropped|requeued|dead_lettered|malformed|unknown_type|missing_payload
QUEUE_TASKS_TOTAL = Counter(
    "panel_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["service", "queue", "result"],
)

QUEUE_ENQUEUED_TOTAL = Counter(
    "panel_queue_enqueued_total",
    "Количество поставленных в очередь задач",
    ["queue", "type"],
)

HANDLER_LATENCY_MS = Histogram(
    "panel_job_handler_latency_ms",
    "Время выполнения обработчика задачи (мс)",
    ["service", "type"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)

QUEUE_DEPTH = Gauge(
    "panel_queue_depth",
    "Текущая длина списка очереди",
    ["queue"],
)

DLQ_DEPTH = Gauge(
    "panel_dlq_depth",
    "Текущая длина DLQ",
    ["queue"],
)

BROKER_RECONNECTS_TOTAL = Counter(
    "panel_broker_reconnects_total",
    "Попытки переподключения к брокеру",
    ["service", "result"],
)

ALERTS_TOTAL = Counter(
    "panel_alerts_total",
    "Отправленные во внешний алерт-синк события",
    ["kind", "delivered"],
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "panel_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)


@contextmanager
def track_handler_latency(service: str, task_type: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        HANDLER_LATENCY_MS.labels(service=service, type=task_type).observe(elapsed_ms)


def refresh_queue_metrics(task_queues) -> None:
    """
    Обновить gauges глубины по списку TaskQueue.
    Ошибки брокера здесь не критичны: только счётчик.
    """
    try:
        for q in task_queues:
            QUEUE_DEPTH.labels(queue=q.name).set(q.count())
            DLQ_DEPTH.labels(queue=q.name).set(q.dead_letter_count())
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


def start_metrics_server(port: int) -> bool:
    """
    Поднимает /metrics на отдельном порту. port <= 0 - выключено.
    """
    if port <= 0:
        return False
    start_http_server(port)
    return True
