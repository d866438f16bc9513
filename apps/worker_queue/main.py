"""
Worker Queue.

Алгоритм:
- поднимаем логирование, /metrics и канал алертов
- проверяем брокер (ping); недоступен на старте - алерт и exit 1
- собираем реестр обработчиков (email, order)
- крутим QueueWorker до SIGTERM/SIGINT; текущая задача дорабатывается
"""

from __future__ import annotations

import signal
import sys

from panel_worker.common.alerts import build_alert_sink
from panel_worker.common.config import get_settings
from panel_worker.common.errors import BrokerError
from panel_worker.common.logging import get_project_logger, setup_logging
from panel_worker.common.metrics import start_metrics_server
from panel_worker.delivery.email.sender import SMTPMailer
from panel_worker.jobs.registry import build_registry
from panel_worker.queue.broker import broker
from panel_worker.queue.task_queue import TaskQueue
from panel_worker.queue.worker import QueueWorker
from panel_worker.storage.repositories import sql_activation_stores

log = get_project_logger()


def _install_signal_handlers(worker: QueueWorker) -> None:
    def _shutdown(signum, _frame) -> None:
        log.info("worker_queue_shutdown_signal", extra={"payload": {"signal": signum}})
        worker.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _shutdown)


def main() -> int:
    setup_logging()
    settings = get_settings()
    if start_metrics_server(settings.metrics_port):
        log.info("metrics_server_started", extra={"payload": {"port": settings.metrics_port}})
    alerts = build_alert_sink(settings)

    b = broker()
    try:
        b.ping()
    except BrokerError as e:
        log.error(
            "worker_queue_broker_unavailable",
            extra={"payload": {"redis_url": settings.redis_url, "err": e.message[:200]}},
        )
        alerts.capture_exception(e)
        return 1

    queues = settings.queue_list()
    if not queues:
        log.error("worker_queue_no_queues", extra={"payload": {"QUEUE_NAMES": settings.queue_names}})
        return 1

    registry = build_registry(mailer=SMTPMailer(settings), stores_factory=sql_activation_stores)
    worker = QueueWorker(
        task_queue=TaskQueue(queues[0], broker_=b, settings=settings),
        registry=registry,
        alerts=alerts,
        queues=queues,
        settings=settings,
    )
    _install_signal_handlers(worker)
    worker.run_forever()
    b.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
