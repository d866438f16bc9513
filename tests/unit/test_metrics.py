from __future__ import annotations

from types import SimpleNamespace

from panel_worker.common import metrics


def test_refresh_queue_metrics_sets_gauges() -> None:
    queues = [
        SimpleNamespace(name="email_queue", count=lambda: 4, dead_letter_count=lambda: 1),
        SimpleNamespace(name="order_queue", count=lambda: 0, dead_letter_count=lambda: 2),
    ]

    metrics.refresh_queue_metrics(queues)

    assert metrics.QUEUE_DEPTH.labels(queue="email_queue")._value.get() == 4
    assert metrics.DLQ_DEPTH.labels(queue="order_queue")._value.get() == 2


def test_refresh_queue_metrics_counts_errors() -> None:
    def broken():
        raise RuntimeError("redis down")

    before = metrics.METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics")._value.get()
    metrics.refresh_queue_metrics([SimpleNamespace(name="x", count=broken, dead_letter_count=broken)])
    after = metrics.METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics")._value.get()

    assert after == before + 1


def test_metrics_server_disabled_by_default() -> None:
    assert metrics.start_metrics_server(0) is False
