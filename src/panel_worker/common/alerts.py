"""
Алерт-синк: внешняя отправка аномалий воркера.

Назначение:
- capture_exception / capture_message для сбоев, которые должен увидеть человек
- webhook в формате Alertmanager ({"alerts": [{"labels", "annotations"}]}),
  тот же контракт, что принимает alert-relay
- без ALERT_WEBHOOK_URL - только лог

Важно:
- синк никогда не бросает исключения (fire-and-forget)
- в аннотации не кладём payload задач, только метаданные
"""

from __future__ import annotations

import traceback
from typing import Any, Protocol

import requests

from panel_worker.common.config import Settings, get_settings
from panel_worker.common.logging import get_project_logger
from panel_worker.common.metrics import ALERTS_TOTAL
from panel_worker.common.time import utc_now

log = get_project_logger()


class AlertSink(Protocol):
    def capture_exception(self, error: BaseException, **context: Any) -> None: ...

    def capture_message(self, message: str, **context: Any) -> None: ...


class LogAlertSink:
    """
    Синк по умолчанию: пишет алерт в лог.
    """

    def capture_exception(self, error: BaseException, **context: Any) -> None:
        log.error(
            "alert_exception",
            extra={
                "payload": {
                    "error_type": type(error).__name__,
                    "error": str(error)[:200],
                    "context": context,
                }
            },
        )
        ALERTS_TOTAL.labels(kind="exception", delivered="log").inc()

    def capture_message(self, message: str, **context: Any) -> None:
        log.warning("alert_message", extra={"payload": {"message": message, "context": context}})
        ALERTS_TOTAL.labels(kind="message", delivered="log").inc()


class WebhookAlertSink:
    def __init__(
        self,
        *,
        url: str,
        service: str,
        app_env: str,
        timeout_sec: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.service = service
        self.app_env = app_env
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()

    def _alert(self, *, alertname: str, severity: str, summary: str, description: str, context: dict) -> dict:
        labels = {
            "alertname": alertname,
            "severity": severity,
            "service": self.service,
            "env": self.app_env,
        }
        for k in ("queue", "task_type"):
            if context.get(k):
                labels[k] = str(context[k])
        return {
            "labels": labels,
            "annotations": {
                "summary": summary[:300],
                "description": description[:4000],
                "context": {k: str(v)[:200] for k, v in context.items()},
            },
            "startsAt": utc_now().isoformat(),
        }

    def _post(self, kind: str, alert: dict) -> None:
        try:
            r = self.session.post(self.url, json={"alerts": [alert]}, timeout=self.timeout_sec)
            r.raise_for_status()
            ALERTS_TOTAL.labels(kind=kind, delivered="webhook").inc()
        except requests.RequestException as e:
            ALERTS_TOTAL.labels(kind=kind, delivered="failed").inc()
            log.error(
                "alert_webhook_failed",
                extra={"payload": {"kind": kind, "err": str(e)[:200], "alert": alert["labels"]}},
            )

    def capture_exception(self, error: BaseException, **context: Any) -> None:
        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        alert = self._alert(
            alertname="WorkerException",
            severity="error",
            summary=f"{type(error).__name__}: {error}",
            description=tb,
            context=context,
        )
        self._post("exception", alert)

    def capture_message(self, message: str, **context: Any) -> None:
        alert = self._alert(
            alertname="WorkerAnomaly",
            severity="warning",
            summary=message,
            description=message,
            context=context,
        )
        self._post("message", alert)


def build_alert_sink(settings: Settings | None = None) -> AlertSink:
    s = settings or get_settings()
    url = (s.alert_webhook_url or "").strip()
    if not url:
        return LogAlertSink()
    return WebhookAlertSink(
        url=url,
        service=s.service_name,
        app_env=s.app_env,
        timeout_sec=s.alert_timeout_sec,
    )
