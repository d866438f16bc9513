"""
Логи воркера очередей.

Назначение:
- одна строка на событие в stdout; имя события - snake_case (task_acked, broker_unavailable, ...)
- контекст события: extra={"payload": {...}}
- LOG_FORMAT=json (по умолчанию) или text для локального запуска

Важно:
- queue/key/type из payload дублируются на верхний уровень JSON,
  чтобы по ним можно было искать задачу сквозь весь её жизненный цикл
- содержимое задач в payload не кладём (только truncate-превью)
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from panel_worker.common.config import Settings, get_settings
from panel_worker.common.time import utc_now

_CORRELATION_FIELDS = ("queue", "key", "type")
_NOISY_LOGGERS = ("urllib3", "redis")


class JsonFormatter(logging.Formatter):
    def __init__(self, *, service: str = "", env: str = "") -> None:
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "ts": utc_now().isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": self.service,
            "env": self.env,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            for field in _CORRELATION_FIELDS:
                if payload.get(field) is not None:
                    doc[field] = payload[field]
            doc["payload"] = payload
        if record.exc_info:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """
    event k=v k=v ... для чтения глазами.
    """

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)-7s %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        payload = getattr(record, "payload", None)
        if isinstance(payload, dict) and payload:
            line += " " + " ".join(f"{k}={v}" for k, v in payload.items())
        return line


def setup_logging(settings: Settings | None = None) -> None:
    s = settings or get_settings()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # повторный вызов (тесты, скрипты) не добавляет второй хэндлер
    if any(getattr(h, "_panel_worker", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler._panel_worker = True
    if (s.log_format or "").lower() == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JsonFormatter(service=s.service_name, env=s.app_env))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_project_logger(name: str = "panel-worker") -> logging.Logger:
    return logging.getLogger(name)
