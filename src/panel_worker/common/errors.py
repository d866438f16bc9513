"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для логов/алертов/DLQ
- воркер различает сбои брокера, битые задачи и ошибки обработчиков только по типу
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"

    # Очереди
    BROKER_ERROR = "broker_error"
    TASK_DECODE = "task_decode"
    TASK_MALFORMED = "task_malformed"

    # Провайдеры
    MAIL_PROVIDER_ERROR = "mail_provider_error"

    # Хранилище
    DB_ERROR = "db_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class ProviderError(AppError):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)


class BrokerError(AppError):
    """
    Любой сбой при обращении к брокеру (сеть, таймаут, протокол).
    """

    def __init__(self, message: str = "Брокер недоступен", details: dict | None = None) -> None:
        super().__init__(ErrCode.BROKER_ERROR, message, details)


class TaskDecodeError(AppError):
    """
    Payload задачи не является JSON-объектом.
    """

    def __init__(self, *, queue: str, key: str, message: str) -> None:
        super().__init__(ErrCode.TASK_DECODE, message, {"queue": queue, "key": key})
        self.queue = queue
        self.key = key


class MalformedTaskError(AppError):
    """
    В записи задачи нет обязательных полей type/data.
    """

    def __init__(self, message: str = "Нет полей type/data", details: dict | None = None) -> None:
        super().__init__(ErrCode.TASK_MALFORMED, message, details)
