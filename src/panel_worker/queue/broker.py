"""
Клиент брокера (Redis) для очередей.

Назначение:
- единая точка подключения к Redis
- тонкий набор примитивов: списки (RPUSH/LPOP/BLPOP/LRANGE/LLEN) и строки с TTL
- любые ошибки redis-py превращаются в BrokerError, чтобы воркер отличал
  сбой инфраструктуры от ошибки обработчика

Важно:
- BLPOP атомарен между соединениями: один ключ получает ровно один воркер
- socket timeout расширяется на время блокирующего ожидания, иначе 30-секундный
  BLPOP падал бы по таймауту чтения
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

import redis

from panel_worker.common.config import Settings, get_settings
from panel_worker.common.errors import BrokerError
from panel_worker.common.logging import get_project_logger

log = get_project_logger()


def _redis_from_settings(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.redis_connect_timeout_sec,
        socket_timeout=settings.redis_read_timeout_sec + settings.queue_block_timeout_sec,
    )


@contextmanager
def _wrap_errors(op: str) -> Iterator[None]:
    try:
        yield
    except redis.RedisError as e:
        raise BrokerError(
            f"Redis {op} failed: {e}", details={"op": op, "error_type": type(e).__name__}
        ) from e


class Broker:
    def __init__(self, client_factory: Callable[[], redis.Redis]) -> None:
        self._factory = client_factory
        self._client: redis.Redis | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Broker:
        s = settings or get_settings()
        return cls(lambda: _redis_from_settings(s))

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = self._factory()
        return self._client

    # -------------------------------------------------------------------------
    # Соединение
    # -------------------------------------------------------------------------
    def ping(self) -> bool:
        with _wrap_errors("ping"):
            return bool(self.client.ping())

    def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except redis.RedisError:
            log.warning("broker_close_failed")

    def reconnect(self) -> bool:
        """
        Сбросить соединение и проверить новое.
        Возвращает False, если брокер всё ещё недоступен.
        """
        self.close()
        try:
            self.ping()
        except BrokerError as e:
            log.warning("broker_reconnect_failed", extra={"payload": {"err": e.message[:200]}})
            return False
        log.info("broker_reconnected")
        return True

    # -------------------------------------------------------------------------
    # Списки
    # -------------------------------------------------------------------------
    def push_tail(self, list_name: str, value: str) -> int:
        with _wrap_errors("rpush"):
            return int(self.client.rpush(list_name, value))

    def pop_head(self, list_name: str) -> str | None:
        with _wrap_errors("lpop"):
            return self.client.lpop(list_name)

    def blocking_pop_head(self, list_names: Sequence[str], timeout: int) -> tuple[str, str] | None:
        """
        BLPOP по нескольким спискам. При одновременной готовности приоритет
        у списков левее в list_names (порядок самого Redis).
        """
        with _wrap_errors("blpop"):
            item = self.client.blpop(list(list_names), timeout=timeout)
        if not item:
            return None
        list_name, value = item
        return list_name, value

    def list_range(self, list_name: str, start: int = 0, end: int = -1) -> list[str]:
        with _wrap_errors("lrange"):
            return list(self.client.lrange(list_name, start, end))

    def list_length(self, list_name: str) -> int:
        with _wrap_errors("llen"):
            return int(self.client.llen(list_name))

    # -------------------------------------------------------------------------
    # Строки
    # -------------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        with _wrap_errors("get"):
            return self.client.get(key)

    def set_with_ttl(self, key: str, value: str, ttl_sec: int) -> None:
        with _wrap_errors("set"):
            self.client.set(key, value, ex=ttl_sec)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _wrap_errors("del"):
            return int(self.client.delete(*keys))


_broker: Broker | None = None


def broker() -> Broker:
    """
    Singleton брокер процесса.
    """
    global _broker
    if _broker is None:
        _broker = Broker.from_settings()
    return _broker
