from __future__ import annotations

from collections import deque

import pytest
import redis

from panel_worker.common.config import Settings
from panel_worker.queue.broker import Broker


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """
    Redis в памяти: списки и строки с TTL, decode_responses=True семантика.
    fail_ops - имена операций, которые бросают ConnectionError.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.lists: dict[str, deque[str]] = {}
        self.strings: dict[str, tuple[str, float | None]] = {}
        self.fail_ops: set[str] = set()
        self.closed = False

    def _check(self, op: str) -> None:
        if op in self.fail_ops or "*" in self.fail_ops:
            raise redis.ConnectionError(f"{op}: connection refused")

    def _alive(self, key: str) -> tuple[str, float | None] | None:
        item = self.strings.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and expires_at <= self.clock():
            del self.strings[key]
            return None
        return item

    def ttl(self, key: str) -> int:
        item = self._alive(key)
        if item is None:
            return -2
        return -1 if item[1] is None else int(item[1] - self.clock())

    def ping(self) -> bool:
        self._check("ping")
        return True

    def close(self) -> None:
        self.closed = True

    def rpush(self, name: str, *values: str) -> int:
        self._check("rpush")
        lst = self.lists.setdefault(name, deque())
        lst.extend(values)
        return len(lst)

    def lpop(self, name: str) -> str | None:
        self._check("lpop")
        lst = self.lists.get(name)
        if not lst:
            return None
        value = lst.popleft()
        if not lst:
            del self.lists[name]
        return value

    def blpop(self, keys: list[str], timeout: int = 0) -> tuple[str, str] | None:
        self._check("blpop")
        for name in keys:
            lst = self.lists.get(name)
            if lst:
                value = lst.popleft()
                if not lst:
                    del self.lists[name]
                return name, value
        return None

    def lrange(self, name: str, start: int, end: int) -> list[str]:
        self._check("lrange")
        items = list(self.lists.get(name, ()))
        stop = None if end == -1 else end + 1
        return items[start:stop]

    def llen(self, name: str) -> int:
        self._check("llen")
        return len(self.lists.get(name, ()))

    def get(self, key: str) -> str | None:
        self._check("get")
        item = self._alive(key)
        return item[0] if item else None

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check("set")
        expires_at = self.clock() + ex if ex else None
        self.strings[key] = (value, expires_at)
        return True

    def delete(self, *keys: str) -> int:
        self._check("del")
        removed = 0
        for key in keys:
            if self.strings.pop(key, None) is not None:
                removed += 1
            if self.lists.pop(key, None) is not None:
                removed += 1
        return removed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def broker_(fake_redis: FakeRedis) -> Broker:
    return Broker(lambda: fake_redis)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        queue_names="email_queue,order_queue",
        queue_retry_backoff_sec=0.0,
        queue_broker_backoff_sec=0.0,
        queue_max_attempts=3,
        queue_block_timeout_sec=1,
        alert_webhook_url=None,
    )
