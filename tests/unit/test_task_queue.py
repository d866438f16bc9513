from __future__ import annotations

import json

import pytest

from panel_worker.common.errors import TaskDecodeError
from panel_worker.queue.task_queue import TaskQueue


def _queue(name, broker_, settings) -> TaskQueue:
    return TaskQueue(name, broker_=broker_, settings=settings)


def test_add_stores_key_in_list_and_payload_with_ttl(broker_, fake_redis, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    task = q.add({"to_email": "a@b.co"}, "email")

    key = f"email_queue:{task.id}"
    assert list(fake_redis.lists["email_queue"]) == [key]
    record = json.loads(fake_redis.get(key))
    assert record["type"] == "email"
    assert record["data"] == {"to_email": "a@b.co"}
    assert record["attempts"] == 0
    assert isinstance(record["time"], int)
    assert fake_redis.ttl(key) == 86_400


def test_task_ids_are_unique(broker_, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    ids = {q.add({"n": i}, "email").id for i in range(50)}
    assert len(ids) == 50


def test_pop_is_fifo_and_removes_payload(broker_, fake_redis, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    first = q.add({"n": 1}, "email")
    q.add({"n": 2}, "email")

    got = q.pop()
    assert got.id == first.id
    assert got.data == {"n": 1}
    assert fake_redis.get(f"email_queue:{first.id}") is None
    assert q.pop().data == {"n": 2}
    assert q.pop() is None


def test_blocking_pop_multiple_prefers_left_queue(broker_, settings) -> None:
    emails = _queue("email_queue", broker_, settings)
    orders = _queue("order_queue", broker_, settings)
    orders.add({"order_id": 1}, "order")
    emails.add({"to_email": "a@b.co"}, "email")

    first = emails.blocking_pop_multiple(["email_queue", "order_queue"], timeout=1)
    second = emails.blocking_pop_multiple(["email_queue", "order_queue"], timeout=1)

    assert first.queue == "email_queue"
    assert second.queue == "order_queue"
    assert second.task.data == {"order_id": 1}


def test_blocking_pop_timeout_returns_none(broker_, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    assert q.blocking_pop(timeout=1) is None


def test_expired_payload_is_skipped(broker_, clock, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    q.add({"n": 1}, "email")
    clock.advance(86_401)

    assert q.pop() is None
    assert q.count() == 0


def test_key_without_payload_is_noop(broker_, fake_redis, settings) -> None:
    fake_redis.rpush("email_queue", "email_queue:ghost")
    q = _queue("email_queue", broker_, settings)
    assert q.blocking_pop_multiple(["email_queue"], timeout=1, auto_ack=False) is None


def test_invalid_json_raises_decode_error(broker_, fake_redis, settings) -> None:
    fake_redis.rpush("email_queue", "email_queue:bad")
    fake_redis.set("email_queue:bad", "{not json", ex=60)
    q = _queue("email_queue", broker_, settings)

    with pytest.raises(TaskDecodeError) as exc:
        q.blocking_pop_multiple(["email_queue"], timeout=1, auto_ack=False)
    assert exc.value.key == "email_queue:bad"
    assert exc.value.queue == "email_queue"


def test_worker_mode_keeps_payload_until_ack(broker_, fake_redis, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    task = q.add({"n": 1}, "email")

    delivery = q.blocking_pop_multiple(["email_queue"], timeout=1, auto_ack=False)
    assert fake_redis.get(delivery.key) is not None

    q.ack(delivery.key)
    assert fake_redis.get(f"email_queue:{task.id}") is None


def test_requeue_pushes_same_key_with_attempts(broker_, fake_redis, clock, settings) -> None:
    q = _queue("email_queue", broker_, settings)
    q.add({"n": 1}, "email")
    delivery = q.blocking_pop_multiple(["email_queue"], timeout=1, auto_ack=False)
    clock.advance(100)

    q.requeue(delivery, attempts=1)

    assert list(fake_redis.lists["email_queue"]) == [delivery.key]
    assert json.loads(fake_redis.get(delivery.key))["attempts"] == 1
    assert fake_redis.ttl(delivery.key) == 86_400


def test_count_and_delete(broker_, fake_redis, settings) -> None:
    q = _queue("order_queue", broker_, settings)
    tasks = [q.add({"order_id": i}, "order") for i in range(3)]
    assert q.count() == 3

    q.delete()

    assert q.count() == 0
    for t in tasks:
        assert fake_redis.get(f"order_queue:{t.id}") is None


def test_dead_letter_list_and_redrive(broker_, fake_redis, settings) -> None:
    q = _queue("order_queue", broker_, settings)
    q.add({"order_id": 7}, "order")
    delivery = q.blocking_pop_multiple(["order_queue"], timeout=1, auto_ack=False)

    q.dead_letter(delivery, attempts=3, reason="boom")

    assert q.count() == 0
    assert q.dead_letter_count() == 1
    assert fake_redis.ttl(delivery.key) == settings.queue_dlq_ttl_sec
    [dead] = q.list_dead_letters()
    assert dead.record["error"] == "boom"
    assert dead.record["attempts"] == 3

    assert q.redrive_dead_letters() == 1
    assert q.dead_letter_count() == 0
    again = q.pop()
    assert again.data == {"order_id": 7}
    assert again.attempts == 0


def test_purge_dead_letters(broker_, fake_redis, settings) -> None:
    q = _queue("order_queue", broker_, settings)
    q.add({"order_id": 1}, "order")
    delivery = q.blocking_pop_multiple(["order_queue"], timeout=1, auto_ack=False)
    q.dead_letter(delivery, attempts=1, reason="x")

    q.purge_dead_letters()

    assert q.dead_letter_count() == 0
    assert fake_redis.get(delivery.key) is None


def test_redrive_keeps_unreadable_entries_and_moves_the_rest(broker_, fake_redis, settings) -> None:
    q = _queue("order_queue", broker_, settings)
    fake_redis.rpush("order_queue:dlq", "order_queue:corrupt")
    fake_redis.set("order_queue:corrupt", "{oops", ex=60)
    fake_redis.rpush("order_queue:dlq", "order_queue:notype")
    fake_redis.set("order_queue:notype", json.dumps({"id": "notype", "data": {}}), ex=60)
    q.add({"order_id": 9}, "order")
    delivery = q.blocking_pop_multiple(["order_queue"], timeout=1, auto_ack=False)
    q.dead_letter(delivery, attempts=3, reason="boom")

    assert q.redrive_dead_letters() == 1

    assert list(fake_redis.lists["order_queue"]) == [delivery.key]
    assert list(fake_redis.lists["order_queue:dlq"]) == [
        "order_queue:corrupt",
        "order_queue:notype",
    ]
    assert fake_redis.get("order_queue:corrupt") == "{oops"


def test_list_dead_letters_shows_unreadable_entries(broker_, fake_redis, settings) -> None:
    q = _queue("order_queue", broker_, settings)
    fake_redis.rpush("order_queue:dlq", "order_queue:corrupt")
    fake_redis.set("order_queue:corrupt", "{oops", ex=60)

    [entry] = q.list_dead_letters()

    assert entry.key == "order_queue:corrupt"
    assert entry.record["error"] == "unreadable payload"
