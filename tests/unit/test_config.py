from __future__ import annotations

from panel_worker.common.config import Settings


def test_defaults() -> None:
    s = Settings()
    assert s.queue_task_ttl_sec == 86_400
    assert s.queue_block_timeout_sec == 30
    assert s.queue_list() == ["email_queue", "order_queue"]


def test_env_aliases(monkeypatch) -> None:
    monkeypatch.setenv("QUEUE_NAMES", "order_queue, email_queue ,")
    monkeypatch.setenv("QUEUE_MAX_ATTEMPTS", "0")
    s = Settings()
    assert s.queue_list() == ["order_queue", "email_queue"]
    assert s.queue_max_attempts == 0


def test_file_override_is_typed(monkeypatch, tmp_path) -> None:
    secret = tmp_path / "smtp_pass"
    secret.write_text("s3cret\n", encoding="utf-8")
    port = tmp_path / "smtp_port"
    port.write_text("2525", encoding="utf-8")
    monkeypatch.setenv("SMTP_PASS_FILE", str(secret))
    monkeypatch.setenv("SMTP_PORT_FILE", str(port))

    s = Settings()

    assert s.smtp_pass == "s3cret"
    assert s.smtp_port == 2525


def test_file_override_joins_multiline_queue_list(monkeypatch, tmp_path) -> None:
    f = tmp_path / "queues"
    f.write_text("email_queue\norder_queue\n", encoding="utf-8")
    monkeypatch.setenv("QUEUE_NAMES_FILE", str(f))
    assert Settings().queue_list() == ["email_queue", "order_queue"]
