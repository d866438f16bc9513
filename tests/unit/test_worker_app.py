from __future__ import annotations

from apps.worker_queue import main as app
from panel_worker.queue.broker import Broker


def test_main_exits_when_broker_is_down(monkeypatch, fake_redis) -> None:
    fake_redis.fail_ops.add("ping")
    monkeypatch.setattr(app, "broker", lambda: Broker(lambda: fake_redis))
    captured = []
    monkeypatch.setattr(
        app,
        "build_alert_sink",
        lambda settings: type(
            "Alerts",
            (),
            {
                "capture_exception": lambda self, e, **kw: captured.append(e),
                "capture_message": lambda self, m, **kw: captured.append(m),
            },
        )(),
    )

    assert app.main() == 1
    assert len(captured) == 1
