from __future__ import annotations

import smtplib

import pytest

from panel_worker.common.config import Settings
from panel_worker.common.errors import ProviderError
from panel_worker.delivery.email.sender import SMTPMailer, template_file


def test_template_file_normalizes_legacy_names() -> None:
    assert template_file("verify_code.tpl") == "verify_code.html.j2"
    assert template_file("verify_code") == "verify_code.html.j2"
    assert template_file("warn.html.j2") == "warn.html.j2"


@pytest.mark.parametrize("name", ["", "../etc/passwd", "a/b", "x y"])
def test_template_file_rejects_unsafe_names(name) -> None:
    with pytest.raises(ProviderError):
        template_file(name)


def test_render_verify_code_template() -> None:
    mailer = SMTPMailer(Settings(app_name="Panel"))
    html = mailer.render("verify_code.tpl", {"code": "987654", "expire": "12:00"})
    assert "987654" in html
    assert "Panel" in html


def test_render_escapes_context() -> None:
    mailer = SMTPMailer(Settings())
    html = mailer.render("verify_code", {"code": "<script>"})
    assert "<script>" not in html


def test_render_unknown_template_raises_provider_error() -> None:
    mailer = SMTPMailer(Settings())
    with pytest.raises(ProviderError):
        mailer.render("does_not_exist", {})


def test_send_without_smtp_host_raises() -> None:
    mailer = SMTPMailer(Settings(smtp_host=None))
    with pytest.raises(ProviderError):
        mailer.send(to="a@example.com", subject="s", template="test", context={})


def test_send_uses_smtp(monkeypatch) -> None:
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None) -> None:
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc) -> None:
            return None

        def ehlo(self) -> None:
            pass

        def starttls(self) -> None:
            pass

        def login(self, user, password) -> None:
            pass

        def send_message(self, msg) -> None:
            sent.append(msg)

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    mailer = SMTPMailer(Settings(smtp_host="smtp.local", email_from="noreply@panel.local"))

    message_id = mailer.send(
        to="a@example.com", subject="Hello", template="test", context={"text": "body"}
    )

    assert message_id
    assert sent[0]["To"] == "a@example.com"
    assert sent[0]["Subject"] == "Hello"


def test_send_smtp_failure_becomes_provider_error(monkeypatch) -> None:
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    mailer = SMTPMailer(Settings(smtp_host="smtp.local"))
    with pytest.raises(ProviderError):
        mailer.send(to="a@example.com", subject="s", template="test", context={})
