"""
SMTP-отправка email по шаблонам.

Назначение:
- рендер шаблона Jinja2 (HTML) по имени из задачи
- отправка через SMTP (STARTTLS/логин опционально)

Важно:
- не логировать содержимое писем
- логировать только метаданные (кому, шаблон, message-id)
- любая ошибка превращается в ProviderError: воркер повторит задачу
"""

from __future__ import annotations

import re
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from panel_worker.common.config import Settings, get_settings
from panel_worker.common.errors import ErrCode, ProviderError
from panel_worker.common.logging import get_project_logger

log = get_project_logger()

_TEMPLATE_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
_TAG_RE = re.compile(r"<[^>]+>")


def template_file(template: str) -> str:
    """
    "verify_code.tpl" / "verify_code" -> "verify_code.html.j2"
    """
    name = (template or "").strip()
    for suffix in (".html.j2", ".tpl"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    if not _TEMPLATE_NAME_RE.match(name):
        raise ProviderError(ErrCode.MAIL_PROVIDER_ERROR, f"invalid template name: {template!r}")
    return f"{name}.html.j2"


def _jinja(templates_dir: str) -> Environment:
    return Environment(
        loader=FileSystemLoader(templates_dir),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )


class SMTPMailer:
    def __init__(self, settings: Settings | None = None) -> None:
        self.s = settings or get_settings()
        self.env = _jinja(self.s.email_templates_dir)

    def render(self, template: str, context: dict[str, Any]) -> str:
        try:
            tpl = self.env.get_template(template_file(template))
            return tpl.render({"app_name": self.s.app_name, **context})
        except TemplateError as e:
            raise ProviderError(
                ErrCode.MAIL_PROVIDER_ERROR, f"template render failed: {e}", {"template": template}
            ) from e

    def send(
        self,
        *,
        to: str,
        subject: str,
        template: str,
        context: dict[str, Any],
    ) -> str | None:
        if not self.s.smtp_host:
            raise ProviderError(ErrCode.MAIL_PROVIDER_ERROR, "SMTP_HOST_not_set")

        html = self.render(template, context)

        msg = EmailMessage()
        msg["From"] = self.s.email_from
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()

        # Текстовая часть (fallback)
        msg.set_content(_TAG_RE.sub("", html).strip() or subject)
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.s.smtp_host, self.s.smtp_port, timeout=self.s.smtp_timeout_sec) as smtp:
                smtp.ehlo()
                if self.s.smtp_starttls:
                    smtp.starttls()
                    smtp.ehlo()
                if self.s.smtp_user and self.s.smtp_pass:
                    smtp.login(self.s.smtp_user, self.s.smtp_pass)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log.error(
                "email_send_failed",
                extra={"payload": {"to": to, "template": template, "err": str(e)[:200]}},
            )
            raise ProviderError(
                ErrCode.MAIL_PROVIDER_ERROR, f"smtp send failed: {e}", {"template": template}
            ) from e

        log.info(
            "email_sent",
            extra={"payload": {"to": to, "template": template, "message_id": msg["Message-ID"]}},
        )
        return msg["Message-ID"]
