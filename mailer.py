from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import date
from email.message import EmailMessage
from functools import lru_cache
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import Settings, get_settings


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"
APP_NAME = "SalaPeso"


@dataclass(frozen=True)
class EmailResult:
    success: bool
    error: Optional[str] = None


@lru_cache(maxsize=1)
def _template_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
    )


def render_email(template: str, **context: object) -> str:
    ctx: dict[str, object] = {"app_name": APP_NAME, "year": date.today().year}
    ctx.update(context)
    return _template_env().get_template(template).render(**ctx)


class Mailer:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_email and self.settings.smtp_password)

    def send(self, to: str, subject: str, html: str) -> EmailResult:
        if not self.configured:
            logger.warning(f"email_skipped: reason=smtp_not_configured to={to}")
            return EmailResult(success=False, error="Email not configured")

        msg = EmailMessage()
        msg["From"] = f'"{APP_NAME}" <{self.settings.smtp_email}>'
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")

        logger.info(f"email_send: to={to} subject={subject}")
        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.smtp_timeout_secs,
            ) as smtp:
                smtp.starttls()
                smtp.login(self.settings.smtp_email, self.settings.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"email_failed: to={to} error={exc}")
            return EmailResult(success=False, error=str(exc))
        return EmailResult(success=True)

    def send_verification(self, to: str, verification_url: str, name: Optional[str]) -> EmailResult:
        html = render_email(
            "verify_email.html", verification_url=verification_url, name=name
        )
        return self.send(to, f"Verify your {APP_NAME} account", html)

    def send_password_reset(self, to: str, code: str, name: Optional[str]) -> EmailResult:
        html = render_email("password_reset.html", code=code, name=name)
        return self.send(to, f"Reset Your {APP_NAME} Password", html)
