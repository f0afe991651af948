from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from app.core.config import settings

logger = logging.getLogger(__name__)

# Notification emails render from app/templates/email. SMTP is optional: when
# SMTP_HOST or the sender address is missing, sends are skipped and logged.
TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates" / "email"
_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.smtp_from_address)


def render_email_template(template_name: str, context: dict[str, Any]) -> str:
    try:
        template = _jinja_env.get_template(template_name)
    except TemplateNotFound:
        logger.error("Email template %s not found in %s", template_name, TEMPLATE_DIR)
        raise
    return template.render(**context)


def build_message(*, to: str, subject: str, html_body: str, text_body: str | None = None) -> EmailMessage:
    message = EmailMessage()
    sender = settings.smtp_from_address or ""
    message["From"] = formataddr((settings.smtp_from_name, sender)) if settings.smtp_from_name else sender
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text_body or "Please view this email in an HTML capable client.")
    message.add_alternative(html_body, subtype="html")
    return message


def _open_smtp() -> smtplib.SMTP:
    if settings.smtp_use_ssl:
        return smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=30)
    return smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30)


def send_email(*, to: str, subject: str, html_body: str, text_body: str | None = None) -> bool:
    """Send one message over SMTP. Returns False instead of raising on any failure."""
    if not smtp_configured():
        logger.info("SMTP is not configured; skipping email to %s", to)
        return False

    message = build_message(to=to, subject=subject, html_body=html_body, text_body=text_body)
    try:
        with _open_smtp() as smtp:
            if settings.smtp_use_tls and not settings.smtp_use_ssl:
                smtp.starttls()
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(message)
        return True
    except Exception:  # noqa: BLE001
        logger.exception("Failed to send email to %s", to)
        return False


def send_templated_email(
    *,
    template_name: str,
    to: str,
    subject: str,
    context: dict[str, Any],
    text_body: str | None = None,
) -> bool:
    html_body = render_email_template(template_name, context)
    return send_email(to=to, subject=subject, html_body=html_body, text_body=text_body)
