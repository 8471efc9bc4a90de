# Overview: Best-effort e-mail notifications for inquiry, order and stock events.

"""
Notification Sender

WHY: Staff want to hear about new inquiries, new orders, status changes and
low stock, and the customer gets a confirmation for their enquiry. Mail is a
side channel: notify() never raises, so a broken SMTP server can never undo
or fail the inquiry/order that triggered it. Failures are logged.

Bodies are Jinja templates under templates/email/. With MAIL_ASYNC the SMTP
conversation happens on a daemon thread; with MAIL_SUPPRESS_SEND messages are
appended to app.extensions["mail_outbox"] instead (used by the tests).
"""

from __future__ import annotations

import smtplib
import threading
from dataclasses import dataclass
from email.message import EmailMessage

from flask import current_app, render_template

from uniform_palace.time_utils import utcnow


class DependencyError(Exception):
    """An external collaborator (mail server, image codec) failed."""


@dataclass(frozen=True)
class NotificationEvent:
    template: str
    subject: str
    recipient: str  # "admin", "inquiry" (the enquirer) or "assignee"
    header_color: str
    dashboard_path: str | None


EVENTS = {
    "new_inquiry": NotificationEvent(
        "email/new_inquiry.html", "New Inquiry Received - Uniform Palace",
        "admin", "#dc2626", "/admin/inquiries"),
    "inquiry_confirmation": NotificationEvent(
        "email/inquiry_confirmation.html", "Thank you for your inquiry - Uniform Palace",
        "inquiry", "#dc2626", None),
    "follow_up_reminder": NotificationEvent(
        "email/follow_up_reminder.html", "Follow-up Reminder - Uniform Palace",
        "assignee", "#059669", "/admin/inquiries"),
    "new_order": NotificationEvent(
        "email/new_order.html", "New Order #{order.order_number} - Uniform Palace",
        "admin", "#dc2626", "/admin/orders"),
    "order_status_update": NotificationEvent(
        "email/order_status_update.html", "Order #{order.order_number} Status Updated - Uniform Palace",
        "admin", "#059669", "/admin/orders"),
    "low_stock_alert": NotificationEvent(
        "email/low_stock_alert.html", "Low Stock Alert - {product.name}",
        "admin", "#f59e0b", "/admin/products"),
}


@dataclass(frozen=True)
class MailSettings:
    server: str
    port: int
    use_tls: bool
    username: str | None
    password: str | None
    timeout: int

    @classmethod
    def from_config(cls, config) -> "MailSettings":
        return cls(
            server=config.get("MAIL_SERVER", "localhost"),
            port=int(config.get("MAIL_PORT", 587)),
            use_tls=bool(config.get("MAIL_USE_TLS", True)),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            timeout=int(config.get("MAIL_TIMEOUT_SECONDS", 10)),
        )


def _resolve_recipient(event: NotificationEvent, context: dict) -> str | None:
    admin_email = current_app.config.get("ADMIN_EMAIL")
    if event.recipient == "admin":
        return admin_email
    inquiry = context.get("inquiry")
    if event.recipient == "inquiry":
        return getattr(inquiry, "email", None)
    if event.recipient == "assignee":
        assignee = getattr(inquiry, "assigned_to", None)
        return getattr(assignee, "email", None) or admin_email
    raise ValueError(f"Unknown recipient kind: {event.recipient}")


def build_message(event_name: str, **context) -> EmailMessage:
    """Render the event's template into a ready-to-send message."""
    event = EVENTS[event_name]
    recipient = _resolve_recipient(event, context)
    if not recipient:
        raise DependencyError(f"No recipient for {event_name}")

    html = render_template(
        event.template,
        header_color=event.header_color,
        dashboard_path=event.dashboard_path,
        frontend_url=current_app.config.get("FRONTEND_URL", ""),
        year=utcnow().year,
        **context,
    )

    message = EmailMessage()
    message["Subject"] = event.subject.format(**context)
    message["From"] = current_app.config.get("MAIL_DEFAULT_SENDER")
    message["To"] = recipient
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html, subtype="html")
    return message


def _deliver(settings: MailSettings, message: EmailMessage) -> None:
    try:
        with smtplib.SMTP(settings.server, settings.port, timeout=settings.timeout) as smtp:
            if settings.use_tls:
                smtp.starttls()
            if settings.username:
                smtp.login(settings.username, settings.password or "")
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise DependencyError(f"Mail delivery failed: {exc}") from exc


def _deliver_logged(settings: MailSettings, message: EmailMessage, logger) -> bool:
    try:
        _deliver(settings, message)
    except DependencyError:
        logger.exception("Failed to send notification %r to %s", message["Subject"], message["To"])
        return False
    logger.info("Sent notification %r to %s", message["Subject"], message["To"])
    return True


def outbox() -> list:
    """Messages captured while MAIL_SUPPRESS_SEND is on."""
    return current_app.extensions.setdefault("mail_outbox", [])


def notify(event_name: str, **context) -> bool:
    """
    Fire-and-forget notification. Returns True when the message was handed
    off (sent, queued on a thread or captured), False otherwise. Never raises.
    """
    logger = current_app.logger
    config = current_app.config

    if not config.get("MAIL_ENABLED"):
        logger.debug("Mail disabled; skipping %s notification", event_name)
        return False

    try:
        message = build_message(event_name, **context)
    except Exception:
        # Rendering problems must not reach the request that triggered the mail
        logger.exception("Failed to build %s notification", event_name)
        return False

    if config.get("MAIL_SUPPRESS_SEND"):
        outbox().append(message)
        return True

    settings = MailSettings.from_config(config)
    if config.get("MAIL_ASYNC", True):
        threading.Thread(
            target=_deliver_logged,
            args=(settings, message, logger),
            name=f"notify-{event_name}",
            daemon=True,
        ).start()
        return True

    return _deliver_logged(settings, message, logger)
