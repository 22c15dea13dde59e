"""
Outbox-style notifier.

Managers call ``publish`` once their own write is persisted. Publishing only
inserts ``notifications`` rows; ``deliver_pending`` renders and sends them
later (the HTTP layer schedules ``flush_outbox`` as a background task).
Nothing in here ever raises into a caller: failures are logged and recorded
on the notification row.
"""
from __future__ import annotations

import logging
import os
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Iterable, Optional, Protocol
from uuid import uuid4

from jinja2 import DictLoader, Environment, StrictUndefined
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import SessionLocal
from models import Notification
from orm import NotificationORM, NotificationSettingORM, ProfileORM

logger = logging.getLogger("app.notifier")

MAIL_BACKEND = os.getenv("APP_MAIL_BACKEND", "log")
SMTP_HOST = os.getenv("APP_SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("APP_SMTP_PORT", "587"))
SMTP_USER = os.getenv("APP_SMTP_USER")
SMTP_PASSWORD = os.getenv("APP_SMTP_PASSWORD")
MAIL_FROM = os.getenv("APP_MAIL_FROM", "assets@localhost")

_SUBJECTS = {
    "asset_status_changed": "Asset {{ asset_name }} is now {{ new_status | replace('_', ' ') }}",
    "asset_assigned": "Asset assigned to you: {{ asset_name }}",
    "asset_returned": "Asset return recorded: {{ asset_name }}",
    "transfer_requested": "Asset Transfer Approval Required",
    "transfer_approved": "Asset Transfer Approved by {{ approver_name }}",
    "transfer_completed": "Asset Transfer Completed",
    "transfer_rejected": "Asset Transfer Rejected",
    "maintenance_scheduled": "Maintenance scheduled: {{ asset_name }}",
    "ticket_status_changed": "Ticket {{ ticket_code }} is now {{ new_status | replace('_', ' ') }}",
    "ticket_assigned": "Ticket assigned to you: {{ ticket_code }}",
    "request_status_changed": "Asset request {{ request_code }} is now {{ new_status | replace('_', ' ') }}",
}

_BODIES = {
    "asset_status_changed": (
        "The status of asset \"{{ asset_name }}\" ({{ asset_code }}) changed "
        "from {{ old_status }} to {{ new_status }}."
    ),
    "asset_assigned": (
        "Asset \"{{ asset_name }}\" ({{ asset_code }}) has been assigned to you "
        "on {{ allocated_date }}.{% if location %}\nLocation: {{ location }}{% endif %}\n"
        "Condition: {{ condition }}"
    ),
    "asset_returned": (
        "Asset \"{{ asset_name }}\" ({{ asset_code }}) was returned on {{ return_date }}.\n"
        "Condition: {{ condition }}"
    ),
    "transfer_requested": (
        "An asset transfer has been initiated by {{ initiator_name }} for asset \"{{ asset_name }}\". "
        "Your approval is required to proceed with the transfer. Please log in to the system "
        "to approve or reject this transfer.\n\nTransfer ID: {{ transfer_id }}"
    ),
    "transfer_approved": (
        "{{ approver_name }} approved the transfer of asset \"{{ asset_name }}\". "
        "Current status: {{ status | replace('_', ' ') }}.\n\nTransfer ID: {{ transfer_id }}"
    ),
    "transfer_completed": (
        "The asset transfer for \"{{ asset_name }}\" has been completed successfully.\n\n"
        "Transfer ID: {{ transfer_id }}"
    ),
    "transfer_rejected": (
        "The transfer of asset \"{{ asset_name }}\" was rejected by {{ rejected_by_name }}."
        "{% if reason %}\nReason: {{ reason }}{% endif %}\n\nTransfer ID: {{ transfer_id }}"
    ),
    "maintenance_scheduled": (
        "{{ maintenance_type }} maintenance for \"{{ asset_name }}\" is scheduled on "
        "{{ scheduled_date }} ({{ frequency }}).{% if notes %}\nNotes: {{ notes }}{% endif %}"
    ),
    "ticket_status_changed": (
        "Your ticket {{ ticket_code }} \"{{ title }}\" moved from {{ old_status }} to {{ new_status }}."
        "{% if remarks %}\nRemarks: {{ remarks }}{% endif %}"
    ),
    "ticket_assigned": (
        "Ticket {{ ticket_code }} \"{{ title }}\" ({{ priority }} priority) has been assigned to you."
    ),
    "request_status_changed": (
        "Your request {{ request_code }} for {{ quantity }} x {{ category }} moved from "
        "{{ old_status | replace('_', ' ') }} to {{ new_status | replace('_', ' ') }}."
        "{% if remarks %}\nRemarks: {{ remarks }}{% endif %}"
    ),
}

_FOOTER = "\n\nBest regards,\nAsset Management System\n"

_templates = {f"{k}.subject": v for k, v in _SUBJECTS.items()}
_templates.update({f"{k}.body": "Dear {{ recipient_name }},\n\n" + v + _FOOTER for k, v in _BODIES.items()})

template_env = Environment(
    loader=DictLoader(_templates),
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)

EVENT_TYPES = tuple(_SUBJECTS)


@dataclass(frozen=True)
class Event:
    event_type: str
    recipient_id: Optional[str]
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str


class Mailer(Protocol):
    def send(self, event_type: str, recipient: Recipient, payload: dict[str, Any]) -> None:
        ...


class LogMailer:
    """Writes the message to the log instead of delivering it."""

    def send(self, event_type: str, recipient: Recipient, payload: dict[str, Any]) -> None:
        logger.info(
            "mail event=%s to=%s subject=%r\n%s",
            event_type,
            recipient.email,
            payload.get("subject"),
            payload.get("body"),
        )


class SmtpMailer:
    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        username: Optional[str] = SMTP_USER,
        password: Optional[str] = SMTP_PASSWORD,
        sender: str = MAIL_FROM,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender

    def send(self, event_type: str, recipient: Recipient, payload: dict[str, Any]) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient.email
        msg["Subject"] = payload.get("subject") or event_type
        msg.set_content(payload.get("body") or "")

        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


def get_mailer() -> Mailer:
    if MAIL_BACKEND == "smtp":
        return SmtpMailer()
    return LogMailer()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def render(event_type: str, recipient_name: str, payload: dict[str, Any]) -> tuple[str, str]:
    ctx = {**payload, "recipient_name": recipient_name}
    subject = template_env.get_template(f"{event_type}.subject").render(ctx)
    body = template_env.get_template(f"{event_type}.body").render(ctx)
    return subject.strip(), body


# ---------- publish ----------
def publish(db: Session, events: Iterable[Event], *, commit: bool = True) -> int:
    """
    Queue ``events`` in the outbox and return how many await delivery.
    Events without a recipient are recorded as ``skipped`` so the email log
    still shows them.

    With ``commit=True`` the rows are committed on their own, after the
    caller's write; a failure here is logged and rolled back without touching
    that write. With ``commit=False`` the rows join the caller's unit of work.
    """
    queued = 0
    try:
        now = utcnow()
        for ev in events:
            profile = db.get(ProfileORM, ev.recipient_id) if ev.recipient_id else None
            orphan = ev.recipient_id is None
            db.add(NotificationORM(
                id=str(uuid4()),
                event_type=ev.event_type,
                recipient_id=ev.recipient_id,
                recipient_email=profile.email if profile else None,
                recipient_name=profile.full_name if profile else None,
                payload=dict(ev.payload),
                status="skipped" if orphan else "pending",
                error_message="no recipient" if orphan else None,
                created_at=now,
            ))
            if not orphan:
                queued += 1
        if commit:
            db.commit()
    except SQLAlchemyError:
        logger.exception("notification publish failed; primary write kept")
        if commit:
            db.rollback()
        return 0
    return queued


# ---------- delivery ----------
def is_enabled(db: Session, event_type: str) -> bool:
    row = db.get(NotificationSettingORM, event_type)
    return row.enabled if row else True


def deliver_pending(db: Session, mailer: Optional[Mailer] = None, *, limit: int = 100) -> dict[str, int]:
    mailer = mailer or get_mailer()
    counts = {"sent": 0, "failed": 0, "skipped": 0}

    rows = db.execute(
        select(NotificationORM)
        .where(NotificationORM.status == "pending")
        .order_by(NotificationORM.created_at.asc())
        .limit(limit)
    ).scalars().all()

    for n in rows:
        if not is_enabled(db, n.event_type):
            n.status = "skipped"
            counts["skipped"] += 1
            continue
        if not n.recipient_email:
            n.status = "failed"
            n.error_message = "recipient has no email address"
            counts["failed"] += 1
            continue

        name = n.recipient_name or n.recipient_email
        try:
            subject, body = render(n.event_type, name, n.payload or {})
            n.subject = subject
            mailer.send(n.event_type, Recipient(email=n.recipient_email, name=name),
                        {**(n.payload or {}), "subject": subject, "body": body})
        except Exception as e:
            logger.warning("notification_id=%s event=%s delivery failed: %s", n.id, n.event_type, e)
            n.status = "failed"
            n.error_message = str(e)
            counts["failed"] += 1
            continue

        n.status = "sent"
        n.sent_at = utcnow()
        counts["sent"] += 1

    db.commit()
    if rows:
        logger.info("outbox delivered sent=%s failed=%s skipped=%s", counts["sent"], counts["failed"], counts["skipped"])
    return counts


def flush_outbox() -> None:
    """Background-task entry point: deliver whatever is pending with a fresh session."""
    db = SessionLocal()
    try:
        deliver_pending(db)
    except SQLAlchemyError:
        logger.exception("outbox flush failed")
        db.rollback()
    finally:
        db.close()


# ---------- email log / settings ----------
def list_notifications(
    db: Session,
    *,
    status: Optional[str] = None,
    event_type: Optional[str] = None,
    recipient_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Notification]:
    stmt = select(NotificationORM)
    if status:
        stmt = stmt.where(NotificationORM.status == status)
    if event_type:
        stmt = stmt.where(NotificationORM.event_type == event_type)
    if recipient_id:
        stmt = stmt.where(NotificationORM.recipient_id == recipient_id)
    stmt = stmt.order_by(NotificationORM.created_at.desc()).limit(limit).offset(offset)
    return [Notification.model_validate(n) for n in db.execute(stmt).scalars().all()]


def set_notification_enabled(db: Session, event_type: str, enabled: bool) -> bool:
    if event_type not in EVENT_TYPES:
        return False
    row = db.get(NotificationSettingORM, event_type)
    if row is None:
        row = NotificationSettingORM(event_type=event_type, enabled=enabled, updated_at=utcnow())
        db.add(row)
    else:
        row.enabled = enabled
        row.updated_at = utcnow()
    db.commit()
    return True
