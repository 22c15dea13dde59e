from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

import crud
import notifier
import state_machines
from crud import new_id, persist, utcnow
from dependencies import Actor
from errors import AuthorizationError, NotFoundError, StateError, ValidationError
from models import Ticket, TicketHistory, TicketIn, TicketUpdate
from notifier import Event
from orm import TicketHistoryORM, TicketORM

logger = logging.getLogger("app.tickets")

COMPLETED_STATUSES = {"resolved", "closed"}


def _to_schema(t: TicketORM) -> Ticket:
    return Ticket.model_validate(t)


def _require_ticket(db: Session, ticket_id: str) -> TicketORM:
    t = db.get(TicketORM, ticket_id)
    if not t:
        raise NotFoundError("ticket not found")
    return t


def _history(
    db: Session,
    t: TicketORM,
    action: str,
    *,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    changed_by: Optional[str] = None,
    remarks: Optional[str] = None,
) -> None:
    db.add(TicketHistoryORM(
        id=new_id(),
        ticket_id=t.id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
        remarks=remarks,
        created_at=utcnow(),
    ))


def _ticket_payload(t: TicketORM) -> dict:
    return {
        "ticket_db_id": t.id,
        "ticket_code": t.ticket_id,
        "title": t.title,
        "priority": t.priority,
    }


def get_ticket(db: Session, ticket_id: str) -> Optional[Ticket]:
    t = db.get(TicketORM, ticket_id)
    return _to_schema(t) if t else None


def list_tickets(
    db: Session,
    *,
    created_by: Optional[str] = None,
    assigned_to: Optional[str] = None,
    status: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Ticket]:
    stmt = select(TicketORM)
    if created_by:
        stmt = stmt.where(TicketORM.created_by == created_by)
    if assigned_to:
        stmt = stmt.where(TicketORM.assigned_to == assigned_to)
    if status:
        stmt = stmt.where(TicketORM.status == status)
    if asset_id:
        stmt = stmt.where(TicketORM.asset_id == asset_id)
    stmt = stmt.order_by(TicketORM.created_at.desc()).limit(limit).offset(offset)
    return [_to_schema(t) for t in db.execute(stmt).scalars().all()]


def ticket_history(db: Session, ticket_id: str) -> list[TicketHistory]:
    rows = db.execute(
        select(TicketHistoryORM)
        .where(TicketHistoryORM.ticket_id == ticket_id)
        .order_by(TicketHistoryORM.created_at.asc())
    ).scalars().all()
    return [TicketHistory.model_validate(r) for r in rows]


def create(db: Session, body: TicketIn, actor: Actor, *, commit: bool = True) -> Ticket:
    title = (body.title or "").strip()
    description = (body.description or "").strip()
    if not title or not description:
        raise ValidationError("title and description are required")

    asset_id = None
    if body.asset_id:
        asset_id = crud.require_asset(db, body.asset_id).id

    reporter = crud.get_profile(db, actor.id)
    now = utcnow()
    t = TicketORM(
        id=new_id(),
        ticket_id=f"TKT-{uuid4().hex[:8].upper()}",
        asset_id=asset_id,
        title=title,
        description=description,
        issue_category=body.issue_category,
        priority=body.priority,
        status="open",
        department=body.department or (reporter.department if reporter else None),
        location=body.location,
        assigned_to=None,
        created_by=actor.id,
        completed_at=None,
        created_at=now,
        updated_at=now,
    )
    db.add(t)
    _history(db, t, "created", new_value="open", changed_by=actor.id)
    persist(db, commit=commit)
    logger.info("ticket created ticket=%s by=%s", t.ticket_id, actor.id)
    return _to_schema(t)


def update_fields(db: Session, ticket_id: str, body: TicketUpdate, actor: Actor, *, commit: bool = True) -> Ticket:
    t = _require_ticket(db, ticket_id)
    data = body.model_dump(exclude_unset=True)
    for key in ("title", "description"):
        if key in data and not (data[key] or "").strip():
            raise ValidationError(f"{key} cannot be blank")
    for key in ("issue_category", "priority"):
        if key in data and data[key] is None:
            del data[key]
    if data.get("assigned_to"):
        crud.require_profile(db, data["assigned_to"])

    events = []
    for k, v in data.items():
        old = getattr(t, k)
        if old == v:
            continue
        setattr(t, k, v)
        _history(db, t, f"{k}_changed", old_value=None if old is None else str(old),
                 new_value=None if v is None else str(v), changed_by=actor.id)
        if k == "assigned_to" and v:
            events.append(Event("ticket_assigned", v, _ticket_payload(t)))

    t.updated_at = utcnow()
    persist(db, commit=commit)
    notifier.publish(db, events, commit=commit)
    return _to_schema(t)


def change_status(
    db: Session,
    ticket_id: str,
    new_status: str,
    actor: Actor,
    remarks: Optional[str] = None,
    *,
    commit: bool = True,
) -> Ticket:
    """Operator transition along open -> in_progress -> resolved -> closed (with on_hold)."""
    if new_status == "cancelled":
        raise ValidationError("use cancel to cancel a ticket")
    t = _require_ticket(db, ticket_id)
    old = t.status
    state_machines.check_transition(state_machines.TICKET, old, new_status)

    t.status = new_status
    now = utcnow()
    if new_status in COMPLETED_STATUSES and t.completed_at is None:
        t.completed_at = now
    t.updated_at = now
    _history(db, t, "status_changed", old_value=old, new_value=new_status, changed_by=actor.id, remarks=remarks)
    persist(db, commit=commit)

    notifier.publish(db, [Event("ticket_status_changed", t.created_by, {
        **_ticket_payload(t),
        "old_status": old,
        "new_status": new_status,
        "remarks": remarks,
    })], commit=commit)
    logger.info("ticket status ticket=%s %s->%s by=%s", t.ticket_id, old, new_status, actor.id)
    return _to_schema(t)


def cancel(db: Session, ticket_id: str, actor: Actor, *, commit: bool = True) -> Ticket:
    t = _require_ticket(db, ticket_id)
    if t.created_by != actor.id:
        logger.warning("ticket cancel refused ticket=%s by=%s owner=%s", t.ticket_id, actor.id, t.created_by)
        raise AuthorizationError("you can only cancel your own tickets")
    if t.status != "open":
        raise StateError(f"only open tickets can be cancelled (current status: {t.status})")

    t.status = "cancelled"
    t.updated_at = utcnow()
    _history(db, t, "cancelled", old_value="open", new_value="cancelled", changed_by=actor.id)
    persist(db, commit=commit)
    logger.info("ticket cancelled ticket=%s", t.ticket_id)
    return _to_schema(t)
