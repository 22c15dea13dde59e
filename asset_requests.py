"""
Asset requests: an employee (or HR on their behalf) asks for equipment and
an administrator decides.

pending -> in_progress -> approved -> completed, with rejected and cancelled
as the other exits. Every status write is a compare-and-swap on the status
that was read, so two deciders cannot both win. Each move appends a
``request_history`` row and notifies the requester.
"""
from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

import crud
import notifier
import state_machines
from crud import new_id, persist, utcnow
from dependencies import Actor
from errors import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from models import AssetRequest, AssetRequestIn, AssetRequestUpdate, RequestHistory
from notifier import Event
from orm import AssetRequestORM, RequestHistoryORM

logger = logging.getLogger("app.requests")

DECIDER_ROLES = set(crud.ADMIN_ROLES)
# hr files and withdraws requests for new joiners
CANCEL_ROLES = DECIDER_ROLES | {"hr"}

_CANCEL_REFUSALS = {
    "cancelled": "request is already cancelled",
    "approved": "cannot cancel approved requests",
    "in_progress": "cannot cancel requests in progress",
    "completed": "cannot cancel fulfilled requests",
    "rejected": "cannot cancel rejected requests",
}


def _to_schema(r: AssetRequestORM) -> AssetRequest:
    return AssetRequest.model_validate(r)


def _require_request(db: Session, request_id: str) -> AssetRequestORM:
    r = db.get(AssetRequestORM, request_id)
    if not r:
        raise NotFoundError(f"request {request_id} not found")
    return r


def _require_decider(actor: Actor) -> None:
    if actor.role not in DECIDER_ROLES:
        raise AuthorizationError("only administrators can decide on asset requests")


def _history(db: Session, r: AssetRequestORM, action: str, actor: Actor, remarks: Optional[str] = None) -> None:
    db.add(RequestHistoryORM(
        id=new_id(),
        request_id=r.id,
        action=action,
        performed_by=actor.id,
        remarks=remarks,
        created_at=utcnow(),
    ))


def get_request(db: Session, request_id: str) -> Optional[AssetRequest]:
    r = db.get(AssetRequestORM, request_id)
    return _to_schema(r) if r else None


def list_requests(
    db: Session,
    *,
    status: Optional[str] = None,
    request_type: Optional[str] = None,
    requester_id: Optional[str] = None,
    department: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AssetRequest]:
    stmt = select(AssetRequestORM)
    if status:
        stmt = stmt.where(AssetRequestORM.status == status)
    if request_type:
        stmt = stmt.where(AssetRequestORM.request_type == request_type)
    if requester_id:
        stmt = stmt.where(AssetRequestORM.requester_id == requester_id)
    if department:
        stmt = stmt.where(AssetRequestORM.department == department)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(
            AssetRequestORM.reason.ilike(like),
            AssetRequestORM.category.ilike(like),
            AssetRequestORM.request_id.ilike(like),
        ))
    stmt = stmt.order_by(AssetRequestORM.created_at.desc()).limit(limit).offset(offset)
    return [_to_schema(r) for r in db.execute(stmt).scalars().all()]


def request_history(db: Session, request_id: str) -> list[RequestHistory]:
    rows = db.execute(
        select(RequestHistoryORM)
        .where(RequestHistoryORM.request_id == request_id)
        .order_by(RequestHistoryORM.created_at.asc())
    ).scalars().all()
    return [RequestHistory.model_validate(r) for r in rows]


def create(db: Session, body: AssetRequestIn, actor: Actor, *, commit: bool = True) -> AssetRequest:
    reason = (body.reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    if body.quantity < 1:
        raise ValidationError("quantity must be at least 1")

    requester = crud.require_profile(db, actor.id)
    now = utcnow()
    r = AssetRequestORM(
        id=new_id(),
        request_id=f"REQ-{uuid4().hex[:8].upper()}",
        requester_id=actor.id,
        category=body.category,
        reason=reason,
        quantity=body.quantity,
        request_type=body.request_type,
        status="pending",
        department=body.department or requester.department,
        location=body.location,
        specification=body.specification,
        employment_type=body.employment_type,
        expected_delivery_date=body.expected_delivery_date,
        notes=body.notes,
        created_at=now,
        updated_at=now,
    )
    db.add(r)
    _history(db, r, "created", actor, "Request created")
    persist(db, commit=commit)
    logger.info("request created request=%s by=%s type=%s", r.request_id, actor.id, r.request_type)
    return _to_schema(r)


def update_request(
    db: Session,
    request_id: str,
    body: AssetRequestUpdate,
    actor: Actor,
    *,
    commit: bool = True,
) -> AssetRequest:
    r = _require_request(db, request_id)
    if actor.id != r.requester_id and actor.role not in CANCEL_ROLES:
        raise AuthorizationError("you can only edit your own requests")
    if r.status != "pending":
        raise StateError(f"only pending requests can be edited (current status: {r.status})")

    data = body.model_dump(exclude_unset=True)
    if "reason" in data and not (data["reason"] or "").strip():
        raise ValidationError("reason cannot be blank")
    if "quantity" in data and (data["quantity"] is None or data["quantity"] < 1):
        raise ValidationError("quantity must be at least 1")
    for key in ("category", "request_type"):
        if key in data and data[key] is None:
            del data[key]

    changed = [k for k, v in data.items() if getattr(r, k) != v]
    for k in changed:
        setattr(r, k, data[k])
    if changed:
        r.updated_at = utcnow()
        _history(db, r, "updated", actor, ", ".join(sorted(changed)))
    persist(db, commit=commit)
    return _to_schema(r)


def _move(
    db: Session,
    r: AssetRequestORM,
    new_status: str,
    actor: Actor,
    remarks: Optional[str],
    *,
    commit: bool,
    **values,
) -> AssetRequest:
    old = r.status
    state_machines.check_transition(state_machines.REQUEST, old, new_status)

    now = utcnow()
    result = db.execute(
        update(AssetRequestORM)
        .where(AssetRequestORM.id == r.id, AssetRequestORM.status == old)
        .values(status=new_status, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.info("request race lost request=%s expected=%s wanted=%s", r.request_id, old, new_status)
        raise ConflictError(f"request {r.request_id} is no longer {old}")

    db.refresh(r)
    _history(db, r, new_status, actor, remarks)
    persist(db, commit=commit)

    notifier.publish(db, [Event("request_status_changed", r.requester_id, {
        "request_db_id": r.id,
        "request_code": r.request_id,
        "category": r.category,
        "quantity": r.quantity,
        "old_status": old,
        "new_status": new_status,
        "remarks": remarks,
    })], commit=commit)
    logger.info("request status request=%s %s->%s by=%s", r.request_id, old, new_status, actor.id)
    return _to_schema(r)


def start_review(db: Session, request_id: str, actor: Actor, remarks: Optional[str] = None,
                 *, commit: bool = True) -> AssetRequest:
    r = _require_request(db, request_id)
    _require_decider(actor)
    return _move(db, r, "in_progress", actor, remarks, commit=commit)


def approve(db: Session, request_id: str, actor: Actor, remarks: Optional[str] = None,
            *, commit: bool = True) -> AssetRequest:
    r = _require_request(db, request_id)
    _require_decider(actor)
    return _move(db, r, "approved", actor, remarks or "Request approved", commit=commit,
                 approved_by=actor.id, approved_at=utcnow())


def reject(db: Session, request_id: str, actor: Actor, reason: Optional[str],
           *, commit: bool = True) -> AssetRequest:
    r = _require_request(db, request_id)
    _require_decider(actor)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("a rejection reason is required")
    return _move(db, r, "rejected", actor, reason, commit=commit, rejection_reason=reason)


def fulfil(db: Session, request_id: str, actor: Actor, remarks: Optional[str] = None,
           *, commit: bool = True) -> AssetRequest:
    r = _require_request(db, request_id)
    _require_decider(actor)
    return _move(db, r, "completed", actor, remarks or "Request fulfilled", commit=commit)


def cancel(db: Session, request_id: str, actor: Actor, remarks: Optional[str] = None,
           *, commit: bool = True) -> AssetRequest:
    r = _require_request(db, request_id)
    if r.status in _CANCEL_REFUSALS:
        raise StateError(_CANCEL_REFUSALS[r.status])
    if actor.id != r.requester_id and actor.role not in CANCEL_ROLES:
        logger.warning("request cancel refused request=%s by=%s role=%s", r.request_id, actor.id, actor.role)
        raise AuthorizationError("you do not have permission to cancel this request")
    return _move(db, r, "cancelled", actor, remarks or "Request cancelled", commit=commit,
                 cancelled_by=actor.id, cancelled_at=utcnow())
