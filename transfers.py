"""
Two-party asset transfer approvals.

A transfer snapshots the asset's holder at initiation as ``from_user_id``.
Both the from-holder and the recipient must approve; when the asset had no
holder only the recipient's approval is needed. Completion reassigns the
asset through the allocation manager. ``rejected`` and ``completed`` are
terminal.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, or_, update
from sqlalchemy.orm import Session

import allocations
import crud
import notifier
import state_machines
from crud import new_id, persist, utcnow
from dependencies import Actor
from errors import (
    AuthorizationError,
    ConflictError,
    TransferClosedError,
    ValidationError,
    NotFoundError,
)
from models import Transfer
from notifier import Event
from orm import AssetORM, TransferORM

logger = logging.getLogger("app.transfers")

BLOCKING_ASSET_STATUSES = {"retired", "under_maintenance"}


def _to_schema(t: TransferORM) -> Transfer:
    return Transfer.model_validate(t)


def _require_transfer(db: Session, transfer_id: str) -> TransferORM:
    t = db.get(TransferORM, transfer_id)
    if not t:
        raise NotFoundError(f"transfer {transfer_id} not found")
    return t


def _name(db: Session, profile_id: Optional[str]) -> str:
    if not profile_id:
        return "Admin"
    p = crud.get_profile(db, profile_id)
    return p.full_name if p else "Admin"


def _parties(t: TransferORM) -> list[Optional[str]]:
    return [t.from_user_id, t.to_user_id]


def _events(t: TransferORM, asset: AssetORM, event_type: str, extra: dict) -> list[Event]:
    payload = {
        "transfer_id": t.id,
        "asset_db_id": asset.id,
        "asset_name": asset.name,
        "asset_code": asset.asset_id,
        "status": t.status,
        **extra,
    }
    return [Event(event_type, uid, payload) for uid in _parties(t) if uid]


def get_transfer(db: Session, transfer_id: str) -> Optional[Transfer]:
    t = db.get(TransferORM, transfer_id)
    return _to_schema(t) if t else None


def list_transfers(
    db: Session,
    *,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transfer]:
    stmt = select(TransferORM)
    if status:
        stmt = stmt.where(TransferORM.status == status)
    if user_id:
        stmt = stmt.where(or_(TransferORM.from_user_id == user_id, TransferORM.to_user_id == user_id))
    if asset_id:
        stmt = stmt.where(TransferORM.asset_id == asset_id)
    stmt = stmt.order_by(TransferORM.initiated_at.desc()).limit(limit).offset(offset)
    return [_to_schema(t) for t in db.execute(stmt).scalars().all()]


def initiate(
    db: Session,
    asset_id: str,
    to_user_id: str,
    notes: Optional[str],
    actor: Actor,
    *,
    commit: bool = True,
) -> Transfer:
    asset = crud.require_asset(db, asset_id)
    if not to_user_id:
        raise ValidationError("to_user_id is required")
    recipient = crud.require_profile(db, to_user_id)
    if not recipient.is_active:
        raise ValidationError("recipient is not an active user")
    if to_user_id == asset.current_assignee_id:
        raise ValidationError("recipient already holds this asset")
    if asset.status in BLOCKING_ASSET_STATUSES:
        raise ConflictError(f"asset {asset.asset_id} is {asset.status}")

    open_transfer = db.execute(
        select(TransferORM.id).where(
            TransferORM.asset_id == asset.id,
            TransferORM.status.not_in(state_machines.TRANSFER_TERMINAL),
        )
    ).first()
    if open_transfer:
        raise ConflictError("asset already has a transfer awaiting approval")

    now = utcnow()
    t = TransferORM(
        id=new_id(),
        asset_id=asset.id,
        from_user_id=asset.current_assignee_id,
        to_user_id=to_user_id,
        initiated_by=actor.id,
        status="pending",
        from_user_approved=False,
        to_user_approved=False,
        notes=notes,
        initiated_at=now,
        updated_at=now,
    )
    db.add(t)
    persist(db, commit=commit)

    notifier.publish(db, _events(t, asset, "transfer_requested", {"initiator_name": _name(db, actor.id)}),
                     commit=commit)
    logger.info("transfer initiated transfer=%s asset_id=%s from=%s to=%s",
                t.id, asset.asset_id, t.from_user_id, t.to_user_id)
    return _to_schema(t)


def _party_of(t: TransferORM, actor: Actor) -> str:
    if t.from_user_id is not None and actor.id == t.from_user_id:
        return "from"
    if actor.id == t.to_user_id:
        return "to"
    raise AuthorizationError("only the current holder or the recipient can act on this transfer")


def _swap_status(db: Session, t: TransferORM, expected: str, **values) -> None:
    """
    Conditional UPDATE of the transfer row, matching only while it is still
    ``expected``. Losing the race rolls back and raises TransferClosedError if
    the winner closed the transfer, ConflictError otherwise.
    """
    result = db.execute(
        update(TransferORM)
        .where(TransferORM.id == t.id, TransferORM.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        db.refresh(t)
        return

    db.rollback()
    current = db.get(TransferORM, t.id)
    logger.info("transfer race lost transfer=%s expected=%s now=%s", t.id, expected,
                current.status if current else None)
    if current is not None and current.status in state_machines.TRANSFER_TERMINAL:
        raise TransferClosedError(f"transfer is already {current.status}")
    raise ConflictError(f"transfer {t.id} is no longer {expected}")


def approve(db: Session, transfer_id: str, actor: Actor, *, commit: bool = True) -> Transfer:
    t = _require_transfer(db, transfer_id)
    party = _party_of(t, actor)
    if t.status in state_machines.TRANSFER_TERMINAL:
        raise TransferClosedError(f"transfer is already {t.status}")

    nxt = state_machines.next_transfer_status(t.status, party, t.from_user_id is not None)

    now = utcnow()
    values = {"status": nxt, "updated_at": now}
    if party == "from":
        values.update(from_user_approved=True, from_user_approved_at=now)
    else:
        values.update(to_user_approved=True, to_user_approved_at=now)
    if nxt == "completed":
        values["completed_at"] = now

    # claim the transition first; a reassign failure below rolls it back too
    _swap_status(db, t, t.status, **values)

    asset = crud.require_asset(db, t.asset_id)
    if nxt == "completed":
        allocations.reassign(db, asset, t.from_user_id, t.to_user_id,
                             performed_by=actor.id, notes=t.notes)
        crud.log_activity(db, asset.id, "asset_transferred",
                          f"Transferred to {_name(db, t.to_user_id)}",
                          old_value=t.from_user_id, new_value=t.to_user_id, performed_by=actor.id)
    persist(db, commit=commit)

    if nxt == "completed":
        events = _events(t, asset, "transfer_completed", {})
    else:
        events = _events(t, asset, "transfer_approved", {"approver_name": _name(db, actor.id)})
    notifier.publish(db, events, commit=commit)
    logger.info("transfer approved transfer=%s by=%s party=%s status=%s", t.id, actor.id, party, nxt)
    return _to_schema(t)


def reject(
    db: Session,
    transfer_id: str,
    actor: Actor,
    reason: Optional[str] = None,
    *,
    commit: bool = True,
) -> Transfer:
    t = _require_transfer(db, transfer_id)
    _party_of(t, actor)
    if not state_machines.transfer_can_reject(t.status):
        raise TransferClosedError(f"transfer is already {t.status}")

    _swap_status(db, t, t.status, status="rejected", rejected_by=actor.id,
                 rejection_reason=reason, updated_at=utcnow())
    persist(db, commit=commit)

    asset = crud.require_asset(db, t.asset_id)
    notifier.publish(db, _events(t, asset, "transfer_rejected", {
        "rejected_by_name": _name(db, actor.id),
        "reason": reason,
    }), commit=commit)
    logger.info("transfer rejected transfer=%s by=%s", t.id, actor.id)
    return _to_schema(t)
