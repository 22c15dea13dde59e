from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import crud
import notifier
from crud import new_id, persist, utcnow
from errors import ConflictError, NotFoundError, StateError, ValidationError
from models import Allocation, AllocationIn, AllocationUpdate
from notifier import Event
from orm import AllocationORM, AssetORM

logger = logging.getLogger("app.allocations")

CONDITIONS = {"excellent", "good", "fair", "poor"}


def _to_schema(al: AllocationORM) -> Allocation:
    return Allocation.model_validate(al)


def get_allocation(db: Session, allocation_id: str) -> Optional[Allocation]:
    row = db.get(AllocationORM, allocation_id)
    return _to_schema(row) if row else None


def _active_row(db: Session, asset_id: str) -> Optional[AllocationORM]:
    stmt = (
        select(AllocationORM)
        .where(AllocationORM.asset_id == asset_id, AllocationORM.status == "active")
        .order_by(AllocationORM.allocated_date.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def get_active_allocation(db: Session, asset_id: str) -> Optional[Allocation]:
    row = _active_row(db, asset_id)
    return _to_schema(row) if row else None


def list_allocations(
    db: Session,
    *,
    status: Optional[str] = None,
    employee_id: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Allocation]:
    stmt = select(AllocationORM)
    if status:
        stmt = stmt.where(AllocationORM.status == status)
    if employee_id:
        stmt = stmt.where(AllocationORM.employee_id == employee_id)
    if asset_id:
        stmt = stmt.where(AllocationORM.asset_id == asset_id)
    stmt = stmt.order_by(AllocationORM.allocated_date.desc(), AllocationORM.created_at.desc())
    stmt = stmt.limit(limit).offset(offset)
    return [_to_schema(r) for r in db.execute(stmt).scalars().all()]


def _open_allocation(
    db: Session,
    asset: AssetORM,
    employee_id: str,
    *,
    department: Optional[str],
    location: Optional[str],
    allocated_date: date,
    condition: str,
    notes: Optional[str],
    allocated_by: Optional[str],
) -> AllocationORM:
    employee = crud.require_profile(db, employee_id)
    now = utcnow()
    al = AllocationORM(
        id=new_id(),
        asset_id=asset.id,
        employee_id=employee.id,
        employee_name=employee.full_name,
        department=department if department is not None else employee.department,
        location=location,
        condition=condition,
        status="active",
        allocated_date=allocated_date,
        return_date=None,
        notes=notes,
        allocated_by=allocated_by,
        created_at=now,
        updated_at=now,
    )
    db.add(al)
    crud.log_activity(db, asset.id, "asset_assigned", f"Assigned to {employee.full_name}",
                      new_value=employee.id, performed_by=allocated_by)
    return al


def _close_allocation(
    db: Session,
    al: AllocationORM,
    *,
    condition: Optional[str],
    notes: Optional[str],
    performed_by: Optional[str],
    return_date: Optional[date] = None,
) -> None:
    al.status = "returned"
    al.return_date = return_date or date.today()
    if condition:
        al.condition = condition
    if notes:
        al.notes = f"{al.notes}\n{notes}" if al.notes else notes
    al.updated_at = utcnow()
    crud.log_activity(db, al.asset_id, "asset_returned", f"Returned by {al.employee_name}",
                      old_value=al.employee_id, performed_by=performed_by)


def _assigned_event(asset: AssetORM, al: AllocationORM) -> Event:
    return Event("asset_assigned", al.employee_id, {
        "asset_db_id": asset.id,
        "asset_name": asset.name,
        "asset_code": asset.asset_id,
        "allocation_id": al.id,
        "allocated_date": al.allocated_date.isoformat(),
        "location": al.location,
        "condition": al.condition,
    })


def allocate(
    db: Session,
    asset_id: str,
    employee_id: str,
    department: Optional[str] = None,
    location: Optional[str] = None,
    allocated_date: Optional[date] = None,
    condition: str = "good",
    notes: Optional[str] = None,
    *,
    allocated_by: Optional[str] = None,
    commit: bool = True,
) -> Allocation:
    if not employee_id:
        raise ValidationError("employee_id is required")
    if condition not in CONDITIONS:
        raise ValidationError(f"unknown condition {condition}")
    asset = crud.require_asset(db, asset_id)
    crud.require_profile(db, employee_id)
    if asset.status != "available":
        raise ConflictError(f"asset {asset.asset_id} is {asset.status}, not available")

    # the conditional write is the availability check; a concurrent allocate loses here
    crud.set_status(db, asset.id, "assigned", employee_id, expected_status="available",
                    performed_by=allocated_by, commit=False)

    al = _open_allocation(
        db, asset, employee_id,
        department=department,
        location=location,
        allocated_date=allocated_date or date.today(),
        condition=condition,
        notes=notes,
        allocated_by=allocated_by,
    )
    persist(db, commit=commit)
    notifier.publish(db, [_assigned_event(asset, al)], commit=commit)
    logger.info("allocated asset_id=%s employee=%s allocation=%s", asset.asset_id, employee_id, al.id)
    return _to_schema(al)


def allocate_from_body(db: Session, body: AllocationIn, *, allocated_by: Optional[str] = None) -> Allocation:
    return allocate(
        db,
        body.asset_id,
        body.employee_id,
        department=body.department,
        location=body.location,
        allocated_date=body.allocated_date,
        condition=body.condition,
        notes=body.notes,
        allocated_by=allocated_by,
    )


def return_asset(
    db: Session,
    allocation_id: str,
    condition: Optional[str] = None,
    notes: Optional[str] = None,
    *,
    performed_by: Optional[str] = None,
    commit: bool = True,
) -> Allocation:
    al = db.get(AllocationORM, allocation_id)
    if not al:
        raise NotFoundError(f"allocation {allocation_id} not found")
    if al.status == "returned":
        raise StateError("allocation is already returned")
    if condition and condition not in CONDITIONS:
        raise ValidationError(f"unknown condition {condition}")

    asset = crud.require_asset(db, al.asset_id)
    crud.set_status(db, asset.id, "available", None, expected_status="assigned",
                    expected_assignee_id=al.employee_id, check_assignee=True,
                    performed_by=performed_by, commit=False)
    _close_allocation(db, al, condition=condition, notes=notes, performed_by=performed_by)
    persist(db, commit=commit)

    notifier.publish(db, [Event("asset_returned", al.employee_id, {
        "asset_db_id": asset.id,
        "asset_name": asset.name,
        "asset_code": asset.asset_id,
        "allocation_id": al.id,
        "return_date": al.return_date.isoformat(),
        "condition": al.condition,
    })], commit=commit)
    logger.info("returned asset_id=%s allocation=%s", asset.asset_id, al.id)
    return _to_schema(al)


def update_allocation(
    db: Session,
    allocation_id: str,
    body: AllocationUpdate,
    *,
    commit: bool = True,
) -> Allocation:
    """Edit department/location/condition/notes; never touches the asset's status."""
    al = db.get(AllocationORM, allocation_id)
    if not al:
        raise NotFoundError(f"allocation {allocation_id} not found")
    if al.status != "active":
        raise StateError("only active allocations can be edited")

    data = body.model_dump(exclude_unset=True)
    for k, v in data.items():
        if k == "condition" and v is None:
            continue
        setattr(al, k, v)
    al.updated_at = utcnow()
    persist(db, commit=commit)
    return _to_schema(al)


def reassign(
    db: Session,
    asset: AssetORM,
    from_user_id: Optional[str],
    to_user_id: str,
    *,
    performed_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> AllocationORM:
    """
    Move ``asset`` from ``from_user_id`` (or from stock when None) to
    ``to_user_id``: close the prior active allocation, CAS the asset's
    holder, open a new allocation. Does not commit.
    """
    prior = _active_row(db, asset.id)
    if from_user_id is None:
        crud.set_status(db, asset.id, "assigned", to_user_id, expected_status="available",
                        check_assignee=True, expected_assignee_id=None,
                        performed_by=performed_by, commit=False)
    else:
        crud.set_status(db, asset.id, "assigned", to_user_id, expected_status="assigned",
                        check_assignee=True, expected_assignee_id=from_user_id,
                        performed_by=performed_by, commit=False)

    location = None
    condition = "good"
    if prior is not None:
        location = prior.location
        condition = prior.condition
        _close_allocation(db, prior, condition=None, notes=None, performed_by=performed_by)
        # the partial unique index sees the closed row before the new one is inserted
        db.flush()

    return _open_allocation(
        db, asset, to_user_id,
        department=None,
        location=location,
        allocated_date=date.today(),
        condition=condition,
        notes=notes,
        allocated_by=performed_by,
    )
