from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.orm import Session

import crud
import notifier
from crud import new_id, persist, utcnow
from errors import NotFoundError, StateError, ValidationError
from models import MaintenanceHistory, MaintenanceSchedule
from notifier import Event
from orm import MaintenanceHistoryORM, MaintenanceScheduleORM

logger = logging.getLogger("app.maintenance")

# canonical label -> step to the next due date
FREQUENCIES = {
    "Weekly": relativedelta(weeks=1),
    "Monthly": relativedelta(months=1),
    "Quarterly": relativedelta(months=3),
    "Semi-Annually": relativedelta(months=6),
    "Annually": relativedelta(years=1),
}

_FREQUENCY_ALIASES = {
    "weekly": "Weekly",
    "monthly": "Monthly",
    "quarterly": "Quarterly",
    "semi-annually": "Semi-Annually",
    "semiannually": "Semi-Annually",
    "semi-annual": "Semi-Annually",
    "annually": "Annually",
    "annual": "Annually",
    "yearly": "Annually",
}


def normalize_frequency(value: Optional[str]) -> str:
    key = (value or "").strip().lower().replace("_", "-").replace(" ", "-")
    if not key:
        raise ValidationError("frequency is required")
    if key not in _FREQUENCY_ALIASES:
        raise ValidationError(f"unknown frequency {value!r}")
    return _FREQUENCY_ALIASES[key]


def parse_date(value: Union[str, date, None], field: str) -> date:
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{field} is not a valid date: {value!r}") from None


def advance(d: date, frequency: str) -> date:
    """One frequency step; relativedelta clamps the day to the target month's length."""
    return d + FREQUENCIES[normalize_frequency(frequency)]


def _require_schedule(db: Session, schedule_id: str) -> MaintenanceScheduleORM:
    s = db.get(MaintenanceScheduleORM, schedule_id)
    if not s:
        raise NotFoundError(f"maintenance schedule {schedule_id} not found")
    return s


def get_schedule(db: Session, schedule_id: str) -> Optional[MaintenanceSchedule]:
    s = db.get(MaintenanceScheduleORM, schedule_id)
    return MaintenanceSchedule.model_validate(s) if s else None


def schedule(
    db: Session,
    asset_id: str,
    maintenance_type: str,
    frequency: str,
    next_date: Union[str, date],
    notes: Optional[str] = None,
    *,
    assigned_to: Optional[str] = None,
    created_by: Optional[str] = None,
    commit: bool = True,
) -> MaintenanceSchedule:
    if not (asset_id or "").strip():
        raise ValidationError("asset_id is required")
    maintenance_type = (maintenance_type or "").strip()
    if not maintenance_type:
        raise ValidationError("maintenance_type is required")
    frequency = normalize_frequency(frequency)
    next_maintenance_date = parse_date(next_date, "next_maintenance_date")
    asset = crud.require_asset(db, asset_id)

    now = utcnow()
    s = MaintenanceScheduleORM(
        id=new_id(),
        asset_id=asset.id,
        maintenance_type=maintenance_type,
        frequency=frequency,
        next_maintenance_date=next_maintenance_date,
        last_maintenance_date=None,
        status="scheduled",
        assigned_to=assigned_to,
        notes=notes,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    db.add(s)
    persist(db, commit=commit)

    # reminder goes to whoever currently holds the asset
    notifier.publish(db, [Event("maintenance_scheduled", asset.current_assignee_id, {
        "schedule_id": s.id,
        "asset_db_id": asset.id,
        "asset_name": asset.name,
        "asset_code": asset.asset_id,
        "maintenance_type": maintenance_type,
        "scheduled_date": next_maintenance_date.isoformat(),
        "frequency": frequency,
        "notes": notes,
    })], commit=commit)
    logger.info("maintenance scheduled schedule=%s asset_id=%s next=%s", s.id, asset.asset_id, next_maintenance_date)
    return MaintenanceSchedule.model_validate(s)


def complete(
    db: Session,
    schedule_id: str,
    performed_date: Union[str, date],
    cost: Optional[float] = None,
    vendor: Optional[str] = None,
    *,
    description: Optional[str] = None,
    notes: Optional[str] = None,
    performed_by: Optional[str] = None,
    commit: bool = True,
) -> MaintenanceSchedule:
    s = _require_schedule(db, schedule_id)
    performed = parse_date(performed_date, "performed_date")
    if cost is not None and cost < 0:
        raise ValidationError("cost cannot be negative")

    db.add(MaintenanceHistoryORM(
        id=new_id(),
        asset_id=s.asset_id,
        schedule_id=s.id,
        maintenance_type=s.maintenance_type,
        maintenance_date=performed,
        cost=cost,
        vendor=vendor,
        description=description,
        notes=notes,
        performed_by=performed_by,
        created_at=utcnow(),
    ))
    crud.log_activity(db, s.asset_id, "service_added", f"{s.maintenance_type} maintenance performed",
                      new_value=performed.isoformat(), performed_by=performed_by)

    s.last_maintenance_date = performed
    s.next_maintenance_date = advance(performed, s.frequency)
    s.status = "scheduled"
    s.updated_at = utcnow()
    persist(db, commit=commit)
    logger.info("maintenance completed schedule=%s performed=%s next=%s",
                s.id, performed, s.next_maintenance_date)
    return MaintenanceSchedule.model_validate(s)


def mark_overdue(
    db: Session,
    schedule_id: str,
    today: Optional[date] = None,
    *,
    commit: bool = True,
) -> MaintenanceSchedule:
    """Entry point for the external overdue sweep."""
    s = _require_schedule(db, schedule_id)
    today = today or date.today()
    if s.status != "scheduled":
        raise StateError(f"schedule is {s.status}")
    if s.next_maintenance_date >= today:
        raise StateError("schedule is not past due")

    s.status = "overdue"
    s.updated_at = utcnow()
    persist(db, commit=commit)
    logger.info("maintenance overdue schedule=%s due=%s", s.id, s.next_maintenance_date)
    return MaintenanceSchedule.model_validate(s)


def list_schedules(
    db: Session,
    *,
    asset_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[MaintenanceSchedule]:
    stmt = select(MaintenanceScheduleORM)
    if asset_id:
        stmt = stmt.where(MaintenanceScheduleORM.asset_id == asset_id)
    if status:
        stmt = stmt.where(MaintenanceScheduleORM.status == status)
    stmt = stmt.order_by(MaintenanceScheduleORM.next_maintenance_date.asc())
    return [MaintenanceSchedule.model_validate(s) for s in db.execute(stmt).scalars().all()]


def list_due(db: Session, today: Optional[date] = None) -> list[MaintenanceSchedule]:
    """Scheduled items whose date has passed; what the overdue sweep should visit."""
    today = today or date.today()
    stmt = (
        select(MaintenanceScheduleORM)
        .where(
            MaintenanceScheduleORM.status == "scheduled",
            MaintenanceScheduleORM.next_maintenance_date < today,
        )
        .order_by(MaintenanceScheduleORM.next_maintenance_date.asc())
    )
    return [MaintenanceSchedule.model_validate(s) for s in db.execute(stmt).scalars().all()]


def maintenance_history(db: Session, asset_id: Optional[str] = None) -> list[MaintenanceHistory]:
    stmt = select(MaintenanceHistoryORM)
    if asset_id:
        stmt = stmt.where(MaintenanceHistoryORM.asset_id == asset_id)
    stmt = stmt.order_by(MaintenanceHistoryORM.maintenance_date.desc())
    return [MaintenanceHistory.model_validate(h) for h in db.execute(stmt).scalars().all()]
