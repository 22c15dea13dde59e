"""Headline counts for the landing page, computed with grouped COUNT queries."""
from __future__ import annotations

from datetime import date
from typing import Optional, get_args

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

import state_machines
from models import AssetStatus, DashboardSummary, RequestStatus
from orm import AllocationORM, AssetORM, AssetRequestORM, MaintenanceScheduleORM, TicketORM, TransferORM

OPEN_TICKET_STATUSES = ("open", "in_progress", "on_hold")


def _grouped(db: Session, column) -> dict[str, int]:
    rows = db.execute(select(column, func.count()).group_by(column)).all()
    return {key: n for key, n in rows}


def _count(db: Session, model, *criteria) -> int:
    return int(db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one())


def summary(db: Session, today: Optional[date] = None) -> DashboardSummary:
    today = today or date.today()

    by_status = _grouped(db, AssetORM.status)
    by_request_status = _grouped(db, AssetRequestORM.status)
    # only categories that hold at least one asset
    by_category = dict(sorted(_grouped(db, AssetORM.category).items()))

    return DashboardSummary(
        total_assets=sum(by_status.values()),
        assets_by_status={s: by_status.get(s, 0) for s in get_args(AssetStatus)},
        assets_by_category=by_category,
        active_allocations=_count(db, AllocationORM, AllocationORM.status == "active"),
        open_tickets=_count(db, TicketORM, TicketORM.status.in_(OPEN_TICKET_STATUSES)),
        pending_transfers=_count(db, TransferORM,
                                 TransferORM.status.not_in(state_machines.TRANSFER_TERMINAL)),
        maintenance_due=_count(db, MaintenanceScheduleORM, or_(
            MaintenanceScheduleORM.status == "overdue",
            and_(MaintenanceScheduleORM.status == "scheduled",
                 MaintenanceScheduleORM.next_maintenance_date <= today),
        )),
        requests_by_status={s: by_request_status.get(s, 0) for s in get_args(RequestStatus)},
    )
