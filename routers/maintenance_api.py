from datetime import date
from typing import Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

import maintenance
import notifier
from dependencies import Actor, get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice
from models import (
    MaintenanceCompleteIn,
    MaintenanceHistory,
    MaintenanceOverdueIn,
    MaintenanceSchedule,
    MaintenanceScheduleIn,
    ScheduleStatus,
)

router = APIRouter(prefix="/maintenance")
SCHEDULE_STATUSES = set(get_args(ScheduleStatus))


@router.get("/schedules", response_model=list[MaintenanceSchedule])
def list_schedules_api(
    asset_id: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return maintenance.list_schedules(
        db,
        asset_id=blank_to_none(asset_id),
        status=normalize_choice(status, SCHEDULE_STATUSES),
    )


@router.post("/schedules", response_model=MaintenanceSchedule, status_code=201)
def create_schedule_api(
    body: MaintenanceScheduleIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    schedule = maintenance.schedule(
        db,
        body.asset_id,
        body.maintenance_type,
        body.frequency,
        body.next_maintenance_date,
        body.notes,
        assigned_to=body.assigned_to,
        created_by=actor.id,
    )
    background_tasks.add_task(notifier.flush_outbox)
    return schedule


@router.post("/schedules/{schedule_id}/complete", response_model=MaintenanceSchedule)
def complete_schedule_api(
    schedule_id: str,
    body: MaintenanceCompleteIn,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return maintenance.complete(
        db,
        schedule_id,
        body.performed_date,
        body.cost,
        body.vendor,
        description=body.description,
        notes=body.notes,
        performed_by=actor.id,
    )


@router.post("/schedules/{schedule_id}/overdue", response_model=MaintenanceSchedule, dependencies=[Depends(get_actor)])
def mark_overdue_api(
    schedule_id: str,
    body: Optional[MaintenanceOverdueIn] = None,
    db: Session = Depends(get_db),
):
    today = body.today if body else None
    return maintenance.mark_overdue(db, schedule_id, today)


@router.get("/due", response_model=list[MaintenanceSchedule])
def list_due_api(today: Optional[date] = None, db: Session = Depends(get_db)):
    return maintenance.list_due(db, today)


@router.get("/history", response_model=list[MaintenanceHistory])
def maintenance_history_api(asset_id: Optional[str] = None, db: Session = Depends(get_db)):
    return maintenance.maintenance_history(db, blank_to_none(asset_id))
