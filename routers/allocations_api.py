from typing import Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

import allocations
import notifier
from csv_utils import allocations_to_csv_response
from dependencies import Actor, get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import Allocation, AllocationIn, AllocationReturnIn, AllocationStatus, AllocationUpdate

router = APIRouter()
ALLOCATION_STATUSES = set(get_args(AllocationStatus))


@router.get("/allocations", response_model=list[Allocation])
def list_allocations_api(
    status: Optional[str] = None,
    employee_id: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return allocations.list_allocations(
        db,
        status=normalize_choice(status, ALLOCATION_STATUSES),
        employee_id=blank_to_none(employee_id),
        asset_id=blank_to_none(asset_id),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.get("/allocations/export")
def export_allocations(
    status: Optional[str] = None,
    employee_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows = allocations.list_allocations(
        db,
        status=normalize_choice(status, ALLOCATION_STATUSES),
        employee_id=blank_to_none(employee_id),
        limit=20000,
    )
    return allocations_to_csv_response(rows)


@router.post("/allocations", response_model=Allocation, status_code=201)
def allocate_api(
    body: AllocationIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    allocation = allocations.allocate_from_body(db, body, allocated_by=actor.id)
    background_tasks.add_task(notifier.flush_outbox)
    return allocation


@router.get("/allocations/{allocation_id}", response_model=Allocation)
def get_allocation_api(allocation_id: str, db: Session = Depends(get_db)):
    allocation = allocations.get_allocation(db, allocation_id)
    if not allocation:
        raise HTTPException(status_code=404, detail="allocation not found")
    return allocation


@router.patch("/allocations/{allocation_id}", response_model=Allocation, dependencies=[Depends(get_actor)])
def update_allocation_api(
    allocation_id: str,
    body: AllocationUpdate,
    db: Session = Depends(get_db),
):
    return allocations.update_allocation(db, allocation_id, body)


@router.post("/allocations/{allocation_id}/return", response_model=Allocation)
def return_allocation_api(
    allocation_id: str,
    body: AllocationReturnIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    allocation = allocations.return_asset(
        db, allocation_id, body.condition, body.notes, performed_by=actor.id
    )
    background_tasks.add_task(notifier.flush_outbox)
    return allocation
