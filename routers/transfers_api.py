from typing import Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

import notifier
import transfers
from dependencies import Actor, get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import Transfer, TransferIn, TransferRejectIn, TransferStatus

router = APIRouter()
TRANSFER_STATUSES = set(get_args(TransferStatus))


@router.get("/transfers", response_model=list[Transfer])
def list_transfers_api(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return transfers.list_transfers(
        db,
        status=normalize_choice(status, TRANSFER_STATUSES),
        user_id=blank_to_none(user_id),
        asset_id=blank_to_none(asset_id),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.post("/transfers", response_model=Transfer, status_code=201)
def initiate_transfer_api(
    body: TransferIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    transfer = transfers.initiate(db, body.asset_id, body.to_user_id, body.notes, actor)
    background_tasks.add_task(notifier.flush_outbox)
    return transfer


@router.get("/transfers/{transfer_id}", response_model=Transfer)
def get_transfer_api(transfer_id: str, db: Session = Depends(get_db)):
    transfer = transfers.get_transfer(db, transfer_id)
    if not transfer:
        raise HTTPException(status_code=404, detail="transfer not found")
    return transfer


@router.post("/transfers/{transfer_id}/approve", response_model=Transfer)
def approve_transfer_api(
    transfer_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    transfer = transfers.approve(db, transfer_id, actor)
    background_tasks.add_task(notifier.flush_outbox)
    return transfer


@router.post("/transfers/{transfer_id}/reject", response_model=Transfer)
def reject_transfer_api(
    transfer_id: str,
    body: TransferRejectIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    transfer = transfers.reject(db, transfer_id, actor, body.reason)
    background_tasks.add_task(notifier.flush_outbox)
    return transfer
