from typing import Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

import asset_requests
import notifier
from dependencies import Actor, get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import (
    AssetRequest,
    AssetRequestDecisionIn,
    AssetRequestIn,
    AssetRequestUpdate,
    RequestHistory,
    RequestStatus,
    RequestType,
)

router = APIRouter(prefix="/requests")
REQUEST_STATUSES = set(get_args(RequestStatus))
REQUEST_TYPES = set(get_args(RequestType))


@router.get("", response_model=list[AssetRequest])
def list_requests_api(
    status: Optional[str] = None,
    request_type: Optional[str] = None,
    requester_id: Optional[str] = None,
    department: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return asset_requests.list_requests(
        db,
        status=normalize_choice(status, REQUEST_STATUSES),
        request_type=normalize_choice(request_type, REQUEST_TYPES),
        requester_id=blank_to_none(requester_id),
        department=blank_to_none(department),
        q=blank_to_none(q),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.post("", response_model=AssetRequest, status_code=201)
def create_request_api(
    body: AssetRequestIn,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return asset_requests.create(db, body, actor)


@router.get("/{request_id}", response_model=AssetRequest)
def get_request_api(request_id: str, db: Session = Depends(get_db)):
    request = asset_requests.get_request(db, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="request not found")
    return request


@router.patch("/{request_id}", response_model=AssetRequest)
def update_request_api(
    request_id: str,
    body: AssetRequestUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return asset_requests.update_request(db, request_id, body, actor)


def _decide(action, request_id: str, body: Optional[AssetRequestDecisionIn], actor: Actor,
            db: Session, background_tasks: BackgroundTasks) -> AssetRequest:
    request = action(db, request_id, actor, body.remarks if body else None)
    background_tasks.add_task(notifier.flush_outbox)
    return request


@router.post("/{request_id}/review", response_model=AssetRequest)
def review_request_api(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[AssetRequestDecisionIn] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return _decide(asset_requests.start_review, request_id, body, actor, db, background_tasks)


@router.post("/{request_id}/approve", response_model=AssetRequest)
def approve_request_api(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[AssetRequestDecisionIn] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return _decide(asset_requests.approve, request_id, body, actor, db, background_tasks)


@router.post("/{request_id}/reject", response_model=AssetRequest)
def reject_request_api(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[AssetRequestDecisionIn] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return _decide(asset_requests.reject, request_id, body, actor, db, background_tasks)


@router.post("/{request_id}/fulfil", response_model=AssetRequest)
def fulfil_request_api(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[AssetRequestDecisionIn] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return _decide(asset_requests.fulfil, request_id, body, actor, db, background_tasks)


@router.post("/{request_id}/cancel", response_model=AssetRequest)
def cancel_request_api(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[AssetRequestDecisionIn] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return _decide(asset_requests.cancel, request_id, body, actor, db, background_tasks)


@router.get("/{request_id}/history", response_model=list[RequestHistory])
def request_history_api(request_id: str, db: Session = Depends(get_db)):
    if not asset_requests.get_request(db, request_id):
        raise HTTPException(status_code=404, detail="request not found")
    return asset_requests.request_history(db, request_id)
