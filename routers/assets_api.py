from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

import crud
import notifier
from csv_utils import assets_to_csv_response
from dependencies import Actor, get_actor, get_db
from filter_helpers import (
    blank_to_none,
    normalize_category,
    normalize_limit,
    normalize_offset,
    normalize_order,
    normalize_sort,
    normalize_status,
)
from models import Asset, AssetActivity, AssetIn, AssetStatusIn, AssetUpdate, AssetsMeta

router = APIRouter()
EXPORT_LIMIT = 20000


@router.get("/assets", response_model=list[Asset])
def list_assets_api(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    assignee_id: Optional[str] = None,
    location: Optional[str] = None,
    sort: str = "asset_tag",
    order: str = "asc",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return crud.list_assets_filtered(
        db,
        q=blank_to_none(q),
        status=normalize_status(status),
        category=normalize_category(category),
        assignee_id=blank_to_none(assignee_id),
        location=blank_to_none(location),
        sort=normalize_sort(sort),
        order=normalize_order(order),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.get("/assets/meta", response_model=AssetsMeta)
def assets_meta_api(
    q: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    assignee_id: Optional[str] = None,
    location: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    meta = crud.assets_meta(
        db,
        q=blank_to_none(q),
        status=normalize_status(status),
        category=normalize_category(category),
        assignee_id=blank_to_none(assignee_id),
        location=blank_to_none(location),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )
    return AssetsMeta(**meta)


@router.get("/assets/export")
def export_assets(
    q: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    sort: str = "asset_tag",
    order: str = "asc",
    db: Session = Depends(get_db),
):
    assets = crud.list_assets_filtered(
        db,
        q=blank_to_none(q),
        status=normalize_status(status),
        category=normalize_category(category),
        location=blank_to_none(location),
        sort=normalize_sort(sort),
        order=normalize_order(order),
        limit=EXPORT_LIMIT,
        offset=0,
    )
    return assets_to_csv_response(assets, filename="assets_export.csv")


@router.post("/assets", response_model=Asset, status_code=201)
def create_asset_api(
    body: AssetIn,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return crud.create_asset(db, body, created_by=actor.id)


@router.get("/assets/{asset_id}", response_model=Asset)
def get_asset_api(
    asset_id: str,
    db: Session = Depends(get_db),
):
    asset = crud.get_asset(db, asset_id)
    if not asset:
        raise HTTPException(status_code=404, detail="asset not found")
    return asset


@router.patch("/assets/{asset_id}", response_model=Asset)
def update_asset_api(
    asset_id: str,
    body: AssetUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    updated = crud.update_asset(db, asset_id, body, performed_by=actor.id)
    if not updated:
        raise HTTPException(status_code=404, detail="asset not found")
    return updated


@router.post("/assets/{asset_id}/status", response_model=Asset)
def change_asset_status_api(
    asset_id: str,
    body: AssetStatusIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    asset = crud.change_status(db, asset_id, body.status, performed_by=actor.id)
    background_tasks.add_task(notifier.flush_outbox)
    return asset


@router.get("/assets/{asset_id}/history", response_model=list[AssetActivity])
def asset_history_api(
    asset_id: str,
    db: Session = Depends(get_db),
):
    crud.require_asset(db, asset_id)
    return crud.asset_history(db, asset_id)
