from __future__ import annotations

import logging
from datetime import datetime, timezone

from typing import Optional
from uuid import uuid4

from sqlalchemy import select, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import notifier
import state_machines
from errors import ConflictError, NotFoundError, StorageError, ValidationError
from models import Asset, AssetActivity, AssetIn, AssetUpdate, Profile
from notifier import Event
from orm import AllocationORM, AssetActivityORM, AssetORM, ProfileORM

logger = logging.getLogger("app.registry")

ALLOWED_SORTS = {
    "asset_tag": AssetORM.asset_tag,
    "asset_id": AssetORM.asset_id,
    "name": AssetORM.name,
    "status": AssetORM.status,
    "category": AssetORM.category,
    "location": AssetORM.location,
    "updated_at": AssetORM.updated_at,
}

# statuses an operator may set directly; "assigned" only comes from allocations/transfers
OPERATOR_STATUSES = {"available", "under_maintenance", "retired"}

# roles that may decide on asset requests and hear about stock status changes
ADMIN_ROLES = ("admin", "super_admin")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid4())

def persist(db: Session, *, commit: bool) -> None:
    try:
        if commit:
            db.commit()
        else:
            db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("conflicting write rejected by the data store") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("data store failure") from e

def _asset_to_schema(a: AssetORM) -> Asset:
    return Asset.model_validate(a)

def _asset_payload(a: AssetORM) -> dict:
    return {"asset_db_id": a.id, "asset_name": a.name, "asset_code": a.asset_id}

def admin_ids(db: Session) -> list[str]:
    stmt = (
        select(ProfileORM.id)
        .where(ProfileORM.role.in_(ADMIN_ROLES), ProfileORM.is_active.is_(True))
        .order_by(ProfileORM.id)
    )
    return list(db.execute(stmt).scalars().all())


# ---------- Profile ----------
def get_profile(db: Session, profile_id: str) -> Optional[Profile]:
    row = db.get(ProfileORM, profile_id)
    return Profile.model_validate(row) if row else None


def require_profile(db: Session, profile_id: str) -> ProfileORM:
    row = db.get(ProfileORM, profile_id)
    if not row:
        raise NotFoundError(f"profile {profile_id} not found")
    return row


def list_profiles(db: Session, *, active_only: bool = True, department: Optional[str] = None) -> list[Profile]:
    stmt = select(ProfileORM)
    if active_only:
        stmt = stmt.where(ProfileORM.is_active.is_(True))
    if department:
        stmt = stmt.where(ProfileORM.department == department)
    stmt = stmt.order_by(ProfileORM.full_name.asc())
    return [Profile.model_validate(p) for p in db.execute(stmt).scalars().all()]


def upsert_profile(db: Session, body: Profile, *, commit: bool = True) -> Profile:
    """Sync hook for the identity provider; the managers only read profiles."""
    now = utcnow()
    p = db.get(ProfileORM, body.id)
    if p is None:
        p = ProfileORM(id=body.id, created_at=now)
        db.add(p)
    p.full_name = body.full_name
    p.email = body.email
    p.department = body.department
    p.employee_id = body.employee_id
    p.role = body.role
    p.is_active = body.is_active
    p.updated_at = now
    persist(db, commit=commit)
    return Profile.model_validate(p)


# ---------- Activity ----------
def log_activity(
    db: Session,
    asset_id: str,
    activity_type: str,
    description: str,
    *,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> None:
    db.add(AssetActivityORM(
        id=new_id(),
        asset_id=asset_id,
        activity_type=activity_type,
        description=description,
        old_value=old_value,
        new_value=new_value,
        performed_by=performed_by,
        created_at=utcnow(),
    ))


def asset_history(db: Session, asset_id: str) -> list[AssetActivity]:
    rows = db.execute(
        select(AssetActivityORM)
        .where(AssetActivityORM.asset_id == asset_id)
        .order_by(AssetActivityORM.created_at.asc())
    ).scalars().all()
    return [AssetActivity.model_validate(r) for r in rows]


# ---------- Asset ----------
def asset_tag_exists(db: Session, asset_tag: str, exclude_asset_id: Optional[str] = None) -> bool:
    stmt = select(AssetORM).where(AssetORM.asset_tag == asset_tag)
    if exclude_asset_id:
        stmt = stmt.where(AssetORM.id != exclude_asset_id)
    return db.execute(stmt).first() is not None


def asset_code_exists(db: Session, asset_code: str) -> bool:
    return db.execute(select(AssetORM.id).where(AssetORM.asset_id == asset_code)).first() is not None


def get_asset(db: Session, asset_id: str) -> Optional[Asset]:
    row = db.get(AssetORM, asset_id)
    return _asset_to_schema(row) if row else None


def require_asset(db: Session, asset_id: str) -> AssetORM:
    row = db.get(AssetORM, asset_id)
    if not row:
        raise NotFoundError(f"asset {asset_id} not found")
    return row


def create_asset(db: Session, body: AssetIn, *, created_by: Optional[str] = None, commit: bool = True) -> Asset:
    name = (body.name or "").strip()
    asset_tag = (body.asset_tag or "").strip()
    if not name or not asset_tag:
        raise ValidationError("name and asset_tag are required")
    if asset_tag_exists(db, asset_tag):
        raise ConflictError("asset_tag already exists")

    asset_code = (body.asset_id or "").strip() or f"AST-{uuid4().hex[:8].upper()}"
    if asset_code_exists(db, asset_code):
        raise ConflictError("asset_id already exists")

    now = utcnow()
    a = AssetORM(
        id=new_id(),
        asset_id=asset_code,
        asset_tag=asset_tag,
        name=name,
        category=body.category,
        brand=body.brand,
        model=body.model,
        serial_number=body.serial_number,
        location=body.location,
        department=body.department,
        specifications=body.specifications,
        notes=body.notes,
        purchase_date=body.purchase_date,
        purchase_cost=body.purchase_cost,
        warranty_end_date=body.warranty_end_date,
        status="available",
        current_assignee_id=None,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    db.add(a)
    log_activity(db, a.id, "asset_created", f"Asset {asset_code} created", new_value="available",
                 performed_by=created_by)
    persist(db, commit=commit)
    if commit:
        db.refresh(a)
    logger.info("asset created asset_id=%s tag=%s", a.asset_id, a.asset_tag)
    return _asset_to_schema(a)


def update_asset(
    db: Session,
    asset_id: str,
    body: AssetUpdate,
    *,
    performed_by: Optional[str] = None,
    commit: bool = True,
) -> Optional[Asset]:
    a = db.get(AssetORM, asset_id)
    if not a:
        return None

    data = body.model_dump(exclude_unset=True)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name cannot be blank")
    if "asset_tag" in data:
        tag = (data["asset_tag"] or "").strip()
        if not tag:
            raise ValidationError("asset_tag cannot be blank")
        if asset_tag_exists(db, tag, exclude_asset_id=asset_id):
            raise ConflictError("asset_tag already exists")
        data["asset_tag"] = tag

    changed = []
    for k, v in data.items():
        if getattr(a, k) != v:
            changed.append(k)
            setattr(a, k, v)

    if changed:
        a.updated_at = utcnow()
        if "location" in changed:
            log_activity(db, a.id, "asset_location_changed", "Location changed",
                         new_value=a.location, performed_by=performed_by)
        log_activity(db, a.id, "asset_updated", "Updated: " + ", ".join(sorted(changed)),
                     performed_by=performed_by)

    persist(db, commit=commit)
    if commit:
        db.refresh(a)
    return _asset_to_schema(a)


def set_status(
    db: Session,
    asset_id: str,
    status: str,
    assignee_id: Optional[str] = None,
    *,
    expected_status: Optional[str] = None,
    expected_assignee_id: Optional[str] = None,
    check_assignee: bool = False,
    performed_by: Optional[str] = None,
    commit: bool = True,
) -> Asset:
    """
    Move an asset to ``status`` with a compare-and-swap write.

    The UPDATE only matches while the row still has ``expected_status``
    (defaulting to the status just read) and, with ``check_assignee``, the
    ``expected_assignee_id`` holder. A lost race raises ConflictError and
    leaves the row untouched.
    """
    if status == "assigned" and not assignee_id:
        raise ValidationError("assigned status requires an assignee")
    if status != "assigned" and assignee_id:
        raise ValidationError(f"{status} status cannot carry an assignee")

    a = require_asset(db, asset_id)
    current = expected_status or a.status
    state_machines.check_transition(state_machines.ASSET, current, status)
    old_assignee = a.current_assignee_id

    now = utcnow()
    stmt = (
        update(AssetORM)
        .where(AssetORM.id == asset_id, AssetORM.status == current)
        .values(status=status, current_assignee_id=assignee_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if check_assignee:
        if expected_assignee_id is None:
            stmt = stmt.where(AssetORM.current_assignee_id.is_(None))
        else:
            stmt = stmt.where(AssetORM.current_assignee_id == expected_assignee_id)

    try:
        result = db.execute(stmt)
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("data store failure") from e
    if result.rowcount != 1:
        db.rollback()
        logger.info("asset status race lost asset_id=%s expected=%s wanted=%s", asset_id, current, status)
        raise ConflictError(f"asset {asset_id} is no longer {current}")

    db.refresh(a)
    if current != status:
        log_activity(db, a.id, "asset_status_changed", f"Status changed from {current} to {status}",
                     old_value=current, new_value=status, performed_by=performed_by)
    persist(db, commit=commit)

    if current != status:
        payload = {**_asset_payload(a), "old_status": current, "new_status": status}
        holder = assignee_id or old_assignee
        # stock assets have no holder; administrators hear about them instead
        recipients = [holder] if holder else (admin_ids(db) or [None])
        notifier.publish(db, [Event("asset_status_changed", r, payload) for r in recipients], commit=commit)

    logger.info("asset status asset_id=%s %s->%s assignee=%s", a.asset_id, current, status, assignee_id)
    return _asset_to_schema(a)


def change_status(
    db: Session,
    asset_id: str,
    status: str,
    *,
    performed_by: Optional[str] = None,
    commit: bool = True,
) -> Asset:
    """Operator status change (maintenance, retirement, back to stock)."""
    if status not in OPERATOR_STATUSES:
        raise ValidationError("assign assets through an allocation or transfer")
    a = require_asset(db, asset_id)
    if a.status == "assigned":
        raise ConflictError("asset has an active allocation; return it first")
    if a.status == status:
        return _asset_to_schema(a)
    return set_status(db, asset_id, status, None, expected_status=a.status,
                      performed_by=performed_by, commit=commit)


def build_assets_query(
    q: str | None,
    status: str | None,
    category: str | None,
    assignee_id: str | None = None,
    location: str | None = None,
):
    stmt = select(AssetORM)

    if q:
        like = f"%{q}%"
        stmt = stmt.where(
            or_(
                AssetORM.name.ilike(like),
                AssetORM.asset_tag.ilike(like),
                AssetORM.asset_id.ilike(like),
                AssetORM.serial_number.ilike(like),
                AssetORM.notes.ilike(like),
            )
        )
    if status:
        stmt = stmt.where(AssetORM.status == status)

    if category:
        stmt = stmt.where(AssetORM.category == category)

    if assignee_id:
        stmt = stmt.where(AssetORM.current_assignee_id == assignee_id)

    if location:
        stmt = stmt.where(AssetORM.location == location)

    return stmt

def assets_meta(
    db: Session,
    *,
    q: str | None,
    status: str | None,
    category: str | None,
    assignee_id: str | None = None,
    location: str | None = None,
    limit: int,
    offset: int,
) -> dict:
    total = count_assets_filtered(db, q=q, status=status, category=category,
                                  assignee_id=assignee_id, location=location)
    total_pages = max(1, (total + limit - 1) // limit)

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "total_pages": total_pages,
    }

def count_assets_filtered(
    db: Session,
    *,
    q: str | None,
    status: str | None,
    category: str | None,
    assignee_id: str | None = None,
    location: str | None = None,
) -> int:
    stmt = build_assets_query(q, status, category, assignee_id, location)
    count_stmt = select(func.count()).select_from(stmt.subquery())
    return int(db.execute(count_stmt).scalar_one())

def list_assets_filtered(
    db: Session,
    *,
    q: str | None,
    status: str | None,
    category: str | None,
    assignee_id: str | None = None,
    location: str | None = None,
    sort: str,
    order: str,
    limit: int,
    offset: int,
) -> list[Asset]:
    stmt = build_assets_query(q, status, category, assignee_id, location)

    col = ALLOWED_SORTS.get(sort, AssetORM.asset_tag)
    desc = (order or "").lower() == "desc"
    stmt = stmt.order_by(col.desc() if desc else col.asc())

    stmt = stmt.limit(limit).offset(offset)
    rows = db.execute(stmt).scalars().all()
    return [_asset_to_schema(a) for a in rows]


def check_invariants(db: Session) -> list[str]:
    """Asset ids whose status/assignee/allocation combination is inconsistent."""
    active = dict(
        db.execute(
            select(AllocationORM.asset_id, AllocationORM.employee_id).where(AllocationORM.status == "active")
        ).all()
    )
    bad = []
    for a in db.execute(select(AssetORM)).scalars():
        assigned = a.status == "assigned"
        if assigned != (a.current_assignee_id is not None):
            bad.append(a.id)
        elif assigned and active.get(a.id) != a.current_assignee_id:
            bad.append(a.id)
        elif not assigned and a.id in active:
            bad.append(a.id)
    return bad
