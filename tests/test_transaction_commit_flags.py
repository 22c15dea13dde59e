from sqlalchemy import select

import allocations
import crud
import transfers
from models import AssetIn
from orm import AllocationORM, AssetORM, NotificationORM


def test_create_asset_commit_false_requires_manual_commit(db_session):
    body = AssetIn(name="Tablet", asset_tag="T-001", category="tablet", location="Shelf A")
    created = crud.create_asset(db_session, body, commit=False)

    db_session.commit()
    db_session.expire_all()

    loaded = crud.get_asset(db_session, created.id)
    assert loaded is not None
    assert loaded.asset_tag == "T-001"


def test_create_asset_commit_false_rollback_discards_change(db_session):
    body = AssetIn(name="Tablet", asset_tag="T-002", category="tablet", location="Shelf A")
    created = crud.create_asset(db_session, body, commit=False)

    db_session.rollback()
    db_session.expire_all()

    loaded = crud.get_asset(db_session, created.id)
    assert loaded is None


def test_allocate_commit_false_rollback_discards_everything(db_session, make_asset, people):
    a = make_asset()
    allocated = allocations.allocate(db_session, a.id, people["alice"].id, commit=False)

    db_session.rollback()
    db_session.expire_all()

    asset = db_session.get(AssetORM, a.id)
    assert asset.status == "available"
    assert asset.current_assignee_id is None
    assert db_session.get(AllocationORM, allocated.id) is None
    assert db_session.execute(select(NotificationORM)).first() is None


def test_allocate_commit_false_requires_manual_commit(db_session, make_asset, people):
    a = make_asset()
    allocated = allocations.allocate(db_session, a.id, people["alice"].id, commit=False)

    db_session.commit()
    db_session.expire_all()

    assert allocations.get_allocation(db_session, allocated.id).status == "active"
    assert crud.get_asset(db_session, a.id).current_assignee_id == people["alice"].id
    events = db_session.execute(select(NotificationORM.event_type)).scalars().all()
    assert sorted(events) == ["asset_assigned", "asset_status_changed"]


def test_return_commit_false_rollback_keeps_allocation_active(db_session, make_asset, people):
    a = make_asset()
    allocated = allocations.allocate(db_session, a.id, people["alice"].id)

    allocations.return_asset(db_session, allocated.id, commit=False)
    db_session.rollback()
    db_session.expire_all()

    assert allocations.get_allocation(db_session, allocated.id).status == "active"
    assert crud.get_asset(db_session, a.id).status == "assigned"


def test_transfer_approve_commit_false_rollback_keeps_holder(db_session, make_asset, actors):
    a = make_asset()
    allocations.allocate(db_session, a.id, actors["alice"].id)
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])

    done = transfers.approve(db_session, t.id, actors["bob"], commit=False)
    assert done.status == "completed"

    db_session.rollback()
    db_session.expire_all()

    assert transfers.get_transfer(db_session, t.id).status == "approved_by_from"
    assert crud.get_asset(db_session, a.id).current_assignee_id == actors["alice"].id
    active = allocations.list_allocations(db_session, asset_id=a.id, status="active")
    assert [x.employee_id for x in active] == [actors["alice"].id]
