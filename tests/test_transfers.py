import pytest

import allocations
import crud
import transfers
from db import SessionLocal
from errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    TransferClosedError,
    ValidationError,
)
from orm import TransferORM


@pytest.fixture()
def held_asset(db_session, make_asset, people):
    a = make_asset(name="Latitude 7440")
    al = allocations.allocate(db_session, a.id, people["alice"].id, location="HQ-2F", condition="excellent")
    return a, al


def test_two_party_transfer_scenario(db_session, held_asset, people, actors):
    a, old = held_asset
    e1, e2 = people["alice"], people["bob"]

    t = transfers.initiate(db_session, a.id, e2.id, "desk move", actors["admin"])
    assert t.status == "pending"
    assert t.from_user_id == e1.id
    assert t.to_user_id == e2.id
    assert t.initiated_by == actors["admin"].id

    t = transfers.approve(db_session, t.id, actors["alice"])
    assert t.status == "approved_by_from"
    assert t.from_user_approved is True
    assert t.to_user_approved is False

    t = transfers.approve(db_session, t.id, actors["bob"])
    assert t.status == "completed"
    assert t.completed_at is not None

    db_session.expire_all()
    asset = crud.get_asset(db_session, a.id)
    assert asset.status == "assigned"
    assert asset.current_assignee_id == e2.id

    closed = allocations.get_allocation(db_session, old.id)
    assert closed.status == "returned"
    assert closed.return_date is not None

    active = allocations.list_allocations(db_session, asset_id=a.id, status="active")
    assert len(active) == 1
    assert active[0].employee_id == e2.id
    assert active[0].location == "HQ-2F"
    assert active[0].condition == "excellent"
    assert crud.check_invariants(db_session) == []

    types = [h.activity_type for h in crud.asset_history(db_session, a.id)]
    assert "asset_transferred" in types


def test_recipient_may_approve_first(db_session, held_asset, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    t = transfers.approve(db_session, t.id, actors["bob"])
    assert t.status == "approved_by_to"
    t = transfers.approve(db_session, t.id, actors["alice"])
    assert t.status == "completed"


def test_unheld_asset_skips_from_approval(db_session, make_asset, people, actors):
    a = make_asset()
    t = transfers.initiate(db_session, a.id, people["carol"].id, None, actors["admin"])
    assert t.from_user_id is None

    t = transfers.approve(db_session, t.id, actors["carol"])
    assert t.status == "completed"

    db_session.expire_all()
    asset = crud.get_asset(db_session, a.id)
    assert asset.current_assignee_id == people["carol"].id
    assert len(allocations.list_allocations(db_session, asset_id=a.id)) == 1


def test_initiate_validation(db_session, held_asset, make_asset, people, actors):
    a, _ = held_asset
    with pytest.raises(NotFoundError):
        transfers.initiate(db_session, "no-such-asset", people["bob"].id, None, actors["admin"])
    with pytest.raises(ValidationError):
        transfers.initiate(db_session, a.id, people["alice"].id, None, actors["admin"])

    retired = make_asset()
    crud.change_status(db_session, retired.id, "retired")
    with pytest.raises(ConflictError):
        transfers.initiate(db_session, retired.id, people["bob"].id, None, actors["admin"])


def test_only_one_open_transfer_per_asset(db_session, held_asset, actors):
    a, _ = held_asset
    transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    with pytest.raises(ConflictError):
        transfers.initiate(db_session, a.id, actors["carol"].id, None, actors["admin"])


def test_outsider_cannot_approve_or_reject(db_session, held_asset, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    with pytest.raises(AuthorizationError):
        transfers.approve(db_session, t.id, actors["carol"])
    with pytest.raises(AuthorizationError):
        transfers.reject(db_session, t.id, actors["admin"], "no")

    db_session.expire_all()
    assert transfers.get_transfer(db_session, t.id).status == "pending"


def test_double_approval_by_same_party(db_session, held_asset, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])
    with pytest.raises(StateError):
        transfers.approve(db_session, t.id, actors["alice"])


def test_reject_is_permanent(db_session, held_asset, people, actors):
    a, old = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])

    t = transfers.reject(db_session, t.id, actors["bob"], "do not need it")
    assert t.status == "rejected"
    assert t.rejected_by == actors["bob"].id
    assert t.rejection_reason == "do not need it"

    with pytest.raises(TransferClosedError):
        transfers.approve(db_session, t.id, actors["bob"])
    # the closed error reads as both an authorization and a state failure
    with pytest.raises(AuthorizationError):
        transfers.reject(db_session, t.id, actors["alice"])
    with pytest.raises(StateError):
        transfers.approve(db_session, t.id, actors["alice"])

    db_session.expire_all()
    asset = crud.get_asset(db_session, a.id)
    assert asset.current_assignee_id == people["alice"].id
    assert allocations.get_allocation(db_session, old.id).status == "active"


def test_completed_transfer_is_terminal(db_session, held_asset, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])
    transfers.approve(db_session, t.id, actors["bob"])
    with pytest.raises(TransferClosedError):
        transfers.reject(db_session, t.id, actors["bob"])


def test_completion_conflicts_when_holder_changed(db_session, held_asset, actors):
    a, old = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])

    # asset goes back to stock while the transfer waits
    allocations.return_asset(db_session, old.id)

    with pytest.raises(ConflictError):
        transfers.approve(db_session, t.id, actors["bob"])

    db_session.expire_all()
    assert transfers.get_transfer(db_session, t.id).status == "approved_by_from"
    assert crud.get_asset(db_session, a.id).status == "available"
    assert crud.check_invariants(db_session) == []


def test_transfer_notifies_both_parties(db_session, held_asset, actors):
    import notifier

    a, _ = held_asset
    transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    rows = notifier.list_notifications(db_session, event_type="transfer_requested")
    assert sorted(r.recipient_id for r in rows) == sorted([actors["alice"].id, actors["bob"].id])
    assert all(r.payload["initiator_name"] == "Ada Admin" for r in rows)


def test_list_transfers_for_user(db_session, held_asset, actors):
    a, _ = held_asset
    transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    assert len(transfers.list_transfers(db_session, user_id=actors["alice"].id)) == 1
    assert len(transfers.list_transfers(db_session, user_id=actors["bob"].id, status="pending")) == 1
    assert transfers.list_transfers(db_session, user_id=actors["carol"].id) == []


def test_stale_approve_after_concurrent_reject(db_session, held_asset, people, actors):
    a, old = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])

    # both requests read the transfer as approved_by_from before either writes
    first = SessionLocal()
    second = SessionLocal()
    try:
        assert first.get(TransferORM, t.id).status == "approved_by_from"
        assert second.get(TransferORM, t.id).status == "approved_by_from"

        transfers.reject(first, t.id, actors["alice"], "changed my mind")
        with pytest.raises(TransferClosedError):
            transfers.approve(second, t.id, actors["bob"])
    finally:
        first.close()
        second.close()

    db_session.expire_all()
    assert transfers.get_transfer(db_session, t.id).status == "rejected"
    assert crud.get_asset(db_session, a.id).current_assignee_id == people["alice"].id
    assert allocations.get_allocation(db_session, old.id).status == "active"
    assert crud.check_invariants(db_session) == []


def test_stale_reject_after_concurrent_completion(db_session, held_asset, people, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])
    transfers.approve(db_session, t.id, actors["alice"])

    first = SessionLocal()
    second = SessionLocal()
    try:
        assert first.get(TransferORM, t.id).status == "approved_by_from"
        assert second.get(TransferORM, t.id).status == "approved_by_from"

        assert transfers.approve(first, t.id, actors["bob"]).status == "completed"
        with pytest.raises(TransferClosedError):
            transfers.reject(second, t.id, actors["alice"], "too late")
    finally:
        first.close()
        second.close()

    db_session.expire_all()
    got = transfers.get_transfer(db_session, t.id)
    assert got.status == "completed"
    assert got.rejected_by is None
    assert crud.get_asset(db_session, a.id).current_assignee_id == people["bob"].id
    assert crud.check_invariants(db_session) == []


def test_parallel_first_approvals_keep_one(db_session, held_asset, actors):
    a, _ = held_asset
    t = transfers.initiate(db_session, a.id, actors["bob"].id, None, actors["admin"])

    first = SessionLocal()
    second = SessionLocal()
    try:
        assert first.get(TransferORM, t.id).status == "pending"
        assert second.get(TransferORM, t.id).status == "pending"

        transfers.approve(first, t.id, actors["alice"])
        with pytest.raises(ConflictError):
            transfers.approve(second, t.id, actors["bob"])
    finally:
        first.close()
        second.close()

    db_session.expire_all()
    got = transfers.get_transfer(db_session, t.id)
    assert got.status == "approved_by_from"
    assert got.from_user_approved is True
    assert got.to_user_approved is False

    # the loser retries against the fresh row and completes
    assert transfers.approve(db_session, t.id, actors["bob"]).status == "completed"
