import pytest

import state_machines as sm
from errors import StateError


@pytest.mark.parametrize(
    "current,new,ok",
    [
        ("available", "assigned", True),
        ("available", "under_maintenance", True),
        ("available", "retired", True),
        ("assigned", "available", True),
        ("assigned", "assigned", True),
        ("assigned", "retired", False),
        ("assigned", "under_maintenance", False),
        ("under_maintenance", "available", True),
        ("under_maintenance", "assigned", False),
        ("retired", "available", False),
        ("retired", "assigned", False),
    ],
)
def test_asset_table(current, new, ok):
    assert sm.can_transition(sm.ASSET, current, new) is ok


@pytest.mark.parametrize(
    "current,new,ok",
    [
        ("open", "in_progress", True),
        ("open", "on_hold", True),
        ("open", "cancelled", True),
        ("open", "resolved", False),
        ("in_progress", "on_hold", True),
        ("in_progress", "resolved", True),
        ("in_progress", "cancelled", False),
        ("on_hold", "in_progress", True),
        ("on_hold", "resolved", False),
        ("resolved", "closed", True),
        ("closed", "open", False),
        ("cancelled", "open", False),
    ],
)
def test_ticket_table(current, new, ok):
    assert sm.can_transition(sm.TICKET, current, new) is ok


@pytest.mark.parametrize(
    "current,new,ok",
    [
        ("pending", "in_progress", True),
        ("pending", "approved", True),
        ("pending", "cancelled", True),
        ("pending", "completed", False),
        ("in_progress", "rejected", True),
        ("in_progress", "cancelled", False),
        ("approved", "completed", True),
        ("approved", "rejected", False),
        ("rejected", "pending", False),
        ("cancelled", "pending", False),
    ],
)
def test_request_table(current, new, ok):
    assert sm.can_transition(sm.REQUEST, current, new) is ok


def test_unknown_state_is_rejected():
    assert sm.can_transition(sm.ASSET, "lost", "available") is False
    with pytest.raises(StateError):
        sm.check_transition(sm.ASSET, "lost", "available")


def test_transfer_with_holder_needs_both_parties():
    assert sm.next_transfer_status("pending", "from", True) == "approved_by_from"
    assert sm.next_transfer_status("pending", "to", True) == "approved_by_to"
    assert sm.next_transfer_status("approved_by_from", "to", True) == "completed"
    assert sm.next_transfer_status("approved_by_to", "from", True) == "completed"


def test_transfer_without_holder_completes_on_recipient_approval():
    assert sm.next_transfer_status("pending", "to", False) == "completed"


def test_transfer_double_approval_is_a_state_error():
    with pytest.raises(StateError):
        sm.next_transfer_status("approved_by_from", "from", True)
    with pytest.raises(StateError):
        sm.next_transfer_status("approved_by_to", "to", True)


@pytest.mark.parametrize("status", ["completed", "rejected"])
def test_terminal_transfers_cannot_move(status):
    assert sm.transfer_can_reject(status) is False
    for party in ("from", "to"):
        with pytest.raises(StateError):
            sm.next_transfer_status(status, party, True)
