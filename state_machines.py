from __future__ import annotations

from errors import StateError

# (entity, current_status) -> allowed next statuses
ASSET = "asset"
TICKET = "ticket"
REQUEST = "request"

_NEXT = {
    (ASSET, "available"): {"assigned", "under_maintenance", "retired"},
    # assigned -> assigned is a holder change (transfer)
    (ASSET, "assigned"): {"available", "assigned"},
    (ASSET, "under_maintenance"): {"available", "retired"},
    (ASSET, "retired"): set(),
    (TICKET, "open"): {"in_progress", "on_hold", "cancelled"},
    (TICKET, "in_progress"): {"on_hold", "resolved"},
    (TICKET, "on_hold"): {"in_progress"},
    (TICKET, "resolved"): {"closed"},
    (TICKET, "closed"): set(),
    (TICKET, "cancelled"): set(),
    (REQUEST, "pending"): {"in_progress", "approved", "rejected", "cancelled"},
    (REQUEST, "in_progress"): {"approved", "rejected"},
    (REQUEST, "approved"): {"completed"},
    (REQUEST, "rejected"): set(),
    (REQUEST, "completed"): set(),
    (REQUEST, "cancelled"): set(),
}

# Transfer: (status, approving party) -> next status.
# "from" is only a valid party when the transfer recorded a from-holder.
TRANSFER_TERMINAL = {"completed", "rejected"}

_TRANSFER_APPROVE = {
    ("pending", "from", True): "approved_by_from",
    ("pending", "to", True): "approved_by_to",
    ("pending", "to", False): "completed",
    ("approved_by_from", "to", True): "completed",
    ("approved_by_to", "from", True): "completed",
}


def can_transition(entity: str, current_status: str, new_status: str) -> bool:
    allowed = _NEXT.get((entity, current_status))
    if allowed is None:
        return False
    return new_status in allowed


def check_transition(entity: str, current_status: str, new_status: str) -> None:
    if not can_transition(entity, current_status, new_status):
        raise StateError(f"{entity} cannot move from {current_status} to {new_status}")


def next_transfer_status(current_status: str, party: str, has_from_holder: bool) -> str:
    """
    Status a transfer moves to when ``party`` ("from" or "to") approves.

    Raises StateError when that party has nothing left to approve.
    """
    nxt = _TRANSFER_APPROVE.get((current_status, party, has_from_holder))
    if nxt is None:
        raise StateError(f"transfer in {current_status} cannot take a {party}-holder approval")
    return nxt


def transfer_can_reject(current_status: str) -> bool:
    return current_status not in TRANSFER_TERMINAL
