import pytest

import notifier
import tickets
from errors import AuthorizationError, NotFoundError, StateError, ValidationError
from models import TicketIn, TicketUpdate


def _open_ticket(db, actor, **kw):
    body = TicketIn(
        title=kw.pop("title", "Laptop will not boot"),
        description=kw.pop("description", "Black screen after the update"),
        issue_category=kw.pop("issue_category", "hardware"),
        **kw,
    )
    return tickets.create(db, body, actor)


def test_create_defaults(db_session, actors):
    t = _open_ticket(db_session, actors["bob"], priority="high")
    assert t.status == "open"
    assert t.ticket_id.startswith("TKT-")
    assert t.department == "Finance"
    assert t.created_by == actors["bob"].id
    assert [h.action for h in tickets.ticket_history(db_session, t.id)] == ["created"]


def test_create_requires_title_and_description(db_session, actors):
    with pytest.raises(ValidationError):
        _open_ticket(db_session, actors["bob"], title="   ")
    with pytest.raises(NotFoundError):
        _open_ticket(db_session, actors["bob"], asset_id="no-such-asset")


def test_creator_cancels_open_ticket_once(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    cancelled = tickets.cancel(db_session, t.id, actors["bob"])
    assert cancelled.status == "cancelled"

    with pytest.raises(StateError):
        tickets.cancel(db_session, t.id, actors["bob"])

    actions = [h.action for h in tickets.ticket_history(db_session, t.id)]
    assert actions == ["created", "cancelled"]


def test_only_creator_may_cancel(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    with pytest.raises(AuthorizationError):
        tickets.cancel(db_session, t.id, actors["carol"])
    assert tickets.get_ticket(db_session, t.id).status == "open"


def test_in_progress_ticket_cannot_be_cancelled(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    tickets.change_status(db_session, t.id, "in_progress", actors["admin"])
    with pytest.raises(StateError):
        tickets.cancel(db_session, t.id, actors["bob"])


def test_status_flow_with_hold(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    admin = actors["admin"]

    assert tickets.change_status(db_session, t.id, "in_progress", admin).status == "in_progress"
    assert tickets.change_status(db_session, t.id, "on_hold", admin, "waiting on parts").status == "on_hold"
    assert tickets.change_status(db_session, t.id, "in_progress", admin).status == "in_progress"

    resolved = tickets.change_status(db_session, t.id, "resolved", admin, "replaced SSD")
    assert resolved.completed_at is not None
    closed = tickets.change_status(db_session, t.id, "closed", admin)
    assert closed.status == "closed"
    assert closed.completed_at == resolved.completed_at

    with pytest.raises(StateError):
        tickets.change_status(db_session, t.id, "open", admin)

    history = tickets.ticket_history(db_session, t.id)
    hold = [h for h in history if h.new_value == "on_hold"]
    assert hold[0].remarks == "waiting on parts"

    sent = notifier.list_notifications(db_session, event_type="ticket_status_changed")
    assert len(sent) == 5
    assert {n.recipient_id for n in sent} == {actors["bob"].id}


def test_skipping_ahead_is_a_state_error(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    with pytest.raises(StateError):
        tickets.change_status(db_session, t.id, "resolved", actors["admin"])


def test_change_status_cannot_cancel(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    with pytest.raises(ValidationError):
        tickets.change_status(db_session, t.id, "cancelled", actors["bob"])


def test_assignment_queues_notification_and_history(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    updated = tickets.update_fields(db_session, t.id, TicketUpdate(assigned_to=actors["alice"].id, priority="critical"),
                                    actors["admin"])
    assert updated.assigned_to == actors["alice"].id
    assert updated.priority == "critical"

    rows = notifier.list_notifications(db_session, event_type="ticket_assigned")
    assert [r.recipient_id for r in rows] == [actors["alice"].id]
    assert rows[0].payload["ticket_code"] == t.ticket_id

    actions = {h.action for h in tickets.ticket_history(db_session, t.id)}
    assert {"assigned_to_changed", "priority_changed"} <= actions


def test_update_rejects_blank_title(db_session, actors):
    t = _open_ticket(db_session, actors["bob"])
    with pytest.raises(ValidationError):
        tickets.update_fields(db_session, t.id, TicketUpdate(title=""), actors["bob"])
