from datetime import date

import pytest

import allocations
import crud
import maintenance
import notifier
from errors import NotFoundError, StateError, ValidationError


@pytest.mark.parametrize(
    "start,frequency,expected",
    [
        (date(2024, 1, 31), "Monthly", date(2024, 2, 29)),
        (date(2023, 1, 31), "Monthly", date(2023, 2, 28)),
        (date(2024, 1, 10), "Weekly", date(2024, 1, 17)),
        (date(2024, 11, 15), "Quarterly", date(2025, 2, 15)),
        (date(2024, 8, 31), "Semi-Annually", date(2025, 2, 28)),
        (date(2024, 2, 29), "Annually", date(2025, 2, 28)),
    ],
)
def test_advance(start, frequency, expected):
    assert maintenance.advance(start, frequency) == expected


@pytest.mark.parametrize("raw,label", [("monthly", "Monthly"), ("semi annually", "Semi-Annually"), ("YEARLY", "Annually")])
def test_frequency_aliases(raw, label):
    assert maintenance.normalize_frequency(raw) == label


def test_schedule_validation(db_session, make_asset):
    a = make_asset()
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "  ", "Monthly", "2024-03-01")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "", "2024-03-01")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "Fortnightly", "2024-03-01")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-13-45")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-01-15xyz")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-01-15T09:00:00")
    with pytest.raises(ValidationError):
        maintenance.schedule(db_session, "", "Cleaning", "Monthly", "2024-03-01")
    with pytest.raises(NotFoundError):
        maintenance.schedule(db_session, "no-such-asset", "Cleaning", "Monthly", "2024-03-01")
    assert maintenance.list_schedules(db_session) == []


def test_schedule_notifies_current_holder(db_session, make_asset, people):
    a = make_asset()
    allocations.allocate(db_session, a.id, people["alice"].id)
    s = maintenance.schedule(db_session, a.id, "Battery check", "quarterly", "2024-06-01", "bring charger")
    assert s.status == "scheduled"
    assert s.frequency == "Quarterly"
    assert s.next_maintenance_date == date(2024, 6, 1)

    rows = notifier.list_notifications(db_session, event_type="maintenance_scheduled")
    assert [r.recipient_id for r in rows] == [people["alice"].id]


def test_complete_advances_and_writes_history(db_session, make_asset, people):
    a = make_asset()
    s = maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-01-31")

    done = maintenance.complete(db_session, s.id, "2024-01-31", 49.5, "FixIt Co",
                                description="dust out fans", performed_by=people["admin"].id)
    assert done.status == "scheduled"
    assert done.last_maintenance_date == date(2024, 1, 31)
    assert done.next_maintenance_date == date(2024, 2, 29)

    history = maintenance.maintenance_history(db_session, a.id)
    assert len(history) == 1
    assert history[0].cost == 49.5
    assert history[0].vendor == "FixIt Co"
    assert history[0].schedule_id == s.id

    types = [h.activity_type for h in crud.asset_history(db_session, a.id)]
    assert "service_added" in types


def test_complete_rejects_bad_input(db_session, make_asset):
    a = make_asset()
    s = maintenance.schedule(db_session, a.id, "Cleaning", "Weekly", "2024-01-01")
    with pytest.raises(ValidationError):
        maintenance.complete(db_session, s.id, "yesterday")
    with pytest.raises(ValidationError):
        maintenance.complete(db_session, s.id, "2024-01-08junk")
    with pytest.raises(ValidationError):
        maintenance.complete(db_session, s.id, "2024-01-01", cost=-1)
    with pytest.raises(NotFoundError):
        maintenance.complete(db_session, "nope", "2024-01-01")


def test_mark_overdue(db_session, make_asset):
    a = make_asset()
    s = maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-03-01")

    with pytest.raises(StateError):
        maintenance.mark_overdue(db_session, s.id, today=date(2024, 3, 1))

    overdue = maintenance.mark_overdue(db_session, s.id, today=date(2024, 3, 2))
    assert overdue.status == "overdue"

    with pytest.raises(StateError):
        maintenance.mark_overdue(db_session, s.id, today=date(2024, 3, 5))

    # completing an overdue item puts it back on the calendar
    done = maintenance.complete(db_session, s.id, "2024-03-04")
    assert done.status == "scheduled"
    assert done.next_maintenance_date == date(2024, 4, 4)


def test_list_due(db_session, make_asset):
    a = make_asset()
    past = maintenance.schedule(db_session, a.id, "Cleaning", "Monthly", "2024-01-15")
    maintenance.schedule(db_session, a.id, "Inspection", "Annually", "2024-12-01")

    due = maintenance.list_due(db_session, today=date(2024, 2, 1))
    assert [s.id for s in due] == [past.id]

    maintenance.mark_overdue(db_session, past.id, today=date(2024, 2, 1))
    assert maintenance.list_due(db_session, today=date(2024, 2, 1)) == []
    assert [s.id for s in maintenance.list_schedules(db_session, status="overdue")] == [past.id]
