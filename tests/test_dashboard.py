from datetime import date

import allocations
import asset_requests
import crud
import dashboard
import maintenance
import tickets
import transfers
from models import AssetRequestIn, TicketIn


def test_empty_summary(db_session):
    s = dashboard.summary(db_session, date(2024, 3, 1))
    assert s.total_assets == 0
    assert s.assets_by_status == {"available": 0, "assigned": 0, "under_maintenance": 0, "retired": 0}
    assert s.assets_by_category == {}
    assert s.active_allocations == 0
    assert s.open_tickets == 0
    assert s.pending_transfers == 0
    assert s.maintenance_due == 0
    assert set(s.requests_by_status) == {"pending", "in_progress", "approved", "rejected", "completed", "cancelled"}
    assert sum(s.requests_by_status.values()) == 0


def test_summary_counts(db_session, make_asset, people, actors):
    laptop = make_asset()
    spare = make_asset(category="laptop")
    monitor = make_asset(name="Dell U2720Q", category="monitor")
    old = make_asset(name="Old Phone", category="phone")

    allocations.allocate(db_session, laptop.id, people["alice"].id)
    crud.change_status(db_session, old.id, "retired")
    transfers.initiate(db_session, laptop.id, people["bob"].id, None, actors["admin"])

    maintenance.schedule(db_session, monitor.id, "Calibration", "Monthly", "2024-02-20")
    maintenance.schedule(db_session, spare.id, "Cleaning", "Monthly", "2024-04-01")

    tickets.create(db_session, TicketIn(title="Dead pixel", description="top left",
                                        issue_category="hardware"), actors["bob"])
    closed = tickets.create(db_session, TicketIn(title="Typo", description="x",
                                                 issue_category="software"), actors["bob"])
    tickets.cancel(db_session, closed.id, actors["bob"])

    r = asset_requests.create(db_session, AssetRequestIn(category="monitor", reason="ergonomics"), actors["carol"])
    asset_requests.create(db_session, AssetRequestIn(category="mouse", reason="broken"), actors["carol"])
    asset_requests.approve(db_session, r.id, actors["admin"])

    s = dashboard.summary(db_session, date(2024, 3, 1))
    assert s.total_assets == 4
    assert s.assets_by_status == {"available": 2, "assigned": 1, "under_maintenance": 0, "retired": 1}
    assert s.assets_by_category == {"laptop": 2, "monitor": 1, "phone": 1}
    assert s.active_allocations == 1
    assert s.open_tickets == 1
    assert s.pending_transfers == 1
    assert s.maintenance_due == 1
    assert s.requests_by_status["pending"] == 1
    assert s.requests_by_status["approved"] == 1
