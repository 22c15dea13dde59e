from typing import Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

import notifier
import tickets
from dependencies import Actor, get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import Ticket, TicketHistory, TicketIn, TicketStatus, TicketStatusIn, TicketUpdate

router = APIRouter()
TICKET_STATUSES = set(get_args(TicketStatus))


@router.get("/tickets", response_model=list[Ticket])
def list_tickets_api(
    created_by: Optional[str] = None,
    assigned_to: Optional[str] = None,
    status: Optional[str] = None,
    asset_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return tickets.list_tickets(
        db,
        created_by=blank_to_none(created_by),
        assigned_to=blank_to_none(assigned_to),
        status=normalize_choice(status, TICKET_STATUSES),
        asset_id=blank_to_none(asset_id),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
    )


@router.post("/tickets", response_model=Ticket, status_code=201)
def create_ticket_api(
    body: TicketIn,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return tickets.create(db, body, actor)


@router.get("/tickets/{ticket_id}", response_model=Ticket)
def get_ticket_api(ticket_id: str, db: Session = Depends(get_db)):
    ticket = tickets.get_ticket(db, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="ticket not found")
    return ticket


@router.patch("/tickets/{ticket_id}", response_model=Ticket)
def update_ticket_api(
    ticket_id: str,
    body: TicketUpdate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    ticket = tickets.update_fields(db, ticket_id, body, actor)
    background_tasks.add_task(notifier.flush_outbox)
    return ticket


@router.post("/tickets/{ticket_id}/status", response_model=Ticket)
def change_ticket_status_api(
    ticket_id: str,
    body: TicketStatusIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    ticket = tickets.change_status(db, ticket_id, body.status, actor, body.remarks)
    background_tasks.add_task(notifier.flush_outbox)
    return ticket


@router.post("/tickets/{ticket_id}/cancel", response_model=Ticket)
def cancel_ticket_api(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return tickets.cancel(db, ticket_id, actor)


@router.get("/tickets/{ticket_id}/history", response_model=list[TicketHistory])
def ticket_history_api(ticket_id: str, db: Session = Depends(get_db)):
    if not tickets.get_ticket(db, ticket_id):
        raise HTTPException(status_code=404, detail="ticket not found")
    return tickets.ticket_history(db, ticket_id)
