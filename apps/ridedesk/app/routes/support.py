from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..common import (
    Paging,
    apply_changes,
    audit,
    dump,
    get_or_404,
    listing,
    ok,
    reject_nulls,
    status_counts,
    status_given,
)
from ..db import get_session
from ..models import Complaint, RideRequest, SupportMessage, SupportTicket
from ..schemas import (
    ComplaintIn,
    ComplaintOut,
    ComplaintUpdate,
    SupportMessageIn,
    SupportMessageOut,
    TicketIn,
    TicketOut,
    TicketStatusIn,
)
from .users import get_user_or_404

router = APIRouter()


# ---- Complaints ----
def _complaint_haystack(c: Complaint):
    return (
        c.subject,
        c.description,
        c.rider.full_name if c.rider else None,
        c.driver.full_name if c.driver else None,
        c.id,
    )


@router.get("/complaints")
def list_complaints(
    status: str = "",
    complaint_by: str = "",
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(Complaint)
    if status_given(status):
        stmt = stmt.where(Complaint.status == status)
    if complaint_by and complaint_by != "all":
        stmt = stmt.where(Complaint.complaint_by == complaint_by)
    stmt = stmt.order_by(Complaint.created_at.desc(), Complaint.id.desc())
    return listing(s, stmt, ComplaintOut, paging, _complaint_haystack, status_counts(s, Complaint.status))


@router.post("/complaints")
def create_complaint(req: ComplaintIn, request: Request, s: Session = Depends(get_session)):
    if req.rider_id is not None:
        get_user_or_404(s, req.rider_id, "rider")
    if req.driver_id is not None:
        get_user_or_404(s, req.driver_id, "driver")
    fields = req.model_dump()
    if req.ride_request_id is not None:
        ride = get_or_404(s, RideRequest, req.ride_request_id, "ride request")
        fields["rider_id"] = fields["rider_id"] or ride.rider_id
        fields["driver_id"] = fields["driver_id"] or ride.driver_id
    c = Complaint(**fields)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "complaint_create", complaint_id=c.id)
    return ok(dump(ComplaintOut, c), "Complaint created")


@router.get("/complaints/{complaint_id}")
def get_complaint(complaint_id: int, s: Session = Depends(get_session)):
    c = get_or_404(s, Complaint, complaint_id, "complaint")
    data = dump(ComplaintOut, c)
    if c.ride_request is not None:
        r = c.ride_request
        data["rideRequest"] = {
            "id": r.id,
            "status": r.status,
            "startAddress": r.start_address,
            "endAddress": r.end_address,
            "totalAmount": float(r.total_amount) if r.total_amount is not None else None,
        }
    return ok(data)


@router.put("/complaints/{complaint_id}")
def update_complaint(complaint_id: int, req: ComplaintUpdate, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, Complaint, complaint_id, "complaint")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "subject", "status")
    previous = c.status
    apply_changes(c, changes)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "complaint_update", complaint_id=c.id, old_status=previous, new_status=c.status)
    return ok(dump(ComplaintOut, c), "Complaint updated")


@router.delete("/complaints/{complaint_id}")
def delete_complaint(complaint_id: int, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, Complaint, complaint_id, "complaint")
    s.delete(c); s.commit()
    audit(request, "complaint_delete", complaint_id=complaint_id)
    return ok(None, "Complaint deleted")


# ---- Customer support tickets ----
def _ticket_haystack(t: SupportTicket):
    return (t.message, t.support_type, t.user.full_name if t.user else None, t.id)


@router.get("/customer-support")
def list_tickets(
    status: str = "",
    support_type: Optional[str] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(SupportTicket)
    if status_given(status):
        stmt = stmt.where(SupportTicket.status == status)
    if support_type:
        stmt = stmt.where(SupportTicket.support_type == support_type)
    stmt = stmt.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
    return listing(s, stmt, TicketOut, paging, _ticket_haystack, status_counts(s, SupportTicket.status))


@router.post("/customer-support")
def create_ticket(req: TicketIn, request: Request, s: Session = Depends(get_session)):
    if req.user_id is not None:
        get_user_or_404(s, req.user_id)
    t = SupportTicket(**req.model_dump(), status="pending")
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "support_ticket_create", ticket_id=t.id)
    return ok(dump(TicketOut, t), "Ticket created")


@router.get("/customer-support/{ticket_id}")
def get_ticket(ticket_id: int, s: Session = Depends(get_session)):
    t = get_or_404(s, SupportTicket, ticket_id, "ticket")
    data = dump(TicketOut, t)
    data["messages"] = [dump(SupportMessageOut, m) for m in t.messages]
    return ok(data)


@router.put("/customer-support/{ticket_id}/status")
def update_ticket_status(ticket_id: int, req: TicketStatusIn, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, SupportTicket, ticket_id, "ticket")
    previous = t.status
    t.status = req.status
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "support_ticket_status", ticket_id=t.id, old_status=previous, new_status=t.status)
    return ok(dump(TicketOut, t), "Ticket status updated")


@router.delete("/customer-support/{ticket_id}")
def delete_ticket(ticket_id: int, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, SupportTicket, ticket_id, "ticket")
    s.delete(t); s.commit()
    audit(request, "support_ticket_delete", ticket_id=ticket_id)
    return ok(None, "Ticket deleted")


@router.get("/customer-support/{ticket_id}/messages")
def list_ticket_messages(ticket_id: int, s: Session = Depends(get_session)):
    t = get_or_404(s, SupportTicket, ticket_id, "ticket")
    return ok([dump(SupportMessageOut, m) for m in t.messages])


@router.post("/customer-support/{ticket_id}/messages")
def post_ticket_message(ticket_id: int, req: SupportMessageIn, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, SupportTicket, ticket_id, "ticket")
    if t.status == "resolved":
        raise HTTPException(status_code=409, detail="ticket is resolved")
    text = req.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="message is empty")
    m = SupportMessage(support_id=t.id, sender_type=req.sender_type, message=text)
    s.add(m)
    if req.sender_type == "admin" and t.status == "pending":
        t.status = "inreview"
        s.add(t)
    s.commit(); s.refresh(m)
    audit(request, "support_message", ticket_id=t.id, sender_type=m.sender_type)
    return ok(dump(SupportMessageOut, m), "Message sent")
