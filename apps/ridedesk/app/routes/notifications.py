from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..common import Paging, audit, dump, get_or_404, listing, ok
from ..db import get_session
from ..models import PushNotification, User
from ..push import send_push
from ..schemas import PushIn, PushOut
from .users import get_user_or_404

router = APIRouter()


def _audience(s: Session, req: PushIn) -> list[int]:
    """One user when ``user_id`` is given, otherwise every active user of the type."""
    if req.user_id is not None:
        return [get_user_or_404(s, req.user_id).id]
    types = ("rider", "driver") if req.user_type == "all" else (req.user_type,)
    return list(
        s.execute(
            select(User.id).where(User.user_type.in_(types), User.status == "active").order_by(User.id)
        ).scalars()
    )


@router.get("/push-notifications")
def list_push_notifications(paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(PushNotification).order_by(PushNotification.created_at.desc(), PushNotification.id.desc())
    return listing(s, stmt, PushOut, paging, lambda p: (p.title, p.message))


@router.post("/push-notifications")
def create_push_notification(req: PushIn, request: Request, s: Session = Depends(get_session)):
    recipients = _audience(s, req)
    p = PushNotification(
        title=req.title,
        message=req.message,
        user_type=req.user_type,
        user_id=req.user_id,
        recipient_count=len(recipients),
    )
    s.add(p); s.flush()
    p.sent_count = send_push(recipients, req.title, req.message, {"notification_id": p.id})
    s.commit(); s.refresh(p)
    audit(request, "push_send", notification_id=p.id, recipients=p.recipient_count, sent=p.sent_count)
    return ok(dump(PushOut, p), f"Notification sent to {p.sent_count} of {p.recipient_count} recipients")


@router.delete("/push-notifications/{notification_id}")
def delete_push_notification(notification_id: int, request: Request, s: Session = Depends(get_session)):
    p = get_or_404(s, PushNotification, notification_id, "push notification")
    s.delete(p); s.commit()
    audit(request, "push_delete", notification_id=notification_id)
    return ok(None, "Notification deleted")
