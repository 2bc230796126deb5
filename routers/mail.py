from fastapi import APIRouter, Depends

from notifications import NotificationSender, get_sender
from schemas import SendEmailRequest
from security import require_fields, require_user

router = APIRouter(prefix="/api/email", tags=["Email"], dependencies=[Depends(require_user)])


@router.post("/send")
def send_email(payload: SendEmailRequest, sender: NotificationSender = Depends(get_sender)):
    require_fields(payload.model_dump(), "to", "subject", "text")
    sender.send_email(payload.to, payload.subject, payload.text, payload.html, payload.cc, payload.bcc)
    return {"success": True}
