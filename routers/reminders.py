import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from database import create_document, get_db, get_documents, id_filter, serialize, utcnow
from errors import NotFoundError, NotificationError, ValidationError
from notifications import NotificationSender, get_sender
from schemas import ReminderCreate
from security import check_update_keys, require_fields, require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reminder", tags=["Reminders"], dependencies=[Depends(require_user)])

REMINDERS = "reminders"


def _parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise ValidationError("scheduledTime must be an ISO 8601 timestamp")


def _find(db, reminder_id: str) -> dict:
    reminder = db[REMINDERS].find_one(id_filter(reminder_id))
    if not reminder:
        raise NotFoundError("Reminder not found")
    return reminder


@router.post("", status_code=201)
def create_reminder(payload: ReminderCreate, db=Depends(get_db), sender: NotificationSender = Depends(get_sender)):
    require_fields(payload.model_dump(), "userId", "phoneNumber", "message", "scheduledTime")
    send_at = _parse_time(payload.scheduledTime)
    reminder_id = create_document(
        db,
        REMINDERS,
        {**payload.model_dump(), "scheduledTime": send_at, "status": "pending"},
    )

    try:
        message_id = sender.schedule_sms(payload.phoneNumber, payload.message, send_at)
    except NotificationError:
        logger.exception("Could not schedule SMS for reminder %s", reminder_id)
        db[REMINDERS].update_one({"_id": reminder_id}, {"$set": {"status": "failed", "updatedAt": utcnow()}})
        return {"id": str(reminder_id), "status": "failed"}

    db[REMINDERS].update_one({"_id": reminder_id}, {"$set": {"messageId": message_id}})
    return {"id": str(reminder_id), "status": "pending"}


@router.get("")
def list_reminders(userId: str = "", db=Depends(get_db)):
    if not userId:
        raise ValidationError("User ID is required")
    reminders = get_documents(db, REMINDERS, {"userId": userId}, sort=("scheduledTime", 1))
    return [serialize(r) for r in reminders]


@router.get("/{reminder_id}")
def get_reminder(reminder_id: str, db=Depends(get_db)):
    return serialize(_find(db, reminder_id))


@router.put("/{reminder_id}")
def update_reminder(
    reminder_id: str,
    updates: Dict[str, Any] = Body(...),
    db=Depends(get_db),
    sender: NotificationSender = Depends(get_sender),
):
    reminder = _find(db, reminder_id)
    check_update_keys(updates)
    changes = {k: v for k, v in updates.items() if k not in ("_id", "id", "userId", "messageId", "createdAt")}

    if changes.get("scheduledTime"):
        send_at = _parse_time(changes["scheduledTime"])
        changes["scheduledTime"] = send_at
        # Reschedule: the provider can't move a queued message, so replace it
        if reminder.get("messageId"):
            sender.cancel_sms(reminder["messageId"])
        changes["messageId"] = sender.schedule_sms(
            changes.get("phoneNumber") or reminder["phoneNumber"],
            changes.get("message") or reminder["message"],
            send_at,
        )
        changes["status"] = "pending"

    changes["updatedAt"] = utcnow()
    db[REMINDERS].update_one({"_id": reminder["_id"]}, {"$set": changes})
    return {"success": True}


@router.delete("/{reminder_id}")
def delete_reminder(reminder_id: str, db=Depends(get_db), sender: NotificationSender = Depends(get_sender)):
    reminder = _find(db, reminder_id)
    if reminder.get("messageId") and reminder.get("status") == "pending":
        sender.cancel_sms(reminder["messageId"])
    db[REMINDERS].delete_one({"_id": reminder["_id"]})
    return {"success": True}
