from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from database import create_document, get_db, get_documents, id_filter, serialize, utcnow
from errors import NotFoundError, ValidationError
from schemas import EventCreate
from security import check_update_keys, require_user

router = APIRouter(prefix="/api/events", tags=["Events"], dependencies=[Depends(require_user)])

EVENTS = "events"

# Fields an event edit may not overwrite
_PROTECTED = ("_id", "id", "createdAt")


def _clean(updates: Dict[str, Any]) -> Dict[str, Any]:
    check_update_keys(updates)
    return {k: v for k, v in updates.items() if k not in _PROTECTED}


@router.get("")
def list_events(leadId: Optional[str] = None, db=Depends(get_db)):
    query = {"leadId": leadId} if leadId else {}
    return [serialize(e) for e in get_documents(db, EVENTS, query, sort=("date", 1))]


@router.post("", status_code=201)
def create_event(payload: EventCreate, db=Depends(get_db)):
    event_id = create_document(db, EVENTS, payload)
    return serialize(db[EVENTS].find_one({"_id": event_id}))


@router.put("")
def update_event_from_body(event: Dict[str, Any] = Body(...), db=Depends(get_db)):
    """Edit an event identified by ``_id``/``id`` in the body. Never written back to leads."""
    event_id = event.get("_id") or event.get("id")
    if not event_id:
        raise ValidationError("Event id is required")
    return _update(db, str(event_id), event)


@router.get("/{event_id}")
def get_event(event_id: str, db=Depends(get_db)):
    event = db[EVENTS].find_one(id_filter(event_id))
    if not event:
        raise NotFoundError("Event not found")
    return serialize(event)


@router.put("/{event_id}")
def update_event(event_id: str, updates: Dict[str, Any] = Body(...), db=Depends(get_db)):
    return _update(db, event_id, updates)


@router.delete("/{event_id}")
def delete_event(event_id: str, db=Depends(get_db)):
    result = db[EVENTS].delete_one(id_filter(event_id))
    if result.deleted_count == 0:
        raise NotFoundError("Event not found")
    return {"success": True}


def _update(db, event_id: str, updates: Dict[str, Any]) -> dict:
    changes = _clean(updates)
    changes["updatedAt"] = utcnow()
    result = db[EVENTS].update_one(id_filter(event_id), {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("Event not found")
    return serialize(db[EVENTS].find_one(id_filter(event_id)))
