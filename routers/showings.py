import logging

from fastapi import APIRouter, Depends

from database import get_db, utcnow
from errors import NotFoundError
from routers.leads import LEADS, find_lead, normalize_showing
from schemas import Showing, ShowingsReplace
from security import require_user
from showing_sync import DEFAULT_SHOWING_TIME, sync_showing, sync_showings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Showings"], dependencies=[Depends(require_user)])


@router.get("/api/leads/{lead_id}/showings")
def get_lead_showings(lead_id: str, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    lead_key = str(lead["_id"])
    return [{**s, "leadName": lead.get("name"), "leadId": lead_key} for s in lead.get("showings") or []]


@router.put("/api/leads/{lead_id}/showings")
def replace_showings(lead_id: str, payload: ShowingsReplace, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    showings = [normalize_showing(s.model_dump(exclude_none=True)) for s in payload.showings]

    result = db[LEADS].update_one({"_id": lead["_id"]}, {"$set": {"showings": showings, "updatedAt": utcnow()}})
    if result.matched_count == 0:
        raise NotFoundError("Lead not found")

    synced = sync_showings(db, str(lead["_id"]), lead.get("name", ""), showings)
    return {"success": True, "showings": showings, "synced": synced}


@router.post("/api/leads/{lead_id}/showings", status_code=201)
def add_showing(lead_id: str, showing: Showing, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    new_showing = normalize_showing(showing.model_dump(exclude_none=True))

    db[LEADS].update_one(
        {"_id": lead["_id"]},
        {"$push": {"showings": new_showing}, "$set": {"updatedAt": utcnow()}},
    )

    lead_key = str(lead["_id"])
    sync_showing(db, lead_key, lead.get("name", ""), new_showing)
    return {"success": True, "showing": {**new_showing, "leadName": lead.get("name"), "leadId": lead_key}}


@router.get("/api/showings")
def list_all_showings(db=Depends(get_db)):
    """Every lead's showings in calendar shape; each is re-synced to the events collection."""
    all_showings = []
    for lead in db[LEADS].find({"showings": {"$exists": True}}):
        lead_key = str(lead["_id"])
        lead_name = lead.get("name", "")
        showings = lead.get("showings") or []
        for showing in showings:
            all_showings.append(
                {
                    **showing,
                    "leadName": lead_name,
                    "leadId": lead_key,
                    "title": f"{showing.get('property') or 'Property Showing'} - {lead_name}",
                    "type": showing.get("type") or "viewing",
                    "description": showing.get("notes") or f"Showing for {lead_name}",
                    "location": showing.get("property") or "",
                    "time": showing.get("time") or DEFAULT_SHOWING_TIME,
                }
            )
        sync_showings(db, lead_key, lead_name, showings)
    return all_showings
