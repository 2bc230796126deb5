"""
Showing Sync Service

Mirrors the showings embedded in a lead into the ``events`` collection so the
calendar can list them next to ad-hoc events. Each showing maps to at most one
event, upserted on ``showingId``.

Syncing is one-directional (lead -> event) and best-effort: it runs after the
lead write has been committed, and a failure is logged and swallowed so it can
never fail the request that changed the lead.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from database import utcnow
from errors import SyncError

logger = logging.getLogger(__name__)

EVENTS = "events"
DEFAULT_SHOWING_TIME = "12:00"


def build_event_payload(lead_id: str, lead_name: str, showing: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "title": f"{showing.get('property') or 'Property Showing'} - {lead_name}",
        "date": showing.get("date"),
        "time": showing.get("time") or DEFAULT_SHOWING_TIME,
        "type": "viewing",
        "description": showing.get("notes") or f"Showing for {lead_name}",
        "location": showing.get("property") or "",
        "status": showing.get("status") or "scheduled",
        "leadId": lead_id,
        "leadName": lead_name,
        "showingId": showing["id"],
        "lastSynced": now or utcnow(),
    }


def _upsert_event(db, lead_id: str, lead_name: str, showing: Dict[str, Any], now: datetime) -> None:
    payload = build_event_payload(lead_id, lead_name, showing, now)
    try:
        db[EVENTS].update_one(
            {"showingId": payload["showingId"]},
            {"$set": payload, "$setOnInsert": {"createdAt": now}},
            upsert=True,
        )
    except Exception as e:
        raise SyncError(f"Could not mirror showing {payload['showingId']} of lead {lead_id}: {e}") from e


def sync_showings(db, lead_id: str, lead_name: str, showings: Iterable[Dict[str, Any]]) -> int:
    """Upsert one event per showing. Returns how many showings were mirrored."""
    now = utcnow()
    synced = 0
    for showing in showings:
        if not showing.get("id"):
            logger.warning("Skipping showing without id on lead %s", lead_id)
            continue
        try:
            _upsert_event(db, lead_id, lead_name, showing, now)
        except SyncError:
            logger.exception("Showing sync failed")
            continue
        synced += 1
    logger.debug("Synced %d showing(s) of lead %s", synced, lead_id)
    return synced


def sync_showing(db, lead_id: str, lead_name: str, showing: Dict[str, Any]) -> bool:
    return sync_showings(db, lead_id, lead_name, [showing]) == 1


def remove_lead_events(db, lead_id: str) -> int:
    """Drop the events mirroring a deleted lead's showings."""
    try:
        return db[EVENTS].delete_many({"leadId": lead_id}).deleted_count
    except Exception:
        logger.exception("Could not remove events of deleted lead %s", lead_id)
        return 0
