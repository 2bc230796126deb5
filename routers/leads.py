import logging
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends

from database import create_document, get_db, get_documents, id_filter, serialize, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from schemas import LeadCreate, NoteEntry, Showing, Task, TaskUpdate
from security import check_update_keys, require_user
from showing_sync import remove_lead_events, sync_showings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leads", tags=["Leads"], dependencies=[Depends(require_user)])

LEADS = "leads"


def new_id() -> str:
    return str(ObjectId())


def find_lead(db, lead_id: str) -> dict:
    lead = db[LEADS].find_one(id_filter(lead_id))
    if not lead:
        raise NotFoundError("Lead not found")
    return lead


def normalize_showing(showing: Dict[str, Any]) -> Dict[str, Any]:
    """Give a showing the stable id its event mirror is keyed on."""
    return {
        **showing,
        "id": showing.get("id") or new_id(),
        "status": showing.get("status") or "scheduled",
        "createdAt": showing.get("createdAt") or utcnow().isoformat(),
    }


def _showing_dicts(items: List[Showing]) -> List[Dict[str, Any]]:
    return [normalize_showing(s.model_dump(exclude_none=True)) for s in items]


def note_entry(content: str, lead_name: str) -> Dict[str, Any]:
    return NoteEntry(id=new_id(), timestamp=utcnow().isoformat(), content=content, leadName=lead_name).model_dump()


@router.get("")
def list_leads(
    assignedTo: Optional[str] = None,
    leadStatus: Optional[str] = None,
    search: Optional[str] = None,
    db=Depends(get_db),
):
    query: Dict[str, Any] = {}
    if assignedTo:
        query["assignedTo"] = assignedTo
    if leadStatus:
        query["leadStatus"] = leadStatus
    if search:
        query["$or"] = [{field: {"$regex": re.escape(search), "$options": "i"}} for field in ("name", "email", "phone")]
    leads = get_documents(db, LEADS, query, sort=("createdAt", -1))
    return [serialize(l) for l in leads]


@router.post("", status_code=201)
def create_lead(payload: LeadCreate, db=Depends(get_db)):
    data = payload.model_dump(exclude_none=True)
    client_id = data.pop("id", None)
    if client_id:
        if db[LEADS].find_one(id_filter(client_id)):
            raise ConflictError("Lead id already exists")
        data["_id"] = client_id
    data["showings"] = _showing_dicts(payload.showings)
    data["tasks"] = [{**t, "id": t.get("id") or new_id()} for t in data.get("tasks", [])]
    if data.get("notes"):
        data["notesHistory"] = [note_entry(data["notes"], data["name"])]
    lead_id = str(create_document(db, LEADS, data))
    if data["showings"]:
        sync_showings(db, lead_id, data["name"], data["showings"])
    return serialize(find_lead(db, lead_id))


@router.get("/{lead_id}")
def get_lead(lead_id: str, db=Depends(get_db)):
    return serialize(find_lead(db, lead_id))


@router.put("/{lead_id}")
def update_lead(lead_id: str, updates: Dict[str, Any] = Body(...), db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    check_update_keys(updates)
    update_data = {k: v for k, v in updates.items() if k not in ("_id", "id", "createdAt")}
    lead_name = update_data.get("name") or lead.get("name", "")

    if update_data.get("notes"):
        history = lead.get("notesHistory") if isinstance(lead.get("notesHistory"), list) else []
        update_data["notesHistory"] = history + [note_entry(update_data["notes"], lead_name)]

    if "showings" in update_data:
        incoming = update_data["showings"]
        if isinstance(incoming, list):
            update_data["showings"] = _showing_dicts([Showing.model_validate(s) for s in incoming])
        elif isinstance(incoming, dict):
            existing = lead.get("showings") if isinstance(lead.get("showings"), list) else []
            update_data["showings"] = existing + _showing_dicts([Showing.model_validate(incoming)])
        else:
            raise ValidationError("showings must be a showing or a list of showings")

    if "tasks" in update_data:
        if not isinstance(update_data["tasks"], list):
            raise ValidationError("tasks must be a list")
        tasks = [Task.model_validate(t).model_dump(exclude_none=True) for t in update_data["tasks"]]
        update_data["tasks"] = [{**t, "id": t.get("id") or new_id()} for t in tasks]

    update_data["updatedAt"] = utcnow()
    result = db[LEADS].update_one({"_id": lead["_id"]}, {"$set": update_data})
    if result.matched_count == 0:
        raise NotFoundError("Lead not found")

    if "showings" in update_data:
        sync_showings(db, str(lead["_id"]), lead_name, update_data["showings"])

    logger.info("Updated lead %s", lead["_id"])
    return serialize(find_lead(db, str(lead["_id"])))


@router.delete("/{lead_id}")
def delete_lead(lead_id: str, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    db[LEADS].delete_one({"_id": lead["_id"]})
    removed = remove_lead_events(db, str(lead["_id"]))
    return {"success": True, "removedEvents": removed}


# ---------------------------
# Embedded tasks
# ---------------------------
@router.get("/{lead_id}/tasks")
def list_tasks(lead_id: str, db=Depends(get_db)):
    return find_lead(db, lead_id).get("tasks") or []


@router.post("/{lead_id}/tasks", status_code=201)
def add_task(lead_id: str, task: Task, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    new_task = task.model_dump(exclude_none=True)
    new_task["id"] = new_task.get("id") or new_id()
    db[LEADS].update_one({"_id": lead["_id"]}, {"$push": {"tasks": new_task}, "$set": {"updatedAt": utcnow()}})
    return new_task


@router.put("/{lead_id}/tasks/{task_id}")
def update_task(lead_id: str, task_id: str, changes: TaskUpdate, db=Depends(get_db)):
    lead = find_lead(db, lead_id)
    tasks = lead.get("tasks") or []
    for i, task in enumerate(tasks):
        if task.get("id") == task_id:
            tasks[i] = {**task, **changes.model_dump(exclude_none=True), "id": task_id}
            break
    else:
        raise NotFoundError("Task not found")
    db[LEADS].update_one({"_id": lead["_id"]}, {"$set": {"tasks": tasks, "updatedAt": utcnow()}})
    return tasks[i]
