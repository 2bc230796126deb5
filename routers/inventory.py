import math
import re
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query

from database import create_document, get_db, get_documents, id_filter, serialize, utcnow
from errors import NotFoundError, ValidationError
from routers.users import USERS, find_user
from schemas import FavoriteToggle, UserRef
from security import check_update_keys, require_user

router = APIRouter(tags=["Inventory"], dependencies=[Depends(require_user)])

INVENTORY = "inventory"
FAVORITES = "favorites"


@router.get("/api/inventory")
def list_inventory(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    sort: str = "createdAt",
    order: str = "desc",
    db=Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        pattern = re.escape(search)
        query = {"$or": [{"title": {"$regex": pattern, "$options": "i"}}, {"description": {"$regex": pattern, "$options": "i"}}]}
    total = db[INVENTORY].count_documents(query)
    items = get_documents(db, INVENTORY, query, sort=(sort, -1 if order == "desc" else 1), skip=(page - 1) * limit, limit=limit)
    return {"items": [serialize(i) for i in items], "total": total, "page": page, "totalPages": math.ceil(total / limit)}


@router.post("/api/inventory", status_code=201)
def create_item(item: Dict[str, Any] = Body(...), db=Depends(get_db)):
    data = {k: v for k, v in item.items() if k not in ("_id", "id")}
    return {"id": str(create_document(db, INVENTORY, data))}


@router.put("/api/inventory")
def update_item(data: Dict[str, Any] = Body(...), db=Depends(get_db)):
    item_id = data.get("id")
    if not item_id:
        raise ValidationError("Invalid item ID")
    check_update_keys(data)
    changes = {k: v for k, v in data.items() if k not in ("_id", "id", "createdAt")}
    now = utcnow()
    changes["updatedAt"] = now
    changes["lastUpdated"] = now.isoformat()
    result = db[INVENTORY].update_one(id_filter(str(item_id)), {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("Item not found")
    return {"success": True, "message": "Item updated successfully"}


@router.post("/api/inventory/{item_id}/favorite")
def toggle_inventory_favorite(item_id: str, payload: UserRef, db=Depends(get_db)):
    item = db[INVENTORY].find_one(id_filter(item_id))
    if not item:
        raise NotFoundError("Inventory item not found")
    user = find_user(db, payload.userId)

    is_favorite = item["_id"] in (user.get("favorites") or [])
    op = "$pull" if is_favorite else "$push"
    db[USERS].update_one({"_id": user["_id"]}, {op: {"favorites": item["_id"]}})
    return {"success": True, "isFavorite": not is_favorite}


@router.get("/api/favorites")
def list_favorites(userId: str = "", db=Depends(get_db)):
    if not userId:
        raise ValidationError("User ID is required")
    user = find_user(db, userId)
    favorites = user.get("favorites") or []
    if not favorites:
        return []
    return [serialize(i) for i in db[INVENTORY].find({"_id": {"$in": favorites}})]


@router.post("/api/favorites")
def toggle_favorite(payload: FavoriteToggle, db=Depends(get_db)):
    listing_key = payload.property.get("ListingKey")
    if not listing_key:
        raise ValidationError("property.ListingKey is required")
    query = {"userId": payload.userId, "property.ListingKey": listing_key}
    if db[FAVORITES].find_one(query):
        db[FAVORITES].delete_one(query)
        return {"success": True, "action": "removed"}
    db[FAVORITES].insert_one({"userId": payload.userId, "property": payload.property, "createdAt": utcnow()})
    return {"success": True, "action": "added"}
