import logging
import math
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from database import create_document, get_db, get_documents, id_filter, serialize, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from permissions import DEFAULT_PERMISSIONS, normalize_user_update
from schemas import AvatarUpdate, PermissionsRequest, PermissionsUpdate, ProfileUpdate, UserCreate
from security import check_update_keys, hash_password, require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"], dependencies=[Depends(require_user)])

USERS = "users"

# Never writable through the user-management routes
_PROTECTED = ("_id", "id", "password", "createdAt", "updatedAt")


def find_user(db, user_id: str) -> dict:
    user = db[USERS].find_one(id_filter(user_id))
    if not user:
        raise NotFoundError("User not found")
    return user


def ensure_email_free(db, email: str, exclude_id: Any = None) -> None:
    query: Dict[str, Any] = {"email": email}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db[USERS].find_one(query):
        raise ConflictError("Email already exists")


def create_user(db, name: str, email: str, password: str, role: str = "user", permissions: Optional[dict] = None) -> dict:
    ensure_email_free(db, email)
    norm_role, norm_permissions = normalize_user_update(role, permissions if permissions is not None else {})
    user = {
        "name": name,
        "email": email,
        "password": hash_password(password),
        "role": norm_role,
        "permissions": norm_permissions or dict(DEFAULT_PERMISSIONS),
        "emailVerified": False,
        "favorites": [],
    }
    user_id = create_document(db, USERS, user)
    logger.info("Created user %s with role %s", user_id, norm_role)
    return db[USERS].find_one({"_id": user_id})


def apply_user_update(db, user: dict, updates: Dict[str, Any]) -> dict:
    """Persist a user edit; role and permissions go through the normalizer."""
    check_update_keys(updates)
    changes = {k: v for k, v in updates.items() if k not in _PROTECTED}

    if changes.get("email"):
        ensure_email_free(db, changes["email"], exclude_id=user["_id"])

    requested_permissions = None
    if changes.get("permissions") is not None:
        if not isinstance(changes["permissions"], dict):
            raise ValidationError("permissions must be an object")
        requested_permissions = PermissionsUpdate.model_validate(changes["permissions"]).model_dump()

    role = changes.pop("role", None)
    if role is not None and not isinstance(role, str):
        raise ValidationError("role must be a string")

    role, permissions = normalize_user_update(
        role,
        requested_permissions,
        user.get("role"),
        user.get("permissions"),
    )
    changes.pop("permissions", None)
    if role is not None:
        changes["role"] = role
    if permissions is not None:
        changes["permissions"] = permissions
    changes["updatedAt"] = utcnow()

    result = db[USERS].update_one({"_id": user["_id"]}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    return db[USERS].find_one({"_id": user["_id"]})


# ---------------------------
# Collection routes
# ---------------------------
@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    db=Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        pattern = re.escape(search)
        query = {"$or": [{"name": {"$regex": pattern, "$options": "i"}}, {"email": {"$regex": pattern, "$options": "i"}}]}
    total = db[USERS].count_documents(query)
    users = get_documents(db, USERS, query, sort=("createdAt", 1), skip=(page - 1) * limit, limit=limit)
    return {
        "users": [serialize(u) for u in users],
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit),
    }


@router.post("", status_code=201)
def add_user(payload: UserCreate, db=Depends(get_db)):
    permissions = payload.permissions.model_dump() if payload.permissions else None
    return serialize(create_user(db, payload.name, payload.email, payload.password, payload.role, permissions))


@router.put("")
def update_user_from_body(updates: Dict[str, Any] = Body(...), db=Depends(get_db)):
    user_id = updates.get("id") or updates.get("_id")
    if not user_id:
        raise ValidationError("User id is required")
    user = find_user(db, str(user_id))
    return {"success": True, "user": serialize(apply_user_update(db, user, updates))}


# ---------------------------
# Self-service profile
# ---------------------------
@router.get("/profile")
def get_profile(claims: dict = Depends(require_user), db=Depends(get_db)):
    return serialize(find_user(db, claims["sub"]))


@router.put("/profile")
def update_profile(payload: ProfileUpdate, claims: dict = Depends(require_user), db=Depends(get_db)):
    user = find_user(db, claims["sub"])
    if payload.username != user.get("username"):
        taken = db[USERS].find_one(
            {
                "username": {"$regex": f"^{re.escape(payload.username)}$", "$options": "i"},
                "_id": {"$ne": user["_id"]},
            }
        )
        if taken:
            raise ConflictError("Username already exists")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"name": payload.name, "username": payload.username, "phone": payload.phone, "updatedAt": utcnow()}},
    )
    return {"success": True, "message": "Profile updated successfully"}


@router.put("/avatar")
def update_avatar(payload: AvatarUpdate, claims: dict = Depends(require_user), db=Depends(get_db)):
    if not payload.avatarUrl:
        raise ValidationError("Avatar URL is required")
    result = db[USERS].update_one(id_filter(claims["sub"]), {"$set": {"avatar": payload.avatarUrl, "updatedAt": utcnow()}})
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    return {"success": True, "message": "Avatar updated successfully", "avatar": payload.avatarUrl}


# ---------------------------
# Single user routes
# ---------------------------
@router.get("/{user_id}")
def get_user(user_id: str, db=Depends(get_db)):
    return serialize(find_user(db, user_id))


@router.put("/{user_id}")
def update_user(user_id: str, updates: Dict[str, Any] = Body(...), db=Depends(get_db)):
    user = find_user(db, user_id)
    return {"success": True, "user": serialize(apply_user_update(db, user, updates))}


@router.patch("/{user_id}")
def patch_user(user_id: str, updates: Dict[str, Any] = Body(...), db=Depends(get_db)):
    user = find_user(db, user_id)
    updated = apply_user_update(db, user, updates)
    return {"message": "User updated successfully", "user": serialize(updated)}


@router.delete("/{user_id}")
def delete_user(user_id: str, db=Depends(get_db)):
    user = find_user(db, user_id)
    db[USERS].delete_one({"_id": user["_id"]})
    return {"success": True}


@router.post("/{user_id}/permissions")
def set_permissions(user_id: str, payload: PermissionsRequest, db=Depends(get_db)):
    user = find_user(db, user_id)
    apply_user_update(db, user, {"permissions": payload.permissions.model_dump()})
    return {"success": True}
