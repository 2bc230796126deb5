import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

import settings
from database import get_db, serialize, utcnow
from errors import AuthError, NotFoundError, NotificationError, ValidationError
from notifications import NotificationSender, get_sender
from permissions import effective_permissions, is_administrator
from routers.users import USERS, create_user, ensure_email_free, find_user
from schemas import (
    CheckTokenRequest,
    EmailRequest,
    LoginRequest,
    PasswordRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenRequest,
)
from security import (
    EMAIL_VERIFICATION,
    REFRESH,
    RESET,
    check_update_keys,
    create_token,
    decode_token,
    hash_password,
    password_strength,
    require_user,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

RESET_TOKENS = "passwordResetTokens"
VERIFICATION_TOKENS = "emailVerificationTokens"

RESET_TTL = timedelta(hours=1)
VERIFICATION_TTL = timedelta(hours=24)

# The only fields a user may change on their own account
PROFILE_FIELDS = ("name", "email", "username", "phone", "avatar")


def _public_user(user: dict) -> dict:
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email"), "role": user.get("role")}


def _issue_tokens(user: dict) -> dict:
    user_id = str(user["_id"])
    return {
        "token": create_token(user_id, role=user.get("role")),
        "refreshToken": create_token(
            user_id, REFRESH, expires_in=timedelta(days=settings.REFRESH_EXPIRES_DAYS), role=user.get("role")
        ),
    }


def _store_token(db, collection: str, user: dict, token_type: str, ttl: timedelta) -> str:
    token = create_token(str(user["_id"]), token_type, expires_in=ttl)
    now = utcnow()
    db[collection].insert_one({"userId": user["_id"], "token": token, "createdAt": now, "expiresAt": now + ttl})
    return token


def _find_stored_token(db, collection: str, token: str, token_type: str) -> dict:
    try:
        claims = decode_token(token, expected_type=token_type)
    except AuthError as e:
        raise ValidationError(e.message)
    stored = db[collection].find_one({"token": token, "expiresAt": {"$gt": utcnow()}})
    if not stored or str(stored["userId"]) != claims["sub"]:
        raise ValidationError("Invalid or expired token")
    return stored


def _notify(sender: NotificationSender, to: str, subject: str, text: str, html: str) -> None:
    # Delivery problems are logged; the account operation itself already succeeded
    try:
        sender.send_email(to, subject, text, html)
    except NotificationError:
        logger.exception("Could not send %r to %s", subject, to)


def send_verification_email(db, sender: NotificationSender, user: dict, email: str) -> None:
    token = _store_token(db, VERIFICATION_TOKENS, user, EMAIL_VERIFICATION, VERIFICATION_TTL)
    url = f"{settings.APP_URL}/verify-email?token={token}"
    _notify(
        sender,
        email,
        "Verify Your Email",
        f"Click the following link to verify your email: {url}",
        f'<h1>Verify Your Email</h1><p><a href="{url}">Verify Email</a></p><p>This link will expire in 24 hours.</p>',
    )


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, db=Depends(get_db)):
    if not payload.name or not payload.email or not payload.password:
        raise ValidationError("Name, email, and password are required")
    user = create_user(db, payload.name, payload.email, payload.password)
    return {"user": _public_user(user), **_issue_tokens(user)}


@router.post("/login")
def login(payload: LoginRequest, db=Depends(get_db)):
    user = db[USERS].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password")):
        raise AuthError("Invalid email or password")
    return {"user": _public_user(user), **_issue_tokens(user)}


@router.post("/refresh")
def refresh(payload: RefreshRequest, db=Depends(get_db)):
    claims = decode_token(payload.refreshToken, expected_type=REFRESH)
    user = find_user(db, claims["sub"])
    tokens = _issue_tokens(user)
    return {"accessToken": tokens["token"], "refreshToken": tokens["refreshToken"], "user": _public_user(user)}


@router.post("/forgot-password")
def forgot_password(payload: EmailRequest, db=Depends(get_db), sender: NotificationSender = Depends(get_sender)):
    user = db[USERS].find_one({"email": payload.email})
    # Same answer for unknown addresses so accounts can't be enumerated
    if user:
        token = _store_token(db, RESET_TOKENS, user, RESET, RESET_TTL)
        url = f"{settings.APP_URL}/reset-password?token={token}"
        _notify(
            sender,
            payload.email,
            "Password Reset Request",
            f"Click the following link to reset your password: {url}",
            f'<h1>Password Reset Request</h1><p><a href="{url}">Reset Password</a></p><p>This link will expire in 1 hour.</p>',
        )
    return {"success": True}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db=Depends(get_db)):
    stored = _find_stored_token(db, RESET_TOKENS, payload.token, RESET)
    result = db[USERS].update_one(
        {"_id": stored["userId"]},
        {"$set": {"password": hash_password(payload.password), "updatedAt": utcnow()}},
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    db[RESET_TOKENS].delete_one({"_id": stored["_id"]})
    return {"message": "Password reset successfully"}


@router.post("/verify-email")
def verify_email(payload: TokenRequest, db=Depends(get_db)):
    stored = _find_stored_token(db, VERIFICATION_TOKENS, payload.token, EMAIL_VERIFICATION)
    db[USERS].update_one({"_id": stored["userId"]}, {"$set": {"emailVerified": True, "updatedAt": utcnow()}})
    db[VERIFICATION_TOKENS].delete_one({"_id": stored["_id"]})
    return {"success": True}


@router.post("/resend-verification")
def resend_verification(payload: EmailRequest, db=Depends(get_db), sender: NotificationSender = Depends(get_sender)):
    user = db[USERS].find_one({"email": payload.email})
    if not user:
        return {"success": True}
    if user.get("emailVerified"):
        raise ValidationError("Email is already verified")
    send_verification_email(db, sender, user, payload.email)
    return {"success": True}


@router.post("/check-email")
def check_email(payload: EmailRequest):
    # Never reveals whether the address is registered
    return {"success": True}


@router.post("/check-password")
def check_password(payload: PasswordRequest):
    return password_strength(payload.password)


@router.post("/check-token")
def check_token(payload: CheckTokenRequest, db=Depends(get_db)):
    if payload.type == "password-reset":
        _find_stored_token(db, RESET_TOKENS, payload.token, RESET)
    else:
        _find_stored_token(db, VERIFICATION_TOKENS, payload.token, EMAIL_VERIFICATION)
    return {"valid": True}


@router.get("/check-session")
def check_session(claims: dict = Depends(require_user), db=Depends(get_db)):
    user = find_user(db, claims["sub"])
    return {"user": serialize(user), "role": user.get("role")}


@router.get("/check-role")
def check_role(claims: dict = Depends(require_user), db=Depends(get_db)):
    role = find_user(db, claims["sub"]).get("role")
    return {"role": role, "isAdmin": is_administrator(role)}


@router.get("/check-permissions")
def check_permissions(claims: dict = Depends(require_user), db=Depends(get_db)):
    user = find_user(db, claims["sub"])
    return {"permissions": effective_permissions(user.get("role"), user.get("permissions")), "role": user.get("role")}


@router.post("/logout")
def logout():
    # Tokens are stateless; the client drops them
    return {"success": True}


@router.put("/update-profile")
def update_own_profile(
    updates: Dict[str, Any] = Body(...),
    claims: dict = Depends(require_user),
    db=Depends(get_db),
    sender: NotificationSender = Depends(get_sender),
):
    user = find_user(db, claims["sub"])
    check_update_keys(updates)
    changes = {k: v for k, v in updates.items() if k in PROFILE_FIELDS}
    new_email = changes.get("email")
    if new_email:
        ensure_email_free(db, new_email, exclude_id=user["_id"])
        changes["emailVerified"] = False
    changes["updatedAt"] = utcnow()
    db[USERS].update_one({"_id": user["_id"]}, {"$set": changes})
    if new_email:
        send_verification_email(db, sender, user, new_email)
    return {"success": True, "user": serialize(find_user(db, claims["sub"]))}


@router.delete("/delete-account")
def delete_account(payload: PasswordRequest, claims: dict = Depends(require_user), db=Depends(get_db)):
    user = find_user(db, claims["sub"])
    if not verify_password(payload.password, user.get("password")):
        raise ValidationError("Invalid password")
    db[USERS].delete_one({"_id": user["_id"]})
    db[RESET_TOKENS].delete_many({"userId": user["_id"]})
    db[VERIFICATION_TOKENS].delete_many({"userId": user["_id"]})
    db["reminders"].delete_many({"userId": str(user["_id"])})
    db["favorites"].delete_many({"userId": str(user["_id"])})
    logger.info("Deleted account %s", user["_id"])
    return {"success": True}
