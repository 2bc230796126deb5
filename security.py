"""Password hashing, JWTs and the bearer-token dependency."""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header
from werkzeug.security import check_password_hash, generate_password_hash

import settings
from errors import AuthError, ValidationError

ACCESS = "access"
REFRESH = "refresh"
RESET = "reset"
EMAIL_VERIFICATION = "email-verification"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return check_password_hash(hashed, password)


def password_strength(password: str) -> Dict[str, bool]:
    checks = {
        "hasMinLength": len(password) >= 8,
        "hasUpperCase": bool(re.search(r"[A-Z]", password)),
        "hasLowerCase": bool(re.search(r"[a-z]", password)),
        "hasNumbers": bool(re.search(r"\d", password)),
        "hasSpecialChar": bool(re.search(r"[!@#$%^&*(),.?\":{}|<>]", password)),
    }
    return {"isStrong": all(checks.values()), **checks}


def create_token(user_id: str, token_type: str = ACCESS, expires_in: Optional[timedelta] = None, **claims: Any) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + (expires_in or timedelta(hours=settings.JWT_EXPIRES_HOURS)),
        **claims,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify a token's signature and expiry.

    Raises:
        AuthError: the token is invalid, expired or of another type
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    if expected_type and claims.get("type") != expected_type:
        raise AuthError("Invalid token type")
    return claims


def require_user(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    """FastAPI dependency: claims of a valid ``Authorization: Bearer`` access token."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")
    return decode_token(authorization[7:], expected_type=ACCESS)


def require_fields(payload: Dict[str, Any], *fields: str) -> None:
    missing = [f for f in fields if not payload.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def check_update_keys(updates: Dict[str, Any]) -> None:
    """Reject keys Mongo would read as a nested path or an operator."""
    bad = [k for k in updates if "." in k or k.startswith("$")]
    if bad:
        raise ValidationError(f"Invalid field names: {', '.join(bad)}")
