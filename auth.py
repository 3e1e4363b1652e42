from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import bcrypt
from pymongo.database import Database

from config import Settings
from errors import Expired, InvalidCredential, Unauthenticated

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # malformed stored hash
        return False


def public_admin(admin: dict) -> dict:
    return {k: v for k, v in admin.items() if k != "password_hash"}


def authenticate(db: Database, email: Optional[str], password: Optional[str]) -> dict:
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    admin = db["admin"].find_one({"email": email})
    if not admin or not verify_password(password, admin.get("password_hash", "")):
        logger.info("admin_login_failed", email=email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    logger.info("admin_login", admin_id=str(admin["_id"]))
    return admin


def issue_token(admin: dict, settings: Settings, now: Optional[datetime] = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "id": str(admin["_id"]),
        "email": admin.get("email"),
        "role": ADMIN_ROLE,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.jwt_ttl_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Expired()
    except jwt.InvalidTokenError:
        raise InvalidCredential()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Guard for admin routes: decoded claims end up on request.state.admin."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    claims = decode_token(credentials.credentials, settings)
    if claims.get("role") != ADMIN_ROLE:
        raise InvalidCredential()
    request.state.admin = claims
    return claims
