"""
Passwords, tokens and the acting-user dependencies.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from bson import ObjectId
from fastapi import Depends, HTTPException, Request, Response
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import settings
from database import get_db, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(user: dict) -> str:
    claims = {
        "sub": str(user["_id"]),
        "username": user["username"],
        "email": user["email"],
        "type": "access",
        "exp": utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(claims, settings.ACCESS_TOKEN_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user: dict) -> str:
    claims = {
        "sub": str(user["_id"]),
        "type": "refresh",
        # jti keeps two refresh tokens issued in the same second distinct
        "jti": str(ObjectId()),
        "exp": utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(claims, settings.REFRESH_TOKEN_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, secret: str, token_type: str) -> ObjectId:
    """Return the user id carried by a valid token, or raise 401."""
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    sub = claims.get("sub")
    if claims.get("type") != token_type or not sub or not ObjectId.is_valid(sub):
        raise HTTPException(status_code=401, detail="Invalid token")
    return ObjectId(sub)


def issue_tokens(database: Database, user: dict) -> Tuple[str, str]:
    """Create a new token pair; the refresh token replaces any previous one."""
    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"refresh_token": refresh_token, "updated_at": utcnow()}},
    )
    return access_token, refresh_token


def rotate_tokens(database: Database, incoming: Optional[str]) -> Tuple[str, str]:
    if not incoming:
        raise HTTPException(status_code=401, detail="Refresh token is missing")
    user_id = decode_token(incoming, settings.REFRESH_TOKEN_SECRET, "refresh")
    user = database["user"].find_one({"_id": user_id})
    if not user or user.get("refresh_token") != incoming:
        raise HTTPException(status_code=401, detail="Refresh token is expired or used")
    return issue_tokens(database, user)


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    for name, value in ((ACCESS_COOKIE, access_token), (REFRESH_COOKIE, refresh_token)):
        response.set_cookie(name, value, httponly=True, secure=settings.COOKIE_SECURE, samesite="lax")


def clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, httponly=True, secure=settings.COOKIE_SECURE, samesite="lax")


def _access_token_from(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if header and header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(ACCESS_COOKIE)


def get_optional_user(request: Request, database: Database = Depends(get_db)) -> Optional[dict]:
    """The authenticated user, or None for anonymous requests.

    A token that is present but invalid is still rejected.
    """
    token = _access_token_from(request)
    if not token:
        return None
    user_id = decode_token(token, settings.ACCESS_TOKEN_SECRET, "access")
    user = database["user"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid access token")
    return user


def get_current_user(user: Optional[dict] = Depends(get_optional_user)) -> dict:
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized request")
    return user


def viewer_id(user: Optional[dict]) -> Optional[ObjectId]:
    return user["_id"] if user else None
