"""
Google sign-in

The provider handles authentication; we only exchange the authorization code
for the user's profile and map it onto a local user.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.database import Database

from config import settings
from database import create_document, utcnow
from schemas import User

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


def authorization_url(state: Optional[str] = None) -> str:
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_AUTH_REDIRECT,
        "response_type": "code",
        "scope": "openid profile email",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def fetch_profile(code: str) -> dict:
    """Exchange an authorization code for the provider's user profile."""
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            token_resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.GOOGLE_CLIENT_ID,
                    "client_secret": settings.GOOGLE_CLIENT_SECRET,
                    "redirect_uri": settings.GOOGLE_AUTH_REDIRECT,
                    "grant_type": "authorization_code",
                },
            )
            if token_resp.status_code != 200:
                logger.warning("Google token exchange failed: %s", token_resp.text[:200])
                raise HTTPException(status_code=401, detail="Google authentication failed")
            access_token = token_resp.json().get("access_token")
            info_resp = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
    except httpx.HTTPError as e:
        logger.error("Google sign-in request failed: %s", e)
        raise HTTPException(status_code=502, detail="Identity provider unavailable")
    if info_resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Google authentication failed")
    return info_resp.json()


def derive_username(database: Database, email: str) -> str:
    base = re.sub(r"[^a-z0-9_.]", "", email.split("@")[0].lower())[:24]
    if len(base) < 3:
        base = (base + "user")[:24]
    username = base
    n = 1
    while database["user"].count_documents({"username": username}):
        n += 1
        username = f"{base}{n}"
    return username


def provision_user(database: Database, profile: dict) -> dict:
    """Resolve the local user for a provider profile, creating it on first login.

    Lookup order: provider id, then an existing account with the same email
    (linked only when the provider has verified that email), then a new account.
    """
    google_id = profile.get("sub")
    email = (profile.get("email") or "").lower()
    if not google_id or not email:
        raise HTTPException(status_code=401, detail="Google profile is missing id or email")

    user = database["user"].find_one({"google_id": google_id})
    if user:
        return user

    if profile.get("email_verified"):
        user = database["user"].find_one_and_update(
            {"email": email},
            {"$set": {"google_id": google_id, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if user:
            logger.info("Linked Google account to existing user %s", user["_id"])
            return user
    elif database["user"].count_documents({"email": email}):
        logger.warning("Refused to link unverified Google email to an existing account")
        raise HTTPException(status_code=401, detail="Google email is not verified")

    new_user = User(
        username=derive_username(database, email),
        email=email,
        full_name=profile.get("name") or email.split("@")[0],
        avatar_url=profile.get("picture"),
        google_id=google_id,
    )
    user = create_document(database, "user", new_user)
    logger.info("Provisioned user %s from Google sign-in", user["_id"])
    return user
