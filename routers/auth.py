from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from pymongo.database import Database

from config import settings
from database import get_db
from oauth import authorization_url, fetch_profile, provision_user
from security import issue_tokens, set_auth_cookies

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/google")
def google_login():
    if not settings.GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=501, detail="Google sign-in is not configured")
    return RedirectResponse(authorization_url())


@router.get("/google/callback")
async def google_callback(code: str = "", error: str = "", db: Database = Depends(get_db)):
    if error or not code:
        raise HTTPException(status_code=401, detail="Google authentication failed")
    profile = await fetch_profile(code)
    user = provision_user(db, profile)
    access_token, refresh_token = issue_tokens(db, user)
    response = RedirectResponse("/api/v1/users/current-user", status_code=302)
    set_auth_cookies(response, access_token, refresh_token)
    return response
