import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, Response, UploadFile
from pydantic import BaseModel, EmailStr, ValidationError
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import create_document, get_db, utcnow
from helpers import public_user, to_str_id
from media import IMAGE_TYPES, LocalMediaStorage, check_content_type, get_storage
from pipelines import channel_profile_pipeline, order_by_ids, videos_by_ids_pipeline
from schemas import User
from security import (
    REFRESH_COOKIE,
    clear_auth_cookies,
    get_current_user,
    get_optional_user,
    hash_password,
    issue_tokens,
    rotate_tokens,
    set_auth_cookies,
    verify_password,
    viewer_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


# -------------------- Models --------------------
class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: str


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    old_password: str
    new_password: str


class DetailsUpdateRequest(BaseModel):
    email: EmailStr
    full_name: str


# -------------------- Registration & sessions --------------------
@router.post("/register", status_code=201)
async def register(
    full_name: str = Form(...),
    email: str = Form(...),
    username: str = Form(...),
    password: str = Form(...),
    avatar: UploadFile = File(...),
    cover_image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    if not all(v.strip() for v in (full_name, email, username, password)):
        raise HTTPException(status_code=400, detail="Full name, email, username and password are required")
    try:
        # validate before anything is uploaded
        User(username=username, email=email, full_name=full_name.strip())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])

    username = username.strip().lower()
    email = email.strip().lower()
    if db["user"].find_one({"$or": [{"email": email}, {"username": username}]}):
        raise HTTPException(status_code=409, detail="Username or email already in use")

    check_content_type(avatar, IMAGE_TYPES, "Avatar")
    if cover_image is not None:
        check_content_type(cover_image, IMAGE_TYPES, "Cover image")

    stored = [await storage.save(avatar, "avatars")]
    if cover_image is not None:
        stored.append(await storage.save(cover_image, "covers"))

    user_doc = User(
        username=username,
        email=email,
        full_name=full_name.strip(),
        password_hash=hash_password(password),
        avatar_url=stored[0].url,
        cover_image_url=stored[1].url if len(stored) > 1 else None,
    )
    try:
        user = create_document(db, "user", user_doc)
    except PyMongoError as e:
        for media in stored:
            storage.delete(media.url)
        if isinstance(e, DuplicateKeyError):
            raise HTTPException(status_code=409, detail="Username or email already in use")
        raise
    logger.info("Registered user %s", user["_id"])
    return public_user(user)


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    if not payload.username and not payload.email:
        raise HTTPException(status_code=400, detail="Username or email is required")
    query = {"username": payload.username.lower()} if payload.username else {"email": payload.email.lower()}
    user = db["user"].find_one(query)
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    access_token, refresh_token = issue_tokens(db, user)
    set_auth_cookies(response, access_token, refresh_token)
    return {"user": public_user(user), "access_token": access_token, "refresh_token": refresh_token}


@router.post("/logout")
def logout(response: Response, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"refresh_token": None, "updated_at": utcnow()}})
    clear_auth_cookies(response)
    return {"message": "Logged out"}


@router.post("/refresh-token")
def refresh_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(None),
    db: Database = Depends(get_db),
):
    incoming = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    access_token, new_refresh_token = rotate_tokens(db, incoming)
    set_auth_cookies(response, access_token, new_refresh_token)
    return {"access_token": access_token, "refresh_token": new_refresh_token}


# -------------------- Account --------------------
@router.post("/password")
def change_password(
    payload: PasswordChangeRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not verify_password(payload.old_password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Incorrect old password")
    if not payload.new_password.strip():
        raise HTTPException(status_code=400, detail="New password cannot be empty")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    return {"message": "Password updated"}


@router.get("/current-user")
def current_user(user: dict = Depends(get_current_user)):
    return public_user(user)


@router.patch("/details")
def update_details(
    payload: DetailsUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.full_name.strip():
        raise HTTPException(status_code=400, detail="Full name cannot be empty")
    try:
        updated = db["user"].find_one_and_update(
            {"_id": user["_id"]},
            {"$set": {"email": payload.email.lower(), "full_name": payload.full_name.strip(), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already in use")
    return public_user(updated)


async def _replace_image(field: str, folder: str, upload: UploadFile, user: dict, db: Database, storage: LocalMediaStorage):
    check_content_type(upload, IMAGE_TYPES, "Image")
    new_media = await storage.save(upload, folder)
    try:
        updated = db["user"].find_one_and_update(
            {"_id": user["_id"]},
            {"$set": {field: new_media.url, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError:
        storage.delete(new_media.url)
        raise
    storage.delete(user.get(field))
    return public_user(updated)


@router.patch("/avatar")
async def update_avatar(
    avatar: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    return await _replace_image("avatar_url", "avatars", avatar, user, db, storage)


@router.patch("/cover-image")
async def update_cover_image(
    cover_image: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    return await _replace_image("cover_image_url", "covers", cover_image, user, db, storage)


# -------------------- Channel views --------------------
@router.get("/c/{username}")
def channel_profile(
    username: str,
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    if not username.strip():
        raise HTTPException(status_code=400, detail="Username is missing")
    channel = list(db["user"].aggregate(channel_profile_pipeline(username, viewer_id(user))))
    if not channel:
        raise HTTPException(status_code=404, detail="Channel does not exist")
    return to_str_id(channel[0])


@router.get("/history")
def watch_history(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    # most recently added first
    history = list(reversed(user.get("watch_history") or []))
    if not history:
        return []
    videos = list(db["video"].aggregate(videos_by_ids_pipeline(history, user["_id"])))
    return to_str_id(order_by_ids(videos, history))
