from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, utcnow
from helpers import objid, reject_unowned, to_str_id
from pipelines import order_by_ids, paginate, parse_sort, playlist_stages, videos_by_ids_pipeline, visible_to
from schemas import Playlist
from security import get_current_user, get_optional_user, viewer_id

router = APIRouter(prefix="/playlists", tags=["playlists"])


class PlaylistRequest(BaseModel):
    name: str
    description: str = ""


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.post("", status_code=201)
def create_playlist(
    payload: PlaylistRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    playlist = create_document(
        db,
        "playlist",
        Playlist(owner=user["_id"], name=payload.name.strip(), description=payload.description.strip()),
    )
    return to_str_id(playlist)


@router.get("/user/{user_id}")
def list_user_playlists(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_type: str = "desc",
    db: Database = Depends(get_db),
):
    uid = objid(user_id, "user id")
    if not db["user"].count_documents({"_id": uid}):
        raise HTTPException(status_code=404, detail="User not found")
    sort = parse_sort("playlist", sort_by, sort_type)
    return paginate(db["playlist"], {"owner": uid}, playlist_stages(), page, limit, sort)


@router.get("/{playlist_id}")
def get_playlist(
    playlist_id: str,
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    pid = objid(playlist_id, "playlist id")
    found = list(db["playlist"].aggregate([{"$match": {"_id": pid}}] + playlist_stages()))
    if not found:
        raise HTTPException(status_code=404, detail="Playlist not found")
    playlist = found[0]
    video_ids = playlist.pop("videos", [])
    videos = []
    if video_ids:
        videos = list(db["video"].aggregate(videos_by_ids_pipeline(video_ids, viewer_id(user))))
    playlist["videos"] = order_by_ids(videos, video_ids)
    return to_str_id(playlist)


@router.patch("/{playlist_id}")
def update_playlist(
    playlist_id: str,
    payload: PlaylistUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    pid = objid(playlist_id, "playlist id")
    changes = {}
    if payload.name is not None:
        if not payload.name.strip():
            raise HTTPException(status_code=400, detail="Name cannot be empty")
        changes["name"] = payload.name.strip()
    if payload.description is not None:
        changes["description"] = payload.description.strip()
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    changes["updated_at"] = utcnow()
    updated = db["playlist"].find_one_and_update(
        {"_id": pid, "owner": user["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        reject_unowned(db["playlist"], pid, "playlist")
    return to_str_id(updated)


@router.delete("/{playlist_id}")
def delete_playlist(
    playlist_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    pid = objid(playlist_id, "playlist id")
    deleted = db["playlist"].find_one_and_delete({"_id": pid, "owner": user["_id"]})
    if deleted is None:
        reject_unowned(db["playlist"], pid, "playlist")
    return {"message": "Playlist deleted", "id": str(pid)}


@router.patch("/add/{video_id}/{playlist_id}")
def add_video(
    video_id: str,
    playlist_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    pid = objid(playlist_id, "playlist id")
    if not db["video"].count_documents({"_id": vid, **visible_to(user["_id"])}):
        raise HTTPException(status_code=404, detail="Video not found")
    updated = db["playlist"].find_one_and_update(
        {"_id": pid, "owner": user["_id"], "videos": {"$ne": vid}},
        {"$push": {"videos": vid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db["playlist"].count_documents({"_id": pid, "owner": user["_id"]}):
            raise HTTPException(status_code=409, detail="Video is already in the playlist")
        reject_unowned(db["playlist"], pid, "playlist")
    return to_str_id(updated)


@router.patch("/remove/{video_id}/{playlist_id}")
def remove_video(
    video_id: str,
    playlist_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    pid = objid(playlist_id, "playlist id")
    updated = db["playlist"].find_one_and_update(
        {"_id": pid, "owner": user["_id"], "videos": vid},
        {"$pull": {"videos": vid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db["playlist"].count_documents({"_id": pid, "owner": user["_id"]}):
            raise HTTPException(status_code=404, detail="Video is not in the playlist")
        reject_unowned(db["playlist"], pid, "playlist")
    return to_str_id(updated)
