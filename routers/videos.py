import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_db, utcnow
from helpers import objid, reject_unowned, to_str_id
from media import IMAGE_TYPES, VIDEO_TYPES, LocalMediaStorage, MediaStorageError, check_content_type, get_storage
from pipelines import (
    paginate,
    parse_sort,
    search_match,
    video_detail_pipeline,
    video_feed_stages,
    visible_to,
)
from schemas import Video
from security import get_current_user, get_optional_user, viewer_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


# -------------------- Listing & search --------------------
@router.get("")
def list_videos(
    owner: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_type: str = "desc",
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    sort = parse_sort("video", sort_by, sort_type)
    viewer = viewer_id(user)
    match = dict(visible_to(viewer))
    if owner:
        match["owner"] = objid(owner, "owner id")
    return paginate(db["video"], match, video_feed_stages(viewer), page, limit, sort)


@router.get("/search")
def search_videos(
    query: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "views_count",
    sort_type: str = "desc",
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    match = search_match(query)
    sort = parse_sort("video", sort_by, sort_type)
    return paginate(db["video"], match, video_feed_stages(viewer_id(user)), page, limit, sort)


# -------------------- Publishing --------------------
@router.post("", status_code=201)
async def publish_video(
    title: str = Form(...),
    description: str = Form(""),
    video_file: UploadFile = File(...),
    thumbnail: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    check_content_type(video_file, VIDEO_TYPES, "Video file")
    check_content_type(thumbnail, IMAGE_TYPES, "Thumbnail")

    video_media = await storage.save(video_file, "videos", probe=True)
    try:
        thumb_media = await storage.save(thumbnail, "thumbnails")
    except MediaStorageError:
        storage.delete(video_media.url)
        raise

    video_doc = Video(
        owner=user["_id"],
        video_url=video_media.url,
        thumbnail_url=thumb_media.url,
        title=title.strip(),
        description=description.strip(),
        duration=round(video_media.duration, 3),
    )
    try:
        video = create_document(db, "video", video_doc)
    except PyMongoError:
        storage.delete(video_media.url)
        storage.delete(thumb_media.url)
        raise
    logger.info("User %s published video %s", user["_id"], video["_id"])
    return to_str_id(video)


# -------------------- Single video --------------------
@router.get("/{video_id}")
def get_video(
    video_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    found = list(db["video"].aggregate(video_detail_pipeline(vid, user["_id"])))
    if not found:
        raise HTTPException(status_code=404, detail="Video not found")
    video = found[0]

    # Counter and history are recorded independently; neither undoes the other.
    failed = False
    try:
        db["video"].update_one({"_id": vid}, {"$inc": {"views_count": 1}})
        video["views_count"] = video.get("views_count", 0) + 1
    except PyMongoError:
        logger.exception("Failed to increment views for video %s", vid)
        failed = True
    try:
        db["user"].update_one({"_id": user["_id"]}, {"$addToSet": {"watch_history": vid}})
    except PyMongoError:
        logger.exception("Failed to add video %s to watch history of %s", vid, user["_id"])
        failed = True
    if failed:
        raise HTTPException(status_code=500, detail="Could not record the view")
    return to_str_id(video)


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    vid = objid(video_id, "video id")
    if title is None and description is None and thumbnail is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    changes = {}
    if title is not None:
        if not title.strip():
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        changes["title"] = title.strip()
    if description is not None:
        changes["description"] = description.strip()
    new_thumb = None
    if thumbnail is not None:
        check_content_type(thumbnail, IMAGE_TYPES, "Thumbnail")
        new_thumb = await storage.save(thumbnail, "thumbnails")
        changes["thumbnail_url"] = new_thumb.url
    changes["updated_at"] = utcnow()

    try:
        before = db["video"].find_one_and_update(
            {"_id": vid, "owner": user["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.BEFORE,
        )
    except PyMongoError:
        if new_thumb:
            storage.delete(new_thumb.url)
        raise
    if before is None:
        if new_thumb:
            storage.delete(new_thumb.url)
        reject_unowned(db["video"], vid, "video")
    if new_thumb:
        storage.delete(before.get("thumbnail_url"))
    return to_str_id({**before, **changes})


@router.delete("/{video_id}")
def delete_video(
    video_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    storage: LocalMediaStorage = Depends(get_storage),
):
    vid = objid(video_id, "video id")
    video = db["video"].find_one_and_delete({"_id": vid, "owner": user["_id"]})
    if video is None:
        reject_unowned(db["video"], vid, "video")

    comment_ids = [c["_id"] for c in db["comment"].find({"video": vid}, {"_id": 1})]
    db["like"].delete_many({"$or": [{"video": vid}, {"comment": {"$in": comment_ids}}]})
    db["comment"].delete_many({"video": vid})
    db["playlist"].update_many({"videos": vid}, {"$pull": {"videos": vid}})
    db["user"].update_many({"watch_history": vid}, {"$pull": {"watch_history": vid}})

    storage.delete(video.get("video_url"))
    storage.delete(video.get("thumbnail_url"))
    logger.info("User %s deleted video %s", user["_id"], vid)
    return {"message": "Video deleted", "id": str(vid)}


@router.patch("/{video_id}/toggle-publish")
def toggle_publish(
    video_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    # Flip from whichever state matches; missing both means absent or not owned.
    updated = None
    for current in (True, False):
        updated = db["video"].find_one_and_update(
            {"_id": vid, "owner": user["_id"], "is_published": current},
            {"$set": {"is_published": not current, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            break
    if updated is None:
        reject_unowned(db["video"], vid, "video")
    return {"id": str(vid), "is_published": updated["is_published"]}
