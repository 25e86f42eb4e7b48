from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from database import create_document, get_db
from helpers import objid, to_str_id
from pipelines import liked_videos_pipeline, visible_to
from schemas import Like
from security import get_current_user

router = APIRouter(prefix="/likes", tags=["likes"])


def toggle_like(db: Database, target_field: str, target_id: str, user: dict) -> dict:
    """Remove the (user, target) like if it exists, otherwise add it."""
    tid = objid(target_id, f"{target_field} id")
    target = {"_id": tid}
    if target_field == "video":
        target.update(visible_to(user["_id"]))
    if not db[target_field].count_documents(target):
        raise HTTPException(status_code=404, detail=f"{target_field.capitalize()} not found")

    result = db["like"].delete_one({target_field: tid, "liked_by": user["_id"]})
    if result.deleted_count:
        status, is_liked = "removed", False
    else:
        create_document(db, "like", Like(liked_by=user["_id"], **{target_field: tid}))
        status, is_liked = "added", True
    return {
        "status": status,
        "is_liked": is_liked,
        "likes_count": db["like"].count_documents({target_field: tid}),
    }


@router.post("/v/{video_id}")
def toggle_video_like(video_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return toggle_like(db, "video", video_id, user)


@router.post("/c/{comment_id}")
def toggle_comment_like(comment_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return toggle_like(db, "comment", comment_id, user)


@router.post("/p/{post_id}")
def toggle_post_like(post_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return toggle_like(db, "post", post_id, user)


@router.get("/videos")
def liked_videos(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return to_str_id(list(db["like"].aggregate(liked_videos_pipeline(user["_id"]))))
