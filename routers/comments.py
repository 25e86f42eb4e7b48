from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, utcnow
from helpers import objid, reject_unowned, to_str_id
from pipelines import comment_thread_stages, paginate, parse_sort, visible_to
from schemas import Comment
from security import get_current_user, get_optional_user, viewer_id

router = APIRouter(prefix="/comments", tags=["comments"])


class CommentRequest(BaseModel):
    content: str


def _content(payload: CommentRequest) -> str:
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content cannot be empty")
    return content


@router.get("/{video_id}")
def list_comments(
    video_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_type: str = "desc",
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    viewer = viewer_id(user)
    if not db["video"].count_documents({"_id": vid, **visible_to(viewer)}):
        raise HTTPException(status_code=404, detail="Video not found")
    sort = parse_sort("comment", "created_at", sort_type)
    return paginate(db["comment"], {"video": vid}, comment_thread_stages(viewer), page, limit, sort)


@router.post("/{video_id}", status_code=201)
def add_comment(
    video_id: str,
    payload: CommentRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    content = _content(payload)
    if not db["video"].count_documents({"_id": vid, **visible_to(user["_id"])}):
        raise HTTPException(status_code=404, detail="Video not found")
    comment = create_document(db, "comment", Comment(owner=user["_id"], video=vid, content=content))
    return to_str_id(comment)


@router.patch("/c/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cid = objid(comment_id, "comment id")
    content = _content(payload)
    updated = db["comment"].find_one_and_update(
        {"_id": cid, "owner": user["_id"]},
        {"$set": {"content": content, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        reject_unowned(db["comment"], cid, "comment")
    return to_str_id(updated)


@router.delete("/c/{comment_id}")
def delete_comment(
    comment_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cid = objid(comment_id, "comment id")
    deleted = db["comment"].find_one_and_delete({"_id": cid, "owner": user["_id"]})
    if deleted is None:
        reject_unowned(db["comment"], cid, "comment")
    db["like"].delete_many({"comment": cid})
    return {"message": "Comment deleted", "id": str(cid)}
