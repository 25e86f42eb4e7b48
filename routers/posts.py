from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, utcnow
from helpers import objid, reject_unowned, to_str_id
from pipelines import paginate, parse_sort, post_feed_stages
from schemas import Post
from security import get_current_user, get_optional_user, viewer_id

router = APIRouter(prefix="/posts", tags=["posts"])


class PostRequest(BaseModel):
    content: str


def _content(payload: PostRequest) -> str:
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content cannot be empty")
    return content


@router.post("", status_code=201)
def create_post(
    payload: PostRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = create_document(db, "post", Post(owner=user["_id"], content=_content(payload)))
    return to_str_id(post)


@router.get("/user/{user_id}")
def list_user_posts(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_type: str = "desc",
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    uid = objid(user_id, "user id")
    if not db["user"].count_documents({"_id": uid}):
        raise HTTPException(status_code=404, detail="User not found")
    sort = parse_sort("post", "created_at", sort_type)
    return paginate(db["post"], {"owner": uid}, post_feed_stages(viewer_id(user)), page, limit, sort)


@router.patch("/{post_id}")
def update_post(
    post_id: str,
    payload: PostRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    pid = objid(post_id, "post id")
    content = _content(payload)
    updated = db["post"].find_one_and_update(
        {"_id": pid, "owner": user["_id"]},
        {"$set": {"content": content, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        reject_unowned(db["post"], pid, "post")
    return to_str_id(updated)


@router.delete("/{post_id}")
def delete_post(
    post_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    pid = objid(post_id, "post id")
    deleted = db["post"].find_one_and_delete({"_id": pid, "owner": user["_id"]})
    if deleted is None:
        reject_unowned(db["post"], pid, "post")
    db["like"].delete_many({"post": pid})
    return {"message": "Post deleted", "id": str(pid)}
