from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from database import create_document, get_db
from helpers import objid
from pipelines import channel_list_stages, paginate, parse_sort
from schemas import Subscription
from security import get_current_user, get_optional_user, viewer_id

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _require_user(db: Database, user_id, label: str) -> None:
    if not db["user"].count_documents({"_id": user_id}):
        raise HTTPException(status_code=404, detail=f"{label} not found")


def _live_edges(db: Database, match: dict, user_field: str) -> dict:
    """Narrow `match` to edges whose `user_field` still points at an existing user."""
    ids = db["subscription"].distinct(user_field, match)
    live = db["user"].distinct("_id", {"_id": {"$in": ids}})
    return {**match, user_field: {"$in": live}}


@router.post("/c/{channel_id}")
def toggle_subscription(
    channel_id: str,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cid = objid(channel_id, "channel id")
    if cid == user["_id"]:
        raise HTTPException(status_code=400, detail="Cannot subscribe to yourself")
    _require_user(db, cid, "Channel")

    result = db["subscription"].delete_one({"subscriber": user["_id"], "channel": cid})
    if result.deleted_count:
        status, is_subscribed = "removed", False
    else:
        create_document(db, "subscription", Subscription(subscriber=user["_id"], channel=cid))
        status, is_subscribed = "added", True
    return {
        "status": status,
        "is_subscribed": is_subscribed,
        "subscribers_count": db["subscription"].count_documents({"channel": cid}),
    }


@router.get("/c/{channel_id}")
def channel_subscribers(
    channel_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    cid = objid(channel_id, "channel id")
    _require_user(db, cid, "Channel")
    sort = parse_sort("subscription", "created_at", "desc")
    stages = channel_list_stages("subscriber", viewer_id(user))
    match = _live_edges(db, {"channel": cid}, "subscriber")
    return paginate(db["subscription"], match, stages, page, limit, sort)


@router.get("/u/{subscriber_id}")
def subscribed_channels(
    subscriber_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    sid = objid(subscriber_id, "subscriber id")
    _require_user(db, sid, "Subscriber")
    sort = parse_sort("subscription", "created_at", "desc")
    stages = channel_list_stages("channel", viewer_id(user))
    match = _live_edges(db, {"subscriber": sid}, "channel")
    return paginate(db["subscription"], match, stages, page, limit, sort)
