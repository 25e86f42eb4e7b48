"""
Aggregation pipelines for the read side.

Every feed or profile is produced by one aggregation per view: join the
owner's public fields, fold related edge documents (likes, subscriptions)
into counts and viewer-relative flags, then project an allow-list of fields.

Builders here return plain lists of stages so they can be inspected and
combined; `paginate` is the only function that talks to the database.
"""

import math
import re
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo.collection import Collection

from helpers import to_str_id

OWNER_FIELDS = ("username", "full_name", "avatar_url")

VIDEO_FIELDS = (
    "title",
    "description",
    "video_url",
    "thumbnail_url",
    "duration",
    "views_count",
    "is_published",
    "created_at",
)

SORT_FIELDS = {
    "video": ("views_count", "duration", "created_at"),
    "comment": ("created_at",),
    "post": ("created_at",),
    "playlist": ("created_at", "name"),
    "subscription": ("created_at",),
}
SORT_DIRECTIONS = {"asc": 1, "desc": -1}
MAX_PAGE_SIZE = 100


# -------------------- Sorting & pagination --------------------

def parse_sort(entity: str, sort_by: str, sort_type: str) -> Dict[str, int]:
    allowed = SORT_FIELDS[entity]
    if sort_by not in allowed:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of: {', '.join(allowed)}")
    if sort_type not in SORT_DIRECTIONS:
        raise HTTPException(status_code=400, detail="sort_type must be 'asc' or 'desc'")
    direction = SORT_DIRECTIONS[sort_type]
    # _id breaks ties so pages never overlap
    return {sort_by: direction, "_id": direction}


def page_result(docs: list, total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "docs": to_str_id(docs),
        "total_docs": total,
        "limit": limit,
        "page": page,
        "total_pages": total_pages,
        "has_prev_page": page > 1,
        "has_next_page": page < total_pages,
    }


def paginate(
    collection: Collection,
    match: dict,
    view_stages: List[dict],
    page: int,
    limit: int,
    sort: Dict[str, int],
) -> dict:
    """Run `view_stages` over one page of `match`, sorted by `sort`.

    Sorting and slicing happen before the joins, so only the documents of the
    requested page are joined and reshaped.
    """
    if page < 1:
        raise HTTPException(status_code=400, detail="page must be >= 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {MAX_PAGE_SIZE}")
    total = collection.count_documents(match)
    pipeline = [
        {"$match": match},
        {"$sort": sort},
        {"$skip": (page - 1) * limit},
        {"$limit": limit},
    ] + view_stages
    docs = list(collection.aggregate(pipeline))
    return page_result(docs, total, page, limit)


# -------------------- Building blocks --------------------

def owner_stages(local_field: str = "owner") -> List[dict]:
    """Left-join the owning user and collapse the join into one embedded object."""
    return [
        {
            "$lookup": {
                "from": "user",
                "localField": local_field,
                "foreignField": "_id",
                "as": "owner",
            }
        },
        {"$addFields": {"owner": {"$arrayElemAt": ["$owner", 0]}}},
    ]


def like_stages(target_field: str, viewer_id: Optional[ObjectId]) -> List[dict]:
    """Fold the likes pointing at each document into likes_count and is_liked."""
    return [
        {
            "$lookup": {
                "from": "like",
                "localField": "_id",
                "foreignField": target_field,
                "as": "likes",
            }
        },
        {
            "$addFields": {
                "likes_count": {"$size": "$likes"},
                "is_liked": {"$in": [viewer_id, {"$ifNull": ["$likes.liked_by", []]}]},
            }
        },
    ]


def subscriber_stages(viewer_id: Optional[ObjectId], local_field: str = "_id", prefix: str = "") -> List[dict]:
    """Fold subscription edges of a channel into counts and is_subscribed."""
    subscribers = f"{prefix}subscribers"
    subscribed_to = f"{prefix}subscribed_to"
    return [
        {
            "$lookup": {
                "from": "subscription",
                "localField": local_field,
                "foreignField": "channel",
                "as": subscribers,
            }
        },
        {
            "$lookup": {
                "from": "subscription",
                "localField": local_field,
                "foreignField": "subscriber",
                "as": subscribed_to,
            }
        },
        {
            "$addFields": {
                "subscribers_count": {"$size": f"${subscribers}"},
                "subscribed_to_count": {"$size": f"${subscribed_to}"},
                "is_subscribed": {
                    "$in": [viewer_id, {"$ifNull": [f"${subscribers}.subscriber", []]}]
                },
            }
        },
    ]


def project(fields: Iterable[str], owner: bool = True) -> dict:
    """Allow-list projection. The embedded owner only keeps its public fields."""
    projection = {field: 1 for field in fields}
    if owner:
        projection["owner._id"] = 1
        for field in OWNER_FIELDS:
            projection[f"owner.{field}"] = 1
    return {"$project": projection}


def visible_to(viewer_id: Optional[ObjectId]) -> dict:
    """Published videos, plus the viewer's own unpublished ones."""
    if viewer_id is None:
        return {"is_published": True}
    return {"$or": [{"is_published": True}, {"owner": viewer_id}]}


def search_match(query: Optional[str]) -> dict:
    """Case-insensitive substring match on title or description, published only."""
    q = (query or "").strip()
    if not q:
        raise HTTPException(status_code=400, detail="Search query is missing")
    regex = {"$regex": re.escape(q), "$options": "i"}
    return {
        "is_published": True,
        "$or": [{"title": regex}, {"description": regex}],
    }


# -------------------- Views --------------------

def video_feed_stages(viewer_id: Optional[ObjectId]) -> List[dict]:
    return (
        owner_stages()
        + like_stages("video", viewer_id)
        + [project(VIDEO_FIELDS + ("likes_count", "is_liked"))]
    )


def video_detail_pipeline(video_id: ObjectId, viewer_id: Optional[ObjectId]) -> List[dict]:
    """A single video with its owner, like and channel subscription figures."""
    return (
        [{"$match": {"_id": video_id, **visible_to(viewer_id)}}]
        + like_stages("video", viewer_id)
        + subscriber_stages(viewer_id, local_field="owner", prefix="channel_")
        + owner_stages()
        + [
            project(
                VIDEO_FIELDS
                + ("likes_count", "is_liked", "subscribers_count", "is_subscribed")
            )
        ]
    )


def comment_thread_stages(viewer_id: Optional[ObjectId]) -> List[dict]:
    return (
        owner_stages()
        + like_stages("comment", viewer_id)
        + [project(("content", "video", "created_at", "updated_at", "likes_count", "is_liked"))]
    )


def post_feed_stages(viewer_id: Optional[ObjectId]) -> List[dict]:
    return (
        owner_stages()
        + like_stages("post", viewer_id)
        + [project(("content", "created_at", "updated_at", "likes_count", "is_liked"))]
    )


def channel_profile_pipeline(username: str, viewer_id: Optional[ObjectId]) -> List[dict]:
    return (
        [{"$match": {"username": username.strip().lower()}}]
        + subscriber_stages(viewer_id)
        + [
            project(
                (
                    "username",
                    "full_name",
                    "email",
                    "avatar_url",
                    "cover_image_url",
                    "created_at",
                    "subscribers_count",
                    "subscribed_to_count",
                    "is_subscribed",
                ),
                owner=False,
            )
        ]
    )


def channel_list_stages(user_field: str, viewer_id: Optional[ObjectId]) -> List[dict]:
    """Turn subscription edges into channel cards for the user on `user_field`."""
    return (
        [
            {
                "$lookup": {
                    "from": "user",
                    "localField": user_field,
                    "foreignField": "_id",
                    "as": "user",
                }
            },
            {"$unwind": "$user"},
            {"$replaceRoot": {"newRoot": "$user"}},
        ]
        + subscriber_stages(viewer_id)
        + [
            project(
                OWNER_FIELDS + ("cover_image_url", "subscribers_count", "is_subscribed"),
                owner=False,
            )
        ]
    )


def liked_videos_pipeline(viewer_id: ObjectId) -> List[dict]:
    """Videos the viewer liked, most recently liked first."""
    return (
        [
            {"$match": {"liked_by": viewer_id, "video": {"$ne": None}}},
            {"$sort": {"created_at": -1, "_id": -1}},
            {
                "$lookup": {
                    "from": "video",
                    "localField": "video",
                    "foreignField": "_id",
                    "as": "video",
                }
            },
            {"$unwind": "$video"},
            {"$replaceRoot": {"newRoot": "$video"}},
            {"$match": visible_to(viewer_id)},
        ]
        + video_feed_stages(viewer_id)
    )


def videos_by_ids_pipeline(video_ids: List[ObjectId], viewer_id: Optional[ObjectId]) -> List[dict]:
    """Feed view of a fixed set of videos; callers restore the list order."""
    return [
        {"$match": {"_id": {"$in": video_ids}, **visible_to(viewer_id)}}
    ] + video_feed_stages(viewer_id)


def playlist_stages() -> List[dict]:
    return owner_stages() + [
        {"$addFields": {"videos_count": {"$size": "$videos"}}},
        project(("name", "description", "videos", "videos_count", "created_at", "updated_at")),
    ]


def channel_stats_pipeline(owner_id: ObjectId) -> List[dict]:
    return [
        {"$match": {"owner": owner_id}},
        {
            "$lookup": {
                "from": "like",
                "localField": "_id",
                "foreignField": "video",
                "as": "likes",
            }
        },
        {
            "$group": {
                "_id": None,
                "total_videos": {"$sum": 1},
                "total_views": {"$sum": "$views_count"},
                "total_likes": {"$sum": {"$size": "$likes"}},
            }
        },
    ]


def dashboard_video_stages(owner_id: ObjectId) -> List[dict]:
    return like_stages("video", owner_id) + [
        project(VIDEO_FIELDS + ("likes_count",), owner=False)
    ]


def order_by_ids(docs: List[dict], ids: List[ObjectId]) -> List[dict]:
    """Reorder aggregation output to follow `ids`, dropping anything not listed."""
    by_id = {doc["_id"]: doc for doc in docs}
    return [by_id[i] for i in ids if i in by_id]
