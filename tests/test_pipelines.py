import pytest
from bson import ObjectId
from fastapi import HTTPException

from pipelines import (
    like_stages,
    owner_stages,
    page_result,
    parse_sort,
    project,
    search_match,
    video_detail_pipeline,
    visible_to,
)


def test_parse_sort_accepts_known_fields():
    assert parse_sort("video", "views_count", "desc") == {"views_count": -1, "_id": -1}
    assert parse_sort("video", "duration", "asc") == {"duration": 1, "_id": 1}


@pytest.mark.parametrize(
    "entity, sort_by, sort_type",
    [
        ("video", "title", "desc"),
        ("video", "views_count", "down"),
        ("comment", "views_count", "asc"),
    ],
)
def test_parse_sort_rejects_unknown_values(entity, sort_by, sort_type):
    with pytest.raises(HTTPException) as exc:
        parse_sort(entity, sort_by, sort_type)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("total, limit, pages", [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (25, 4, 7)])
def test_total_pages_is_ceiling(total, limit, pages):
    result = page_result([], total, 1, limit)
    assert result["total_pages"] == pages
    assert result["total_docs"] == total


def test_page_flags():
    result = page_result([], 25, 2, 10)
    assert result["has_prev_page"] is True
    assert result["has_next_page"] is True
    result = page_result([], 25, 3, 10)
    assert result["has_next_page"] is False


@pytest.mark.parametrize("query", [None, "", "   "])
def test_search_requires_query(query):
    with pytest.raises(HTTPException) as exc:
        search_match(query)
    assert exc.value.status_code == 400


def test_search_is_escaped_substring_on_published_only():
    match = search_match(" c++ (live) ")
    assert match["is_published"] is True
    title, description = match["$or"]
    assert title["title"] == {"$regex": r"c\+\+\ \(live\)", "$options": "i"}
    assert description["description"]["$options"] == "i"


def test_owner_is_collapsed_to_single_object():
    lookup, collapse = owner_stages()
    assert lookup["$lookup"]["from"] == "user"
    assert collapse == {"$addFields": {"owner": {"$arrayElemAt": ["$owner", 0]}}}


def test_projection_only_exposes_public_owner_fields():
    projection = project(("title",))["$project"]
    assert projection == {
        "title": 1,
        "owner._id": 1,
        "owner.username": 1,
        "owner.full_name": 1,
        "owner.avatar_url": 1,
    }
    assert not any("password" in key or "refresh" in key for key in projection)


def test_like_stages_are_viewer_relative():
    viewer = ObjectId()
    _, fields = like_stages("comment", viewer)
    assert fields["$addFields"]["likes_count"] == {"$size": "$likes"}
    assert fields["$addFields"]["is_liked"]["$in"][0] == viewer


def test_detail_view_hides_other_peoples_unpublished_videos():
    vid, viewer = ObjectId(), ObjectId()
    match = video_detail_pipeline(vid, viewer)[0]["$match"]
    assert match["_id"] == vid
    assert match["$or"] == [{"is_published": True}, {"owner": viewer}]
    assert visible_to(None) == {"is_published": True}
