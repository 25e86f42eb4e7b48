from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import get_db
from pipelines import channel_stats_pipeline, dashboard_video_stages, paginate, parse_sort
from security import get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
def channel_stats(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    totals = next(db["video"].aggregate(channel_stats_pipeline(user["_id"])), {})
    return {
        "total_subscribers": db["subscription"].count_documents({"channel": user["_id"]}),
        "total_videos": totals.get("total_videos", 0),
        "total_views": totals.get("total_views", 0),
        "total_likes": totals.get("total_likes", 0),
    }


@router.get("/videos")
def channel_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_type: str = "desc",
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    sort = parse_sort("video", sort_by, sort_type)
    return paginate(db["video"], {"owner": user["_id"]}, dashboard_video_stages(user["_id"]), page, limit, sort)
