from fastapi import APIRouter

from routers import auth, comments, dashboard, likes, playlists, posts, subscriptions, users, videos

api_router = APIRouter(prefix="/api/v1")

for module in (users, auth, videos, comments, posts, likes, subscriptions, playlists, dashboard):
    api_router.include_router(module.router)
