"""
Test bootstrap

- Points uploads at a throwaway directory before the app is imported
- Swaps the MongoDB handle for an in-memory mongomock database
- Provides helpers to create users and videos through the API
"""

import os
import tempfile

os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="vidtube-uploads-"))

import av
import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app
from media import LocalMediaStorage, get_storage

API = "/api/v1"
PASSWORD = "s3cret-pass"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
NOT_A_VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


def make_clip(path, seconds: float, fps: int = 10) -> bytes:
    """Encode a tiny blank MP4 of the given length and return its bytes."""
    with av.open(str(path), mode="w") as container:
        stream = container.add_stream("mpeg4", rate=fps)
        stream.width = 32
        stream.height = 32
        stream.pix_fmt = "yuv420p"
        for i in range(int(seconds * fps)):
            frame = av.VideoFrame(32, 32, "yuv420p")
            frame.pts = i
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode():
            container.mux(packet)
    with open(path, "rb") as f:
        return f.read()


@pytest.fixture(scope="session")
def clips(tmp_path_factory):
    """Clip bytes by length in seconds, encoded once per session."""
    cache = {}

    def _clip(seconds: float) -> bytes:
        if seconds not in cache:
            cache[seconds] = make_clip(tmp_path_factory.mktemp("clips") / f"{seconds}.mp4", seconds)
        return cache[seconds]

    return _clip


@pytest.fixture()
def mongo():
    database = mongomock.MongoClient()["vidtube_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def storage(tmp_path):
    return LocalMediaStorage(str(tmp_path), "/static")


@pytest.fixture()
def client(mongo, storage):
    app.dependency_overrides[get_db] = lambda: mongo
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(client):
    """Register and log in a user; returns {"id", "username", "headers", "tokens"}."""

    def _make(username: str, full_name: str = None, password: str = PASSWORD) -> dict:
        resp = client.post(
            f"{API}/users/register",
            data={
                "full_name": full_name or username.title(),
                "email": f"{username}@example.com",
                "username": username,
                "password": password,
            },
            files={"avatar": ("avatar.png", PNG, "image/png")},
        )
        assert resp.status_code == 201, resp.text
        user = resp.json()
        resp = client.post(f"{API}/users/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        tokens = resp.json()
        # tests authenticate with explicit headers only
        client.cookies.clear()
        return {
            "id": user["id"],
            "username": user["username"],
            "headers": {"Authorization": f"Bearer {tokens['access_token']}"},
            "tokens": tokens,
        }

    return _make


@pytest.fixture()
def publish(client, clips):
    """Publish a video as `user`; returns the created video document."""

    def _publish(user: dict, title: str = "A video", description: str = "", seconds: float = 2, published: bool = True) -> dict:
        resp = client.post(
            f"{API}/videos",
            data={"title": title, "description": description},
            files={
                "video_file": ("clip.mp4", clips(seconds), "video/mp4"),
                "thumbnail": ("thumb.png", PNG, "image/png"),
            },
            headers=user["headers"],
        )
        assert resp.status_code == 201, resp.text
        video = resp.json()
        if not published:
            resp = client.patch(f"{API}/videos/{video['id']}/toggle-publish", headers=user["headers"])
            assert resp.json()["is_published"] is False
            video["is_published"] = False
        return video

    return _publish
