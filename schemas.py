"""
Database Schemas for the video sharing platform

Each Pydantic model maps to a MongoDB collection. The collection name is the lowercase of the class name.

Collections:
- User -> user
- Video -> video
- Post -> post
- Comment -> comment
- Like -> like
- Subscription -> subscription
- Playlist -> playlist

References between documents are stored as ObjectId values.
"""

from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class MongoModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(MongoModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=80)
    password_hash: Optional[str] = Field(None, description="Bcrypt hash; empty for federated accounts")
    avatar_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    refresh_token: Optional[str] = None
    watch_history: List[ObjectId] = Field(default_factory=list)
    google_id: Optional[str] = None

    @field_validator("username", "email")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return value.strip().lower()


class Video(MongoModel):
    owner: ObjectId
    video_url: str
    thumbnail_url: str
    title: str = Field(..., min_length=1, max_length=120)
    description: str = ""
    duration: float = Field(0, ge=0, description="Length in seconds")
    views_count: int = Field(0, ge=0)
    is_published: bool = True


class Post(MongoModel):
    owner: ObjectId
    content: str = Field(..., min_length=1, max_length=1000)


class Comment(MongoModel):
    owner: ObjectId
    video: ObjectId
    content: str = Field(..., min_length=1, max_length=1000)


class Like(MongoModel):
    """Exactly one of video, comment or post is set."""

    liked_by: ObjectId
    video: Optional[ObjectId] = None
    comment: Optional[ObjectId] = None
    post: Optional[ObjectId] = None

    @model_validator(mode="after")
    def single_target(self):
        targets = [t for t in (self.video, self.comment, self.post) if t is not None]
        if len(targets) != 1:
            raise ValueError("A like must reference exactly one of video, comment or post")
        return self


class Subscription(MongoModel):
    subscriber: ObjectId = Field(..., description="The user who subscribes")
    channel: ObjectId = Field(..., description="The user being subscribed to")


class Playlist(MongoModel):
    owner: ObjectId
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    videos: List[ObjectId] = Field(default_factory=list)
