from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


# Database models
class User(BaseModel):
    id: UUID
    clerk_id: str  # External identity provider subject
    name: str
    created_at: datetime


class Post(BaseModel):
    id: UUID
    user_id: UUID
    image_url: str
    caption: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Like(BaseModel):
    id: UUID
    post_id: UUID
    user_id: UUID
    created_at: datetime


class Follow(BaseModel):
    id: UUID
    follower_id: UUID  # User who follows
    following_id: UUID  # User being followed
    created_at: datetime


class Comment(BaseModel):
    id: UUID
    post_id: UUID
    user_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime
