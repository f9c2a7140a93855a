from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from photofeed.models.models import Comment, Follow, Like, Post, User
from photofeed.utils.text import clean_caption


# Request schemas
class LikeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    post_id: Optional[UUID] = Field(default=None, alias="postId")


class FollowRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    following_id: Optional[UUID] = Field(default=None, alias="followingId")


class CommentCreate(BaseModel):
    post_id: Optional[UUID] = None
    content: Optional[str] = None


class PostUpdate(BaseModel):
    caption: Optional[str] = None

    @field_validator("caption")
    @classmethod
    def normalize_caption(cls, v):
        """Trim the caption; blank captions are stored as null"""
        return clean_caption(v)


# Response schemas
class CommentWithUser(Comment):
    user_name: str = "Unknown"
    user_clerk_id: str = ""


class PostWithUser(BaseModel):
    post_id: UUID
    user_id: UUID
    image_url: str
    caption: Optional[str] = None
    created_at: datetime
    likes_count: int = 0
    comments_count: int = 0
    user_name: str = "Unknown"
    user_clerk_id: str = ""
    comments: list[CommentWithUser] = Field(default_factory=list)
    is_liked: bool = False


class PostListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    posts: list[PostWithUser]
    total: int
    has_more: bool = Field(alias="hasMore")


class PostDetailResponse(BaseModel):
    success: bool = True
    post: PostWithUser


class PostResponse(BaseModel):
    success: bool = True
    post: Post


class LikeResponse(BaseModel):
    success: bool = True
    like: Like


class FollowResponse(BaseModel):
    success: bool = True
    follow: Follow


class CommentResponse(BaseModel):
    success: bool = True
    comment: CommentWithUser


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class UserProfile(BaseModel):
    user_id: UUID
    clerk_id: str
    name: str
    posts_count: int = 0
    followers_count: int = 0
    following_count: int = 0
    is_following: bool = False


class UserProfileResponse(BaseModel):
    success: bool = True
    user: UserProfile


class CurrentUserResponse(BaseModel):
    success: bool = True
    user: User


class BucketInfo(BaseModel):
    name: str
    created: bool
    public_base_url: str


class BucketResponse(BaseModel):
    success: bool = True
    message: str
    bucket: BucketInfo
