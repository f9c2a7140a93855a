import json
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from photofeed.config_secrets import FEED_DEFAULT_LIMIT, MAX_IMAGE_SIZE
from photofeed.core.auth import get_current_user, get_optional_user
from photofeed.core.errors import ServiceError, to_api_error
from photofeed.models.models import User
from photofeed.schemas.schemas import (
    PostDetailResponse,
    PostListResponse,
    PostResponse,
    PostWithUser,
    SuccessResponse,
)
from photofeed.services import feed_service, post_service

router = APIRouter(prefix="/api/posts", tags=["posts"])


@router.get("", response_model=PostListResponse, status_code=status.HTTP_200_OK)
async def list_posts(
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
    limit: int = FEED_DEFAULT_LIMIT,
    offset: int = 0,
    user_id: Annotated[Optional[UUID], Query(alias="userId")] = None,
) -> PostListResponse:
    """
    Get one page of the feed, newest first.

    Parameters:
    - **limit**: Page size (1-50, default 10)
    - **offset**: Number of posts to skip
    - **userId**: Only posts by this user

    Returns:
    - **PostListResponse**: Posts with author, comment preview and like state, the total and hasMore

    Raises:
    - **400 Bad Request**: If limit or offset is out of range
    """
    try:
        page = await feed_service.list_posts(limit, offset, author_id=user_id, viewer=current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc

    return PostListResponse(
        posts=[PostWithUser.model_validate(post) for post in page["posts"]],
        total=page["total"],
        has_more=page["has_more"],
    )


@router.post("", response_model=PostResponse, status_code=status.HTTP_200_OK)
async def create_new_post(
    current_user: Annotated[User, Depends(get_current_user)],
    image: Annotated[Optional[UploadFile], File()] = None,
    caption: Annotated[Optional[str], Form()] = None,
) -> PostResponse:
    """
    Create a post from an uploaded image.

    Parameters:
    - **image**: JPEG, PNG, WebP or GIF, at most 5MB
    - **caption**: Optional caption, at most 2200 characters

    Raises:
    - **400 Bad Request**: If the image is missing, of the wrong type or too large
    - **401 Unauthorized**: If not authenticated
    - **500 Internal Server Error**: If the upload or the insert fails
    """
    # One byte past the limit is enough to reject an oversized upload
    content = await image.read(MAX_IMAGE_SIZE + 1) if image is not None else None
    try:
        post = await post_service.create_post(
            current_user,
            content=content,
            filename=image.filename if image is not None else None,
            content_type=image.content_type if image is not None else None,
            caption=caption,
        )
    except ServiceError as exc:
        raise to_api_error(exc) from exc

    return PostResponse(post=post)


@router.get("/{post_id}", response_model=PostDetailResponse, status_code=status.HTTP_200_OK)
async def get_post_detail(
    post_id: UUID,
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
) -> PostDetailResponse:
    """
    Get a post with all of its comments, oldest first.

    Raises:
    - **404 Not Found**: If the post does not exist
    """
    try:
        post = await feed_service.get_post_detail(post_id, viewer=current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc

    return PostDetailResponse(post=PostWithUser.model_validate(post))


@router.patch("/{post_id}", response_model=PostResponse, status_code=status.HTTP_200_OK)
async def update_post(
    post_id: UUID,
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
) -> PostResponse:
    """
    Change the caption of your own post.

    The JSON body is read after the ownership check, so a caller who does not
    own the post always gets 403.

    Raises:
    - **400 Bad Request**: If the body is not a JSON object or the caption is too long
    - **401 Unauthorized**: If not authenticated
    - **403 Forbidden**: If the post belongs to another user
    - **404 Not Found**: If the post does not exist
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    try:
        post = await post_service.update_post_caption(post_id, current_user, payload)
    except ServiceError as exc:
        raise to_api_error(exc) from exc

    return PostResponse(post=post)


@router.delete("/{post_id}", response_model=SuccessResponse, status_code=status.HTTP_200_OK)
async def delete_post(
    post_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
) -> SuccessResponse:
    """
    Delete your own post, its image, likes and comments.

    Raises:
    - **401 Unauthorized**: If not authenticated
    - **403 Forbidden**: If the post belongs to another user
    - **404 Not Found**: If the post does not exist
    """
    try:
        await post_service.delete_post(post_id, current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc

    return SuccessResponse(message="Post deleted successfully")
