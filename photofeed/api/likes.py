from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from photofeed.core.auth import get_current_user
from photofeed.core.errors import ServiceError, to_api_error
from photofeed.models.models import User
from photofeed.schemas.schemas import LikeRequest, LikeResponse, SuccessResponse
from photofeed.services.post_service import like_post, unlike_post

router = APIRouter(prefix="/api/likes", tags=["likes"])


@router.post("", response_model=LikeResponse, status_code=status.HTTP_200_OK)
async def like(
    payload: LikeRequest,
    current_user: Annotated[User, Depends(get_current_user)],
) -> LikeResponse:
    """
    Like a post.

    Raises:
    - **400 Bad Request**: If postId is missing
    - **401 Unauthorized**: If not authenticated
    - **404 Not Found**: If the post does not exist
    - **409 Conflict**: If the post is already liked
    """
    try:
        created = await like_post(payload.post_id, current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return LikeResponse(like=created)


@router.delete("", response_model=SuccessResponse, status_code=status.HTTP_200_OK)
async def unlike(
    current_user: Annotated[User, Depends(get_current_user)],
    post_id: Annotated[Optional[UUID], Query(alias="postId")] = None,
) -> SuccessResponse:
    """Remove your like from a post. Unliking a post you never liked succeeds."""
    try:
        await unlike_post(post_id, current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return SuccessResponse()
