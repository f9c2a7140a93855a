from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from photofeed.core.auth import get_current_user
from photofeed.core.errors import ServiceError, to_api_error
from photofeed.models.models import User
from photofeed.schemas.schemas import FollowRequest, FollowResponse, SuccessResponse
from photofeed.services.user_service import follow_user, unfollow_user

router = APIRouter(prefix="/api/follows", tags=["follows"])


@router.post("", response_model=FollowResponse, status_code=status.HTTP_200_OK)
async def follow(
    payload: FollowRequest,
    current_user: Annotated[User, Depends(get_current_user)],
) -> FollowResponse:
    """
    Follow another user.

    Raises:
    - **400 Bad Request**: If followingId is missing or is the caller
    - **401 Unauthorized**: If not authenticated
    - **404 Not Found**: If the user to follow does not exist
    - **409 Conflict**: If the caller already follows the user
    """
    try:
        created = await follow_user(current_user, payload.following_id)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return FollowResponse(follow=created)


@router.delete("", response_model=SuccessResponse, status_code=status.HTTP_200_OK)
async def unfollow(
    current_user: Annotated[User, Depends(get_current_user)],
    payload: Optional[FollowRequest] = None,
) -> SuccessResponse:
    """Stop following a user. Unfollowing a user you do not follow succeeds."""
    try:
        await unfollow_user(current_user, payload.following_id if payload else None)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return SuccessResponse()
