from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from photofeed.core.auth import get_current_user, get_optional_user
from photofeed.core.errors import ServiceError, to_api_error
from photofeed.models.models import User
from photofeed.schemas.schemas import CurrentUserResponse, UserProfile, UserProfileResponse
from photofeed.services.user_service import get_user_profile

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=CurrentUserResponse, status_code=status.HTTP_200_OK)
async def read_current_user(current_user: Annotated[User, Depends(get_current_user)]) -> CurrentUserResponse:
    """Internal user record of the caller, created on first use."""
    return CurrentUserResponse(user=current_user)


@router.get("/{user_id}", response_model=UserProfileResponse, status_code=status.HTTP_200_OK)
async def read_user_profile(
    user_id: UUID,
    current_user: Annotated[Optional[User], Depends(get_optional_user)],
) -> UserProfileResponse:
    """
    Profile of a user with post, follower and following counts.

    Returns:
    - **UserProfileResponse**: Stats plus whether the caller follows the user

    Raises:
    - **404 Not Found**: If the user does not exist
    """
    try:
        profile = await get_user_profile(user_id, viewer=current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return UserProfileResponse(user=UserProfile.model_validate(profile))
