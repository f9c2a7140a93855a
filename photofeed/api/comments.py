from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from photofeed.core.auth import get_current_user
from photofeed.core.errors import ServiceError, to_api_error
from photofeed.models.models import User
from photofeed.schemas.schemas import CommentCreate, CommentResponse, CommentWithUser, SuccessResponse
from photofeed.services.post_service import create_comment, delete_comment

router = APIRouter(prefix="/api/comments", tags=["comments"])


@router.post("", response_model=CommentResponse, status_code=status.HTTP_200_OK)
async def add_comment(
    payload: CommentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
) -> CommentResponse:
    """
    Comment on a post.

    Parameters:
    - **post_id**: UUID of the post
    - **content**: Comment text, 1-1000 characters after trimming

    Raises:
    - **400 Bad Request**: If post_id or content is missing, blank or too long
    - **401 Unauthorized**: If not authenticated
    - **404 Not Found**: If the post does not exist
    """
    try:
        comment = await create_comment(payload.post_id, current_user, payload.content)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return CommentResponse(comment=CommentWithUser.model_validate(comment))


@router.delete("", response_model=SuccessResponse, status_code=status.HTTP_200_OK)
async def remove_comment(
    current_user: Annotated[User, Depends(get_current_user)],
    comment_id: Annotated[Optional[UUID], Query(alias="commentId")] = None,
) -> SuccessResponse:
    """
    Delete one of your own comments.

    Raises:
    - **400 Bad Request**: If commentId is missing
    - **403 Forbidden**: If the comment belongs to another user
    - **404 Not Found**: If the comment does not exist
    """
    try:
        await delete_comment(comment_id, current_user)
    except ServiceError as exc:
        raise to_api_error(exc) from exc
    return SuccessResponse()
