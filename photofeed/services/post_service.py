import logging
from typing import Any, Optional
from uuid import UUID

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from photofeed.config_secrets import ALLOWED_IMAGE_TYPES, MAX_COMMENT_LENGTH, MAX_IMAGE_SIZE
from photofeed.core import db
from photofeed.core.db import DuplicateRecordError, MissingReferenceError
from photofeed.core.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)
from photofeed.models.models import Like, Post, User
from photofeed.schemas.schemas import PostUpdate
from photofeed.services import storage_service
from photofeed.services.feed_service import attach_author
from photofeed.utils.text import clean_caption

logger = logging.getLogger(__name__)


def normalize_caption(caption: Optional[str]) -> Optional[str]:
    """Trim a caption; blank captions become None"""
    try:
        return clean_caption(caption)
    except ValueError as exc:
        raise InvalidInputError(str(exc)) from exc


def validate_image(content: Optional[bytes], content_type: Optional[str]) -> None:
    if not content:
        raise InvalidInputError("Image file is required")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidInputError("Invalid file type. Allowed types: JPEG, PNG, WebP, GIF")
    if len(content) > MAX_IMAGE_SIZE:
        raise InvalidInputError(f"File size exceeds {MAX_IMAGE_SIZE // (1024 * 1024)}MB limit")


async def _get_owned_post(post_id: UUID, user: User, action: str) -> dict[str, Any]:
    post = await db.get_post(post_id)
    if post is None:
        raise NotFoundError("Post not found")
    if post["user_id"] != user.id:
        raise PermissionDeniedError(f"You can only {action} your own posts")
    return post


async def create_post(
    user: User,
    content: Optional[bytes],
    filename: Optional[str],
    content_type: Optional[str],
    caption: Optional[str] = None,
) -> Post:
    """
    Upload an image and create a post row pointing at it.

    The upload happens first. When the row insert fails the uploaded object
    is removed again; a failure of that cleanup is only logged.
    """
    validate_image(content, content_type)
    caption = normalize_caption(caption)

    key = storage_service.get_image_key(user.id, filename, content_type)
    image_url = await run_in_threadpool(storage_service.upload_image, content, key, content_type)
    if image_url is None:
        raise StorageError("Failed to upload image")

    try:
        row = await db.insert_post(user.id, image_url, caption)
    except Exception as exc:
        logger.exception("Post insert failed for user %s, removing uploaded image %s", user.id, key)
        if not await run_in_threadpool(storage_service.delete_object, key):
            logger.error("Orphaned image %s left in storage", key)
        raise StorageError("Failed to create post", str(exc)) from exc

    logger.info("User %s created post %s", user.id, row["id"])
    return Post.model_validate(row)


async def update_post_caption(post_id: UUID, user: User, payload: Any) -> Post:
    """
    Change the caption of a post owned by the caller.

    Ownership is checked before the payload is looked at, so a caller who
    does not own the post gets a permission error whatever they sent.
    A payload that is not a JSON object is rejected and leaves the caption alone.
    """
    await _get_owned_post(post_id, user, "edit")

    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid request body", "Expected a JSON object with a caption field")

    try:
        update = PostUpdate.model_validate(payload)
    except ValidationError as exc:
        message = exc.errors()[0].get("msg", "Invalid caption")
        raise InvalidInputError(message.removeprefix("Value error, ")) from exc

    row = await db.update_post_caption(post_id, update.caption)
    if row is None:
        raise NotFoundError("Post not found")
    return Post.model_validate(row)


async def delete_post(post_id: UUID, user: User) -> None:
    """Delete a post owned by the caller together with its image"""
    post = await _get_owned_post(post_id, user, "delete")

    key = storage_service.get_key_from_public_url(post["image_url"])
    if key is None:
        logger.warning("Image of post %s is outside the post bucket: %s", post_id, post["image_url"])
    elif not await run_in_threadpool(storage_service.delete_object, key):
        logger.warning("Could not delete image %s of post %s", key, post_id)

    try:
        await db.delete_post(post_id)
    except Exception as exc:
        logger.exception("Failed to delete post %s", post_id)
        raise StorageError("Failed to delete post", str(exc)) from exc


async def like_post(post_id: Optional[UUID], user: User) -> Like:
    if post_id is None:
        raise InvalidInputError("postId is required")
    try:
        row = await db.insert_like(post_id, user.id)
    except DuplicateRecordError as exc:
        raise ConflictError("Already liked") from exc
    except MissingReferenceError as exc:
        raise NotFoundError("Post not found") from exc
    return Like.model_validate(row)


async def unlike_post(post_id: Optional[UUID], user: User) -> None:
    """Remove the caller's like; removing a like that does not exist is a no-op"""
    if post_id is None:
        raise InvalidInputError("postId is required")
    await db.delete_like(post_id, user.id)


async def create_comment(post_id: Optional[UUID], user: User, content: Optional[str]) -> dict[str, Any]:
    """Add a comment to a post; returns the comment with its author's name"""
    if post_id is None:
        raise InvalidInputError("post_id is required")
    content = (content or "").strip()
    if not content:
        raise InvalidInputError("content is required and cannot be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise InvalidInputError(f"Comment exceeds maximum length of {MAX_COMMENT_LENGTH} characters")

    if await db.get_post(post_id) is None:
        raise NotFoundError("Post not found")

    try:
        row = await db.insert_comment(post_id, user.id, content)
    except MissingReferenceError as exc:
        # Post deleted between the lookup and the insert
        raise NotFoundError("Post not found") from exc

    return attach_author(row, {user.id: {"name": user.name, "clerk_id": user.clerk_id}})


async def delete_comment(comment_id: Optional[UUID], user: User) -> None:
    if comment_id is None:
        raise InvalidInputError("commentId is required")

    comment = await db.get_comment(comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    if comment["user_id"] != user.id:
        raise PermissionDeniedError("Forbidden: You can only delete your own comments")

    await db.delete_comment(comment_id, user.id)
