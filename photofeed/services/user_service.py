import logging
from typing import Optional
from uuid import UUID

from photofeed.core import cache, db
from photofeed.core.db import DuplicateRecordError, MissingReferenceError
from photofeed.core.errors import ConflictError, InvalidInputError, NotFoundError
from photofeed.models.models import Follow, User

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "User"


async def resolve_user(clerk_id: str, name: Optional[str] = None) -> User:
    """
    Map an external identity to its internal user row.

    The row is created on the first authenticated request of an identity.
    The mapping never changes once created, so it is cached when Redis is
    configured.
    """
    cached = await cache.get_cached_identity_user(clerk_id)
    if cached:
        return User.model_validate(cached)

    row = await db.get_user_by_clerk_id(clerk_id)
    if row is None:
        row = await db.get_or_create_user(clerk_id, (name or "").strip() or DEFAULT_USER_NAME)
        logger.info("Registered user %s for identity %s", row["id"], clerk_id)

    user = User.model_validate(row)
    await cache.cache_identity_user(clerk_id, user.model_dump())
    return user


async def get_user_profile(user_id: UUID, viewer: Optional[User] = None) -> dict:
    """User statistics plus whether the viewer follows the user"""
    stats = await db.get_user_stats(user_id)
    if stats is None:
        raise NotFoundError("User not found")

    profile = {
        "user_id": stats["user_id"],
        "clerk_id": stats["clerk_id"],
        "name": stats["name"],
        "posts_count": stats.get("posts_count") or 0,
        "followers_count": stats.get("followers_count") or 0,
        "following_count": stats.get("following_count") or 0,
        "is_following": False,
    }

    if viewer is not None and viewer.id != user_id:
        try:
            profile["is_following"] = await db.is_following(viewer.id, user_id)
        except Exception:
            logger.exception("Follow state lookup failed for %s -> %s", viewer.id, user_id)

    return profile


async def follow_user(follower: User, following_id: Optional[UUID]) -> Follow:
    """Create a follow edge from the caller to another user"""
    if following_id is None:
        raise InvalidInputError("followingId is required")

    # Cannot follow yourself
    if follower.id == following_id:
        raise InvalidInputError("Cannot follow yourself")

    target = await db.get_user_by_id(following_id)
    if target is None:
        raise NotFoundError("User to follow not found")

    try:
        row = await db.insert_follow(follower.id, following_id)
    except DuplicateRecordError as exc:
        raise ConflictError("Already following this user") from exc
    except MissingReferenceError as exc:
        raise NotFoundError("User to follow not found") from exc

    return Follow.model_validate(row)


async def unfollow_user(follower: User, following_id: Optional[UUID]) -> None:
    """Remove a follow edge; removing an edge that does not exist is a no-op"""
    if following_id is None:
        raise InvalidInputError("followingId is required")

    deleted = await db.delete_follow(follower.id, following_id)
    if not deleted:
        logger.debug("No follow edge %s -> %s to remove", follower.id, following_id)
