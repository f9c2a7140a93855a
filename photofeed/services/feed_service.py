import logging
from typing import Any, Iterable, Optional
from uuid import UUID

from photofeed.config_secrets import FEED_COMMENT_PREVIEW, FEED_MAX_LIMIT
from photofeed.core import db
from photofeed.core.errors import InvalidInputError, NotFoundError, StorageError
from photofeed.models.models import User

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown"


def attach_author(row: dict[str, Any], users_by_id: dict[UUID, dict[str, Any]]) -> dict[str, Any]:
    """Copy a row and add the author's display name and external id"""
    user = users_by_id.get(row["user_id"])
    enriched = dict(row)
    enriched["user_name"] = user["name"] if user else UNKNOWN_USER_NAME
    enriched["user_clerk_id"] = user["clerk_id"] if user else ""
    return enriched


async def load_users(user_ids: Iterable[UUID]) -> dict[UUID, dict[str, Any]]:
    """Batch lookup of users by id; a failed lookup yields an empty mapping"""
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
        return {}
    try:
        rows = await db.get_users_by_ids(unique_ids)
    except Exception:
        logger.exception("User lookup failed for %d users", len(unique_ids))
        return {}
    return {row["id"]: row for row in rows}


async def _load_recent_comments(post_ids: list[UUID]) -> dict[UUID, list[dict[str, Any]]]:
    try:
        rows = await db.fetch_recent_comments(post_ids, FEED_COMMENT_PREVIEW)
    except Exception:
        logger.exception("Comment preview lookup failed")
        return {}

    comments_by_post: dict[UUID, list[dict[str, Any]]] = {}
    for row in rows:
        post_comments = comments_by_post.setdefault(row["post_id"], [])
        if len(post_comments) < FEED_COMMENT_PREVIEW:
            post_comments.append(row)
    return comments_by_post


async def _load_liked_post_ids(viewer: Optional[User], post_ids: list[UUID]) -> set[UUID]:
    if viewer is None or not post_ids:
        return set()
    try:
        return await db.fetch_liked_post_ids(viewer.id, post_ids)
    except Exception:
        logger.exception("Like state lookup failed for user %s", viewer.id)
        return set()


def _compose_post(
    row: dict[str, Any],
    comments: list[dict[str, Any]],
    users_by_id: dict[UUID, dict[str, Any]],
    liked_post_ids: set[UUID],
) -> dict[str, Any]:
    post = attach_author(
        {
            "post_id": row["post_id"],
            "user_id": row["user_id"],
            "image_url": row["image_url"],
            "caption": row.get("caption"),
            "created_at": row["created_at"],
            "likes_count": row.get("likes_count") or 0,
            "comments_count": row.get("comments_count") or 0,
        },
        users_by_id,
    )
    post["comments"] = [attach_author(comment, users_by_id) for comment in comments]
    post["is_liked"] = row["post_id"] in liked_post_ids
    return post


async def list_posts(
    limit: int,
    offset: int = 0,
    author_id: Optional[UUID] = None,
    viewer: Optional[User] = None,
) -> dict[str, Any]:
    """
    Get one page of the feed, newest first.

    Each post carries its author, its most recent comments (with their
    authors), like/comment totals and whether the viewer liked it. The
    enrichment lookups are batched per page, and any of them failing only
    leaves default values in the affected fields.

    Parameters:
    - limit: Page size, 1..FEED_MAX_LIMIT
    - offset: Number of posts to skip
    - author_id: Only posts of this user (profile pages)
    - viewer: Authenticated caller, used for like state
    """
    if limit < 1 or limit > FEED_MAX_LIMIT:
        raise InvalidInputError(f"Limit must be between 1 and {FEED_MAX_LIMIT}")
    if offset < 0:
        raise InvalidInputError("Offset must not be negative")

    try:
        rows, total = await db.fetch_post_stats_page(limit, offset, author_id)
    except Exception as exc:
        logger.exception("Posts query failed")
        raise StorageError("Failed to fetch posts", str(exc)) from exc

    if not rows:
        return {"posts": [], "total": total, "has_more": False}

    post_ids = [row["post_id"] for row in rows]
    comments_by_post = await _load_recent_comments(post_ids)

    user_ids = [row["user_id"] for row in rows]
    for comments in comments_by_post.values():
        user_ids.extend(comment["user_id"] for comment in comments)
    users_by_id = await load_users(user_ids)

    liked_post_ids = await _load_liked_post_ids(viewer, post_ids)

    posts = [
        _compose_post(row, comments_by_post.get(row["post_id"], []), users_by_id, liked_post_ids)
        for row in rows
    ]
    return {
        "posts": posts,
        "total": total,
        "has_more": offset + limit < total,
    }


async def get_post_detail(post_id: UUID, viewer: Optional[User] = None) -> dict[str, Any]:
    """A single post with its full comment list (oldest first) and the viewer's like state"""
    row = await db.get_post_stats(post_id)
    if row is None:
        raise NotFoundError("Post not found")

    try:
        comments = await db.fetch_post_comments(post_id)
    except Exception:
        logger.exception("Comment lookup failed for post %s", post_id)
        comments = []

    users_by_id = await load_users([row["user_id"], *(comment["user_id"] for comment in comments)])
    liked_post_ids = await _load_liked_post_ids(viewer, [post_id])

    return _compose_post(row, comments, users_by_id, liked_post_ids)
