import logging
from typing import Any, Optional

from photofeed.client.api_client import ApiRequestError, FeedApiClient, IdLike, NetworkError
from photofeed.client.messages import get_user_friendly_error_message

logger = logging.getLogger(__name__)

COMMENT_PREVIEW_SIZE = 2


class FeedState:
    """
    Infinite-scroll pager over GET /api/posts.

    Pages are appended in order and posts already on screen are skipped, so
    posts published while scrolling never show up twice. Only one load runs
    at a time.
    """

    def __init__(self, client: FeedApiClient, page_size: int = 10, user_id: Optional[IdLike] = None) -> None:
        self.client = client
        self.page_size = page_size
        self.user_id = user_id
        self.posts: list[dict[str, Any]] = []
        self.offset = 0
        self.has_more = True
        self.loading = False
        self.error: Optional[str] = None

    async def load_more(self) -> bool:
        """Fetch the next page; False when nothing was loaded"""
        if self.loading or not self.has_more:
            return False

        self.loading = True
        self.error = None
        try:
            page = await self.client.list_posts(limit=self.page_size, offset=self.offset, user_id=self.user_id)
        except (ApiRequestError, NetworkError) as exc:
            logger.warning("Feed page at offset %d failed: %s", self.offset, exc)
            self.error = get_user_friendly_error_message(exc, self.client.locale)
            return False
        finally:
            self.loading = False

        known_ids = {post["post_id"] for post in self.posts}
        self.posts.extend(post for post in page["posts"] if post["post_id"] not in known_ids)
        self.offset += self.page_size
        self.has_more = bool(page["hasMore"])
        return True

    async def refresh(self) -> bool:
        """Drop everything loaded and fetch the first page again"""
        if self.loading:
            return False
        self.posts = []
        self.offset = 0
        self.has_more = True
        self.error = None
        return await self.load_more()

    def find_post(self, post_id: IdLike) -> Optional[dict[str, Any]]:
        for post in self.posts:
            if str(post["post_id"]) == str(post_id):
                return post
        return None

    def remove_post(self, post_id: IdLike) -> bool:
        """Drop a deleted post from the loaded list"""
        remaining = [post for post in self.posts if str(post["post_id"]) != str(post_id)]
        removed = len(remaining) != len(self.posts)
        self.posts = remaining
        return removed

    def comment_added(self, post_id: IdLike, comment: dict[str, Any]) -> None:
        post = self.find_post(post_id)
        if post is None:
            return
        post["comments_count"] = post.get("comments_count", 0) + 1
        post["comments"] = [comment, *post.get("comments", [])][:COMMENT_PREVIEW_SIZE]

    def comment_removed(self, post_id: IdLike, comment_id: IdLike) -> None:
        post = self.find_post(post_id)
        if post is None:
            return
        post["comments_count"] = max(0, post.get("comments_count", 0) - 1)
        post["comments"] = [c for c in post.get("comments", []) if str(c["id"]) != str(comment_id)]


class LikeToggle:
    """
    Optimistic like button for one post.

    The post dict is flipped immediately and restored if the request fails.
    A second toggle while a request is in flight is ignored.
    """

    def __init__(self, client: FeedApiClient, post: dict[str, Any]) -> None:
        self.client = client
        self.post = post
        self.pending = False
        self.error: Optional[str] = None

    @property
    def liked(self) -> bool:
        return bool(self.post.get("is_liked"))

    @property
    def likes_count(self) -> int:
        return self.post.get("likes_count", 0)

    async def toggle(self) -> bool:
        if self.pending:
            return False

        was_liked = self.liked
        previous_count = self.likes_count
        self.post["is_liked"] = not was_liked
        self.post["likes_count"] = max(0, previous_count - 1) if was_liked else previous_count + 1
        self.pending = True
        self.error = None

        try:
            if was_liked:
                await self.client.unlike_post(self.post["post_id"])
            else:
                await self.client.like_post(self.post["post_id"])
        except (ApiRequestError, NetworkError) as exc:
            self.post["is_liked"] = was_liked
            self.post["likes_count"] = previous_count
            self.error = get_user_friendly_error_message(exc, self.client.locale)
            return False
        finally:
            self.pending = False
        return True


class FollowToggle:
    """Optimistic follow button for a profile; adjusts followers_count when present"""

    def __init__(self, client: FeedApiClient, profile: dict[str, Any]) -> None:
        self.client = client
        self.profile = profile
        self.pending = False
        self.error: Optional[str] = None

    @property
    def following(self) -> bool:
        return bool(self.profile.get("is_following"))

    async def toggle(self) -> bool:
        if self.pending:
            return False

        was_following = self.following
        previous_count = self.profile.get("followers_count", 0)
        self.profile["is_following"] = not was_following
        self.profile["followers_count"] = max(0, previous_count - 1) if was_following else previous_count + 1
        self.pending = True
        self.error = None

        try:
            if was_following:
                await self.client.unfollow_user(self.profile["user_id"])
            else:
                await self.client.follow_user(self.profile["user_id"])
        except (ApiRequestError, NetworkError) as exc:
            self.profile["is_following"] = was_following
            self.profile["followers_count"] = previous_count
            self.error = get_user_friendly_error_message(exc, self.client.locale)
            return False
        finally:
            self.pending = False
        return True


class PostNavigator:
    """Previous/next navigation over the posts already loaded in a feed"""

    def __init__(self, posts: list[dict[str, Any]], current_post_id: IdLike) -> None:
        self.posts = posts
        self.index = self._index_of(current_post_id)

    def _index_of(self, post_id: IdLike) -> int:
        for index, post in enumerate(self.posts):
            if str(post["post_id"]) == str(post_id):
                return index
        raise ValueError(f"Post {post_id} is not loaded")

    @property
    def current(self) -> dict[str, Any]:
        return self.posts[self.index]

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    @property
    def has_next(self) -> bool:
        return self.index < len(self.posts) - 1

    def previous(self) -> Optional[dict[str, Any]]:
        if not self.has_previous:
            return None
        self.index -= 1
        return self.current

    def next(self) -> Optional[dict[str, Any]]:
        if not self.has_next:
            return None
        self.index += 1
        return self.current
