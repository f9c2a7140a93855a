import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import httpx

from photofeed.client.messages import DEFAULT_LOCALE, extract_error_message, get_network_error_message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
PAGE_SIZE_LIMIT = 50

IdLike = Union[UUID, str]


class ApiRequestError(Exception):
    """The API answered with an error status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error
        self.details = details


class NetworkError(Exception):
    """The request never got a response (connection failure or timeout)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FeedApiClient:
    """
    Async client for the photofeed HTTP API.

    Every request is bounded by `timeout` seconds of wall-clock time. Feed
    page reads are retried on network failures up to `max_retries` times,
    waiting `retry_delay * attempt` seconds before each retry. Error
    responses and mutations are never retried.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        locale: str = DEFAULT_LOCALE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.locale = locale
        self._sleep = sleep
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "FeedApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, headers=self._headers(), **kwargs),
                timeout=self.timeout,
            )
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            raise NetworkError(get_network_error_message(self.locale)) from exc

        if response.is_error:
            body: dict[str, Any] = {}
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    parsed = response.json()
                except ValueError:
                    parsed = None
                if isinstance(parsed, dict):
                    body = parsed
            raise ApiRequestError(
                response.status_code,
                extract_error_message(response, self.locale),
                error=body.get("error"),
                details=body.get("details"),
            )
        return response.json()

    # Feed reads
    async def list_posts(
        self,
        limit: int = 10,
        offset: int = 0,
        user_id: Optional[IdLike] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if user_id is not None:
            params["userId"] = str(user_id)

        attempt = 0
        while True:
            try:
                return await self._request("GET", "/api/posts", params=params)
            except NetworkError:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                logger.warning("Feed fetch failed, retrying (%d/%d)", attempt, self.max_retries)
                await self._sleep(self.retry_delay * attempt)

    async def fetch_all_posts(self, user_id: IdLike, page_size: int = PAGE_SIZE_LIMIT) -> list[dict[str, Any]]:
        """Every post of one user, walking the pages until hasMore is false"""
        posts: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.list_posts(limit=page_size, offset=offset, user_id=user_id)
            posts.extend(page["posts"])
            if not page["hasMore"]:
                return posts
            offset += page_size

    async def get_post(self, post_id: IdLike) -> dict[str, Any]:
        data = await self._request("GET", f"/api/posts/{post_id}")
        return data["post"]

    # Posts
    async def create_post(
        self,
        image: bytes,
        filename: str,
        content_type: str,
        caption: Optional[str] = None,
    ) -> dict[str, Any]:
        data = {"caption": caption} if caption is not None else None
        result = await self._request(
            "POST",
            "/api/posts",
            files={"image": (filename, image, content_type)},
            data=data,
        )
        return result["post"]

    async def update_post(self, post_id: IdLike, caption: Optional[str]) -> dict[str, Any]:
        result = await self._request("PATCH", f"/api/posts/{post_id}", json={"caption": caption})
        return result["post"]

    async def delete_post(self, post_id: IdLike) -> None:
        await self._request("DELETE", f"/api/posts/{post_id}")

    # Likes
    async def like_post(self, post_id: IdLike) -> dict[str, Any]:
        result = await self._request("POST", "/api/likes", json={"postId": str(post_id)})
        return result["like"]

    async def unlike_post(self, post_id: IdLike) -> None:
        await self._request("DELETE", "/api/likes", params={"postId": str(post_id)})

    # Follows
    async def follow_user(self, user_id: IdLike) -> dict[str, Any]:
        result = await self._request("POST", "/api/follows", json={"followingId": str(user_id)})
        return result["follow"]

    async def unfollow_user(self, user_id: IdLike) -> None:
        await self._request("DELETE", "/api/follows", json={"followingId": str(user_id)})

    # Comments
    async def add_comment(self, post_id: IdLike, content: str) -> dict[str, Any]:
        result = await self._request("POST", "/api/comments", json={"post_id": str(post_id), "content": content})
        return result["comment"]

    async def delete_comment(self, comment_id: IdLike) -> None:
        await self._request("DELETE", "/api/comments", params={"commentId": str(comment_id)})

    # Users
    async def get_current_user(self) -> dict[str, Any]:
        result = await self._request("GET", "/api/users/me")
        return result["user"]

    async def get_user_profile(self, user_id: IdLike) -> dict[str, Any]:
        result = await self._request("GET", f"/api/users/{user_id}")
        return result["user"]
