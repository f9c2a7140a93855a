import io
import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

# Settings are read at import time, pin them before the app is imported
os.environ["APP_ENV"] = "test"
os.environ["REDIS_URL"] = ""
os.environ["IDENTITY_JWKS_URL"] = ""
os.environ["IDENTITY_ISSUER"] = ""
os.environ["IDENTITY_AUDIENCE"] = ""
os.environ["IDENTITY_JWT_SECRET"] = "test-identity-secret"
os.environ["STORAGE_ENDPOINT_URL"] = ""
os.environ["STORAGE_BUCKET"] = "posts"
os.environ["STORAGE_PUBLIC_BASE_URL"] = "https://storage.test/posts"
os.environ["AWS_REGION"] = "us-east-1"

import pytest
from botocore.exceptions import ClientError
from httpx import ASGITransport, AsyncClient
from jose import jwt

from photofeed.core import db
from photofeed.main import app
from photofeed.services import storage_service

DB_FUNCTIONS = [
    "get_user_by_id",
    "get_user_by_clerk_id",
    "get_or_create_user",
    "get_users_by_ids",
    "get_user_stats",
    "fetch_post_stats_page",
    "get_post_stats",
    "get_post",
    "insert_post",
    "update_post_caption",
    "delete_post",
    "fetch_recent_comments",
    "fetch_post_comments",
    "get_comment",
    "insert_comment",
    "delete_comment",
    "insert_like",
    "delete_like",
    "fetch_liked_post_ids",
    "insert_follow",
    "delete_follow",
    "is_following",
]


class InMemoryDatabase:
    """
    Stand-in for photofeed.core.db backed by dicts.

    Mirrors the constraints of the real schema: unique likes and follows,
    foreign keys on posts/users, cascading post deletes and the two stats
    views. Names added to `failing` make that function raise.
    """

    def __init__(self) -> None:
        self.users: dict[UUID, dict[str, Any]] = {}
        self.posts: dict[UUID, dict[str, Any]] = {}
        self.likes: dict[UUID, dict[str, Any]] = {}
        self.comments: dict[UUID, dict[str, Any]] = {}
        self.follows: dict[UUID, dict[str, Any]] = {}
        self.failing: set[str] = set()
        self._base = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._ticks = itertools.count()

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in DB_FUNCTIONS:
            monkeypatch.setattr(db, name, self._guarded(name))

    def _guarded(self, name: str):
        method = getattr(self, name)

        async def call(*args, **kwargs):
            if name in self.failing:
                raise db.DatabaseError(f"{name} is unavailable")
            return await method(*args, **kwargs)

        return call

    def _now(self) -> datetime:
        return self._base + timedelta(seconds=next(self._ticks))

    # Seeding helpers
    def add_user(self, clerk_id: str, name: str = "User") -> dict[str, Any]:
        user = {"id": uuid4(), "clerk_id": clerk_id, "name": name, "created_at": self._now()}
        self.users[user["id"]] = user
        return dict(user)

    def add_post(self, user_id: UUID, image_url: Optional[str] = None, caption: Optional[str] = None) -> dict[str, Any]:
        now = self._now()
        post_id = uuid4()
        post = {
            "id": post_id,
            "user_id": user_id,
            "image_url": image_url or f"https://storage.test/posts/{user_id}/{post_id}.jpg",
            "caption": caption,
            "created_at": now,
            "updated_at": now,
        }
        self.posts[post_id] = post
        return dict(post)

    def add_comment(self, post_id: UUID, user_id: UUID, content: str) -> dict[str, Any]:
        now = self._now()
        comment = {
            "id": uuid4(),
            "post_id": post_id,
            "user_id": user_id,
            "content": content,
            "created_at": now,
            "updated_at": now,
        }
        self.comments[comment["id"]] = comment
        return dict(comment)

    def add_like(self, post_id: UUID, user_id: UUID) -> dict[str, Any]:
        like = {"id": uuid4(), "post_id": post_id, "user_id": user_id, "created_at": self._now()}
        self.likes[like["id"]] = like
        return dict(like)

    def add_follow(self, follower_id: UUID, following_id: UUID) -> dict[str, Any]:
        follow = {"id": uuid4(), "follower_id": follower_id, "following_id": following_id, "created_at": self._now()}
        self.follows[follow["id"]] = follow
        return dict(follow)

    # Views
    def _post_stats(self, post: dict[str, Any]) -> dict[str, Any]:
        return {
            "post_id": post["id"],
            "user_id": post["user_id"],
            "image_url": post["image_url"],
            "caption": post["caption"],
            "created_at": post["created_at"],
            "likes_count": sum(1 for like in self.likes.values() if like["post_id"] == post["id"]),
            "comments_count": sum(1 for c in self.comments.values() if c["post_id"] == post["id"]),
        }

    # Users
    async def get_user_by_id(self, user_id: UUID) -> Optional[dict[str, Any]]:
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def get_user_by_clerk_id(self, clerk_id: str) -> Optional[dict[str, Any]]:
        for user in self.users.values():
            if user["clerk_id"] == clerk_id:
                return dict(user)
        return None

    async def get_or_create_user(self, clerk_id: str, name: str) -> dict[str, Any]:
        existing = await self.get_user_by_clerk_id(clerk_id)
        if existing:
            return existing
        return self.add_user(clerk_id, name)

    async def get_users_by_ids(self, user_ids: list[UUID]) -> list[dict[str, Any]]:
        return [dict(self.users[user_id]) for user_id in user_ids if user_id in self.users]

    async def get_user_stats(self, user_id: UUID) -> Optional[dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return None
        return {
            "user_id": user["id"],
            "clerk_id": user["clerk_id"],
            "name": user["name"],
            "posts_count": sum(1 for p in self.posts.values() if p["user_id"] == user_id),
            "followers_count": sum(1 for f in self.follows.values() if f["following_id"] == user_id),
            "following_count": sum(1 for f in self.follows.values() if f["follower_id"] == user_id),
        }

    # Posts
    async def fetch_post_stats_page(
        self, limit: int, offset: int, user_id: Optional[UUID] = None
    ) -> tuple[list[dict[str, Any]], int]:
        posts = [p for p in self.posts.values() if user_id is None or p["user_id"] == user_id]
        posts.sort(key=lambda p: (p["created_at"], str(p["id"])), reverse=True)
        page = posts[offset:offset + limit]
        return [self._post_stats(p) for p in page], len(posts)

    async def get_post_stats(self, post_id: UUID) -> Optional[dict[str, Any]]:
        post = self.posts.get(post_id)
        return self._post_stats(post) if post else None

    async def get_post(self, post_id: UUID) -> Optional[dict[str, Any]]:
        post = self.posts.get(post_id)
        return dict(post) if post else None

    async def insert_post(self, user_id: UUID, image_url: str, caption: Optional[str]) -> dict[str, Any]:
        if user_id not in self.users:
            raise db.MissingReferenceError("posts_user_id_fkey")
        return self.add_post(user_id, image_url=image_url, caption=caption)

    async def update_post_caption(self, post_id: UUID, caption: Optional[str]) -> Optional[dict[str, Any]]:
        post = self.posts.get(post_id)
        if post is None:
            return None
        post["caption"] = caption
        post["updated_at"] = self._now()
        return dict(post)

    async def delete_post(self, post_id: UUID) -> int:
        if self.posts.pop(post_id, None) is None:
            return 0
        self.likes = {k: v for k, v in self.likes.items() if v["post_id"] != post_id}
        self.comments = {k: v for k, v in self.comments.items() if v["post_id"] != post_id}
        return 1

    # Comments
    async def fetch_recent_comments(self, post_ids: list[UUID], per_post: int) -> list[dict[str, Any]]:
        result = []
        for post_id in post_ids:
            comments = [c for c in self.comments.values() if c["post_id"] == post_id]
            comments.sort(key=lambda c: (c["created_at"], str(c["id"])), reverse=True)
            result.extend(dict(c) for c in comments[:per_post])
        return result

    async def fetch_post_comments(self, post_id: UUID) -> list[dict[str, Any]]:
        comments = [dict(c) for c in self.comments.values() if c["post_id"] == post_id]
        comments.sort(key=lambda c: (c["created_at"], str(c["id"])))
        return comments

    async def get_comment(self, comment_id: UUID) -> Optional[dict[str, Any]]:
        comment = self.comments.get(comment_id)
        return dict(comment) if comment else None

    async def insert_comment(self, post_id: UUID, user_id: UUID, content: str) -> dict[str, Any]:
        if post_id not in self.posts or user_id not in self.users:
            raise db.MissingReferenceError("comments_post_id_fkey")
        return self.add_comment(post_id, user_id, content)

    async def delete_comment(self, comment_id: UUID, user_id: UUID) -> int:
        comment = self.comments.get(comment_id)
        if comment is None or comment["user_id"] != user_id:
            return 0
        del self.comments[comment_id]
        return 1

    # Likes
    async def insert_like(self, post_id: UUID, user_id: UUID) -> dict[str, Any]:
        if post_id not in self.posts or user_id not in self.users:
            raise db.MissingReferenceError("likes_post_id_fkey")
        if any(l["post_id"] == post_id and l["user_id"] == user_id for l in self.likes.values()):
            raise db.DuplicateRecordError("likes_post_id_user_id_key")
        return self.add_like(post_id, user_id)

    async def delete_like(self, post_id: UUID, user_id: UUID) -> int:
        matches = [k for k, l in self.likes.items() if l["post_id"] == post_id and l["user_id"] == user_id]
        for key in matches:
            del self.likes[key]
        return len(matches)

    async def fetch_liked_post_ids(self, user_id: UUID, post_ids: list[UUID]) -> set[UUID]:
        wanted = set(post_ids)
        return {l["post_id"] for l in self.likes.values() if l["user_id"] == user_id and l["post_id"] in wanted}

    # Follows
    async def insert_follow(self, follower_id: UUID, following_id: UUID) -> dict[str, Any]:
        if follower_id not in self.users or following_id not in self.users:
            raise db.MissingReferenceError("follows_following_id_fkey")
        if follower_id == following_id:
            raise db.DatabaseError("follows_no_self_follow")
        if any(
            f["follower_id"] == follower_id and f["following_id"] == following_id for f in self.follows.values()
        ):
            raise db.DuplicateRecordError("follows_follower_id_following_id_key")
        return self.add_follow(follower_id, following_id)

    async def delete_follow(self, follower_id: UUID, following_id: UUID) -> int:
        matches = [
            k for k, f in self.follows.items()
            if f["follower_id"] == follower_id and f["following_id"] == following_id
        ]
        for key in matches:
            del self.follows[key]
        return len(matches)

    async def is_following(self, follower_id: UUID, following_id: UUID) -> bool:
        return any(
            f["follower_id"] == follower_id and f["following_id"] == following_id for f in self.follows.values()
        )


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{operation} failed"}}, operation)


class DummyS3:
    """Records objects in memory instead of talking to S3"""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, Optional[str]]] = {}
        self.buckets: set[str] = set()
        self.fail_uploads = False
        self.fail_deletes = False
        self.deleted: list[str] = []

    def upload_fileobj(self, fileobj: io.BytesIO, bucket: str, key: str, ExtraArgs: Optional[dict] = None) -> None:
        if self.fail_uploads:
            raise _client_error("InternalError", "PutObject")
        self.objects[key] = (fileobj.read(), (ExtraArgs or {}).get("ContentType"))

    def delete_object(self, Bucket: str, Key: str) -> dict:
        if self.fail_deletes:
            raise _client_error("InternalError", "DeleteObject")
        self.objects.pop(Key, None)
        self.deleted.append(Key)
        return {}

    def head_bucket(self, Bucket: str) -> dict:
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket: str, **kwargs: Any) -> dict:
        self.buckets.add(Bucket)
        return {}


def make_token(subject: str, name: Optional[str] = None, secret: str = "test-identity-secret", **claims: Any) -> str:
    payload: dict[str, Any] = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        **claims,
    }
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(subject: str, name: Optional[str] = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(subject, name)}"}


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> InMemoryDatabase:
    database = InMemoryDatabase()
    database.install(monkeypatch)
    return database


@pytest.fixture
def s3(monkeypatch: pytest.MonkeyPatch) -> DummyS3:
    dummy = DummyS3()
    monkeypatch.setattr(storage_service, "s3_client", dummy)
    return dummy


@pytest.fixture
def alice(fake_db: InMemoryDatabase) -> dict[str, Any]:
    return fake_db.add_user("user_alice", "Alice")


@pytest.fixture
def bob(fake_db: InMemoryDatabase) -> dict[str, Any]:
    return fake_db.add_user("user_bob", "Bob")


@pytest.fixture
async def client(fake_db: InMemoryDatabase, s3: DummyS3):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers_for():
    """Authorization headers for an identity: headers_for("user_alice")"""
    return auth_headers


@pytest.fixture
def token_for():
    return make_token
