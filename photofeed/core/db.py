from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncIterator, Optional
from uuid import UUID, uuid4

import asyncpg
from asyncpg import Connection, Pool

from photofeed.config_secrets import DATABASE_POOL_MAX_SIZE, DATABASE_POOL_MIN_SIZE, DATABASE_URL

# Database connection pool
pool: Optional[Pool] = None


class DatabaseError(Exception):
    """Base class for constraint errors surfaced by the store."""


class DuplicateRecordError(DatabaseError):
    """Raised when a unique constraint rejects an insert."""


class MissingReferenceError(DatabaseError):
    """Raised when a foreign key points at a row that does not exist."""


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY,
        clerk_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS posts (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        image_url TEXT NOT NULL,
        caption TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT posts_caption_length CHECK (caption IS NULL OR char_length(caption) <= 2200)
    );
    CREATE INDEX IF NOT EXISTS idx_posts_user_id ON posts(user_id);
    CREATE INDEX IF NOT EXISTS idx_posts_created_at ON posts(created_at DESC);
    """,
    """
    CREATE TABLE IF NOT EXISTS likes (
        id UUID PRIMARY KEY,
        post_id UUID NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE(post_id, user_id)
    );
    CREATE INDEX IF NOT EXISTS idx_likes_post_id ON likes(post_id);
    CREATE INDEX IF NOT EXISTS idx_likes_user_id ON likes(user_id);
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id UUID PRIMARY KEY,
        post_id UUID NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        content TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT comments_content_length CHECK (char_length(content) BETWEEN 1 AND 1000)
    );
    CREATE INDEX IF NOT EXISTS idx_comments_post_id ON comments(post_id, created_at DESC);
    """,
    """
    CREATE TABLE IF NOT EXISTS follows (
        id UUID PRIMARY KEY,
        follower_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        following_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE(follower_id, following_id),
        CONSTRAINT follows_no_self_follow CHECK (follower_id <> following_id)
    );
    CREATE INDEX IF NOT EXISTS idx_follows_follower_id ON follows(follower_id);
    CREATE INDEX IF NOT EXISTS idx_follows_following_id ON follows(following_id);
    """,
    """
    CREATE OR REPLACE VIEW post_stats AS
    SELECT
        p.id AS post_id, p.user_id, p.image_url, p.caption, p.created_at,
        (SELECT COUNT(*) FROM likes l WHERE l.post_id = p.id)::INTEGER AS likes_count,
        (SELECT COUNT(*) FROM comments c WHERE c.post_id = p.id)::INTEGER AS comments_count
    FROM posts p;
    """,
    """
    CREATE OR REPLACE VIEW user_stats AS
    SELECT
        u.id AS user_id, u.clerk_id, u.name,
        (SELECT COUNT(*) FROM posts p WHERE p.user_id = u.id)::INTEGER AS posts_count,
        (SELECT COUNT(*) FROM follows f WHERE f.following_id = u.id)::INTEGER AS followers_count,
        (SELECT COUNT(*) FROM follows f WHERE f.follower_id = u.id)::INTEGER AS following_count
    FROM users u;
    """,
]


async def init_db(create_tables: bool = True):
    """Initialize database connection pool"""
    global pool
    pool = await asyncpg.create_pool(
        DATABASE_URL,
        min_size=DATABASE_POOL_MIN_SIZE,
        max_size=DATABASE_POOL_MAX_SIZE,
    )

    if create_tables:
        async with pool.acquire() as conn:
            await create_schema(conn)


async def close_db():
    """Close database connection pool"""
    global pool
    if pool:
        await pool.close()
        pool = None


@asynccontextmanager
async def get_connection() -> AsyncIterator[Connection]:
    """Borrow a connection from the pool for the duration of the block"""
    if pool is None:
        await init_db(create_tables=False)
    assert pool is not None
    async with pool.acquire() as conn:
        yield conn


async def create_schema(conn: Connection) -> None:
    """Create tables and statistics views if they don't exist"""
    for statement in SCHEMA_STATEMENTS:
        await conn.execute(statement)


def _row(record: Optional[asyncpg.Record]) -> Optional[dict[str, Any]]:
    return dict(record) if record is not None else None


def _affected(command_status: str) -> int:
    # asyncpg returns e.g. "DELETE 1"
    try:
        return int(command_status.split()[-1])
    except (IndexError, ValueError):
        return 0


def _now() -> datetime:
    return datetime.now(UTC)


# Users
async def get_user_by_id(user_id: UUID) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow("SELECT id, clerk_id, name, created_at FROM users WHERE id = $1", user_id)
    return _row(row)


async def get_user_by_clerk_id(clerk_id: str) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow("SELECT id, clerk_id, name, created_at FROM users WHERE clerk_id = $1", clerk_id)
    return _row(row)


async def get_or_create_user(clerk_id: str, name: str) -> dict[str, Any]:
    """Return the user for an external id, inserting it on first sight"""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO users (id, clerk_id, name, created_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (clerk_id) DO UPDATE SET clerk_id = EXCLUDED.clerk_id
            RETURNING id, clerk_id, name, created_at
            """,
            uuid4(),
            clerk_id,
            name,
            _now(),
        )
    return dict(row)


async def get_users_by_ids(user_ids: list[UUID]) -> list[dict[str, Any]]:
    if not user_ids:
        return []
    async with get_connection() as conn:
        rows = await conn.fetch(
            "SELECT id, clerk_id, name, created_at FROM users WHERE id = ANY($1::uuid[])",
            user_ids,
        )
    return [dict(row) for row in rows]


async def get_user_stats(user_id: UUID) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT user_id, clerk_id, name, posts_count, followers_count, following_count
            FROM user_stats
            WHERE user_id = $1
            """,
            user_id,
        )
    return _row(row)


# Posts
async def fetch_post_stats_page(
    limit: int,
    offset: int,
    user_id: Optional[UUID] = None,
) -> tuple[list[dict[str, Any]], int]:
    """Return one page of post_stats rows (newest first) and the total row count"""
    async with get_connection() as conn:
        total = await conn.fetchval(
            "SELECT COUNT(*) FROM post_stats WHERE ($1::uuid IS NULL OR user_id = $1)",
            user_id,
        )
        rows = await conn.fetch(
            """
            SELECT post_id, user_id, image_url, caption, created_at, likes_count, comments_count
            FROM post_stats
            WHERE ($1::uuid IS NULL OR user_id = $1)
            ORDER BY created_at DESC, post_id DESC
            LIMIT $2 OFFSET $3
            """,
            user_id,
            limit,
            offset,
        )
    return [dict(row) for row in rows], total or 0


async def get_post_stats(post_id: UUID) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT post_id, user_id, image_url, caption, created_at, likes_count, comments_count
            FROM post_stats
            WHERE post_id = $1
            """,
            post_id,
        )
    return _row(row)


async def get_post(post_id: UUID) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT id, user_id, image_url, caption, created_at, updated_at FROM posts WHERE id = $1",
            post_id,
        )
    return _row(row)


async def insert_post(user_id: UUID, image_url: str, caption: Optional[str]) -> dict[str, Any]:
    now = _now()
    async with get_connection() as conn:
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO posts (id, user_id, image_url, caption, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id, user_id, image_url, caption, created_at, updated_at
                """,
                uuid4(),
                user_id,
                image_url,
                caption,
                now,
                now,
            )
        except asyncpg.ForeignKeyViolationError as exc:
            raise MissingReferenceError(str(exc)) from exc
    return dict(row)


async def update_post_caption(post_id: UUID, caption: Optional[str]) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            UPDATE posts
            SET caption = $2, updated_at = $3
            WHERE id = $1
            RETURNING id, user_id, image_url, caption, created_at, updated_at
            """,
            post_id,
            caption,
            _now(),
        )
    return _row(row)


async def delete_post(post_id: UUID) -> int:
    """Delete a post; likes and comments go with it through ON DELETE CASCADE"""
    async with get_connection() as conn:
        result = await conn.execute("DELETE FROM posts WHERE id = $1", post_id)
    return _affected(result)


# Comments
async def fetch_recent_comments(post_ids: list[UUID], per_post: int) -> list[dict[str, Any]]:
    """Newest `per_post` comments of each post, newest first within a post"""
    if not post_ids:
        return []
    async with get_connection() as conn:
        rows = await conn.fetch(
            """
            SELECT id, post_id, user_id, content, created_at, updated_at
            FROM (
                SELECT
                    c.id, c.post_id, c.user_id, c.content, c.created_at, c.updated_at,
                    ROW_NUMBER() OVER (PARTITION BY c.post_id ORDER BY c.created_at DESC, c.id DESC) AS rank
                FROM comments c
                WHERE c.post_id = ANY($1::uuid[])
            ) ranked
            WHERE rank <= $2
            ORDER BY post_id, created_at DESC, id DESC
            """,
            post_ids,
            per_post,
        )
    return [dict(row) for row in rows]


async def fetch_post_comments(post_id: UUID) -> list[dict[str, Any]]:
    """All comments of a post, oldest first"""
    async with get_connection() as conn:
        rows = await conn.fetch(
            """
            SELECT id, post_id, user_id, content, created_at, updated_at
            FROM comments
            WHERE post_id = $1
            ORDER BY created_at ASC, id ASC
            """,
            post_id,
        )
    return [dict(row) for row in rows]


async def get_comment(comment_id: UUID) -> Optional[dict[str, Any]]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT id, post_id, user_id, content, created_at, updated_at FROM comments WHERE id = $1",
            comment_id,
        )
    return _row(row)


async def insert_comment(post_id: UUID, user_id: UUID, content: str) -> dict[str, Any]:
    now = _now()
    async with get_connection() as conn:
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO comments (id, post_id, user_id, content, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id, post_id, user_id, content, created_at, updated_at
                """,
                uuid4(),
                post_id,
                user_id,
                content,
                now,
                now,
            )
        except asyncpg.ForeignKeyViolationError as exc:
            raise MissingReferenceError(str(exc)) from exc
    return dict(row)


async def delete_comment(comment_id: UUID, user_id: UUID) -> int:
    async with get_connection() as conn:
        result = await conn.execute(
            "DELETE FROM comments WHERE id = $1 AND user_id = $2",
            comment_id,
            user_id,
        )
    return _affected(result)


# Likes
async def insert_like(post_id: UUID, user_id: UUID) -> dict[str, Any]:
    async with get_connection() as conn:
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO likes (id, post_id, user_id, created_at)
                VALUES ($1, $2, $3, $4)
                RETURNING id, post_id, user_id, created_at
                """,
                uuid4(),
                post_id,
                user_id,
                _now(),
            )
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateRecordError(str(exc)) from exc
        except asyncpg.ForeignKeyViolationError as exc:
            raise MissingReferenceError(str(exc)) from exc
    return dict(row)


async def delete_like(post_id: UUID, user_id: UUID) -> int:
    async with get_connection() as conn:
        result = await conn.execute(
            "DELETE FROM likes WHERE post_id = $1 AND user_id = $2",
            post_id,
            user_id,
        )
    return _affected(result)


async def fetch_liked_post_ids(user_id: UUID, post_ids: list[UUID]) -> set[UUID]:
    if not post_ids:
        return set()
    async with get_connection() as conn:
        rows = await conn.fetch(
            "SELECT post_id FROM likes WHERE user_id = $1 AND post_id = ANY($2::uuid[])",
            user_id,
            post_ids,
        )
    return {row["post_id"] for row in rows}


# Follows
async def insert_follow(follower_id: UUID, following_id: UUID) -> dict[str, Any]:
    async with get_connection() as conn:
        try:
            row = await conn.fetchrow(
                """
                INSERT INTO follows (id, follower_id, following_id, created_at)
                VALUES ($1, $2, $3, $4)
                RETURNING id, follower_id, following_id, created_at
                """,
                uuid4(),
                follower_id,
                following_id,
                _now(),
            )
        except asyncpg.UniqueViolationError as exc:
            raise DuplicateRecordError(str(exc)) from exc
        except asyncpg.ForeignKeyViolationError as exc:
            raise MissingReferenceError(str(exc)) from exc
    return dict(row)


async def delete_follow(follower_id: UUID, following_id: UUID) -> int:
    async with get_connection() as conn:
        result = await conn.execute(
            "DELETE FROM follows WHERE follower_id = $1 AND following_id = $2",
            follower_id,
            following_id,
        )
    return _affected(result)


async def is_following(follower_id: UUID, following_id: UUID) -> bool:
    async with get_connection() as conn:
        found = await conn.fetchval(
            "SELECT 1 FROM follows WHERE follower_id = $1 AND following_id = $2",
            follower_id,
            following_id,
        )
    return found is not None
