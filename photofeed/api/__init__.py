"""API router package for the photofeed backend."""

from photofeed.api import admin, comments, follows, likes, posts, users

__all__ = ["admin", "comments", "follows", "likes", "posts", "users"]
