"""Admin moderation of the taxonomy, catalog and blog posts."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from curator.db import (
    ConstraintViolation,
    ErrorKind,
    NotFound,
    Ok,
    Result,
    TaxonomyRepository,
    blog_post_repo,
    category_repo,
    movie_repo,
    profile_repo,
    tag_repo,
)
from curator.models import Movie, MovieBlogPost, Profile
from curator.services.cache import TTLCache
from curator.services.catalog import CATEGORIES_CACHE_KEY, TAGS_CACHE_KEY, get_taxonomy_cache

logger = logging.getLogger(__name__)


class AdminError(Exception):
    """Base exception for admin operations."""


class AdminNotFound(AdminError):
    pass


class DuplicateName(AdminError):
    pass


class StillInUse(AdminError):
    pass


def _unwrap(result: Result, label: str):
    if isinstance(result, Ok):
        return result.value
    if isinstance(result, NotFound):
        raise AdminNotFound(f"{label} not found")
    if isinstance(result, ConstraintViolation):
        if result.kind == ErrorKind.UNIQUE_VIOLATION:
            raise DuplicateName(f"A {label} with this name already exists")
        if result.kind == ErrorKind.FOREIGN_KEY_VIOLATION:
            raise StillInUse(f"Cannot delete {label}: it is being used by movies")
    logger.error("Admin %s write failed: %s", label, result)
    raise AdminError(f"Failed to save {label}")


class TaxonomyAdmin:
    """Create/update/delete for tags or categories, keeping the list cache fresh."""

    def __init__(self, repo: TaxonomyRepository, label: str, cache_key: str) -> None:
        self.repo = repo
        self.label = label
        self.cache_key = cache_key

    def _invalidate(self, cache: TTLCache | None) -> None:
        (cache or get_taxonomy_cache()).invalidate(self.cache_key)

    def list(self, session: Session) -> list[Any]:
        return self.repo.list_all(session)

    def create(self, session: Session, *, cache: TTLCache | None = None, **fields) -> Any:
        fields["name"] = fields["name"].strip()
        if not fields["name"]:
            raise AdminError(f"{self.label} name must not be empty")
        values = {k: v for k, v in fields.items() if v is not None}
        item = _unwrap(self.repo.create(session, **values), self.label)
        self._invalidate(cache)
        logger.info("Admin created %s %r", self.label, item.name)
        return item

    def update(self, session: Session, item_id: int, *, cache: TTLCache | None = None, **fields) -> Any:
        changes = {k: v for k, v in fields.items() if v is not None}
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        item = _unwrap(self.repo.update(session, item_id, **changes), self.label)
        self._invalidate(cache)
        return item

    def delete(self, session: Session, item_id: int, *, cache: TTLCache | None = None) -> None:
        _unwrap(self.repo.delete(session, item_id), self.label)
        self._invalidate(cache)
        logger.info("Admin deleted %s %s", self.label, item_id)


tags_admin: TaxonomyAdmin = TaxonomyAdmin(tag_repo, "tag", TAGS_CACHE_KEY)
categories_admin: TaxonomyAdmin = TaxonomyAdmin(category_repo, "category", CATEGORIES_CACHE_KEY)


def list_movies(session: Session) -> list[Movie]:
    return movie_repo.list_all(session)


def update_movie(session: Session, movie_id: int, **fields) -> Movie:
    changes = {k: v for k, v in fields.items() if v is not None}
    return _unwrap(movie_repo.update(session, movie_id, **changes), "movie")


def delete_movie(session: Session, movie_id: int) -> None:
    _unwrap(movie_repo.delete(session, movie_id), "movie")
    logger.info("Admin deleted movie %s", movie_id)


def list_blog_posts(session: Session) -> list[MovieBlogPost]:
    return blog_post_repo.list_all(session)


def set_blog_post_approval(session: Session, post_id: int, approved: bool) -> MovieBlogPost:
    post = _unwrap(blog_post_repo.get(session, post_id), "blog post")
    post.admin_approved = approved
    session.flush()
    logger.info("Admin set approval of blog post %s to %s", post_id, approved)
    return post


def delete_blog_post(session: Session, post_id: int) -> None:
    _unwrap(blog_post_repo.delete(session, post_id), "blog post")


def list_users(session: Session) -> list[Profile]:
    return profile_repo.list_all(session)

