"""Per-user tags, categories and notes on catalog movies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from curator.core.auth import CurrentUser
from curator.db import (
    ConstraintViolation,
    ErrorKind,
    NotFound,
    Ok,
    Result,
    category_repo,
    movie_repo,
    personalization_repo,
    tag_repo,
)
from curator.models import Movie, UserMovieCategory, UserMovieTag, UserNote

logger = logging.getLogger(__name__)


class PersonalizationError(Exception):
    """Base exception for personalization failures."""


class AlreadyApplied(PersonalizationError):
    """The user already applied this tag/category to the movie."""


class ItemNotFound(PersonalizationError):
    pass


class EmptyNote(PersonalizationError):
    pass


def _unwrap(result: Result, *, duplicate_message: str = "Already applied"):
    if isinstance(result, Ok):
        return result.value
    if isinstance(result, NotFound):
        raise ItemNotFound(result.what or "Not found")
    if isinstance(result, ConstraintViolation) and result.kind == ErrorKind.UNIQUE_VIOLATION:
        raise AlreadyApplied(duplicate_message)
    logger.error("Personalization write failed: %s", result)
    raise PersonalizationError("Could not save your change")


def _require_movie(session: Session, movie_id: int) -> Movie:
    return _unwrap(movie_repo.get(session, movie_id))


def add_tag(session: Session, user: CurrentUser, movie_id: int, tag_id: int) -> UserMovieTag:
    _require_movie(session, movie_id)
    _unwrap(tag_repo.get(session, tag_id))
    link = _unwrap(
        personalization_repo.add_tag(session, user.id, movie_id, tag_id),
        duplicate_message="You have already added this tag to this movie",
    )
    logger.info("User %s tagged movie %s with tag %s", user.id, movie_id, tag_id)
    return link


def remove_tag(session: Session, user: CurrentUser, link_id: int) -> int:
    """Remove one of the caller's tag applications; returns its movie id."""

    return _unwrap(personalization_repo.remove(session, UserMovieTag, link_id, user.id))


def add_category(session: Session, user: CurrentUser, movie_id: int, category_id: int) -> UserMovieCategory:
    _require_movie(session, movie_id)
    _unwrap(category_repo.get(session, category_id))
    link = _unwrap(
        personalization_repo.add_category(session, user.id, movie_id, category_id),
        duplicate_message="You have already added this category to this movie",
    )
    logger.info("User %s categorized movie %s as %s", user.id, movie_id, category_id)
    return link


def remove_category(session: Session, user: CurrentUser, link_id: int) -> int:
    return _unwrap(personalization_repo.remove(session, UserMovieCategory, link_id, user.id))


def add_note(session: Session, user: CurrentUser, movie_id: int, content: str) -> UserNote:
    text = (content or "").strip()
    if not text:
        raise EmptyNote("Note must not be empty")
    _require_movie(session, movie_id)
    return _unwrap(personalization_repo.add_note(session, user.id, movie_id, text))


def update_note(session: Session, user: CurrentUser, note_id: int, content: str) -> UserNote:
    text = (content or "").strip()
    if not text:
        raise EmptyNote("Note must not be empty")
    return _unwrap(personalization_repo.update_note(session, user.id, note_id, text))


def remove_note(session: Session, user: CurrentUser, note_id: int) -> int:
    return _unwrap(personalization_repo.remove(session, UserNote, note_id, user.id))


@dataclass(slots=True)
class MoviePersonalization:
    tags: list[UserMovieTag]
    categories: list[UserMovieCategory]
    notes: list[UserNote]


def get_personalization(session: Session, user: CurrentUser, movie_id: int) -> MoviePersonalization:
    _require_movie(session, movie_id)
    return MoviePersonalization(
        tags=personalization_repo.list_tags(session, user.id, movie_id),
        categories=personalization_repo.list_categories(session, user.id, movie_id),
        notes=personalization_repo.list_notes(session, user.id, movie_id),
    )


@dataclass(slots=True)
class UserMovieActivity:
    movie: Movie
    tags: list[UserMovieTag] = field(default_factory=list)
    categories: list[UserMovieCategory] = field(default_factory=list)
    has_note: bool = False


def list_user_movies(
    session: Session,
    user: CurrentUser,
    *,
    tag_id: int | None = None,
    category_id: int | None = None,
) -> list[UserMovieActivity]:
    """Movies the user has personalized, optionally filtered by a tag or category."""

    activity: dict[int, UserMovieActivity] = {}

    def _entry(movie_id: int) -> UserMovieActivity | None:
        if movie_id not in activity:
            result = movie_repo.get(session, movie_id)
            if not isinstance(result, Ok):
                return None
            activity[movie_id] = UserMovieActivity(movie=result.value)
        return activity[movie_id]

    for link in personalization_repo.list_user_tag_links(session, user.id):
        entry = _entry(link.movie_id)
        if entry is not None:
            entry.tags.append(link)
    for link in personalization_repo.list_user_category_links(session, user.id):
        entry = _entry(link.movie_id)
        if entry is not None:
            entry.categories.append(link)
    for movie_id in personalization_repo.movie_ids_with_notes(session, user.id):
        entry = _entry(movie_id)
        if entry is not None:
            entry.has_note = True

    items = list(activity.values())
    if tag_id is not None:
        items = [item for item in items if any(link.tag_id == tag_id for link in item.tags)]
    if category_id is not None:
        items = [item for item in items if any(link.category_id == category_id for link in item.categories)]
    items.sort(key=lambda item: item.movie.title.lower())
    return items
