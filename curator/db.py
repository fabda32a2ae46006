"""Database session management and typed repositories.

Every repository method that can fail on the database side returns one of
the tagged results below instead of leaking driver error codes to callers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Iterator, TypeVar, Union

from sqlalchemy import create_engine, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from curator.core.config import get_settings
from curator.models import (
    Base,
    Category,
    Movie,
    MovieBlogPost,
    Profile,
    Tag,
    UserMovieCategory,
    UserMovieTag,
    UserNote,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


_database_url = get_settings().database_url
engine = create_engine(_database_url, future=True, **_engine_kwargs(_database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_models() -> None:
    """Create tables if they do not exist (handy for local dev)."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Iterator[Session]:
    """FastAPI-friendly dependency that manages commits/rollbacks."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tagged results
# ---------------------------------------------------------------------------


class ErrorKind:
    """Postgres / PostgREST error codes the app reacts to."""

    UNIQUE_VIOLATION = "23505"
    FOREIGN_KEY_VIOLATION = "23503"
    NO_ROWS = "PGRST116"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class NotFound:
    what: str | None = None


@dataclass(frozen=True, slots=True)
class ConstraintViolation:
    kind: str
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class Unknown:
    error: Exception


Result = Union[Ok[T], NotFound, ConstraintViolation, Unknown]


def classify_integrity_error(exc: IntegrityError) -> str | None:
    """Map a driver IntegrityError onto an ErrorKind code."""

    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in (ErrorKind.UNIQUE_VIOLATION, ErrorKind.FOREIGN_KEY_VIOLATION):
        return code
    message = str(orig).lower()
    if "unique" in message or "duplicate" in message:
        return ErrorKind.UNIQUE_VIOLATION
    if "foreign key" in message:
        return ErrorKind.FOREIGN_KEY_VIOLATION
    return None


def _flush_or_classify(session: Session, obj: T) -> Result[T]:
    """Flush and classify failures. A failed flush rolls back the whole session transaction."""

    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        kind = classify_integrity_error(exc)
        if kind is None:
            return Unknown(exc)
        return ConstraintViolation(kind, str(exc.orig))
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Database error while flushing %r: %s", obj, exc)
        return Unknown(exc)
    session.refresh(obj)
    return Ok(obj)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class ProfileRepository:
    def get(self, session: Session, user_id: str) -> Profile | None:
        return session.get(Profile, user_id)

    def create(self, session: Session, **fields) -> Result[Profile]:
        profile = Profile(**fields)
        session.add(profile)
        return _flush_or_classify(session, profile)

    def update(self, session: Session, user_id: str, **fields) -> Result[Profile]:
        profile = session.get(Profile, user_id)
        if profile is None:
            return NotFound(f"profile {user_id}")
        for key, value in fields.items():
            setattr(profile, key, value)
        return _flush_or_classify(session, profile)

    def list_all(self, session: Session) -> list[Profile]:
        query = select(Profile).order_by(Profile.created_at.desc())
        return list(session.execute(query).scalars())


class MovieRepository:
    """High level data access helpers for catalog rows."""

    def get(self, session: Session, movie_id: int) -> Result[Movie]:
        movie = session.get(Movie, movie_id)
        if movie is None:
            return NotFound(f"movie {movie_id}")
        return Ok(movie)

    def get_by_tmdb_id(self, session: Session, tmdb_id: int) -> Movie | None:
        query = select(Movie).where(Movie.tmdb_id == tmdb_id)
        return session.execute(query).scalar_one_or_none()

    def existing_tmdb_ids(self, session: Session, tmdb_ids: list[int]) -> set[int]:
        if not tmdb_ids:
            return set()
        query = select(Movie.tmdb_id).where(Movie.tmdb_id.in_(tmdb_ids))
        return {row for row in session.execute(query).scalars() if row is not None}

    def search(self, session: Session, term: str, *, limit: int = 10) -> list[Movie]:
        pattern = f"%{term}%"
        query = (
            select(Movie)
            .where(
                or_(
                    Movie.title.ilike(pattern),
                    Movie.overview.ilike(pattern),
                    Movie.description.ilike(pattern),
                    Movie.director.ilike(pattern),
                )
            )
            .order_by(Movie.created_at.desc(), Movie.id.desc())
            .limit(limit)
        )
        return list(session.execute(query).scalars())

    def list_all(self, session: Session) -> list[Movie]:
        query = select(Movie).order_by(Movie.created_at.desc(), Movie.id.desc())
        return list(session.execute(query).scalars())

    def create(self, session: Session, **fields) -> Result[Movie]:
        movie = Movie(**fields)
        session.add(movie)
        return _flush_or_classify(session, movie)

    def update(self, session: Session, movie_id: int, **fields) -> Result[Movie]:
        movie = session.get(Movie, movie_id)
        if movie is None:
            return NotFound(f"movie {movie_id}")
        for key, value in fields.items():
            setattr(movie, key, value)
        return _flush_or_classify(session, movie)

    def delete(self, session: Session, movie_id: int) -> Result[None]:
        movie = session.get(Movie, movie_id)
        if movie is None:
            return NotFound(f"movie {movie_id}")
        for model in (UserMovieTag, UserMovieCategory, UserNote, MovieBlogPost):
            for row in session.execute(select(model).where(model.movie_id == movie_id)).scalars():
                session.delete(row)
        session.delete(movie)
        session.flush()
        return Ok(None)


class TaxonomyRepository(Generic[T]):
    """Shared CRUD for the admin-curated Tag and Category tables."""

    def __init__(self, model: type[T], link_model: type, link_column: str) -> None:
        self.model = model
        self.link_model = link_model
        self.link_column = link_column

    def list_all(self, session: Session) -> list[T]:
        query = select(self.model).order_by(self.model.name)
        return list(session.execute(query).scalars())

    def get(self, session: Session, item_id: int) -> Result[T]:
        item = session.get(self.model, item_id)
        if item is None:
            return NotFound(f"{self.model.__tablename__} {item_id}")
        return Ok(item)

    def get_by_name(self, session: Session, name: str) -> T | None:
        query = select(self.model).where(func.lower(self.model.name) == name.lower())
        return session.execute(query).scalars().first()

    def create(self, session: Session, **fields) -> Result[T]:
        if self.get_by_name(session, fields["name"]) is not None:
            return ConstraintViolation(ErrorKind.UNIQUE_VIOLATION, f"name {fields['name']!r} exists")
        item = self.model(**fields)
        session.add(item)
        return _flush_or_classify(session, item)

    def update(self, session: Session, item_id: int, **fields) -> Result[T]:
        item = session.get(self.model, item_id)
        if item is None:
            return NotFound(f"{self.model.__tablename__} {item_id}")
        new_name = fields.get("name")
        if new_name is not None:
            clash = self.get_by_name(session, new_name)
            if clash is not None and clash.id != item_id:
                return ConstraintViolation(ErrorKind.UNIQUE_VIOLATION, f"name {new_name!r} exists")
        for key, value in fields.items():
            setattr(item, key, value)
        return _flush_or_classify(session, item)

    def delete(self, session: Session, item_id: int) -> Result[None]:
        item = session.get(self.model, item_id)
        if item is None:
            return NotFound(f"{self.model.__tablename__} {item_id}")
        column = getattr(self.link_model, self.link_column)
        in_use = session.execute(
            select(func.count()).select_from(self.link_model).where(column == item_id)
        ).scalar_one()
        if in_use:
            return ConstraintViolation(
                ErrorKind.FOREIGN_KEY_VIOLATION, f"still applied to {in_use} movie(s)"
            )
        session.delete(item)
        session.flush()
        return Ok(None)


class PersonalizationRepository:
    """Per-user tag/category applications and notes, scoped to (user, movie)."""

    def list_tags(self, session: Session, user_id: str, movie_id: int) -> list[UserMovieTag]:
        query = (
            select(UserMovieTag)
            .where(UserMovieTag.user_id == user_id, UserMovieTag.movie_id == movie_id)
            .order_by(UserMovieTag.created_at, UserMovieTag.id)
        )
        return list(session.execute(query).scalars().unique())

    def list_categories(self, session: Session, user_id: str, movie_id: int) -> list[UserMovieCategory]:
        query = (
            select(UserMovieCategory)
            .where(UserMovieCategory.user_id == user_id, UserMovieCategory.movie_id == movie_id)
            .order_by(UserMovieCategory.created_at, UserMovieCategory.id)
        )
        return list(session.execute(query).scalars().unique())

    def list_notes(self, session: Session, user_id: str, movie_id: int) -> list[UserNote]:
        query = (
            select(UserNote)
            .where(UserNote.user_id == user_id, UserNote.movie_id == movie_id)
            .order_by(UserNote.created_at.desc(), UserNote.id.desc())
        )
        return list(session.execute(query).scalars())

    def latest_note(self, session: Session, user_id: str, movie_id: int) -> UserNote | None:
        notes = self.list_notes(session, user_id, movie_id)
        return notes[0] if notes else None

    def add_tag(self, session: Session, user_id: str, movie_id: int, tag_id: int) -> Result[UserMovieTag]:
        duplicate = session.execute(
            select(UserMovieTag.id).where(
                UserMovieTag.user_id == user_id,
                UserMovieTag.movie_id == movie_id,
                UserMovieTag.tag_id == tag_id,
            )
        ).first()
        if duplicate is not None:
            return ConstraintViolation(ErrorKind.UNIQUE_VIOLATION, "tag already applied")
        link = UserMovieTag(user_id=user_id, movie_id=movie_id, tag_id=tag_id)
        session.add(link)
        return _flush_or_classify(session, link)

    def add_category(
        self, session: Session, user_id: str, movie_id: int, category_id: int
    ) -> Result[UserMovieCategory]:
        duplicate = session.execute(
            select(UserMovieCategory.id).where(
                UserMovieCategory.user_id == user_id,
                UserMovieCategory.movie_id == movie_id,
                UserMovieCategory.category_id == category_id,
            )
        ).first()
        if duplicate is not None:
            return ConstraintViolation(ErrorKind.UNIQUE_VIOLATION, "category already applied")
        link = UserMovieCategory(user_id=user_id, movie_id=movie_id, category_id=category_id)
        session.add(link)
        return _flush_or_classify(session, link)

    def add_note(self, session: Session, user_id: str, movie_id: int, content: str) -> Result[UserNote]:
        note = UserNote(user_id=user_id, movie_id=movie_id, content=content)
        session.add(note)
        return _flush_or_classify(session, note)

    def update_note(self, session: Session, user_id: str, note_id: int, content: str) -> Result[UserNote]:
        note = session.get(UserNote, note_id)
        if note is None or note.user_id != user_id:
            return NotFound(f"note {note_id}")
        note.content = content
        note.updated_at = utcnow()
        return _flush_or_classify(session, note)

    def remove(self, session: Session, model: type, row_id: int, user_id: str) -> Result[int]:
        """Delete one of the caller's rows; returns the movie id it belonged to."""

        row = session.get(model, row_id)
        if row is None or row.user_id != user_id:
            return NotFound(f"{model.__tablename__} {row_id}")
        movie_id = row.movie_id
        session.delete(row)
        session.flush()
        return Ok(movie_id)

    def list_user_tag_links(self, session: Session, user_id: str) -> list[UserMovieTag]:
        query = select(UserMovieTag).where(UserMovieTag.user_id == user_id)
        return list(session.execute(query).scalars().unique())

    def list_user_category_links(self, session: Session, user_id: str) -> list[UserMovieCategory]:
        query = select(UserMovieCategory).where(UserMovieCategory.user_id == user_id)
        return list(session.execute(query).scalars().unique())

    def pairs_with_tag(self, session: Session, tag_id: int) -> set[tuple[str, int]]:
        query = select(UserMovieTag.user_id, UserMovieTag.movie_id).where(UserMovieTag.tag_id == tag_id)
        return {(row[0], row[1]) for row in session.execute(query)}

    def movie_ids_with_notes(self, session: Session, user_id: str) -> set[int]:
        query = select(UserNote.movie_id).where(UserNote.user_id == user_id)
        return set(session.execute(query).scalars())


class BlogPostRepository:
    """Access to movie_blog_posts keyed by (user_id, movie_id)."""

    def get_for_pair(self, session: Session, user_id: str, movie_id: int) -> MovieBlogPost | None:
        query = select(MovieBlogPost).where(
            MovieBlogPost.user_id == user_id, MovieBlogPost.movie_id == movie_id
        )
        return session.execute(query).unique().scalar_one_or_none()

    def get_by_slug(self, session: Session, slug: str) -> MovieBlogPost | None:
        query = select(MovieBlogPost).where(MovieBlogPost.slug == slug)
        return session.execute(query).unique().scalar_one_or_none()

    def get(self, session: Session, post_id: int) -> Result[MovieBlogPost]:
        post = session.get(MovieBlogPost, post_id)
        if post is None:
            return NotFound(f"blog post {post_id}")
        return Ok(post)

    def upsert(
        self,
        session: Session,
        *,
        user_id: str,
        movie_id: int,
        slug: str,
        title: str,
        content: str,
        meta_description: str,
        is_public: bool | None = None,
    ) -> Result[MovieBlogPost]:
        """Insert or update the pair's post.

        The update path leaves admin_approved alone so a revoked approval
        survives regeneration; is_public changes only when given.
        """

        now = utcnow()
        post = self.get_for_pair(session, user_id, movie_id)
        if post is None:
            post = MovieBlogPost(
                user_id=user_id,
                movie_id=movie_id,
                is_public=True if is_public is None else is_public,
                admin_approved=True,
                view_count=0,
                published_at=now,
            )
            session.add(post)
        elif is_public is not None:
            post.is_public = is_public
        post.slug = slug
        post.title = title
        post.content = content
        post.meta_description = meta_description
        post.updated_at = now
        return _flush_or_classify(session, post)

    def slug_owner(self, session: Session, slug: str) -> tuple[str, int] | None:
        row = session.execute(
            select(MovieBlogPost.user_id, MovieBlogPost.movie_id).where(MovieBlogPost.slug == slug)
        ).first()
        return (row[0], row[1]) if row else None

    def list_public(self, session: Session, *, limit: int | None = None) -> list[MovieBlogPost]:
        query = (
            select(MovieBlogPost)
            .where(MovieBlogPost.is_public.is_(True), MovieBlogPost.admin_approved.is_(True))
            .order_by(MovieBlogPost.updated_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return list(session.execute(query).unique().scalars())

    def list_all(self, session: Session) -> list[MovieBlogPost]:
        query = select(MovieBlogPost).order_by(MovieBlogPost.updated_at.desc())
        return list(session.execute(query).unique().scalars())

    def delete(self, session: Session, post_id: int) -> Result[None]:
        post = session.get(MovieBlogPost, post_id)
        if post is None:
            return NotFound(f"blog post {post_id}")
        session.delete(post)
        session.flush()
        return Ok(None)


movie_repo = MovieRepository()
tag_repo: TaxonomyRepository[Tag] = TaxonomyRepository(Tag, UserMovieTag, "tag_id")
category_repo: TaxonomyRepository[Category] = TaxonomyRepository(Category, UserMovieCategory, "category_id")
personalization_repo = PersonalizationRepository()
blog_post_repo = BlogPostRepository()
profile_repo = ProfileRepository()
