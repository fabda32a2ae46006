"""Catalog helpers: local-first search, add-from-TMDb and enrichment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session

from curator.db import Ok, category_repo, movie_repo, tag_repo
from curator.models import Movie
from curator.services.cache import TTLCache
from curator.services.models import MovieData
from curator.services.tmdb import TMDbClient, TMDbError

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
LOCAL_RESULT_LIMIT = 10
TMDB_RESULT_LIMIT = 5

TAGS_CACHE_KEY = "tags"
CATEGORIES_CACHE_KEY = "categories"


class CatalogError(Exception):
    """Base exception for catalog failures."""


class InvalidMovieData(CatalogError):
    pass


class MovieNotFound(CatalogError):
    pass


class MovieAlreadyExists(CatalogError):
    def __init__(self, movie: Movie) -> None:
        super().__init__(f"Movie already exists in database: {movie.title}")
        self.movie = movie


@dataclass(slots=True)
class SearchResult:
    local_results: list[Movie] = field(default_factory=list)
    tmdb_results: list[MovieData] = field(default_factory=list)
    has_more: bool = False
    error: str | None = None


def search_movies(session: Session, query: str, *, tmdb_client: TMDbClient | None = None) -> SearchResult:
    """Search the local catalog first and fall back to TMDb when it has nothing."""

    term = (query or "").strip()
    if len(term) < MIN_QUERY_LENGTH:
        return SearchResult()

    local = movie_repo.search(session, term, limit=LOCAL_RESULT_LIMIT)
    logger.info("Local search for %r returned %d movies", term, len(local))
    if local:
        return SearchResult(local_results=local)

    tmdb = tmdb_client or TMDbClient()
    if not tmdb.configured:
        logger.error("TMDb API key not configured, external search unavailable")
        return SearchResult(error="External search not available")

    try:
        page = tmdb.search_movies(term)
    except TMDbError as exc:
        logger.error("TMDb search failed for %r: %s", term, exc)
        return SearchResult(error="Search temporarily unavailable")

    candidates = page.movies[:TMDB_RESULT_LIMIT]
    existing = movie_repo.existing_tmdb_ids(session, [movie.tmdb_id for movie in candidates])
    fresh = [movie for movie in candidates if movie.tmdb_id not in existing]
    logger.info("TMDb returned %d new movies for %r", len(fresh), term)
    return SearchResult(tmdb_results=fresh, has_more=page.total_pages > 1)


def _parse_release_date(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw[:10]).date()
    except ValueError:
        return None


def add_movie(
    session: Session,
    tmdb_movie: MovieData,
    *,
    tmdb_client: TMDbClient | None = None,
) -> Movie:
    """Insert a TMDb search hit into the catalog and try to enrich it."""

    if not tmdb_movie.tmdb_id or not tmdb_movie.title:
        raise InvalidMovieData("Invalid movie data provided")

    existing = movie_repo.get_by_tmdb_id(session, tmdb_movie.tmdb_id)
    if existing is not None:
        raise MovieAlreadyExists(existing)

    result = movie_repo.create(
        session,
        title=tmdb_movie.title,
        overview=tmdb_movie.overview or None,
        release_date=_parse_release_date(tmdb_movie.release_date),
        poster_url=tmdb_movie.poster_url or None,
        tmdb_id=tmdb_movie.tmdb_id,
        runtime_minutes=tmdb_movie.runtime or None,
    )
    if not isinstance(result, Ok):
        logger.error("Error inserting movie %s: %s", tmdb_movie.tmdb_id, result)
        raise CatalogError("Failed to add movie to database")
    movie = result.value
    # Enrichment is best-effort; a failed update must not undo the insert.
    session.commit()
    logger.info("Movie inserted: id=%s tmdb_id=%s", movie.id, movie.tmdb_id)

    tmdb = tmdb_client or TMDbClient()
    if tmdb.configured:
        enrich_movie(session, movie, tmdb)
    return movie


def enrich_movie(session: Session, movie: Movie, tmdb_client: TMDbClient) -> bool:
    """Backfill director/genre/runtime/tagline. Failures are logged, never raised."""

    try:
        details = tmdb_client.get_movie_details(movie.tmdb_id)
    except TMDbError as exc:
        logger.warning("Movie enrichment failed for %s: %s", movie.tmdb_id, exc)
        return False

    result = movie_repo.update(
        session,
        movie.id,
        director=details.director,
        genre=details.genre,
        runtime_minutes=details.runtime_minutes or movie.runtime_minutes,
        description=details.tagline,
        imdb_id=details.imdb_id or movie.imdb_id,
    )
    if not isinstance(result, Ok):
        logger.warning("Could not store enrichment for movie %s: %s", movie.id, result)
        return False
    return True


def get_movie(session: Session, movie_id: int) -> Movie:
    result = movie_repo.get(session, movie_id)
    if not isinstance(result, Ok):
        raise MovieNotFound(f"Movie {movie_id} not found")
    return result.value


def format_runtime(minutes: int | None) -> str:
    """Runtime as shown on detail pages; a zero hour is dropped."""

    if not minutes:
        return "N/A"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


# ---------------------------------------------------------------------------
# Cached taxonomy lists
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_taxonomy_cache() -> TTLCache:
    return TTLCache()


def _serialize(item: Any) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "color": item.color,
    }


def list_tags(session: Session, *, cache: TTLCache | None = None) -> list[dict[str, Any]]:
    cache = cache or get_taxonomy_cache()
    return cache.get_or_load(
        TAGS_CACHE_KEY, lambda: [_serialize(tag) for tag in tag_repo.list_all(session)]
    )


def list_categories(session: Session, *, cache: TTLCache | None = None) -> list[dict[str, Any]]:
    cache = cache or get_taxonomy_cache()
    return cache.get_or_load(
        CATEGORIES_CACHE_KEY,
        lambda: [_serialize(category) for category in category_repo.list_all(session)],
    )


def filter_taxonomy(items: list[dict[str, Any]], query: str | None) -> list[dict[str, Any]]:
    """Case-insensitive match on name or description; blank query keeps all."""

    if not query or not query.strip():
        return items
    term = query.strip().lower()
    return [
        item
        for item in items
        if term in item["name"].lower() or (item["description"] and term in item["description"].lower())
    ]
