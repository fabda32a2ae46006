"""Shared dataclasses for service layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator


@dataclass(slots=True)
class MovieData:
    """A TMDb search hit, before it is added to the catalog."""

    tmdb_id: int
    title: str
    overview: str | None = None
    release_date: str | None = None
    poster_url: str | None = None
    vote_average: float | None = None
    genre_ids: list[int] | None = None
    runtime: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.tmdb_id,
            "title": self.title,
            "overview": self.overview,
            "release_date": self.release_date,
            "poster_path": self.poster_url,
            "vote_average": self.vote_average,
            "genre_ids": self.genre_ids or [],
        }


@dataclass(slots=True)
class MovieDetails:
    """Fields TMDb can backfill on a freshly created catalog row."""

    director: str | None = None
    genre: str | None = None
    runtime_minutes: int | None = None
    tagline: str | None = None
    imdb_id: str | None = None


@dataclass(slots=True)
class SearchPage:
    movies: list[MovieData]
    total_pages: int = 0


@dataclass(frozen=True, slots=True)
class MovieSnapshot:
    """The movie fields the blog composer reads."""

    title: str
    release_date: date | None = None
    overview: str | None = None
    director: str | None = None
    runtime_minutes: int | None = None
    genre: str | None = None
    poster_url: str | None = None
    tmdb_id: int | None = None
    imdb_id: str | None = None

    @classmethod
    def from_movie(cls, movie: Any) -> "MovieSnapshot":
        return cls(
            title=movie.title,
            release_date=movie.release_date,
            overview=movie.overview,
            director=movie.director,
            runtime_minutes=movie.runtime_minutes,
            genre=movie.genre,
            poster_url=movie.poster_url,
            tmdb_id=movie.tmdb_id,
            imdb_id=movie.imdb_id,
        )


@dataclass(frozen=True, slots=True)
class Label:
    """A tag or category as rendered in a post."""

    name: str
    color: str = "#3B82F6"


@dataclass(frozen=True, slots=True)
class BlogAuthor:
    user_id: str
    user_name: str
    full_name: str


@dataclass(frozen=True, slots=True)
class ExternalLinks:
    tmdb: str | None = None
    imdb: str | None = None
    metacritic: str | None = None
    rotten_tomatoes: str | None = None

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield (label, url) for the links that exist, in display order."""

        for label, url in (
            ("TMDB", self.tmdb),
            ("IMDb", self.imdb),
            ("Metacritic", self.metacritic),
            ("Rotten Tomatoes", self.rotten_tomatoes),
        ):
            if url:
                yield label, url


@dataclass(frozen=True, slots=True)
class ComposedPost:
    slug: str
    title: str
    content: str
    meta_description: str
