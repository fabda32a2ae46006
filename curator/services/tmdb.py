"""Thin wrapper around the TMDb API to fetch movie metadata."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from curator.core.config import get_settings
from curator.services.models import MovieData, MovieDetails, SearchPage


logger = logging.getLogger(__name__)


class TMDbError(Exception):
    """Base exception for TMDb-related failures."""


class TMDbNotConfigured(TMDbError):
    """Raised when no API key is available."""


class TMDbNotFound(TMDbError):
    """Raised when TMDb has no movie for the given id."""


class TMDbClient:
    """Simple TMDb HTTP client using API key auth."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        image_base: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.image_base = (image_base or settings.tmdb_image_base).rstrip("/")
        self.timeout = timeout or settings.tmdb_timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise TMDbNotConfigured("TMDB_API_KEY is not configured")
        url = f"{self.base_url}{path}"
        query = {"api_key": self.api_key}
        if params:
            query.update({k: v for k, v in params.items() if v is not None})
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, url, params=query, headers={"Accept": "application/json"})
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise TMDbNotFound(f"TMDb has no resource at {path}") from exc
            raise TMDbError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TMDbError(f"TMDb request failed: {exc}") from exc
        return response.json()

    def search_movies(self, query: str, *, page: int = 1) -> SearchPage:
        """Search TMDb by title and return one page of hits."""

        payload = self._request("GET", "/search/movie", params={"query": query, "page": page})
        logger.debug("TMDb search payload: %s", payload)
        movies = [
            MovieData(
                tmdb_id=item["id"],
                title=item.get("title") or "",
                overview=item.get("overview") or None,
                release_date=item.get("release_date") or None,
                poster_url=self._build_poster_url(item.get("poster_path")),
                vote_average=item.get("vote_average"),
                genre_ids=item.get("genre_ids") or [],
            )
            for item in payload.get("results", [])
            if item.get("id")
        ]
        return SearchPage(movies=movies, total_pages=int(payload.get("total_pages") or 0))

    def get_movie_details(self, tmdb_id: int) -> MovieDetails:
        """Fetch the fields used to enrich a catalog row."""

        details = self._request(
            "GET",
            f"/movie/{tmdb_id}",
            params={"append_to_response": "credits"},
        )
        logger.debug("TMDb details payload: %s", details)
        genres = details.get("genres") or []
        return MovieDetails(
            director=self._extract_director(details.get("credits") or {}),
            genre=genres[0].get("name") if genres else None,
            runtime_minutes=details.get("runtime") or None,
            tagline=details.get("tagline") or None,
            imdb_id=details.get("imdb_id") or None,
        )

    @staticmethod
    def _extract_director(credits: dict[str, Any]) -> str | None:
        crew = credits.get("crew") or []
        for member in crew:
            if member.get("job") == "Director" and member.get("name"):
                return member["name"]
        return None

    def _build_poster_url(self, path: str | None) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{self.image_base}{path}"
