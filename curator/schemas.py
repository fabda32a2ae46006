"""Request/response schemas for the HTTP API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MovieOut(ORMModel):
    id: int
    title: str
    description: str | None = None
    overview: str | None = None
    release_date: date | None = None
    poster_url: str | None = None
    genre: str | None = None
    director: str | None = None
    runtime_minutes: int | None = None
    imdb_id: str | None = None
    tmdb_id: int | None = None


class MovieDetailOut(MovieOut):
    runtime_label: str


class TMDbMovieIn(BaseModel):
    id: int | None = None
    title: str | None = None
    overview: str | None = None
    release_date: str | None = None
    poster_path: str | None = None
    vote_average: float | None = None
    genre_ids: list[int] = Field(default_factory=list)
    runtime: int | None = None


class AddMovieRequest(BaseModel):
    tmdb_movie: TMDbMovieIn = Field(..., alias="tmdbMovie")

    model_config = ConfigDict(populate_by_name=True)


class AddMovieResponse(BaseModel):
    success: bool
    message: str
    movie: MovieOut


class SearchResponse(BaseModel):
    local_results: list[MovieOut] = Field(default_factory=list)
    tmdb_results: list[dict[str, Any]] = Field(default_factory=list)
    has_more: bool = False
    error: str | None = None


class TaxonomyOut(ORMModel):
    id: int
    name: str
    description: str | None = None
    color: str


class TaxonomyIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class TaxonomyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class UserTagOut(ORMModel):
    id: int
    movie_id: int
    tag_id: int
    created_at: datetime | None = None
    tag: TaxonomyOut


class UserCategoryOut(ORMModel):
    id: int
    movie_id: int
    category_id: int
    created_at: datetime | None = None
    category: TaxonomyOut


class NoteOut(ORMModel):
    id: int
    movie_id: int
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AddTagRequest(BaseModel):
    tag_id: int


class AddCategoryRequest(BaseModel):
    category_id: int


class NoteRequest(BaseModel):
    content: str = Field(..., max_length=5000)


class PersonalizationOut(BaseModel):
    tags: list[UserTagOut]
    categories: list[UserCategoryOut]
    notes: list[NoteOut]


class UserMovieOut(BaseModel):
    movie: MovieOut
    tags: list[UserTagOut]
    categories: list[UserCategoryOut]
    has_note: bool


class GenerateBlogPostRequest(BaseModel):
    movie_id: int | None = Field(default=None, alias="movieId")
    is_public: bool | None = Field(default=None, alias="isPublic")

    model_config = ConfigDict(populate_by_name=True)


class VisibilityRequest(BaseModel):
    is_public: bool


class ApprovalRequest(BaseModel):
    admin_approved: bool


class BlogPostOut(ORMModel):
    id: int
    user_id: str
    movie_id: int
    slug: str
    title: str
    content: str | None = None
    meta_description: str | None = None
    is_public: bool
    admin_approved: bool
    view_count: int
    published_at: datetime | None = None
    updated_at: datetime | None = None


class GenerateBlogPostResponse(BaseModel):
    success: bool = True
    blog_post: BlogPostOut
    message: str = "Blog post generated successfully"


class AuthorOut(ORMModel):
    user_name: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None


class LabelOut(BaseModel):
    name: str
    color: str


class PublicBlogPostOut(BaseModel):
    post: BlogPostOut
    movie: MovieDetailOut
    author: AuthorOut | None = None
    tags: list[LabelOut]
    structured_data: dict[str, Any]


class TagPageOut(BaseModel):
    tag: TaxonomyOut
    posts: list[BlogPostOut]


class MovieUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    overview: str | None = None
    release_date: date | None = None
    poster_url: str | None = None
    genre: str | None = None
    director: str | None = None
    runtime_minutes: int | None = Field(default=None, ge=0)
    imdb_id: str | None = None


class ProfileOut(ORMModel):
    id: str
    user_name: str | None = None
    full_name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProfileUpdate(BaseModel):
    user_name: str = ""
    full_name: str = ""
    bio: str | None = None
    avatar_url: str | None = None
