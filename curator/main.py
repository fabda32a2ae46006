"""FastAPI entrypoint wiring the catalog, personalization and blog services."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Response, status
from sqlalchemy.orm import Session

from curator.core.auth import CurrentUser, get_current_user, require_admin
from curator.db import get_session, init_models
from curator.models import Movie
from curator.schemas import (
    AddCategoryRequest,
    AddMovieRequest,
    AddMovieResponse,
    AddTagRequest,
    ApprovalRequest,
    AuthorOut,
    BlogPostOut,
    GenerateBlogPostRequest,
    GenerateBlogPostResponse,
    LabelOut,
    MovieDetailOut,
    MovieOut,
    MovieUpdate,
    NoteOut,
    NoteRequest,
    PersonalizationOut,
    ProfileOut,
    ProfileUpdate,
    PublicBlogPostOut,
    SearchResponse,
    TagPageOut,
    TaxonomyIn,
    TaxonomyOut,
    TaxonomyUpdate,
    UserCategoryOut,
    UserMovieOut,
    UserTagOut,
    VisibilityRequest,
)
from curator.services import admin as admin_service
from curator.services import blog_posts as blog_service
from curator.services import catalog as catalog_service
from curator.services import personalization as personalization_service
from curator.services import profiles as profile_service
from curator.services.blog_posts import (
    BlogPostGenerationError,
    BlogPostNotFound,
    BlogPostRegenerator,
    get_regenerator,
)
from curator.services.catalog import (
    CatalogError,
    InvalidMovieData,
    MovieAlreadyExists,
    MovieNotFound,
)
from curator.services.models import MovieData
from curator.services.personalization import (
    AlreadyApplied,
    EmptyNote,
    ItemNotFound,
    PersonalizationError,
)
from curator.services.profiles import InvalidProfile, ProfileError


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Ensure database tables before serving; drain regenerations on shutdown."""

    init_models()
    yield
    get_regenerator().queue.shutdown(wait=True)


app = FastAPI(title="Movie Curator", lifespan=lifespan)


@app.get("/")
def root():
    return {"ok": True, "service": "movie-curator"}


def _movie_detail(movie: Movie) -> MovieDetailOut:
    return MovieDetailOut(
        **MovieOut.model_validate(movie).model_dump(),
        runtime_label=catalog_service.format_runtime(movie.runtime_minutes),
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@app.get("/search", response_model=SearchResponse)
def search(query: str = "", session: Session = Depends(get_session)) -> SearchResponse:
    result = catalog_service.search_movies(session, query)
    return SearchResponse(
        local_results=[MovieOut.model_validate(movie) for movie in result.local_results],
        tmdb_results=[movie.as_dict() for movie in result.tmdb_results],
        has_more=result.has_more,
        error=result.error,
    )


@app.post("/movies", response_model=AddMovieResponse, status_code=status.HTTP_201_CREATED)
def add_movie(
    payload: AddMovieRequest,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(get_current_user),
) -> AddMovieResponse:
    incoming = payload.tmdb_movie
    try:
        movie = catalog_service.add_movie(
            session,
            MovieData(
                tmdb_id=incoming.id or 0,
                title=incoming.title or "",
                overview=incoming.overview,
                release_date=incoming.release_date,
                poster_url=incoming.poster_path,
                vote_average=incoming.vote_average,
                genre_ids=incoming.genre_ids,
                runtime=incoming.runtime,
            ),
        )
    except InvalidMovieData as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MovieAlreadyExists as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "Movie already exists in database", "movie_id": exc.movie.id},
        ) from exc
    except CatalogError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add movie to database",
        ) from exc
    return AddMovieResponse(
        success=True,
        message=f'"{movie.title}" has been added to your library.',
        movie=MovieOut.model_validate(movie),
    )


@app.get("/movies/{movie_id}", response_model=MovieDetailOut)
def get_movie(movie_id: int, session: Session = Depends(get_session)) -> MovieDetailOut:
    try:
        movie = catalog_service.get_movie(session, movie_id)
    except MovieNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movie not found") from exc
    return _movie_detail(movie)


@app.get("/tags", response_model=list[TaxonomyOut])
def list_tags(query: str | None = None, session: Session = Depends(get_session)) -> list[TaxonomyOut]:
    items = catalog_service.filter_taxonomy(catalog_service.list_tags(session), query)
    return [TaxonomyOut(**item) for item in items]


@app.get("/categories", response_model=list[TaxonomyOut])
def list_categories(query: str | None = None, session: Session = Depends(get_session)) -> list[TaxonomyOut]:
    items = catalog_service.filter_taxonomy(catalog_service.list_categories(session), query)
    return [TaxonomyOut(**item) for item in items]


# ---------------------------------------------------------------------------
# Personalization
# ---------------------------------------------------------------------------


def _regenerate_after_commit(
    session: Session,
    background_tasks: BackgroundTasks,
    regenerator: BlogPostRegenerator,
    user: CurrentUser,
    movie_id: int,
) -> None:
    """Commit the mutation first; the regeneration job reads it from a fresh session."""

    session.commit()
    background_tasks.add_task(regenerator.trigger, user, movie_id)


def _personalization_errors(exc: PersonalizationError) -> HTTPException:
    if isinstance(exc, AlreadyApplied):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ItemNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, EmptyNote):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@app.get("/movies/{movie_id}/personalization", response_model=PersonalizationOut)
def get_personalization(
    movie_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> PersonalizationOut:
    try:
        data = personalization_service.get_personalization(session, user, movie_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    return PersonalizationOut(
        tags=[UserTagOut.model_validate(link) for link in data.tags],
        categories=[UserCategoryOut.model_validate(link) for link in data.categories],
        notes=[NoteOut.model_validate(note) for note in data.notes],
    )


@app.post("/movies/{movie_id}/tags", response_model=UserTagOut, status_code=status.HTTP_201_CREATED)
def add_tag(
    movie_id: int,
    payload: AddTagRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> UserTagOut:
    try:
        link = personalization_service.add_tag(session, user, movie_id, payload.tag_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return UserTagOut.model_validate(link)


@app.delete("/user-tags/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_tag(
    link_id: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> Response:
    try:
        movie_id = personalization_service.remove_tag(session, user, link_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/movies/{movie_id}/categories",
    response_model=UserCategoryOut,
    status_code=status.HTTP_201_CREATED,
)
def add_category(
    movie_id: int,
    payload: AddCategoryRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> UserCategoryOut:
    try:
        link = personalization_service.add_category(session, user, movie_id, payload.category_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return UserCategoryOut.model_validate(link)


@app.delete("/user-categories/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_category(
    link_id: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> Response:
    try:
        movie_id = personalization_service.remove_category(session, user, link_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/movies/{movie_id}/notes", response_model=NoteOut, status_code=status.HTTP_201_CREATED)
def add_note(
    movie_id: int,
    payload: NoteRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> NoteOut:
    try:
        note = personalization_service.add_note(session, user, movie_id, payload.content)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return NoteOut.model_validate(note)


@app.patch("/notes/{note_id}", response_model=NoteOut)
def update_note(
    note_id: int,
    payload: NoteRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> NoteOut:
    try:
        note = personalization_service.update_note(session, user, note_id, payload.content)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, note.movie_id)
    return NoteOut.model_validate(note)


@app.delete("/notes/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_note(
    note_id: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    regenerator: BlogPostRegenerator = Depends(get_regenerator),
) -> Response:
    try:
        movie_id = personalization_service.remove_note(session, user, note_id)
    except PersonalizationError as exc:
        raise _personalization_errors(exc) from exc
    _regenerate_after_commit(session, background_tasks, regenerator, user, movie_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/my-movies", response_model=list[UserMovieOut])
def my_movies(
    tag_id: int | None = None,
    category_id: int | None = None,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> list[UserMovieOut]:
    items = personalization_service.list_user_movies(
        session, user, tag_id=tag_id, category_id=category_id
    )
    return [
        UserMovieOut(
            movie=MovieOut.model_validate(item.movie),
            tags=[UserTagOut.model_validate(link) for link in item.tags],
            categories=[UserCategoryOut.model_validate(link) for link in item.categories],
            has_note=item.has_note,
        )
        for item in items
    ]


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@app.get("/profile", response_model=ProfileOut)
def get_profile(
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> ProfileOut:
    try:
        profile = profile_service.get_or_create_profile(session, user)
    except ProfileError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ProfileOut.model_validate(profile)


@app.put("/profile", response_model=ProfileOut)
def update_profile(
    payload: ProfileUpdate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> ProfileOut:
    try:
        profile = profile_service.update_profile(
            session,
            user,
            user_name=payload.user_name,
            full_name=payload.full_name,
            bio=payload.bio,
            avatar_url=payload.avatar_url,
        )
    except InvalidProfile as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except ProfileError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ProfileOut.model_validate(profile)


# ---------------------------------------------------------------------------
# Blog posts
# ---------------------------------------------------------------------------


@app.post("/blog-posts/generate", response_model=GenerateBlogPostResponse)
def generate_blog_post(
    payload: GenerateBlogPostRequest,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> GenerateBlogPostResponse:
    if not payload.movie_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Movie ID is required")
    try:
        post = blog_service.generate_blog_post(
            session, user, payload.movie_id, is_public=payload.is_public
        )
    except MovieNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Movie not found") from exc
    except BlogPostGenerationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create blog post",
        ) from exc
    return GenerateBlogPostResponse(blog_post=BlogPostOut.model_validate(post))


@app.get("/blog-posts/{movie_id}", response_model=BlogPostOut)
def get_own_blog_post(
    movie_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BlogPostOut:
    post = blog_service.get_own_post(session, user, movie_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog post not found")
    return BlogPostOut.model_validate(post)


@app.patch("/blog-posts/{movie_id}/visibility", response_model=BlogPostOut)
def set_blog_post_visibility(
    movie_id: int,
    payload: VisibilityRequest,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
) -> BlogPostOut:
    try:
        post = blog_service.set_visibility(session, user, movie_id, payload.is_public)
    except BlogPostNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog post not found") from exc
    return BlogPostOut.model_validate(post)


@app.get("/blog/{slug}", response_model=PublicBlogPostOut)
def read_public_blog_post(slug: str, session: Session = Depends(get_session)) -> PublicBlogPostOut:
    try:
        view = blog_service.get_public_post(session, slug)
    except BlogPostNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog post not found") from exc
    return PublicBlogPostOut(
        post=BlogPostOut.model_validate(view.post),
        movie=_movie_detail(view.post.movie),
        author=AuthorOut.model_validate(view.author) if view.author else None,
        tags=[LabelOut(name=label.name, color=label.color) for label in view.tags],
        structured_data=view.structured_data,
    )


@app.get("/tags/{tag_slug}", response_model=TagPageOut)
def browse_tag(tag_slug: str, session: Session = Depends(get_session)) -> TagPageOut:
    try:
        tag, posts = blog_service.posts_for_tag(session, tag_slug)
    except BlogPostNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found") from exc
    return TagPageOut(
        tag=TaxonomyOut.model_validate(tag),
        posts=[BlogPostOut.model_validate(post) for post in posts],
    )


@app.get("/sitemap.xml")
def sitemap(session: Session = Depends(get_session)) -> Response:
    return Response(content=blog_service.build_sitemap(session), media_type="application/xml")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def _admin_errors(exc: admin_service.AdminError) -> HTTPException:
    if isinstance(exc, admin_service.AdminNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (admin_service.DuplicateName, admin_service.StillInUse)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


_TAXONOMIES = {
    "tags": admin_service.tags_admin,
    "categories": admin_service.categories_admin,
}


def _taxonomy_admin(kind: str) -> admin_service.TaxonomyAdmin:
    try:
        return _TAXONOMIES[kind]
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown taxonomy") from exc


@app.get("/admin/movies", response_model=list[MovieOut])
def admin_list_movies(
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> list[MovieOut]:
    return [MovieOut.model_validate(movie) for movie in admin_service.list_movies(session)]


@app.patch("/admin/movies/{movie_id}", response_model=MovieOut)
def admin_update_movie(
    movie_id: int,
    payload: MovieUpdate,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> MovieOut:
    try:
        movie = admin_service.update_movie(session, movie_id, **payload.model_dump())
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return MovieOut.model_validate(movie)


@app.delete("/admin/movies/{movie_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_movie(
    movie_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> Response:
    try:
        admin_service.delete_movie(session, movie_id)
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/admin/blog-posts", response_model=list[BlogPostOut])
def admin_list_blog_posts(
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> list[BlogPostOut]:
    return [BlogPostOut.model_validate(post) for post in admin_service.list_blog_posts(session)]


@app.patch("/admin/blog-posts/{post_id}/approval", response_model=BlogPostOut)
def admin_set_approval(
    post_id: int,
    payload: ApprovalRequest,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> BlogPostOut:
    try:
        post = admin_service.set_blog_post_approval(session, post_id, payload.admin_approved)
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return BlogPostOut.model_validate(post)


@app.delete("/admin/blog-posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_blog_post(
    post_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> Response:
    try:
        admin_service.delete_blog_post(session, post_id)
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/admin/users", response_model=list[ProfileOut])
def admin_list_users(
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> list[ProfileOut]:
    return [ProfileOut.model_validate(profile) for profile in admin_service.list_users(session)]


# Must stay below the fixed /admin/... routes.
@app.get("/admin/{kind}", response_model=list[TaxonomyOut])
def admin_list_taxonomy(
    kind: str,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> list[TaxonomyOut]:
    return [TaxonomyOut.model_validate(item) for item in _taxonomy_admin(kind).list(session)]


@app.post("/admin/{kind}", response_model=TaxonomyOut, status_code=status.HTTP_201_CREATED)
def admin_create_taxonomy(
    kind: str,
    payload: TaxonomyIn,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> TaxonomyOut:
    try:
        item = _taxonomy_admin(kind).create(session, **payload.model_dump())
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return TaxonomyOut.model_validate(item)


@app.patch("/admin/{kind}/{item_id}", response_model=TaxonomyOut)
def admin_update_taxonomy(
    kind: str,
    item_id: int,
    payload: TaxonomyUpdate,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> TaxonomyOut:
    try:
        item = _taxonomy_admin(kind).update(session, item_id, **payload.model_dump())
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return TaxonomyOut.model_validate(item)


@app.delete("/admin/{kind}/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_taxonomy(
    kind: str,
    item_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(require_admin),
) -> Response:
    try:
        _taxonomy_admin(kind).delete(session, item_id)
    except admin_service.AdminError as exc:
        raise _admin_errors(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
