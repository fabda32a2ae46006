"""Blog post persistence and the public read surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import lru_cache, partial
from typing import Any, Callable
from xml.etree import ElementTree

from sqlalchemy.orm import Session

from curator.core.auth import CurrentUser
from curator.core.config import get_settings
from curator.db import (
    Ok,
    SessionLocal,
    blog_post_repo,
    personalization_repo,
    profile_repo,
    tag_repo,
    utcnow,
)
from curator.models import MovieBlogPost, Profile, Tag, UserMovieCategory, UserMovieTag
from curator.services.blog import compose_blog_post, generate_slug, slugify_tag
from curator.services.catalog import MovieNotFound, get_movie
from curator.services.models import BlogAuthor, ComposedPost, Label, MovieSnapshot
from curator.services.regeneration import RegenerationQueue

logger = logging.getLogger(__name__)

SITEMAP_POST_LIMIT = 1000
SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


class BlogPostError(Exception):
    """Base exception for blog post failures."""


class BlogPostGenerationError(BlogPostError):
    """Composition or upsert failed; the whole post is discarded."""


class BlogPostNotFound(BlogPostError):
    pass


def resolve_author(user: CurrentUser, profile: Profile | None) -> BlogAuthor:
    user_name = (profile.user_name if profile else None) or (
        user.email.split("@")[0] if user.email else None
    ) or "anonymous"
    full_name = (profile.full_name if profile else None) or user_name
    return BlogAuthor(user_id=user.id, user_name=user_name, full_name=full_name)


def _labels(links: list[UserMovieTag] | list[UserMovieCategory], attr: str) -> list[Label]:
    labels = []
    for link in links:
        item = getattr(link, attr)
        if item is not None:
            labels.append(Label(name=item.name, color=item.color))
    return labels


def _slug_candidates(base: str, user_id: str, movie_id: int) -> list[str]:
    user_part = generate_slug("", "", user_id)
    return [base, f"{base}-{user_part}", f"{base}-{user_part}-{movie_id}"]


def _disambiguate(session: Session, composed: ComposedPost, author: BlogAuthor, movie_id: int) -> ComposedPost:
    """Pick the first free slug out of base, base-user and base-user-movie.

    A post that already lives at one of those slugs keeps it, so its public
    URL does not move when a competing post disappears.
    """

    pair = (author.user_id, movie_id)
    candidates = _slug_candidates(composed.slug, author.user_id, movie_id)

    current = blog_post_repo.get_for_pair(session, *pair)
    if current is not None and current.slug in candidates:
        return replace(composed, slug=current.slug)

    for slug in candidates:
        owner = blog_post_repo.slug_owner(session, slug)
        if owner is None or owner == pair:
            break
        logger.info("Slug %s taken by %s", slug, owner)
    return replace(composed, slug=slug)


def generate_blog_post(
    session: Session,
    user: CurrentUser,
    movie_id: int | None,
    *,
    is_public: bool | None = None,
) -> MovieBlogPost:
    """Compose the caller's post for ``movie_id`` and upsert it."""

    if not movie_id:
        raise MovieNotFound("Movie ID is required")
    logger.info("Generating blog post for movie %s, user %s", movie_id, user.id)
    movie = get_movie(session, movie_id)

    author = resolve_author(user, profile_repo.get(session, user.id))
    tags = _labels(personalization_repo.list_tags(session, user.id, movie_id), "tag")
    categories = _labels(personalization_repo.list_categories(session, user.id, movie_id), "category")
    note = personalization_repo.latest_note(session, user.id, movie_id)

    try:
        composed = compose_blog_post(
            MovieSnapshot.from_movie(movie),
            tags,
            categories,
            note.content if note else None,
            author,
        )
    except (TypeError, ValueError, AttributeError) as exc:
        logger.error("Error composing blog post for movie %s: %s", movie_id, exc)
        raise BlogPostGenerationError("Failed to create blog post") from exc

    composed = _disambiguate(session, composed, author, movie_id)
    result = blog_post_repo.upsert(
        session,
        user_id=user.id,
        movie_id=movie_id,
        slug=composed.slug,
        title=composed.title,
        content=composed.content,
        meta_description=composed.meta_description,
        is_public=is_public,
    )
    if not isinstance(result, Ok):
        logger.error("Error upserting blog post: %s", result)
        raise BlogPostGenerationError("Failed to create blog post")

    logger.info("Blog post generated successfully: %s", composed.slug)
    return result.value


def regenerate_in_new_session(
    session_factory: Callable[[], Session], user: CurrentUser, movie_id: int
) -> None:
    """Queue job body: run one generation in its own transaction."""

    session = session_factory()
    try:
        generate_blog_post(session, user, movie_id)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class BlogPostRegenerator:
    """Fire-and-forget regeneration, serialized per (user, movie)."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        queue: RegenerationQueue | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue or RegenerationQueue()

    def trigger(self, user: CurrentUser, movie_id: int) -> None:
        try:
            self.queue.submit(
                (user.id, movie_id),
                partial(regenerate_in_new_session, self.session_factory, user, movie_id),
            )
        except RuntimeError as exc:
            logger.warning("Could not schedule blog post regeneration for movie %s: %s", movie_id, exc)


@lru_cache(maxsize=1)
def get_regenerator() -> BlogPostRegenerator:
    return BlogPostRegenerator()


def set_visibility(session: Session, user: CurrentUser, movie_id: int, is_public: bool) -> MovieBlogPost:
    post = blog_post_repo.get_for_pair(session, user.id, movie_id)
    if post is None:
        raise BlogPostNotFound(f"No blog post for movie {movie_id}")
    post.is_public = is_public
    post.updated_at = utcnow()
    session.flush()
    return post


def get_own_post(session: Session, user: CurrentUser, movie_id: int) -> MovieBlogPost | None:
    return blog_post_repo.get_for_pair(session, user.id, movie_id)


@dataclass(slots=True)
class PublicPostView:
    post: MovieBlogPost
    author: Profile | None
    tags: list[Label]
    structured_data: dict[str, Any]


def _structured_data(post: MovieBlogPost, author: Profile | None) -> dict[str, Any]:
    movie = post.movie
    author_name = (author.full_name or author.user_name) if author else None
    return {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": post.title,
        "description": post.meta_description or movie.overview,
        "image": movie.poster_url,
        "datePublished": post.published_at.isoformat() if post.published_at else None,
        "dateModified": post.updated_at.isoformat() if post.updated_at else None,
        "author": {"@type": "Person", "name": author_name},
        "about": {
            "@type": "Movie",
            "name": movie.title,
            "director": movie.director,
            "datePublished": movie.release_date.isoformat() if movie.release_date else None,
            "genre": movie.genre,
        },
    }


def get_public_post(session: Session, slug: str) -> PublicPostView:
    """Read a visible post by slug and bump its view counter."""

    post = blog_post_repo.get_by_slug(session, slug)
    if post is None or not post.is_visible:
        raise BlogPostNotFound(f"Blog post {slug!r} not found")

    # Best-effort counter: plain read-modify-write, concurrent views may be lost.
    post.view_count = (post.view_count or 0) + 1
    session.flush()

    author = profile_repo.get(session, post.user_id)
    tags = _labels(personalization_repo.list_tags(session, post.user_id, post.movie_id), "tag")
    return PublicPostView(post=post, author=author, tags=tags, structured_data=_structured_data(post, author))


def posts_for_tag(session: Session, tag_slug: str) -> tuple[Tag, list[MovieBlogPost]]:
    """Resolve a tag-browse slug and list the public posts that carry the tag."""

    tag = tag_repo.get_by_name(session, tag_slug.replace("-", " "))
    if tag is None:
        tag = next((t for t in tag_repo.list_all(session) if slugify_tag(t.name) == tag_slug), None)
    if tag is None:
        raise BlogPostNotFound(f"Tag {tag_slug!r} not found")

    tagged_pairs = personalization_repo.pairs_with_tag(session, tag.id)
    posts = [
        post for post in blog_post_repo.list_public(session) if (post.user_id, post.movie_id) in tagged_pairs
    ]
    return tag, posts


def build_sitemap(session: Session) -> str:
    base_url = get_settings().site_url.rstrip("/")
    today = utcnow().date().isoformat()
    entries: list[tuple[str, str, str, str]] = [
        (base_url, today, "daily", "1.0"),
        (f"{base_url}/search", today, "daily", "0.8"),
    ]
    for post in blog_post_repo.list_public(session, limit=SITEMAP_POST_LIMIT):
        modified = post.updated_at.date().isoformat() if post.updated_at else today
        entries.append((f"{base_url}/blog/{post.slug}", modified, "weekly", "0.7"))
    for tag in tag_repo.list_all(session):
        entries.append((f"{base_url}/tags/{slugify_tag(tag.name)}", today, "weekly", "0.6"))

    urlset = ElementTree.Element("urlset", xmlns=SITEMAP_NS)
    for loc, lastmod, changefreq, priority in entries:
        url = ElementTree.SubElement(urlset, "url")
        ElementTree.SubElement(url, "loc").text = loc
        ElementTree.SubElement(url, "lastmod").text = lastmod
        ElementTree.SubElement(url, "changefreq").text = changefreq
        ElementTree.SubElement(url, "priority").text = priority
    return ElementTree.tostring(urlset, encoding="unicode", xml_declaration=True)
