"""Blog post composer.

Turns a movie plus one user's tags, categories and note into the pieces of a
``movie_blog_posts`` row: slug, title, SEO meta description and HTML body.
Everything here is pure; persistence lives in ``blog_posts``.
"""

from __future__ import annotations

import re
from html import escape
from typing import Sequence

from curator.services.models import (
    BlogAuthor,
    ComposedPost,
    ExternalLinks,
    Label,
    MovieSnapshot,
)

META_DESCRIPTION_LIMIT = 160
NOTE_MIN_LENGTH = 20
NOTE_EXCERPT_LENGTH = 100
OVERVIEW_EXCERPT_LENGTH = 80

TMDB_MOVIE_URL = "https://www.themoviedb.org/movie/"
IMDB_TITLE_URL = "https://www.imdb.com/title/"
# Metacritic does not key pages by IMDb id; kept for link parity only.
METACRITIC_MOVIE_URL = "https://www.metacritic.com/movie/"

DISCLAIMER = "This post is a personal curation and may contain subjective opinions."

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _hyphenate(text: str) -> str:
    return _NON_ALNUM.sub("-", text.lower())


def _clean_segment(text: str) -> str:
    return _hyphenate(text).strip("-")


def generate_slug(movie_title: str, release_year: str, username: str) -> str:
    """Build ``{title}-{year}-{username}``.

    Title and username are lowercased, non-alphanumeric runs collapse to one
    hyphen and edge hyphens are stripped. A segment that ends up empty is
    left out, so ``("!!!", "2024", "bob")`` gives ``"2024-bob"``.
    """

    segments = [_clean_segment(movie_title), release_year, _clean_segment(username)]
    return "-".join(segment for segment in segments if segment)


def slugify_tag(name: str) -> str:
    """Slug used by the tag browse pages (edges are not stripped)."""

    return _hyphenate(name)


def generate_external_links(tmdb_id: int | None, imdb_id: str | None) -> ExternalLinks:
    return ExternalLinks(
        tmdb=f"{TMDB_MOVIE_URL}{tmdb_id}" if tmdb_id else None,
        imdb=f"{IMDB_TITLE_URL}{imdb_id}" if imdb_id else None,
        metacritic=f"{METACRITIC_MOVIE_URL}{imdb_id.replace('tt', '', 1)}" if imdb_id else None,
        rotten_tomatoes=None,
    )


def release_year(movie: MovieSnapshot, *, missing: str = "unknown") -> str:
    return str(movie.release_date.year) if movie.release_date else missing


def format_runtime(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def _join_names(labels: Sequence[Label]) -> str:
    return ", ".join(label.name for label in labels)


def _meta_phrase(category_names: str, tag_names: str) -> str:
    parts = []
    if category_names:
        parts.append(f"Category: {category_names}")
    if tag_names:
        parts.append(f"Tags: {tag_names}")
    return f" {'. '.join(parts)}." if parts else ""


def select_meta_description(
    movie: MovieSnapshot,
    tags: Sequence[Label],
    categories: Sequence[Label],
    user_note: str | None,
    full_name: str,
) -> str:
    """Pick the SEO description: the user's note, then the overview, then a template."""

    year = release_year(movie, missing="N/A")
    tag_names = _join_names(tags)
    category_names = _join_names(categories)
    note = user_note.strip() if user_note else ""

    if len(note) > NOTE_MIN_LENGTH:
        prefix = f"[{category_names}] " if category_names else ""
        ellipsis = "..." if len(note) > NOTE_EXCERPT_LENGTH else ""
        description = f"{movie.title} ({year}): {prefix}{note[:NOTE_EXCERPT_LENGTH]}{ellipsis}"
    elif movie.overview:
        phrase = _meta_phrase(category_names, tag_names)
        description = (
            f"{movie.title} ({year}) -{phrase} {movie.overview[:OVERVIEW_EXCERPT_LENGTH]}..."
        )
    else:
        phrase = _meta_phrase(category_names, tag_names)
        directed = f" directed by {movie.director}" if movie.director else ""
        description = f"{movie.title} ({year}){directed}.{phrase} Curated by {full_name}."

    return description[:META_DESCRIPTION_LIMIT]


def build_title(movie: MovieSnapshot, year: str, tags: Sequence[Label]) -> str:
    return f"{movie.title} ({year}) - {_join_names(tags) or 'Movie Review'}"


def _header(movie: MovieSnapshot, user_name: str, full_name: str) -> list[str]:
    lines = [
        '  <header class="blog-post-header">',
        f"    <h1>{escape(movie.title)}</h1>",
        '    <div class="movie-metadata">',
        f'      <span class="year">{release_year(movie, missing="N/A")}</span>',
    ]
    if movie.director:
        lines.append(f'      <span class="director">Directed by {escape(movie.director)}</span>')
    if movie.runtime_minutes:
        lines.append(f'      <span class="runtime">{format_runtime(movie.runtime_minutes)}</span>')
    if movie.genre:
        lines.append(f'      <span class="genre">{escape(movie.genre)}</span>')
    lines += [
        "    </div>",
        '    <div class="author">',
        f"      <p>Curated by {escape(full_name)} (@{escape(user_name)})</p>",
        "    </div>",
        "  </header>",
    ]
    return lines


def _tags_section(tags: Sequence[Label]) -> list[str]:
    lines = [
        '  <section class="tags">',
        "    <h2>Tags</h2>",
        '    <div class="tag-list">',
    ]
    for tag in tags:
        color = escape(tag.color)
        lines.append(
            f'      <a href="/tags/{slugify_tag(tag.name)}" class="tag" '
            f'style="background-color: {color}20; color: {color}; border-color: {color}">'
            f"{escape(tag.name)}</a>"
        )
    lines += ["    </div>", "  </section>"]
    return lines


def _categories_section(categories: Sequence[Label]) -> list[str]:
    lines = [
        '  <section class="categories">',
        "    <h2>Categories</h2>",
        '    <div class="category-list">',
    ]
    for category in categories:
        color = escape(category.color)
        lines.append(
            f'      <span class="category" style="background-color: {color}20; color: {color}">'
            f"{escape(category.name)}</span>"
        )
    lines += ["    </div>", "  </section>"]
    return lines


def _links_section(external_links: ExternalLinks) -> list[str]:
    lines = [
        '  <section class="external-links">',
        "    <h2>External Links</h2>",
        '    <div class="link-list">',
    ]
    for label, url in external_links.items():
        lines.append(
            f'      <a href="{escape(url)}" target="_blank" rel="noopener noreferrer" '
            f'class="external-link">{label}</a>'
        )
    lines += ["    </div>", "  </section>"]
    return lines


def assemble_content(
    movie: MovieSnapshot,
    tags: Sequence[Label],
    categories: Sequence[Label],
    user_note: str | None,
    user_name: str,
    full_name: str,
    external_links: ExternalLinks,
) -> str:
    """Render the article HTML. Sections without data are left out entirely."""

    lines = ['<article class="blog-post">']
    lines += _header(movie, user_name, full_name)

    if movie.poster_url:
        lines += [
            '  <div class="movie-poster">',
            f'    <img src="{escape(movie.poster_url)}" alt="{escape(movie.title)} poster" />',
            "  </div>",
        ]
    if movie.overview:
        lines += [
            '  <section class="overview">',
            "    <h2>Overview</h2>",
            f"    <p>{escape(movie.overview)}</p>",
            "  </section>",
        ]
    if tags:
        lines += _tags_section(tags)
    if categories:
        lines += _categories_section(categories)
    if user_note:
        lines += [
            '  <section class="user-review">',
            f"    <h2>{escape(full_name)}'s Review</h2>",
            "    <blockquote>",
            f"      {escape(user_note)}",
            "    </blockquote>",
            "  </section>",
        ]
    lines += _links_section(external_links)
    lines += [
        '  <footer class="blog-post-footer">',
        f'    <p class="disclaimer">{DISCLAIMER}</p>',
        "  </footer>",
        "</article>",
    ]
    return "\n".join(lines)


def compose_blog_post(
    movie: MovieSnapshot,
    tags: Sequence[Label],
    categories: Sequence[Label],
    user_note: str | None,
    author: BlogAuthor,
) -> ComposedPost:
    year = release_year(movie)
    links = generate_external_links(movie.tmdb_id, movie.imdb_id)
    return ComposedPost(
        slug=generate_slug(movie.title, year, author.user_name),
        title=build_title(movie, year, tags),
        content=assemble_content(
            movie, tags, categories, user_note, author.user_name, author.full_name, links
        ),
        meta_description=select_meta_description(
            movie, tags, categories, user_note, author.full_name
        ),
    )
