import datetime as dt
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from curator.core.auth import CurrentUser, get_current_user
from curator.db import blog_post_repo
from curator.main import app
from curator.models import Movie, MovieBlogPost, Profile, Tag
from curator.services import blog_posts as blog_service
from curator.services import catalog as catalog_service
from curator.services import personalization as personalization_service


@pytest.fixture
def admin_client(client):
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="admin-1", email="Admin@Example.com")
    return client


@pytest.fixture
def published(session, user, inception, taxonomy, profile):
    personalization_service.add_tag(session, user, inception.id, taxonomy["mind"].id)
    post = blog_service.generate_blog_post(session, user, inception.id)
    session.commit()
    return post


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_search_returns_local_results(client, inception):
    response = client.get("/search", params={"query": "inception"})
    assert response.status_code == 200
    body = response.json()
    assert [movie["tmdb_id"] for movie in body["local_results"]] == [27205]
    assert body["tmdb_results"] == []


def test_add_movie_endpoint(client):
    payload = {"tmdbMovie": {"id": 603, "title": "The Matrix", "release_date": "1999-03-31", "poster_path": None}}
    with mock.patch.object(catalog_service, "TMDbClient") as fake:
        fake.return_value.configured = False
        response = client.post("/movies", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["movie"]["release_date"] == "1999-03-31"

    with mock.patch.object(catalog_service, "TMDbClient") as fake:
        fake.return_value.configured = False
        duplicate = client.post("/movies", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["movie_id"] == body["movie"]["id"]


def test_add_movie_rejects_missing_fields(client):
    response = client.post("/movies", json={"tmdbMovie": {"title": "No id"}})
    assert response.status_code == 400


def test_movie_detail_runtime_label(client, inception):
    response = client.get(f"/movies/{inception.id}")
    assert response.status_code == 200
    assert response.json()["runtime_label"] == "2h 28m"
    assert client.get("/movies/999").status_code == 404


def test_tags_list_filters_by_query(client, taxonomy):
    response = client.get("/tags", params={"query": "twi"})
    assert [tag["name"] for tag in response.json()] == ["Twist"]
    assert len(client.get("/categories").json()) == 2


def test_add_tag_triggers_regeneration(client, recorder, user, inception, taxonomy):
    response = client.post(f"/movies/{inception.id}/tags", json={"tag_id": taxonomy["mind"].id})
    assert response.status_code == 201
    assert response.json()["tag"]["name"] == "Mind bending"
    assert recorder.calls == [(user.id, inception.id)]

    duplicate = client.post(f"/movies/{inception.id}/tags", json={"tag_id": taxonomy["mind"].id})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "You have already added this tag to this movie"
    assert len(recorder.calls) == 1


def test_add_tag_unknown_movie(client, recorder, taxonomy):
    response = client.post("/movies/999/tags", json={"tag_id": taxonomy["mind"].id})
    assert response.status_code == 404
    assert recorder.calls == []


def test_remove_tag_and_category(client, recorder, inception, taxonomy):
    tag_link = client.post(f"/movies/{inception.id}/tags", json={"tag_id": taxonomy["twist"].id}).json()
    category_link = client.post(
        f"/movies/{inception.id}/categories", json={"category_id": taxonomy["scifi"].id}
    ).json()

    assert client.delete(f"/user-tags/{tag_link['id']}").status_code == 204
    assert client.delete(f"/user-categories/{category_link['id']}").status_code == 204
    assert client.delete(f"/user-tags/{tag_link['id']}").status_code == 404
    assert len(recorder.calls) == 4


def test_notes_lifecycle(client, recorder, inception):
    created = client.post(f"/movies/{inception.id}/notes", json={"content": "  Dreams feel real  "})
    assert created.status_code == 201
    note = created.json()
    assert note["content"] == "Dreams feel real"

    updated = client.patch(f"/notes/{note['id']}", json={"content": "Still thinking about the top"})
    assert updated.json()["content"] == "Still thinking about the top"

    assert client.post(f"/movies/{inception.id}/notes", json={"content": "   "}).status_code == 422
    assert client.delete(f"/notes/{note['id']}").status_code == 204
    assert len(recorder.calls) == 3


def test_personalization_and_my_movies(client, inception, taxonomy):
    client.post(f"/movies/{inception.id}/tags", json={"tag_id": taxonomy["mind"].id})
    client.post(f"/movies/{inception.id}/notes", json={"content": "Layered"})

    data = client.get(f"/movies/{inception.id}/personalization").json()
    assert [link["tag"]["name"] for link in data["tags"]] == ["Mind bending"]
    assert [note["content"] for note in data["notes"]] == ["Layered"]

    movies = client.get("/my-movies").json()
    assert movies[0]["movie"]["title"] == "Inception"
    assert movies[0]["has_note"] is True
    assert client.get("/my-movies", params={"tag_id": taxonomy["twist"].id}).json() == []


def test_generate_blog_post_endpoint(client, inception, profile):
    assert client.post("/blog-posts/generate", json={}).status_code == 400
    assert client.post("/blog-posts/generate", json={"movieId": 999}).status_code == 404

    response = client.post("/blog-posts/generate", json={"movieId": inception.id, "isPublic": False})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["blog_post"]["slug"] == "inception-2010-dom"
    assert body["blog_post"]["is_public"] is False

    own = client.get(f"/blog-posts/{inception.id}")
    assert own.json()["id"] == body["blog_post"]["id"]


def test_visibility_toggle(client, published):
    response = client.patch(f"/blog-posts/{published.movie_id}/visibility", json={"is_public": False})
    assert response.status_code == 200
    assert client.get(f"/blog/{published.slug}").status_code == 404
    assert client.patch("/blog-posts/999/visibility", json={"is_public": True}).status_code == 404


def test_public_blog_post_increments_views(client, published):
    first = client.get(f"/blog/{published.slug}")
    second = client.get(f"/blog/{published.slug}")
    assert first.status_code == 200
    assert first.json()["post"]["view_count"] == 1
    assert second.json()["post"]["view_count"] == 2
    body = second.json()
    assert body["author"]["full_name"] == "Dom Cobb"
    assert body["movie"]["runtime_label"] == "2h 28m"
    assert body["tags"] == [{"name": "Mind bending", "color": "#FF0000"}]


def test_unapproved_post_is_hidden(client, session, published):
    published.admin_approved = False
    session.commit()
    assert client.get(f"/blog/{published.slug}").status_code == 404


def test_tag_page_and_sitemap(client, published):
    page = client.get("/tags/mind-bending")
    assert page.status_code == 200
    assert [post["slug"] for post in page.json()["posts"]] == [published.slug]
    assert client.get("/tags/nope").status_code == 404

    sitemap = client.get("/sitemap.xml")
    assert sitemap.headers["content-type"].startswith("application/xml")
    assert f"/blog/{published.slug}</loc>" in sitemap.text


def test_admin_routes_require_admin(client):
    assert client.get("/admin/movies").status_code == 403
    assert client.get("/admin/tags").status_code == 403


def test_admin_taxonomy_crud(admin_client):
    created = admin_client.post("/admin/tags", json={"name": "  Heist ", "color": "#ABCDEF"})
    assert created.status_code == 201
    tag = created.json()
    assert tag["name"] == "Heist"

    assert admin_client.post("/admin/tags", json={"name": "heist"}).status_code == 409
    assert admin_client.post("/admin/tags", json={"name": "Bad", "color": "red"}).status_code == 422

    renamed = admin_client.patch(f"/admin/tags/{tag['id']}", json={"name": "Caper"})
    assert renamed.json()["name"] == "Caper"
    assert [item["name"] for item in admin_client.get("/tags").json()] == ["Caper"]

    assert admin_client.delete(f"/admin/tags/{tag['id']}").status_code == 204
    assert admin_client.delete(f"/admin/tags/{tag['id']}").status_code == 404
    assert admin_client.get("/admin/genres").status_code == 404


def test_admin_cannot_delete_tag_in_use(admin_client, session, published, taxonomy):
    response = admin_client.delete(f"/admin/tags/{taxonomy['mind'].id}")
    assert response.status_code == 409
    assert "being used" in response.json()["detail"]


def test_admin_category_create_invalidates_cache(admin_client, taxonomy):
    assert len(admin_client.get("/categories").json()) == 2
    admin_client.post("/admin/categories", json={"name": "Horror"})
    assert len(admin_client.get("/categories").json()) == 3


def test_admin_blog_post_moderation(admin_client, session, published):
    listed = admin_client.get("/admin/blog-posts").json()
    assert [post["id"] for post in listed] == [published.id]

    revoked = admin_client.patch(f"/admin/blog-posts/{published.id}/approval", json={"admin_approved": False})
    assert revoked.json()["admin_approved"] is False
    assert admin_client.get(f"/blog/{published.slug}").status_code == 404

    assert admin_client.delete(f"/admin/blog-posts/{published.id}").status_code == 204
    assert session.query(MovieBlogPost).count() == 0


def test_admin_movie_management(admin_client, session, inception, published):
    updated = admin_client.patch(f"/admin/movies/{inception.id}", json={"director": "C. Nolan"})
    assert updated.json()["director"] == "C. Nolan"

    assert admin_client.delete(f"/admin/movies/{inception.id}").status_code == 204
    assert admin_client.get("/admin/movies").json() == []
    assert session.query(MovieBlogPost).count() == 0


def test_admin_users(admin_client, profile):
    users = admin_client.get("/admin/users").json()
    assert [item["user_name"] for item in users] == ["dom"]


def test_serverless_entrypoint_exports_app():
    from api.index import app as entry_app

    assert entry_app is app


def test_mutations_regenerate_from_committed_state(live_client, file_session_factory, user):
    seed = file_session_factory()
    movie = Movie(title="Inception", overview="A thief who steals corporate secrets.", release_date=dt.date(2010, 7, 16))
    twist = Tag(name="Twist", color="#00FF00")
    seed.add_all([movie, twist, Profile(id=user.id, user_name="dom", full_name="Dom Cobb")])
    seed.commit()
    movie_id, twist_id = movie.id, twist.id
    seed.close()

    def current_post():
        db = file_session_factory()
        try:
            post = blog_post_repo.get_for_pair(db, user.id, movie_id)
            return (post.title, post.meta_description) if post else None
        finally:
            db.close()

    link = live_client.post(f"/movies/{movie_id}/tags", json={"tag_id": twist_id})
    assert link.status_code == 201
    assert current_post()[0] == "Inception (2010) - Twist"

    note = "a heist inside a dream inside another dream"
    assert live_client.post(f"/movies/{movie_id}/notes", json={"content": note}).status_code == 201
    assert current_post()[1] == f"Inception (2010): {note}"

    assert live_client.delete(f"/user-tags/{link.json()['id']}").status_code == 204
    assert current_post()[0] == "Inception (2010) - Movie Review"


def test_profile_endpoints(client, user):
    created = client.get("/profile")
    assert created.status_code == 200
    assert created.json()["user_name"] == "dom"
    assert created.json()["full_name"] == "New User"

    updated = client.put(
        "/profile",
        json={"user_name": " cobb ", "full_name": "Dom Cobb", "bio": "  Extractor  ", "avatar_url": "  "},
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["user_name"] == "cobb"
    assert body["bio"] == "Extractor"
    assert body["avatar_url"] is None

    assert client.get("/profile").json()["user_name"] == "cobb"


def test_profile_update_validation(client, profile):
    response = client.put("/profile", json={"user_name": "dom", "full_name": "  "})
    assert response.status_code == 422
    assert response.json()["detail"] == "Full name is required"

    too_long = client.put("/profile", json={"user_name": "dom", "full_name": "Dom", "bio": "b" * 501})
    assert too_long.status_code == 422
    assert too_long.json()["detail"] == "Bio must be 500 characters or less"


def test_lifespan_waits_for_queued_regenerations(monkeypatch):
    queue = mock.Mock()
    monkeypatch.setattr("curator.main.init_models", lambda: None)
    monkeypatch.setattr("curator.main.get_regenerator", lambda: mock.Mock(queue=queue))

    with TestClient(app):
        queue.shutdown.assert_not_called()
    queue.shutdown.assert_called_once_with(wait=True)
