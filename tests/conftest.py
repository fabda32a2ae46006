import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from curator.core.auth import CurrentUser, get_current_user
from curator.core.config import get_settings
from curator.db import get_session
from curator.main import app
from curator.models import Base, Category, Movie, Profile, Tag
from curator.services import catalog as catalog_service
from curator.services.blog_posts import BlogPostRegenerator, get_regenerator
from curator.services.regeneration import InlineExecutor, RegenerationQueue


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    # Keep shell secrets from leaking into tests
    monkeypatch.delenv("SUPABASE_JWT_SECRET", raising=False)
    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.setenv("ADMIN_EMAILS", "admin@example.com")
    get_settings.cache_clear()
    catalog_service.get_taxonomy_cache.cache_clear()
    yield
    get_settings.cache_clear()
    catalog_service.get_taxonomy_cache.cache_clear()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def user():
    return CurrentUser(id="user-1", email="dom@example.com")


@pytest.fixture
def inception(session):
    movie = Movie(
        title="Inception",
        overview=(
            "A thief who steals corporate secrets through the use of dream-sharing "
            "technology is given the inverse task of planting an idea."
        ),
        release_date=dt.date(2010, 7, 16),
        director="Christopher Nolan",
        genre="Science Fiction",
        runtime_minutes=148,
        poster_url="https://image.tmdb.org/t/p/w500/inception.jpg",
        tmdb_id=27205,
        imdb_id="tt1375666",
    )
    session.add(movie)
    session.commit()
    return movie


@pytest.fixture
def taxonomy(session):
    items = {
        "mind": Tag(name="Mind bending", color="#FF0000"),
        "twist": Tag(name="Twist", color="#00FF00"),
        "scifi": Category(name="Sci-Fi", color="#0000FF"),
        "drama": Category(name="Drama", color="#123456"),
    }
    session.add_all(items.values())
    session.commit()
    return items


@pytest.fixture
def profile(session, user):
    record = Profile(id=user.id, user_name="dom", full_name="Dom Cobb", email=user.email)
    session.add(record)
    session.commit()
    return record


@pytest.fixture
def regenerator(session_factory):
    return BlogPostRegenerator(session_factory=session_factory, queue=RegenerationQueue(InlineExecutor()))


class RecordingRegenerator:
    def __init__(self):
        self.calls = []

    def trigger(self, user, movie_id):
        self.calls.append((user.id, movie_id))


@pytest.fixture
def recorder():
    return RecordingRegenerator()


@pytest.fixture
def client(session_factory, user, recorder):
    def _session():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_regenerator] = lambda: recorder
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'curator.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def live_client(file_session_factory, user):
    """Client wired to a real regenerator over an on-disk database."""

    def _session():
        db = file_session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    live = BlogPostRegenerator(session_factory=file_session_factory, queue=RegenerationQueue(InlineExecutor()))
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_regenerator] = lambda: live
    yield TestClient(app)
    app.dependency_overrides.clear()
