import time

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from curator.core import auth
from curator.core.config import get_settings

SECRET = "test-secret-with-enough-length-for-hs256"


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", SECRET)
    get_settings.cache_clear()
    return SECRET


def _credentials(claims, secret=SECRET):
    token = jwt.encode(claims, secret, algorithm="HS256")
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_dev_user_without_secret():
    user = auth.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials="anything"))
    assert user.id == auth.DEV_USER_ID
    assert user.email == "dev@example.com"


def test_valid_token(jwt_secret):
    claims = {"sub": "user-42", "email": "ariadne@example.com", "exp": int(time.time()) + 60}
    user = auth.get_current_user(_credentials(claims))
    assert user == auth.CurrentUser(id="user-42", email="ariadne@example.com")


def test_expired_token(jwt_secret):
    claims = {"sub": "user-42", "exp": int(time.time()) - 60}
    with pytest.raises(HTTPException) as excinfo:
        auth.get_current_user(_credentials(claims))
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "Token has expired"


def test_wrong_signature(jwt_secret):
    claims = {"sub": "user-42", "exp": int(time.time()) + 60}
    with pytest.raises(HTTPException) as excinfo:
        auth.get_current_user(_credentials(claims, secret="another-secret-of-sufficient-length"))
    assert excinfo.value.status_code == 401


def test_missing_subject(jwt_secret):
    with pytest.raises(HTTPException) as excinfo:
        auth.get_current_user(_credentials({"email": "x@example.com"}))
    assert excinfo.value.status_code == 401


def test_admin_membership_is_case_insensitive(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", " Admin@Example.com , ops@example.com")
    get_settings.cache_clear()

    assert auth.is_admin(auth.CurrentUser(id="1", email="admin@example.com"))
    assert auth.is_admin(auth.CurrentUser(id="2", email="OPS@example.com"))
    assert not auth.is_admin(auth.CurrentUser(id="3", email="guest@example.com"))
    assert not auth.is_admin(auth.CurrentUser(id="4"))

    with pytest.raises(HTTPException) as excinfo:
        auth.require_admin(auth.CurrentUser(id="3", email="guest@example.com"))
    assert excinfo.value.status_code == 403
