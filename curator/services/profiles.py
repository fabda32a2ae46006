"""The signed-in user's own profile: lazy creation and edits."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from curator.core.auth import CurrentUser
from curator.db import Ok, profile_repo, utcnow
from curator.models import Profile

logger = logging.getLogger(__name__)

BIO_MAX_LENGTH = 500
DEFAULT_USER_NAME = "newuser"
DEFAULT_FULL_NAME = "New User"


class ProfileError(Exception):
    """Base exception for profile failures."""


class InvalidProfile(ProfileError):
    pass


def get_or_create_profile(session: Session, user: CurrentUser) -> Profile:
    """Return the caller's profile, creating a default one on first access."""

    profile = profile_repo.get(session, user.id)
    if profile is not None:
        return profile

    result = profile_repo.create(
        session,
        id=user.id,
        user_name=(user.email.split("@")[0] if user.email else None) or DEFAULT_USER_NAME,
        full_name=DEFAULT_FULL_NAME,
        email=user.email,
        avatar_url=None,
        bio=None,
    )
    if not isinstance(result, Ok):
        logger.error("Error creating profile for %s: %s", user.id, result)
        raise ProfileError("Failed to create profile")
    logger.info("Created profile for user %s", user.id)
    return result.value


def update_profile(
    session: Session,
    user: CurrentUser,
    *,
    user_name: str,
    full_name: str,
    bio: str | None = None,
    avatar_url: str | None = None,
) -> Profile:
    user_name = (user_name or "").strip()
    full_name = (full_name or "").strip()
    bio = bio or ""
    if not user_name:
        raise InvalidProfile("Username is required")
    if not full_name:
        raise InvalidProfile("Full name is required")
    if len(bio) > BIO_MAX_LENGTH:
        raise InvalidProfile(f"Bio must be {BIO_MAX_LENGTH} characters or less")

    get_or_create_profile(session, user)
    result = profile_repo.update(
        session,
        user.id,
        user_name=user_name,
        full_name=full_name,
        bio=bio.strip() or None,
        avatar_url=(avatar_url or "").strip() or None,
        updated_at=utcnow(),
    )
    if not isinstance(result, Ok):
        logger.error("Error updating profile for %s: %s", user.id, result)
        raise ProfileError(f"Failed to update profile: {result}")
    return result.value
