"""Authentication dependencies for validating Supabase JWTs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from curator.core.config import get_settings

logger = logging.getLogger(__name__)

security = HTTPBearer()

DEV_USER_ID = "00000000-0000-0000-0000-000000000001"


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """Authenticated caller as seen by the service layer."""

    id: str
    email: str | None = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "CurrentUser":
        return cls(id=str(claims["sub"]), email=claims.get("email"))


def _decode_token(token: str) -> Mapping[str, Any]:
    settings = get_settings()
    header = jwt.get_unverified_header(token)
    alg = header.get("alg")

    if alg in ["RS256", "ES256"]:
        if not settings.supabase_url:
            logger.error("SUPABASE_URL is missing. Cannot fetch JWKS for %s.", alg)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error: SUPABASE_URL missing for asymmetric JWT",
            )
        jwks_url = f"{settings.supabase_url.rstrip('/')}/auth/v1/jwks"
        logger.info("Fetching JWKS from %s", jwks_url)
        jwks_client = jwt.PyJWKClient(jwks_url)
        signing_key = jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            options={"verify_aud": False},
        )

    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        options={"verify_aud": False},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Verify the Supabase JWT token and return the caller."""
    settings = get_settings()

    if not settings.supabase_jwt_secret:
        logger.warning("SUPABASE_JWT_SECRET not configured. Using dummy user for dev.")
        return CurrentUser(id=DEV_USER_ID, email="dev@example.com")

    try:
        claims = _decode_token(credentials.credentials)
    except HTTPException:
        raise
    except jwt.ExpiredSignatureError as exc:
        logger.warning("JWT validation failed: Token expired. Detail: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except jwt.PyJWTError as exc:
        logger.warning("JWT validation failed: Invalid token. Reason: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    if not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing a subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser.from_claims(claims)


def is_admin(user: CurrentUser) -> bool:
    """Admin membership is a plain email match against ADMIN_EMAILS."""

    if not user.email:
        return False
    return user.email.lower() in get_settings().admin_email_set()


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
