"""
campushub.api.deps — FastAPI dependency injection
===================================================

Tokens are issued elsewhere; this module only verifies them.  A request
carries ``Authorization: Bearer <JWT>`` whose ``sub`` claim is the member
id and whose ``role`` claim is one of ``user|member|admin|leader``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from campushub.config import CampusHubConfig, load_config
from campushub.database.engine import create_db_engine
from campushub.database.models import Role
from campushub.engine.cache import ConfigCache
from campushub.engine.capabilities import Actor
from campushub.services.notification_service import LoggingNotifier, Notifier

_WEAK_SECRETS = frozenset({
    "campushub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> CampusHubConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_cache() -> ConfigCache:
    """Process-wide settings cache, loaded on first use."""
    cache = ConfigCache(get_engine())
    cache.load_all()
    return cache


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return LoggingNotifier()


def _decode(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_actor(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """Validate the JWT and return the calling :class:`Actor`.  401 if invalid."""
    payload = _decode(authorization)
    try:
        member_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")
    role = payload.get("role", Role.MEMBER.value)
    if role not in {r.value for r in Role}:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token role")
    return Actor(member_id=member_id, role=role)


def get_current_admin(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    """Like :func:`get_current_actor` but 403 unless the role is admin."""
    if not actor.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return actor
