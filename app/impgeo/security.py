from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import Request

from app.impgeo.models import User

JWT_ALGORITHM = "HS256"
SHARE_TOKEN_PREFIX = "view_"


class InvalidToken(Exception):
    pass


def issue_access_token(user: User, *, secret: str, expires_hours: int = 24) -> str:
    """Sign a bearer token for the dashboard (HS256)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, *, secret: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.PyJWTError as e:
        raise InvalidToken(str(e)) from e
    if not str(claims.get("sub") or "").isdigit():
        raise InvalidToken("sub must be a user id")
    return claims


def bearer_token(req: Request) -> str | None:
    header = req.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def new_share_token() -> str:
    return SHARE_TOKEN_PREFIX + secrets.token_hex(32)


def is_share_token(token: str) -> bool:
    return bool(token) and token.startswith(SHARE_TOKEN_PREFIX)


def new_reset_token() -> str:
    return secrets.token_hex(32)
