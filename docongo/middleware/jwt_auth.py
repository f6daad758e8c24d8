"""JWT Authentication Middleware for the DocOnGo service.

Authentication is optional: conversations may be anonymous. The middleware
reads an ``Authorization: Bearer <token>`` header, verifies it with the
configured HS256 secret, and attaches the caller to ``request.state.user``.
Routes that require an account enforce it through ``get_current_user``.

JWT claims:
  - userId : account identifier
  - exp    : expiry (verified)
"""

import logging
from typing import Optional, Dict, Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from docongo.config.settings import settings

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


# ---------------------------------------------------------------------------
# Token decoding helpers
# ---------------------------------------------------------------------------


def decode_jwt(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """Decode and verify a JWT token with the shared secret.

    Returns the full payload dict, or None if the token is invalid / expired.
    """
    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True},
        )
        return payload
    except ExpiredSignatureError:
        logger.debug("JWT token has expired")
        return None
    except InvalidTokenError as exc:
        logger.debug("Invalid JWT token: %s", exc)
        return None


def _payload_to_user(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map JWT payload claims → normalised user dict."""
    user_id = payload.get("userId")
    if not user_id:
        return None
    return {"user_id": str(user_id)}


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        token = header[len(_BEARER_PREFIX):].strip()
        return token or None
    return None


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that resolves the caller from a bearer token.

    On every request:
      1. No token → anonymous (``request.state.user = None``).
      2. Token verifies and carries ``userId`` → ``{"user_id": ...}``.
      3. Token invalid, expired, or no secret configured → anonymous.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.user = None

        if request.method == "OPTIONS":
            return await call_next(request)

        token = _bearer_token(request)
        if token:
            if not settings.jwt_secret:
                logger.warning(
                    "Bearer token supplied but jwt_secret is not configured; "
                    "treating request to %s as anonymous",
                    request.url.path,
                )
            else:
                payload = decode_jwt(token, settings.jwt_secret)
                user_info = _payload_to_user(payload) if payload else None
                if user_info:
                    request.state.user = user_info
                    logger.debug("Authenticated request | user_id=%s", user_info["user_id"])
                else:
                    logger.debug(
                        "Ignoring invalid token on %s %s", request.method, request.url.path
                    )

        return await call_next(request)
