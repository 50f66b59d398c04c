"""
verify.py
---------
Purpose:
    JWT verification for Supabase-issued access tokens (ES256, JWKS).

Notes:
    - Signing keys are fetched from the project's JWKS endpoint and cached
      by PyJWKClient; the client is created on first use.
    - `auth_dependency` returns the decoded claims. Routes that need the
      caller's role resolve an Actor from these claims.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SUPABASE_AUDIENCE = "authenticated"

_jwk_client: PyJWKClient | None = None
_security = HTTPBearer()


def _get_jwk_client() -> PyJWKClient:
    global _jwk_client
    if _jwk_client is None:
        _jwk_client = PyJWKClient(settings.jwks_url())
    return _jwk_client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _get_jwk_client().get_signing_key_from_jwt(token)
        decoded = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True, "require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("Authentication token has expired") from e
    except (jwt.PyJWKClientError, jwt.InvalidTokenError) as e:
        logger.warning("Rejected authentication token", error=str(e), error_type=type(e).__name__)
        raise _unauthorized(f"Invalid authentication token: {e}") from e

    if not decoded.get("sub"):
        raise _unauthorized("Invalid token")
    return decoded


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    return verify_jwt(credentials.credentials)
