"""
Identity resolution for API requests.

Production requests carry a Supabase access token. Local development and
tests may opt into plain identity headers with AUTH_HEADER_MODE=1.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException, status

from render_portal.core.config import load_settings
from render_portal.core.errors import AuthenticationRequired

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.user_id:
        raise AuthenticationRequired()
    return identity


def decode_access_token(token: str, secret: str) -> Dict[str, Any]:
    if not secret:
        raise AuthenticationRequired("SUPABASE_JWT_SECRET is not configured")
    try:
        return jwt.decode(token, secret, algorithms=["HS256"], audience="authenticated")
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationRequired("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("rejected access token: %s", exc)
        raise AuthenticationRequired("Invalid token") from exc


def identity_from_claims(claims: Dict[str, Any]) -> Identity:
    user_id = claims.get("sub")
    email = claims.get("email")
    if not user_id or not email:
        raise AuthenticationRequired("Token is missing sub/email claims")
    metadata = claims.get("user_metadata") or {}
    full_name = metadata.get("full_name") or metadata.get("display_name")
    return Identity(user_id=str(user_id), email=str(email), full_name=full_name)


def _resolve(
    authorization: Optional[str],
    x_render_user_id: Optional[str],
    x_render_user_email: Optional[str],
    x_render_user_name: Optional[str],
) -> Optional[Identity]:
    settings = load_settings()
    if authorization:
        if not authorization.startswith("Bearer "):
            raise AuthenticationRequired("Invalid Authorization header")
        token = authorization.split(" ", 1)[1].strip()
        claims = decode_access_token(token, settings.supabase_jwt_secret)
        return identity_from_claims(claims)

    if settings.auth_header_mode and x_render_user_id:
        if not x_render_user_email:
            raise AuthenticationRequired("X-Render-User-Email is required with X-Render-User-Id")
        return Identity(
            user_id=x_render_user_id,
            email=x_render_user_email,
            full_name=x_render_user_name,
        )
    return None


def get_optional_identity(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    x_render_user_id: Optional[str] = Header(default=None),
    x_render_user_email: Optional[str] = Header(default=None),
    x_render_user_name: Optional[str] = Header(default=None),
) -> Optional[Identity]:
    try:
        return _resolve(authorization, x_render_user_id, x_render_user_email, x_render_user_name)
    except AuthenticationRequired as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


def get_identity(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    x_render_user_id: Optional[str] = Header(default=None),
    x_render_user_email: Optional[str] = Header(default=None),
    x_render_user_name: Optional[str] = Header(default=None),
) -> Identity:
    identity = get_optional_identity(
        authorization=authorization,
        x_render_user_id=x_render_user_id,
        x_render_user_email=x_render_user_email,
        x_render_user_name=x_render_user_name,
    )
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return identity
