"""
Session tokens and request identity.

A session is a signed HS256 JWT carrying {userId, email, role, rememberMe}.
Nothing is stored server side: the token travels either in an
`Authorization: Bearer` header or in the `auth-token` cookie.
"""
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional, Sequence

import jwt
from fastapi import Depends, HTTPException, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from config import Settings, get_settings
from schemas import ADMIN_ROLE

logger = logging.getLogger(__name__)

COOKIE_NAME = "auth-token"
ALGORITHM = "HS256"
SESSION_DURATION = timedelta(days=1)
REMEMBER_ME_DURATION = timedelta(days=30)

INSECURE_DEFAULT_SECRET = "dev-only-insecure-secret-change-me"
FORBIDDEN_PRODUCTION_SECRET = "baba0ba33358889d325c18c41cfee4c9"


class InsecureSecretError(RuntimeError):
    pass


class SessionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    email: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    remember_me: bool = Field(False, alias="rememberMe")
    exp: Optional[int] = None


def session_duration(remember_me: bool) -> timedelta:
    return REMEMBER_ME_DURATION if remember_me else SESSION_DURATION


def resolve_jwt_secret(settings: Settings) -> str:
    raw = settings.jwt_secret
    if not raw or raw == FORBIDDEN_PRODUCTION_SECRET:
        if settings.is_production:
            raise InsecureSecretError("JWT_SECRET must be set to a strong, unique value in production.")
        logger.warning("JWT_SECRET is not set. Using an insecure default for development only.")
        return INSECURE_DEFAULT_SECRET
    return raw


class SessionCodec:
    """Issues and verifies session tokens with one symmetric secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret

    def issue(self, user_id: str, email: str, role: str, remember_me: bool = False,
              now: Optional[datetime] = None) -> str:
        if not (user_id and email and role):
            raise ValueError("user_id, email and role are required")
        issued_at = now or datetime.now(timezone.utc)
        iat = int(issued_at.timestamp())
        claims = {
            "userId": user_id,
            "email": email,
            "role": role,
            "rememberMe": remember_me,
            "iat": iat,
            "exp": iat + int(session_duration(remember_me).total_seconds()),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str], now: Optional[datetime] = None) -> Optional[SessionPayload]:
        """Return the payload, or None for any malformed, forged or expired token."""
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"], "verify_exp": False, "verify_iat": False},
            )
            checked_at = (now or datetime.now(timezone.utc)).timestamp()
            if int(claims["exp"]) <= checked_at:
                return None
            return SessionPayload.model_validate(claims)
        except (jwt.InvalidTokenError, ValueError, TypeError):
            return None


@lru_cache(maxsize=1)
def get_codec() -> SessionCodec:
    """Process-wide codec; the secret (and its warning) is resolved on first use only."""
    return SessionCodec(resolve_jwt_secret(get_settings()))


# Credential carriers, in precedence order. The first one that yields a
# non-empty token is used even if that token later fails verification.

def bearer_credential(request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, value = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


def cookie_credential(request) -> Optional[str]:
    value = request.cookies.get(COOKIE_NAME)
    return value or None


CREDENTIAL_EXTRACTORS: Sequence[Callable[..., Optional[str]]] = (bearer_credential, cookie_credential)


def extract_credential(request, extractors: Sequence[Callable[..., Optional[str]]] = CREDENTIAL_EXTRACTORS) -> Optional[str]:
    for extract in extractors:
        token = extract(request)
        if token:
            return token
    return None


def resolve_identity(request, codec: SessionCodec) -> Optional[SessionPayload]:
    token = extract_credential(request)
    if token is None:
        return None
    return codec.verify(token)


def is_admin(identity: Optional[SessionPayload]) -> bool:
    return identity is not None and identity.role == ADMIN_ROLE


# FastAPI dependencies

def current_identity(request: Request, codec: SessionCodec = Depends(get_codec)) -> Optional[SessionPayload]:
    return resolve_identity(request, codec)


def require_identity(identity: Optional[SessionPayload] = Depends(current_identity)) -> SessionPayload:
    if identity is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity


def require_admin(identity: Optional[SessionPayload] = Depends(current_identity)) -> SessionPayload:
    if not is_admin(identity):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity


def set_session_cookie(response: Response, token: str, remember_me: bool, settings: Settings) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=int(session_duration(remember_me).total_seconds()),
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/")
