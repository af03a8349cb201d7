"""Caller identity resolution.

The workflow only needs a ``(role, email)`` pair per request. How it is
obtained is pluggable: any object with ``resolve(request) -> Identity`` can
be returned from ``get_identity_provider`` (or swapped in through FastAPI's
dependency overrides).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import jwt
from fastapi import Depends, Request

from invoice_backend.app.core.errors import Unauthenticated
from invoice_backend.app.core.settings import get_settings

DEFAULT_ROLE = "Driver"
DEFAULT_EMAIL = "unknown@example.com"


@dataclass(frozen=True)
class Identity:
    role: str
    email: str


class IdentityProvider(Protocol):
    def resolve(self, request: Request) -> Identity: ...


class HeaderIdentityProvider:
    """Trust ``x-user-role`` / ``x-user-email`` as set by an upstream gateway."""

    role_header = "x-user-role"
    email_header = "x-user-email"

    def resolve(self, request: Request) -> Identity:
        role = request.headers.get(self.role_header) or DEFAULT_ROLE
        email = request.headers.get(self.email_header) or DEFAULT_EMAIL
        return Identity(role=role.strip(), email=email.strip())


def create_identity_token(role: str, email: str, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    expire_delta = timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {
        "sub": email,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + expire_delta,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_identity_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as exc:
        raise ValueError("Expired token") from exc
    except jwt.InvalidTokenError as exc:
        raise ValueError("Invalid token") from exc


class BearerTokenIdentityProvider:
    """Read role and email claims from an HS256 ``Authorization: Bearer`` token."""

    def resolve(self, request: Request) -> Identity:
        authorization = request.headers.get("authorization")
        if not authorization or not authorization.startswith("Bearer "):
            raise Unauthenticated()
        token = authorization.split(" ", 1)[1]
        try:
            payload = decode_identity_token(token)
        except ValueError as exc:
            raise Unauthenticated(str(exc)) from exc

        role = payload.get("role")
        email = payload.get("email") or payload.get("sub")
        if not role or not email:
            raise Unauthenticated("Token is missing role or email claims")
        return Identity(role=str(role), email=str(email))


_PROVIDERS = {
    "header": HeaderIdentityProvider,
    "jwt": BearerTokenIdentityProvider,
}


def get_identity_provider() -> IdentityProvider:
    settings = get_settings()
    provider_cls = _PROVIDERS.get(settings.identity_provider)
    if provider_cls is None:
        raise RuntimeError(f"Unknown identity provider: {settings.identity_provider}")
    return provider_cls()


def get_identity(request: Request, provider: IdentityProvider = Depends(get_identity_provider)) -> Identity:
    return provider.resolve(request)
