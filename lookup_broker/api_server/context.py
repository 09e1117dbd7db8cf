"""
Authentication boundary: bearer token -> RequestContext.

Token verification is delegated to a TokenVerifier. The default verifies
HS256 JWTs signed with AUTH_TOKEN_SECRET (claims: sub, email, terms_accepted,
privacy_accepted); an identity-provider specific verifier can replace it via
FastAPI dependency overrides. The context is built once per request, and the
principal row is created or refreshed here.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import jwt
from fastapi import Depends, Header, Request

from lookup_broker.broker_logging import get_logger
from lookup_broker.config import get_settings
from lookup_broker.core.exceptions import AdminAccessRequired, AuthenticationFailed
from lookup_broker.database.session import session_scope
from lookup_broker.pipeline.principals import Consent, PrincipalDirectory, RequestContext

logger = get_logger(__name__)

TOKEN_ALGORITHMS = ["HS256"]


@dataclass(frozen=True)
class VerifiedIdentity:
    uid: str
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier(ABC):
    @abstractmethod
    def verify(self, token: str) -> VerifiedIdentity:
        """Return the identity behind a token or raise AuthenticationFailed."""
        ...


class SharedSecretTokenVerifier(TokenVerifier):
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("token secret must be non-empty")
        self._secret = secret

    def verify(self, token: str) -> VerifiedIdentity:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=TOKEN_ALGORITHMS,
                options={"require": ["sub"]},
            )
        except jwt.InvalidTokenError as e:
            logger.info("auth_token_rejected", error=str(e))
            raise AuthenticationFailed() from e
        return VerifiedIdentity(uid=str(claims["sub"]), email=claims.get("email"), claims=claims)


def get_token_verifier() -> TokenVerifier:
    secret = get_settings().auth_token_secret
    if not secret:
        logger.error("auth_not_configured")
        raise AuthenticationFailed("Authentication is not configured")
    return SharedSecretTokenVerifier(secret)


def origin_address(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else None


def _claim_flag(claims: dict[str, Any], name: str) -> bool:
    return claims.get(name) is True


def get_request_context(
    request: Request,
    authorization: str | None = Header(None),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> RequestContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationFailed()
    identity = verifier.verify(authorization[len("Bearer "):].strip())
    context = RequestContext(
        principal_id=identity.uid,
        email=identity.email,
        origin_address=origin_address(request),
        consent=Consent(
            terms_accepted=_claim_flag(identity.claims, "terms_accepted"),
            privacy_accepted=_claim_flag(identity.claims, "privacy_accepted"),
        ),
    )
    with session_scope() as session:
        PrincipalDirectory().sync(session, context)
    return context


def require_admin(x_admin_key: str | None = Header(None)) -> None:
    expected = get_settings().admin_api_key
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key.encode(), expected.encode()):
        raise AdminAccessRequired()
