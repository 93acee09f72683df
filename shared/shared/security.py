from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .errors import Unauthenticated

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller: token subject plus its roles."""

    subject: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles


def create_token(
    subject: str,
    roles: list[str],
    token_type: str,
    expires_delta: timedelta,
    secret: str,
    algorithm: str = "HS256",
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": subject,
        "roles": roles,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    expected_type: str = ACCESS_TOKEN,
) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type") != expected_type:
        raise Unauthenticated("Invalid token type")
    if not payload.get("sub"):
        raise Unauthenticated("Token subject missing")
    return payload


def actor_from_payload(payload: dict) -> Actor:
    roles = payload.get("roles")
    if not isinstance(roles, list):
        roles = []
    return Actor(
        subject=str(payload["sub"]),
        roles=frozenset(str(r).strip().lower() for r in roles),
    )


def make_current_actor(secret: str, algorithm: str = "HS256"):
    """Build the FastAPI dependency resolving the bearer token to an Actor."""

    def get_current_actor(
        request: Request,
        creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    ) -> Actor:
        token = None
        if creds and creds.scheme.lower() == "bearer":
            token = creds.credentials

        if not token:
            raise Unauthenticated("Missing Bearer token")

        actor = actor_from_payload(decode_token(token, secret, algorithm))

        request.state.user_sub = actor.subject
        request.state.user_roles = sorted(actor.roles)
        return actor

    return get_current_actor
