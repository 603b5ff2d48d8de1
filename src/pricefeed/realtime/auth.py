"""
Subscriber handshake authentication.

Connections present a signed bearer token once, at handshake time. Token
issuance belongs to the login flow; this module only verifies tokens and
extracts the subscriber identity.
"""

from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from pricefeed.config.constants import JWT_ALGORITHM
from pricefeed.core.exceptions import PriceFeedError


class AuthenticationError(PriceFeedError):
    """Raised when a handshake credential is missing or invalid."""


@dataclass(slots=True, frozen=True)
class SubscriberIdentity:
    """Claims carried by a subscriber token."""

    user_id: int | str
    email: str | None = None
    is_admin: bool = False


def extract_token(query_token: str | None, authorization: str | None) -> str | None:
    """
    Pick the bearer credential from the query string or Authorization header.

    Args:
        query_token: Value of the `token` query parameter.
        authorization: Raw Authorization header.

    Returns:
        The token, or None if neither source carries one.
    """
    if query_token:
        return query_token
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return None


def decode_token(token: str, secret: str) -> SubscriberIdentity:
    """
    Verify a token and return the subscriber identity.

    Raises:
        AuthenticationError: On bad signature, expiry or missing claims.
    """
    try:
        claims: dict[str, Any] = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {e}") from e

    user_id = claims.get("userId")
    if user_id is None:
        raise AuthenticationError("Token has no userId claim")

    return SubscriberIdentity(
        user_id=user_id,
        email=claims.get("email"),
        is_admin=bool(claims.get("isAdmin", False)),
    )
