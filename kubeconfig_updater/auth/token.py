"""Token expiration parsing for Rancher kubeconfig tokens.

Rancher tokens stored in kubeconfig users have the form
``<token-name>:<jwt>``. Only the claims segment of the JWT is decoded; the
signature is never verified since the token is only inspected for freshness.
"""

import binascii
import json
from datetime import UTC, datetime

from jwt.utils import base64url_decode
from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from kubeconfig_updater.exceptions import (
    MalformedCredentialError,
    MissingExpirationClaimError,
)


class JWTClaims(BaseModel):
    """Claims section of a Rancher token JWT."""

    model_config = ConfigDict(extra="ignore")

    exp: StrictInt | None = None
    iat: StrictInt | None = None


class TokenClaims(BaseModel):
    """Parsed timing claims of a token."""

    model_config = ConfigDict(frozen=True)

    name: str
    expires_at: datetime
    issued_at: datetime | None = None


def split_token(token: str) -> tuple[str, str]:
    """Split a token into its name and JWT parts.

    Raises:
        MalformedCredentialError: If the token is empty or not ``<name>:<jwt>``
    """
    if not token:
        raise MalformedCredentialError("token is empty")

    parts = token.split(":")
    if len(parts) != 2:
        raise MalformedCredentialError(
            "invalid token format: expected '<token-name>:<jwt-token>'"
        )
    return parts[0], parts[1]


def decode_jwt_claims(jwt_token: str) -> JWTClaims:
    """Decode the claims (middle) segment of a JWT without verifying it.

    Raises:
        MalformedCredentialError: If the JWT shape, base64 or JSON is invalid
    """
    segments = jwt_token.split(".")
    if len(segments) != 3:
        raise MalformedCredentialError(
            "invalid JWT format: expected 3 parts (header.payload.signature)"
        )

    try:
        payload = base64url_decode(segments[1])
    except (binascii.Error, ValueError) as e:
        raise MalformedCredentialError(f"failed to decode JWT payload: {e}") from e

    try:
        data = json.loads(payload)
    except ValueError as e:
        raise MalformedCredentialError(f"failed to parse JWT claims: {e}") from e

    if not isinstance(data, dict):
        raise MalformedCredentialError("failed to parse JWT claims: not an object")

    try:
        return JWTClaims.model_validate(data)
    except ValidationError as e:
        raise MalformedCredentialError(f"failed to parse JWT claims: {e}") from e


def parse_token_claims(token: str) -> TokenClaims:
    """Parse the name and timing claims of a Rancher token.

    Args:
        token: Token in ``<token-name>:<jwt>`` form

    Returns:
        Token claims with a UTC expiration time

    Raises:
        MalformedCredentialError: If the token cannot be decoded
        MissingExpirationClaimError: If the ``exp`` claim is missing or zero
    """
    name, jwt_token = split_token(token)
    claims = decode_jwt_claims(jwt_token)

    if not claims.exp:
        raise MissingExpirationClaimError("JWT token missing expiration claim")

    try:
        return TokenClaims(
            name=name,
            expires_at=datetime.fromtimestamp(claims.exp, tz=UTC),
            issued_at=(
                datetime.fromtimestamp(claims.iat, tz=UTC) if claims.iat else None
            ),
        )
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedCredentialError(f"JWT timestamp out of range: {e}") from e


def parse_token_expiration(token: str) -> datetime:
    """Parse the expiration time from a Rancher token.

    Args:
        token: Token in ``<token-name>:<jwt>`` form

    Returns:
        Expiration time as a timezone-aware UTC datetime

    Raises:
        MalformedCredentialError: If the token cannot be decoded
        MissingExpirationClaimError: If the ``exp`` claim is missing or zero
    """
    return parse_token_claims(token).expires_at
