"""Tests for token expiration parsing."""

import base64
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from kubeconfig_updater.auth.token import (
    decode_jwt_claims,
    parse_token_claims,
    parse_token_expiration,
    split_token,
)
from kubeconfig_updater.exceptions import (
    CredentialsError,
    MalformedCredentialError,
    MissingExpirationClaimError,
)
from tests.builders import make_jwt


def _segment(payload: bytes) -> str:
    return base64.urlsafe_b64encode(payload).decode().rstrip("=")


def _raw_token(payload: bytes, name: str = "kubeconfig-u-abc") -> str:
    header = _segment(b'{"alg":"HS256","typ":"JWT"}')
    return f"{name}:{header}.{_segment(payload)}.signature"


@pytest.mark.unit
class TestParseTokenExpiration:
    """Test parse_token_expiration."""

    def test_returns_utc_expiration(self) -> None:
        """Test that the exp claim is returned as an aware UTC datetime."""
        token = f"kubeconfig-u-abc:{make_jwt({'exp': 1_900_000_000})}"

        expires_at = parse_token_expiration(token)

        assert expires_at == datetime.fromtimestamp(1_900_000_000, tz=UTC)
        assert expires_at.tzinfo is not None

    def test_fixture_token_expires_in_future(
        self, make_token: Callable[..., str]
    ) -> None:
        """Test a token built by the fixture factory."""
        expires_at = parse_token_expiration(make_token(timedelta(days=10)))

        remaining = expires_at - datetime.now(UTC)
        assert timedelta(days=9) < remaining <= timedelta(days=10)

    def test_unpadded_payload(self) -> None:
        """Test that unpadded base64url payloads decode."""
        payload = json.dumps({"exp": 1_700_000_001}).encode()
        assert len(payload) % 3 != 0

        assert parse_token_expiration(_raw_token(payload)) == datetime.fromtimestamp(
            1_700_000_001, tz=UTC
        )

    def test_signature_is_not_verified(self) -> None:
        """Test that a token with a bogus signature still parses."""
        token = _raw_token(b'{"exp": 1800000000}')
        assert parse_token_expiration(token).year == 2027

    def test_empty_token(self) -> None:
        """Test that an empty token is malformed."""
        with pytest.raises(MalformedCredentialError, match="empty"):
            parse_token_expiration("")

    @pytest.mark.parametrize(
        "token",
        [
            "no-separator",
            "too:many:colons",
        ],
    )
    def test_wrong_colon_count(self, token: str) -> None:
        """Test that the token must have exactly one colon."""
        with pytest.raises(MalformedCredentialError, match="token-name"):
            parse_token_expiration(token)

    @pytest.mark.parametrize("jwt_part", ["onlyone", "two.parts", "a.b.c.d"])
    def test_wrong_segment_count(self, jwt_part: str) -> None:
        """Test that the JWT must have exactly three segments."""
        with pytest.raises(MalformedCredentialError, match="3 parts"):
            parse_token_expiration(f"name:{jwt_part}")

    def test_invalid_base64(self) -> None:
        """Test that an undecodable payload is malformed."""
        with pytest.raises(MalformedCredentialError):
            parse_token_expiration("name:header.!!!notbase64!!!.signature")

    def test_invalid_json(self) -> None:
        """Test that a payload that is not JSON is malformed."""
        with pytest.raises(MalformedCredentialError, match="claims"):
            parse_token_expiration(_raw_token(b"not json"))

    def test_non_object_json(self) -> None:
        """Test that a JSON array payload is malformed."""
        with pytest.raises(MalformedCredentialError, match="not an object"):
            parse_token_expiration(_raw_token(b"[1, 2, 3]"))

    def test_string_exp_is_malformed(self) -> None:
        """Test that a non-integer exp claim is malformed."""
        with pytest.raises(MalformedCredentialError):
            parse_token_expiration(_raw_token(b'{"exp": "1800000000"}'))

    def test_missing_exp(self) -> None:
        """Test that a missing exp claim has its own error type."""
        with pytest.raises(MissingExpirationClaimError):
            parse_token_expiration(_raw_token(b'{"sub": "u-abc"}'))

    @pytest.mark.parametrize("payload", [b'{"exp": 0}', b'{"exp": null}'])
    def test_zero_or_null_exp(self, payload: bytes) -> None:
        """Test that zero and null exp claims count as missing."""
        with pytest.raises(MissingExpirationClaimError):
            parse_token_expiration(_raw_token(payload))

    def test_errors_share_base_class(self) -> None:
        """Test that both failure kinds are credential errors."""
        assert issubclass(MalformedCredentialError, CredentialsError)
        assert issubclass(MissingExpirationClaimError, CredentialsError)


@pytest.mark.unit
class TestParseTokenClaims:
    """Test parse_token_claims and helpers."""

    def test_name_and_issued_at(self) -> None:
        """Test that the token name and iat claim are exposed."""
        token = f"kubeconfig-u-xyz:{make_jwt({'exp': 1_900_000_000, 'iat': 1_800_000_000})}"

        claims = parse_token_claims(token)

        assert claims.name == "kubeconfig-u-xyz"
        assert claims.issued_at == datetime.fromtimestamp(1_800_000_000, tz=UTC)

    def test_issued_at_optional(self) -> None:
        """Test that iat may be absent."""
        claims = parse_token_claims(_raw_token(b'{"exp": 1900000000}'))
        assert claims.issued_at is None

    def test_split_token(self) -> None:
        """Test splitting a token into name and JWT."""
        assert split_token("name:a.b.c") == ("name", "a.b.c")

    def test_decode_ignores_unknown_claims(self) -> None:
        """Test that extra claims do not affect decoding."""
        claims = decode_jwt_claims(make_jwt({"exp": 5, "groups": ["admin"]}))
        assert claims.exp == 5
