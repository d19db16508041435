"""Token inspection and regeneration policy."""

from .policy import (
    ExpirationSource,
    RegenerationDecision,
    RegenerationReason,
    determine_token_regeneration,
    should_refresh_token,
)
from .token import TokenClaims, parse_token_claims, parse_token_expiration


__all__ = [
    "ExpirationSource",
    "RegenerationDecision",
    "RegenerationReason",
    "TokenClaims",
    "determine_token_regeneration",
    "parse_token_claims",
    "parse_token_expiration",
    "should_refresh_token",
]
