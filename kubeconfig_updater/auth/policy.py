"""Token regeneration policy.

Decides, per cluster, whether the token cached in the kubeconfig has to be
regenerated. Checks run in a fixed order and the first match wins:

1. force refresh requested
2. no cached token
3. expiration cannot be determined (regenerate for safety)
4. expiration within the threshold (inclusive)
5. otherwise the token is still valid

Two expiration sources exist. The embedded-claim source reads ``exp`` from the
token itself and treats a missing claim as an error. The Rancher source asks
the API for the token TTL, where ``None`` means the token never expires. A
single run uses only one of them.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from kubeconfig_updater.auth.token import parse_token_expiration
from kubeconfig_updater.core.logging import get_logger
from kubeconfig_updater.exceptions import CredentialsError


logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


class ExpirationSource(str, Enum):
    """Where token expiration information comes from."""

    CLAIMS = "claims"
    RANCHER = "rancher"


class RegenerationReason(str, Enum):
    """Reason attached to a token regeneration decision."""

    FORCE_REFRESH_ENABLED = "force_refresh_enabled"
    NO_EXISTING_TOKEN = "no_existing_token"
    EXPIRES_SOON = "expires_soon"
    STILL_VALID = "still_valid"
    NEVER_EXPIRES = "never_expires"
    EXPIRATION_CHECK_FAILED = "expiration_check_failed"


class RegenerationDecision(BaseModel):
    """Decision and context for token regeneration."""

    model_config = ConfigDict(frozen=True)

    should_regenerate: bool
    reason: RegenerationReason
    expires_at: datetime | None = None
    days_until_expiry: float | None = None


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def should_refresh_token(
    expires_at: datetime | None, threshold_days: int, now: datetime | None = None
) -> bool:
    """Check if a token expiring at ``expires_at`` needs a refresh.

    Args:
        expires_at: Token expiration time, ``None`` if the token never expires
        threshold_days: Refresh threshold in days before expiration
        now: Reference time, defaults to the current UTC time

    Returns:
        True if the token is expired or expires within the threshold
    """
    if expires_at is None:
        return False

    # Compared in seconds, timedelta cannot hold thresholds past 999999999 days
    remaining = (expires_at - _now(now)).total_seconds()
    return remaining <= threshold_days * SECONDS_PER_DAY


def check_preconditions(
    current_token: str | None, force_refresh: bool
) -> RegenerationDecision | None:
    """Apply the checks that need no expiration information.

    Returns:
        A decision if force refresh is enabled or no token is cached,
        None if the expiration has to be examined
    """
    if force_refresh:
        return RegenerationDecision(
            should_regenerate=True,
            reason=RegenerationReason.FORCE_REFRESH_ENABLED,
        )

    if not current_token:
        return RegenerationDecision(
            should_regenerate=True,
            reason=RegenerationReason.NO_EXISTING_TOKEN,
        )

    return None


def decide_from_expiration(
    expires_at: datetime | None, threshold_days: int, now: datetime | None = None
) -> RegenerationDecision:
    """Turn a known expiration time into a decision.

    Args:
        expires_at: Token expiration time, ``None`` if the token never expires
        threshold_days: Refresh threshold in days before expiration
        now: Reference time, defaults to the current UTC time
    """
    if expires_at is None:
        return RegenerationDecision(
            should_regenerate=False,
            reason=RegenerationReason.NEVER_EXPIRES,
        )

    reference = _now(now)
    days_until_expiry = (expires_at - reference).total_seconds() / SECONDS_PER_DAY

    if should_refresh_token(expires_at, threshold_days, reference):
        return RegenerationDecision(
            should_regenerate=True,
            reason=RegenerationReason.EXPIRES_SOON,
            expires_at=expires_at,
            days_until_expiry=days_until_expiry,
        )

    return RegenerationDecision(
        should_regenerate=False,
        reason=RegenerationReason.STILL_VALID,
        expires_at=expires_at,
        days_until_expiry=days_until_expiry,
    )


def expiration_check_failed() -> RegenerationDecision:
    """Decision used whenever the expiration cannot be determined."""
    return RegenerationDecision(
        should_regenerate=True,
        reason=RegenerationReason.EXPIRATION_CHECK_FAILED,
    )


def determine_token_regeneration(
    current_token: str | None,
    force_refresh: bool,
    threshold_days: int,
    *,
    now: datetime | None = None,
    cluster_name: str | None = None,
) -> RegenerationDecision:
    """Decide whether a token should be regenerated using its embedded claims.

    Args:
        current_token: Token cached in the kubeconfig, empty if none exists
        force_refresh: Whether to bypass expiration checks
        threshold_days: Refresh threshold in days before expiration
        now: Reference time, defaults to the current UTC time
        cluster_name: Cluster name for logging context

    Returns:
        Regeneration decision with its reason
    """
    decision = check_preconditions(current_token, force_refresh)
    if decision is not None:
        return decision

    try:
        expires_at = parse_token_expiration(current_token or "")
    except CredentialsError as e:
        logger.warning(
            "token_expiration_check_failed",
            cluster=cluster_name,
            error_type=type(e).__name__,
            error=str(e),
        )
        return expiration_check_failed()

    return decide_from_expiration(expires_at, threshold_days, now)
