"""Async client for the Rancher v3 API."""

from datetime import UTC, datetime
from typing import Any

import httpx
import yaml
from pydantic import BaseModel, ValidationError

from kubeconfig_updater.auth.policy import (
    RegenerationDecision,
    check_preconditions,
    decide_from_expiration,
    expiration_check_failed,
)
from kubeconfig_updater.core.logging import get_logger
from kubeconfig_updater.exceptions import (
    MalformedCredentialError,
    ProviderError,
    ProviderQueryFailedError,
    RancherAuthenticationError,
)
from kubeconfig_updater.kubeconfig.models import Kubeconfig
from kubeconfig_updater.rancher.models import (
    ClusterCollection,
    GeneratedKubeconfig,
    LoginResponse,
    RancherClientConfig,
    RancherCluster,
    TokenInfo,
)


logger = get_logger(__name__)


def parse_token_name(token: str) -> str:
    """Extract the token name from a ``<token-name>:<secret>`` token.

    Raises:
        MalformedCredentialError: If the token is not of that form
    """
    if not token:
        raise MalformedCredentialError("invalid token format: token cannot be empty")

    parts = token.split(":")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MalformedCredentialError(
            "invalid token format: expected <token-name>:<secret-key>"
        )
    return parts[0]


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class RancherClient:
    """Client for the Rancher v3 API.

    Use as an async context manager; ``login()`` must succeed before any
    other call.
    """

    def __init__(
        self,
        config: RancherClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize Rancher client.

        Args:
            config: Connection settings
            http_client: HTTP client for making requests (creates one if not provided)
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._token: str | None = None

        if config.insecure_skip_tls_verify:
            logger.warning(
                "tls_verification_disabled",
                rancher_url=self.base_url,
                hint="only use this against test environments",
            )

    async def __aenter__(self) -> "RancherClient":
        """Async context manager entry."""
        _ = self.http_client
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating one if needed."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                verify=not self.config.insecure_skip_tls_verify,
                timeout=self.config.timeout,
            )
        return self._http_client

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def _auth_headers(self) -> dict[str, str]:
        if self._token is None:
            raise RancherAuthenticationError("Not logged in to Rancher")
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(
        self,
        method: str,
        path: str,
        expected_status: int = 200,
        **kwargs: Any,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "rancher_request_failed",
                method=method,
                path=path,
                error=str(e),
            )
            raise ProviderQueryFailedError(f"Failed to send request: {e}") from e

        if response.status_code != expected_status:
            logger.debug(
                "rancher_unexpected_status",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ProviderQueryFailedError(
                f"Request {method} {path} failed with status "
                f"{response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[BaseModel]) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderQueryFailedError(
                f"Failed to parse response: {e}", status_code=response.status_code
            ) from e

    async def login(self) -> None:
        """Log in to Rancher and keep the API token for later calls.

        Raises:
            RancherAuthenticationError: If the login is rejected or unusable
        """
        body = {
            "username": self.config.username,
            "password": self.config.password.get_secret_value(),
            "responseType": "json",
        }
        try:
            response = await self._request(
                "POST",
                self.config.auth_type.login_path,
                expected_status=201,
                json=body,
            )
            result: LoginResponse = self._parse(response, LoginResponse)
        except ProviderQueryFailedError as e:
            raise RancherAuthenticationError(f"Login failed: {e}") from e

        if not result.token:
            raise RancherAuthenticationError("token not found in login response")

        self._token = result.token
        logger.debug(
            "rancher_login_success",
            rancher_url=self.base_url,
            auth_type=self.config.auth_type,
        )

    async def list_clusters(self) -> list[RancherCluster]:
        """List the clusters visible to the logged-in user.

        Raises:
            ProviderQueryFailedError: If the query fails
        """
        response = await self._request(
            "GET", "/v3/clusters", headers=self._auth_headers()
        )
        collection: ClusterCollection = self._parse(response, ClusterCollection)
        logger.debug("rancher_clusters_listed", count=len(collection.data))
        return collection.data

    async def generate_kubeconfig(self, cluster_id: str) -> Kubeconfig:
        """Generate a kubeconfig with a fresh token for a cluster.

        Raises:
            ProviderQueryFailedError: If the query fails or the returned
                kubeconfig cannot be parsed
        """
        response = await self._request(
            "POST",
            f"/v3/clusters/{cluster_id}?action=generateKubeconfig",
            headers=self._auth_headers(),
        )
        generated: GeneratedKubeconfig = self._parse(response, GeneratedKubeconfig)

        try:
            return Kubeconfig.from_yaml(generated.config)
        except (yaml.YAMLError, ValidationError) as e:
            raise ProviderQueryFailedError(
                f"Failed to parse generated kubeconfig for cluster {cluster_id}: {e}"
            ) from e

    async def get_token_expiration(self, token: str) -> datetime | None:
        """Query Rancher for the expiration time of a kubeconfig token.

        Args:
            token: Token in ``<token-name>:<secret>`` form

        Returns:
            Expiration time, or None if the token never expires

        Raises:
            MalformedCredentialError: If the token is not of that form
            ProviderQueryFailedError: If the query fails
        """
        token_name = parse_token_name(token)
        response = await self._request(
            "GET", f"/v3/tokens/{token_name}", headers=self._auth_headers()
        )
        info: TokenInfo = self._parse(response, TokenInfo)

        if info.ttl == 0:
            return None

        try:
            return parse_rfc3339(info.expires_at)
        except ValueError as e:
            raise ProviderQueryFailedError(
                f"failed to parse expiration time {info.expires_at!r}: {e}"
            ) from e

    async def determine_token_regeneration(
        self,
        current_token: str | None,
        force_refresh: bool,
        threshold_days: int,
        *,
        now: datetime | None = None,
        cluster_name: str | None = None,
    ) -> RegenerationDecision:
        """Decide whether a token should be regenerated using its Rancher TTL.

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
            expires_at = await self.get_token_expiration(current_token or "")
        except (MalformedCredentialError, ProviderError) as e:
            logger.warning(
                "token_expiration_check_failed",
                cluster=cluster_name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return expiration_check_failed()

        return decide_from_expiration(expires_at, threshold_days, now)
