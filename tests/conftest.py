"""Shared test fixtures and configuration for kubeconfig updater tests.

Fixtures build real kubeconfigs and signed tokens; only the Rancher HTTP API
is mocked (with pytest-httpx).
"""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import yaml

from kubeconfig_updater.core.logging import setup_logging
from tests.builders import build_bundle, make_jwt


ENV_VARS = (
    "RANCHER_URL",
    "RANCHER_USERNAME",
    "RANCHER_PASSWORD",
    "RANCHER_AUTH_TYPE",
    "RANCHER_INSECURE_SKIP_TLS_VERIFY",
    "RANCHER_TIMEOUT",
    "TOKEN_THRESHOLD_DAYS",
    "TOKEN_EXPIRATION_SOURCE",
    "FORCE_REFRESH",
    "DRY_RUN",
    "WITH_DIRECTLY",
    "AUTO_CREATE",
    "CLUSTER_FILTER",
    "KUBECONFIG",
    "KUBECONFIG_PATH",
    "LOGGING__LEVEL",
    "LOGGING__FORMAT",
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    # Ensure async tests work properly
    config.option.asyncio_mode = "auto"

    setup_logging(log_format="pipe", log_level_name="DEBUG")


@pytest.fixture(autouse=True)
def isolated_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Iterator[None]:
    """Keep tests away from the real environment, .env file and home directory."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.chdir(tmp_path)
    yield
    # CLI runs reconfigure logging
    setup_logging(log_format="pipe", log_level_name="DEBUG")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for ``<name>:<jwt>`` tokens expiring relative to now."""

    def _make_token(
        expires_in: timedelta | None = timedelta(days=90),
        name: str = "kubeconfig-u-abc123",
        issued_at: datetime | None = None,
    ) -> str:
        claims: dict[str, Any] = {"sub": "u-abc123"}
        if expires_in is not None:
            claims["exp"] = int((datetime.now(UTC) + expires_in).timestamp())
        if issued_at is not None:
            claims["iat"] = int(issued_at.timestamp())
        return f"{name}:{make_jwt(claims)}"

    return _make_token


@pytest.fixture
def bundle_yaml() -> Callable[..., str]:
    """Factory for Rancher-generated kubeconfig YAML."""

    def _bundle_yaml(
        cluster_name: str,
        cluster_id: str,
        token: str,
        direct_hosts: tuple[str, ...] = (),
    ) -> str:
        return yaml.safe_dump(
            build_bundle(cluster_name, cluster_id, token, direct_hosts)
        )

    return _bundle_yaml


@pytest.fixture
def kubeconfig_file(tmp_path: Path) -> Path:
    """Path of a kubeconfig file inside the test directory (not created)."""
    return tmp_path / "kube" / "config"
