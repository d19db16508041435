"""Rancher API client."""

from .client import RancherClient
from .models import AuthType, RancherClientConfig, RancherCluster, TokenInfo


__all__ = [
    "AuthType",
    "RancherClient",
    "RancherClientConfig",
    "RancherCluster",
    "TokenInfo",
]
