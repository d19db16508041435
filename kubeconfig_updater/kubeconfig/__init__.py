"""Kubeconfig model, reconciliation and storage."""

from .merge import (
    count_direct_contexts,
    extract_token_from_kubeconfig,
    get_current_token,
    merge_kubeconfig,
    update_token_by_name,
)
from .models import AuthInfo, Cluster, Context, Kubeconfig
from .paths import resolve_kubeconfig_path
from .storage import KubeconfigStorage


__all__ = [
    "AuthInfo",
    "Cluster",
    "Context",
    "Kubeconfig",
    "KubeconfigStorage",
    "count_direct_contexts",
    "extract_token_from_kubeconfig",
    "get_current_token",
    "merge_kubeconfig",
    "resolve_kubeconfig_path",
    "update_token_by_name",
]
