"""Reconciliation of Rancher-generated kubeconfigs into the local kubeconfig.

Rancher names the primary entry of a generated kubeconfig after the cluster.
Clusters with "Authorized Cluster Endpoint" enabled add direct contexts named
``<cluster>-<node or fqdn>`` that share the primary user.

Merges are additive: entries not named by the merge are never touched.
Merging into the same kubeconfig from several tasks at once is not supported.
"""

from kubeconfig_updater.core.logging import get_logger
from kubeconfig_updater.exceptions import UserNotFoundError
from kubeconfig_updater.kubeconfig.models import (
    RANCHER_PROXY_PATH,
    AuthInfo,
    Cluster,
    Context,
    Kubeconfig,
)


logger = get_logger(__name__)


def _ensure_maps(
    kubeconfig: Kubeconfig,
) -> tuple[dict[str, Cluster], dict[str, Context], dict[str, AuthInfo]]:
    """Initialize missing maps and return clusters, contexts and users."""
    if kubeconfig.clusters is None:
        kubeconfig.clusters = {}
    if kubeconfig.contexts is None:
        kubeconfig.contexts = {}
    if kubeconfig.auth_infos is None:
        kubeconfig.auth_infos = {}
    return kubeconfig.clusters, kubeconfig.contexts, kubeconfig.auth_infos


def direct_context_prefix(cluster_name: str) -> str:
    return f"{cluster_name}-"


def is_direct_context(context_name: str, cluster_name: str) -> bool:
    """Check if a context belongs to the direct family of ``cluster_name``.

    ``prod-node01`` belongs to ``prod``; ``production`` does not.
    """
    return context_name.startswith(direct_context_prefix(cluster_name))


def count_direct_contexts(kubeconfig: Kubeconfig | None, cluster_name: str) -> int:
    """Count the direct contexts of a cluster in a kubeconfig."""
    if kubeconfig is None or not kubeconfig.contexts:
        return 0
    return sum(
        1 for name in kubeconfig.contexts if is_direct_context(name, cluster_name)
    )


def merge_kubeconfig(
    target: Kubeconfig,
    source: Kubeconfig,
    cluster_name: str,
    with_directly: bool,
) -> list[str]:
    """Merge a Rancher-generated kubeconfig into the target kubeconfig.

    The cluster, context and user named ``cluster_name`` are always copied
    when present in ``source``, overwriting target entries of the same name.
    With ``with_directly``, every context named ``<cluster_name>-*`` is copied
    too, along with its cluster. Users referenced by copied contexts are
    copied once each.

    Args:
        target: Kubeconfig to update in place
        source: Kubeconfig returned by Rancher for the cluster
        cluster_name: Cluster display name (name of the primary entry)
        with_directly: Whether to include direct contexts

    Returns:
        Names of the contexts copied into the target
    """
    target_clusters, target_contexts, target_auth_infos = _ensure_maps(target)

    source_clusters = source.clusters or {}
    source_contexts = source.contexts or {}
    source_auth_infos = source.auth_infos or {}

    clusters: dict[str, Cluster] = {}
    contexts: dict[str, Context] = {}
    auth_infos: dict[str, AuthInfo] = {}

    if cluster_name in source_clusters:
        clusters[cluster_name] = source_clusters[cluster_name]
    if cluster_name in source_auth_infos:
        auth_infos[cluster_name] = source_auth_infos[cluster_name]

    context_names: list[str] = []
    if cluster_name in source_contexts:
        context_names.append(cluster_name)
    if with_directly:
        context_names.extend(
            sorted(
                name
                for name in source_contexts
                if is_direct_context(name, cluster_name)
            )
        )

    for name in context_names:
        context = source_contexts[name]
        cluster_ref = context.cluster
        user_ref = context.user

        cluster_ok = (
            not cluster_ref
            or cluster_ref in source_clusters
            or cluster_ref in target_clusters
        )
        user_ok = (
            not user_ref
            or user_ref in source_auth_infos
            or user_ref in target_auth_infos
        )
        if not (cluster_ok and user_ok):
            logger.warning(
                "context_skipped_dangling_reference",
                context=name,
                cluster_ref=cluster_ref,
                user_ref=user_ref,
            )
            continue

        contexts[name] = context
        if cluster_ref in source_clusters:
            clusters[cluster_ref] = source_clusters[cluster_ref]
        if user_ref in source_auth_infos and user_ref not in auth_infos:
            auth_infos[user_ref] = source_auth_infos[user_ref]

    # Copy only after everything has been selected so a name is written once
    for name, cluster in clusters.items():
        target_clusters[name] = cluster.model_copy(deep=True)
    for name, context in contexts.items():
        target_contexts[name] = context.model_copy(deep=True)
    for name, auth_info in auth_infos.items():
        target_auth_infos[name] = auth_info.model_copy(deep=True)

    logger.debug(
        "kubeconfig_merged",
        cluster=cluster_name,
        contexts=len(contexts),
        clusters=len(clusters),
        users=len(auth_infos),
    )
    return list(contexts)


def update_token_by_name(
    kubeconfig: Kubeconfig,
    cluster_id: str,
    cluster_name: str,
    token: str,
    rancher_url: str,
    auto_create: bool,
) -> bool:
    """Update the token of the user named after a cluster.

    If the user does not exist and ``auto_create`` is set, a cluster pointing
    at the Rancher proxy endpoint, a context and a user are created.

    Args:
        kubeconfig: Kubeconfig to update in place
        cluster_id: Rancher cluster ID, used to build the server URL
        cluster_name: Cluster display name used for all three entries
        token: New token
        rancher_url: Rancher base URL
        auto_create: Whether to create missing entries

    Returns:
        True if new entries were created, False if an existing user was updated

    Raises:
        UserNotFoundError: If the user does not exist and ``auto_create`` is off
    """
    clusters, contexts, auth_infos = _ensure_maps(kubeconfig)

    auth_info = auth_infos.get(cluster_name)
    if auth_info is not None:
        auth_info.token = token
        return False

    if not auto_create:
        logger.warning("cluster_not_found_in_kubeconfig", cluster=cluster_name)
        raise UserNotFoundError(cluster_name)

    server = rancher_url.rstrip("/") + RANCHER_PROXY_PATH + cluster_id
    clusters[cluster_name] = Cluster(server=server)
    contexts[cluster_name] = Context(cluster=cluster_name, user=cluster_name)
    auth_infos[cluster_name] = AuthInfo(token=token)

    logger.info("kubeconfig_entry_created", cluster=cluster_name)
    return True


def get_current_token(kubeconfig: Kubeconfig, cluster_name: str) -> str:
    """Get the token cached for a cluster, or an empty string."""
    auth_info = (kubeconfig.auth_infos or {}).get(cluster_name)
    if auth_info is None:
        return ""
    return auth_info.token or ""


def extract_token_from_kubeconfig(kubeconfig: Kubeconfig | None) -> str | None:
    """Extract the token of the user referenced by the current context.

    Returns:
        The token, or None if any link of current-context -> context -> user
        -> token is missing
    """
    if kubeconfig is None or not kubeconfig.current_context:
        return None

    context = (kubeconfig.contexts or {}).get(kubeconfig.current_context)
    if context is None or not context.user:
        return None

    auth_info = (kubeconfig.auth_infos or {}).get(context.user)
    if auth_info is None or not auth_info.token:
        return None

    return auth_info.token


def find_bundle_token(kubeconfig: Kubeconfig) -> str | None:
    """Find the token in a Rancher-generated kubeconfig.

    Prefers the current context's user and falls back to the first user with
    a token.
    """
    token = extract_token_from_kubeconfig(kubeconfig)
    if token:
        return token

    for _, auth_info in sorted((kubeconfig.auth_infos or {}).items()):
        if auth_info.token:
            return auth_info.token
    return None
