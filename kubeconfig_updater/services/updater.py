"""Kubeconfig update workflow.

For every Rancher cluster, decide whether the cached token needs to be
regenerated, fetch a fresh kubeconfig for the clusters that do, reconcile it
into the local kubeconfig and save the result once at the end.
"""

from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from kubeconfig_updater.auth.policy import (
    ExpirationSource,
    RegenerationDecision,
    RegenerationReason,
    determine_token_regeneration,
)
from kubeconfig_updater.config.settings import Settings
from kubeconfig_updater.core.logging import get_logger
from kubeconfig_updater.exceptions import ProviderError, UserNotFoundError
from kubeconfig_updater.kubeconfig.merge import (
    count_direct_contexts,
    find_bundle_token,
    get_current_token,
    merge_kubeconfig,
    update_token_by_name,
)
from kubeconfig_updater.kubeconfig.models import Kubeconfig
from kubeconfig_updater.kubeconfig.storage import KubeconfigStorage
from kubeconfig_updater.rancher.client import RancherClient
from kubeconfig_updater.rancher.models import RancherCluster


logger = get_logger(__name__)


class UpdateSummary(BaseModel):
    """Outcome of an update run."""

    kubeconfig_path: Path
    dry_run: bool = False
    updated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    backup_path: Path | None = None
    saved: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


def parse_cluster_filter(cluster_filter: str) -> list[str]:
    """Split a comma-separated filter into lowercase names, blanks dropped."""
    seen: dict[str, None] = {}
    for entry in cluster_filter.split(","):
        value = entry.strip().lower()
        if value:
            seen[value] = None
    return list(seen)


def filter_clusters(
    clusters: Sequence[RancherCluster], cluster_filter: str
) -> list[RancherCluster]:
    """Keep the clusters whose name or ID is listed in ``cluster_filter``.

    Matching is case-insensitive and ignores surrounding whitespace. A filter
    with no usable entries keeps every cluster.

    Args:
        clusters: Clusters reported by Rancher
        cluster_filter: Comma-separated cluster names or IDs

    Returns:
        Matching clusters in their original order, each at most once
    """
    if not cluster_filter:
        return list(clusters)

    allowed = parse_cluster_filter(cluster_filter)
    if not allowed:
        logger.warning("cluster_filter_empty", message="processing all clusters")
        return list(clusters)

    allowed_set = set(allowed)
    selected: list[RancherCluster] = []
    added_ids: set[str] = set()
    matched: set[str] = set()

    for cluster in clusters:
        if cluster.id in added_ids:
            continue

        name = cluster.name.lower()
        cluster_id = cluster.id.lower()
        hits = {value for value in (name, cluster_id) if value in allowed_set}
        if hits:
            selected.append(cluster)
            matched.update(hits)
            added_ids.add(cluster.id)

    for value in allowed:
        if value not in matched:
            logger.warning("cluster_not_found_in_rancher", cluster=value)

    if selected:
        logger.info(
            "clusters_filtered", matched=len(selected), total=len(clusters)
        )
    else:
        logger.warning("cluster_filter_matched_nothing")

    return selected


def log_token_decision(
    decision: RegenerationDecision, cluster_name: str, dry_run: bool
) -> None:
    """Log a regeneration decision in a consistent format."""
    if dry_run:
        logger.info(
            "dry_run_would_regenerate_token"
            if decision.should_regenerate
            else "dry_run_would_skip_token_regeneration",
            cluster=cluster_name,
            reason=decision.reason,
            days_until_expiration=decision.days_until_expiry,
        )
        return

    if (
        decision.reason
        in (RegenerationReason.STILL_VALID, RegenerationReason.EXPIRES_SOON)
        and decision.expires_at is not None
        and decision.days_until_expiry is not None
    ):
        logger.info(
            "token_still_valid"
            if decision.reason is RegenerationReason.STILL_VALID
            else "token_expires_soon",
            cluster=cluster_name,
            expires_at=decision.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
            days_until_expiration=int(decision.days_until_expiry),
        )
        return

    event = {
        RegenerationReason.NEVER_EXPIRES: "token_never_expires",
        RegenerationReason.FORCE_REFRESH_ENABLED: "token_force_refresh",
        RegenerationReason.NO_EXISTING_TOKEN: "token_not_found",
        RegenerationReason.EXPIRATION_CHECK_FAILED: "token_expiration_unknown",
    }.get(decision.reason, "token_decision")
    logger.info(event, cluster=cluster_name, regenerate=decision.should_regenerate)


class KubeconfigUpdater:
    """Refresh Rancher cluster tokens in a kubeconfig file."""

    def __init__(
        self,
        settings: Settings,
        client: RancherClient,
        storage: KubeconfigStorage | None = None,
    ):
        """Initialize the updater.

        Args:
            settings: Run settings
            client: Rancher client, already inside its context manager
            storage: Kubeconfig storage (built from settings if not provided)
        """
        self.settings = settings
        self.client = client
        self.storage = storage or KubeconfigStorage(settings.kubeconfig_path)

    async def decide(
        self, cluster: RancherCluster, current_token: str
    ) -> RegenerationDecision:
        """Decide whether to regenerate a cluster token.

        Uses the configured expiration source for every cluster of a run.
        """
        settings = self.settings
        if settings.token_expiration_source is ExpirationSource.RANCHER:
            return await self.client.determine_token_regeneration(
                current_token,
                settings.force_refresh,
                settings.token_threshold_days,
                cluster_name=cluster.name,
            )
        return determine_token_regeneration(
            current_token,
            settings.force_refresh,
            settings.token_threshold_days,
            cluster_name=cluster.name,
        )

    async def run(self) -> UpdateSummary:
        """Run the update for every selected cluster.

        Returns:
            Summary of the run

        Raises:
            KubeconfigError: If the kubeconfig cannot be loaded or saved
            ProviderError: If logging in or listing clusters fails
        """
        settings = self.settings
        summary = UpdateSummary(
            kubeconfig_path=self.storage.file_path, dry_run=settings.dry_run
        )

        if settings.dry_run:
            logger.info("dry_run_enabled", message="no changes will be made")
        if settings.with_directly:
            logger.info("direct_contexts_enabled")

        kubeconfig = self.storage.load()
        if kubeconfig.is_empty:
            logger.info("kubeconfig_new", path=self.storage.get_location())

        if not self.client.is_authenticated:
            await self.client.login()

        clusters = await self.client.list_clusters()
        if settings.cluster_filter:
            clusters = filter_clusters(clusters, settings.cluster_filter)

        for cluster in clusters:
            current_token = get_current_token(kubeconfig, cluster.name)
            decision = await self.decide(cluster, current_token)
            log_token_decision(decision, cluster.name, settings.dry_run)

            if not decision.should_regenerate:
                summary.skipped.append(cluster.name)
                continue

            if settings.dry_run:
                summary.updated.append(cluster.name)
                continue

            try:
                updated = await self.update_cluster(kubeconfig, cluster)
            except UserNotFoundError:
                summary.skipped.append(cluster.name)
                continue

            if updated:
                summary.updated.append(cluster.name)
            else:
                summary.failed.append(cluster.name)

        if settings.dry_run:
            logger.info(
                "dry_run_summary",
                clusters_to_update=len(summary.updated),
                clusters_to_skip=len(summary.skipped),
            )
            return summary

        summary.backup_path = self.storage.save(kubeconfig)
        summary.saved = True
        logger.info(
            "kubeconfig_saved",
            path=self.storage.get_location(),
            updated=len(summary.updated),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
        )
        return summary

    async def update_cluster(
        self, kubeconfig: Kubeconfig, cluster: RancherCluster
    ) -> bool:
        """Fetch a fresh kubeconfig for a cluster and apply it.

        Returns:
            True if the kubeconfig was updated, False if the cluster failed

        Raises:
            UserNotFoundError: If the legacy update finds no user for the cluster
        """
        settings = self.settings
        try:
            bundle = await self.client.generate_kubeconfig(cluster.id)
        except ProviderError as e:
            logger.error(
                "cluster_kubeconfig_fetch_failed",
                cluster=cluster.name,
                error=str(e),
            )
            return False

        if settings.with_directly or settings.auto_create:
            merge_kubeconfig(kubeconfig, bundle, cluster.name, settings.with_directly)
            direct_contexts = (
                count_direct_contexts(bundle, cluster.name)
                if settings.with_directly
                else 0
            )
            logger.info(
                "cluster_token_updated",
                cluster=cluster.name,
                direct_contexts=direct_contexts or None,
            )
            return True

        token = find_bundle_token(bundle)
        if not token:
            logger.error("cluster_kubeconfig_missing_token", cluster=cluster.name)
            return False

        update_token_by_name(
            kubeconfig,
            cluster.id,
            cluster.name,
            token,
            settings.rancher_url,
            settings.auto_create,
        )
        logger.info("cluster_token_updated", cluster=cluster.name)
        return True
