"""Tests for reconciling Rancher kubeconfigs into the local kubeconfig."""

import pytest
from structlog.testing import capture_logs

from kubeconfig_updater.exceptions import UserNotFoundError
from kubeconfig_updater.kubeconfig.merge import (
    count_direct_contexts,
    extract_token_from_kubeconfig,
    find_bundle_token,
    get_current_token,
    merge_kubeconfig,
    update_token_by_name,
)
from kubeconfig_updater.kubeconfig.models import (
    AuthInfo,
    Cluster,
    Context,
    Kubeconfig,
)
from tests.builders import RANCHER_URL, build_bundle


def bundle(
    cluster_name: str = "prod",
    cluster_id: str = "c-m-abc",
    token: str = "kubeconfig-u-new:secret",
    direct_hosts: tuple[str, ...] = (),
) -> Kubeconfig:
    return Kubeconfig.model_validate(
        build_bundle(cluster_name, cluster_id, token, direct_hosts)
    )


def existing_kubeconfig() -> Kubeconfig:
    return Kubeconfig(
        clusters={
            "prod": Cluster(server="https://old.example.com"),
            "staging": Cluster(server="https://staging.example.com"),
        },
        contexts={
            "prod": Context(cluster="prod", user="prod"),
            "staging": Context(cluster="staging", user="staging"),
        },
        auth_infos={
            "prod": AuthInfo(token="kubeconfig-u-old:secret"),
            "staging": AuthInfo(token="kubeconfig-u-stg:secret"),
        },
        current_context="staging",
    )


@pytest.mark.unit
class TestMergeKubeconfig:
    """Test merge_kubeconfig."""

    def test_primary_entries_overwrite_target(self) -> None:
        """Test that the primary cluster, context and user are replaced."""
        target = existing_kubeconfig()

        imported = merge_kubeconfig(target, bundle(), "prod", with_directly=False)

        assert imported == ["prod"]
        assert target.clusters is not None and target.auth_infos is not None
        assert target.clusters["prod"].server == f"{RANCHER_URL}/k8s/clusters/c-m-abc"
        assert target.auth_infos["prod"].token == "kubeconfig-u-new:secret"

    def test_unrelated_entries_are_preserved(self) -> None:
        """Test that the merge is additive."""
        target = existing_kubeconfig()

        merge_kubeconfig(target, bundle(), "prod", with_directly=False)

        assert target.clusters is not None and target.auth_infos is not None
        assert target.clusters["staging"].server == "https://staging.example.com"
        assert target.auth_infos["staging"].token == "kubeconfig-u-stg:secret"
        assert target.current_context == "staging"

    def test_direct_contexts_skipped_without_flag(self) -> None:
        """Test that direct contexts need with_directly."""
        target = Kubeconfig()

        merge_kubeconfig(
            target, bundle(direct_hosts=("node01",)), "prod", with_directly=False
        )

        assert target.contexts is not None and target.clusters is not None
        assert set(target.contexts) == {"prod"}
        assert set(target.clusters) == {"prod"}

    def test_direct_contexts_imported_with_flag(self) -> None:
        """Test that direct contexts and their clusters are imported."""
        target = Kubeconfig()

        imported = merge_kubeconfig(
            target,
            bundle(direct_hosts=("node01", "node02")),
            "prod",
            with_directly=True,
        )

        assert imported == ["prod", "prod-node01", "prod-node02"]
        assert target.clusters is not None and target.auth_infos is not None
        assert target.clusters["prod-node01"].server == "https://node01:6443"
        assert target.clusters["prod-node01"].certificate_authority_data == b"certificate"
        assert list(target.auth_infos) == ["prod"]
        assert target.find_dangling_references() == []

    def test_prefix_requires_separator(self) -> None:
        """Test that 'production' is not a direct context of 'prod'."""
        source = bundle(direct_hosts=("node01",))
        assert source.contexts is not None and source.clusters is not None
        source.clusters["production"] = Cluster(server="https://other")
        source.contexts["production"] = Context(cluster="production", user="prod")
        target = Kubeconfig()

        imported = merge_kubeconfig(target, source, "prod", with_directly=True)

        assert "production" not in imported
        assert target.clusters is not None
        assert "production" not in target.clusters

    def test_absent_primary_is_noop(self) -> None:
        """Test that merging a bundle without the named entries changes nothing."""
        target = existing_kubeconfig()
        before = target.model_dump()

        imported = merge_kubeconfig(target, bundle(), "missing", with_directly=True)

        assert imported == []
        assert target.model_dump() == before

    def test_none_maps_are_initialized(self) -> None:
        """Test that a target with uninitialized maps can be merged into."""
        target = Kubeconfig.model_construct(
            clusters=None, contexts=None, auth_infos=None
        )

        merge_kubeconfig(target, bundle(), "prod", with_directly=False)

        assert target.clusters is not None and "prod" in target.clusters
        assert target.contexts is not None and "prod" in target.contexts
        assert target.auth_infos is not None and "prod" in target.auth_infos

    def test_idempotent(self) -> None:
        """Test that merging twice equals merging once."""
        source = bundle(direct_hosts=("node01",))
        once = existing_kubeconfig()
        twice = existing_kubeconfig()

        merge_kubeconfig(once, source, "prod", with_directly=True)
        merge_kubeconfig(twice, source, "prod", with_directly=True)
        merge_kubeconfig(twice, source, "prod", with_directly=True)

        assert once.model_dump() == twice.model_dump()

    def test_copies_are_deep(self) -> None:
        """Test that later changes to the source do not leak into the target."""
        source = bundle()
        target = Kubeconfig()

        merge_kubeconfig(target, source, "prod", with_directly=False)
        assert source.auth_infos is not None and source.clusters is not None
        source.auth_infos["prod"].token = "changed"
        source.clusters["prod"].server = "https://changed"

        assert target.auth_infos is not None and target.clusters is not None
        assert target.auth_infos["prod"].token == "kubeconfig-u-new:secret"
        assert target.clusters["prod"].server.startswith(RANCHER_URL)

    def test_dangling_direct_context_is_skipped(self) -> None:
        """Test that a direct context with unresolvable references is skipped."""
        source = bundle()
        assert source.contexts is not None
        source.contexts["prod-ghost"] = Context(cluster="prod-ghost", user="prod")
        target = Kubeconfig()

        with capture_logs() as logs:
            imported = merge_kubeconfig(target, source, "prod", with_directly=True)

        assert imported == ["prod"]
        assert target.contexts is not None and "prod-ghost" not in target.contexts
        assert any(
            log["event"] == "context_skipped_dangling_reference"
            and log["context"] == "prod-ghost"
            for log in logs
        )

    def test_direct_context_may_reference_target_cluster(self) -> None:
        """Test that a reference resolving in the target is accepted."""
        source = bundle()
        assert source.contexts is not None
        source.contexts["prod-edge"] = Context(cluster="edge", user="prod")
        target = Kubeconfig(clusters={"edge": Cluster(server="https://edge")})

        imported = merge_kubeconfig(target, source, "prod", with_directly=True)

        assert "prod-edge" in imported
        assert target.find_dangling_references() == []


@pytest.mark.unit
class TestUpdateTokenByName:
    """Test update_token_by_name."""

    def test_updates_existing_user_only(self) -> None:
        """Test that only the token of an existing user changes."""
        kubeconfig = existing_kubeconfig()

        created = update_token_by_name(
            kubeconfig, "c-1", "prod", "new:token", RANCHER_URL, auto_create=False
        )

        assert created is False
        assert kubeconfig.auth_infos is not None and kubeconfig.clusters is not None
        assert kubeconfig.auth_infos["prod"].token == "new:token"
        assert kubeconfig.clusters["prod"].server == "https://old.example.com"

    def test_missing_user_without_auto_create(self) -> None:
        """Test that a missing user raises without auto create."""
        kubeconfig = Kubeconfig()

        with pytest.raises(UserNotFoundError, match="user dev not found"):
            update_token_by_name(
                kubeconfig, "c-2", "dev", "new:token", RANCHER_URL, auto_create=False
            )

        assert kubeconfig.auth_infos == {}

    @pytest.mark.parametrize("url", [RANCHER_URL, RANCHER_URL + "/"])
    def test_auto_create(self, url: str) -> None:
        """Test that auto create builds a proxied entry without double slashes."""
        kubeconfig = Kubeconfig()

        created = update_token_by_name(
            kubeconfig, "c-m-xyz", "dev", "new:token", url, auto_create=True
        )

        assert created is True
        assert kubeconfig.clusters is not None
        assert kubeconfig.clusters["dev"].server == (
            "https://rancher.example.com/k8s/clusters/c-m-xyz"
        )
        assert kubeconfig.contexts is not None
        assert kubeconfig.contexts["dev"] == Context(cluster="dev", user="dev")
        assert kubeconfig.auth_infos is not None
        assert kubeconfig.auth_infos["dev"].token == "new:token"

    def test_auto_create_with_none_maps(self) -> None:
        """Test that missing maps are created before entries are added."""
        kubeconfig = Kubeconfig(clusters=None, contexts=None, auth_infos=None)

        update_token_by_name(
            kubeconfig, "c-1", "dev", "new:token", RANCHER_URL, auto_create=True
        )

        assert kubeconfig.clusters is not None
        assert set(kubeconfig.clusters) == {"dev"}
        assert kubeconfig.auth_infos is not None
        assert kubeconfig.auth_infos["dev"].token == "new:token"


@pytest.mark.unit
class TestTokenLookups:
    """Test token lookup helpers."""

    def test_count_direct_contexts(self) -> None:
        """Test counting direct contexts."""
        source = bundle(direct_hosts=("a", "b", "c"))

        assert count_direct_contexts(source, "prod") == 3
        assert count_direct_contexts(source, "pro") == 0
        assert count_direct_contexts(None, "prod") == 0

    def test_extract_token_follows_current_context(self) -> None:
        """Test that the token of the current context's user is returned."""
        assert (
            extract_token_from_kubeconfig(existing_kubeconfig())
            == "kubeconfig-u-stg:secret"
        )

    @pytest.mark.parametrize(
        "kubeconfig",
        [
            None,
            Kubeconfig(),
            Kubeconfig(current_context="missing"),
            Kubeconfig(
                contexts={"a": Context(cluster="a", user="ghost")},
                current_context="a",
            ),
            Kubeconfig(
                contexts={"a": Context(cluster="a", user="a")},
                auth_infos={"a": AuthInfo()},
                current_context="a",
            ),
        ],
    )
    def test_extract_token_missing_link(self, kubeconfig: Kubeconfig | None) -> None:
        """Test that any missing link yields None."""
        assert extract_token_from_kubeconfig(kubeconfig) is None

    def test_get_current_token(self) -> None:
        """Test the cached token lookup."""
        kubeconfig = existing_kubeconfig()

        assert get_current_token(kubeconfig, "prod") == "kubeconfig-u-old:secret"
        assert get_current_token(kubeconfig, "dev") == ""

    def test_find_bundle_token_falls_back_to_any_user(self) -> None:
        """Test the bundle token fallback when there is no current context."""
        source = bundle(token="only:token")
        source.current_context = ""

        assert find_bundle_token(source) == "only:token"
