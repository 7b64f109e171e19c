from __future__ import annotations

import pytest

from conftest import make_node
from meshkube.errors import DistributionMismatchError
from meshkube.models.cluster_config import NodePool
from meshkube.verification import verify_node_distribution


def pool(count, roles, provider="aws"):
    return NodePool(provider=provider, count=count, size="small", roles=roles)


class TestVerifyNodeDistribution:
    def test_master_shortfall(self):
        pools = {"masters": pool(3, ["master"])}
        inventory = {"aws": [make_node("m1", role="master"), make_node("m2", role="master")]}

        # Total check fires first: 3 declared, 2 present.
        with pytest.raises(DistributionMismatchError, match="expected 3 nodes, got 2"):
            verify_node_distribution(pools, inventory)

    def test_master_count_mismatch(self):
        pools = {"masters": pool(3, ["master"])}
        inventory = {
            "aws": [
                make_node("m1", role="master"),
                make_node("m2", role="master"),
                make_node("w1", role="worker"),
            ]
        }
        with pytest.raises(DistributionMismatchError, match="expected 3 master nodes, got 2") as exc:
            verify_node_distribution(pools, inventory)
        assert exc.value.kind == "master"
        assert (exc.value.expected, exc.value.actual) == (3, 2)

    def test_worker_count_mismatch(self):
        pools = {"masters": pool(1, ["master"]), "workers": pool(2, ["worker"])}
        inventory = {
            "aws": [
                make_node("m1", role="master"),
                make_node("m2", role="master"),
                make_node("w1", role="worker"),
            ]
        }
        with pytest.raises(DistributionMismatchError, match="expected 1 master nodes, got 2"):
            verify_node_distribution(pools, inventory)

    def test_worker_only_mismatch(self):
        pools = {"masters": pool(1, ["master"]), "workers": pool(2, ["worker"])}
        inventory = {
            "aws": [make_node("m1", role="master"), make_node("x1"), make_node("w1", role="worker")]
        }
        with pytest.raises(DistributionMismatchError, match="expected 2 worker nodes, got 1"):
            verify_node_distribution(pools, inventory)

    def test_matching_distribution_across_providers(self):
        pools = {
            "cp": pool(1, ["controlplane"]),
            "workers": pool(2, ["worker"], provider="do"),
        }
        inventory = {
            "aws": [make_node("cp1", role="controlplane")],
            "do": [make_node("w1", "do", role="worker"), make_node("w2", "do", role="worker")],
        }
        verify_node_distribution(pools, inventory)

    def test_empty_pools_and_inventory(self):
        verify_node_distribution({}, {})

    def test_role_checks_skipped_when_not_declared(self):
        pools = {"general": pool(2, ["edge"])}
        inventory = {"aws": [make_node("e1", role="master"), make_node("e2")]}
        verify_node_distribution(pools, inventory)

    def test_multi_role_pool_counts_towards_both_roles(self):
        pools = {"combined": pool(3, ["master", "worker"])}
        inventory = {"aws": [make_node(f"c{i}", role="master") for i in range(3)]}

        with pytest.raises(DistributionMismatchError, match="expected 3 worker nodes, got 0"):
            verify_node_distribution(pools, inventory)
