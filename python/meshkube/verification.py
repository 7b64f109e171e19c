"""
meshkube/verification.py

Checks that the nodes actually deployed match what the node pools declared.

A pool listing several roles adds its count to the expected total of every
role it lists, so a pool with roles [master, worker] and count 3 expects 3
masters AND 3 workers while contributing only 3 to the overall total. Existing
cluster documents rely on this arithmetic; it is kept as is.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping

from meshkube.errors import DistributionMismatchError
from meshkube.models.cluster_config import NodePool
from meshkube.models.nodes import NodeOutput, has_master_role, has_worker_role


def verify_node_distribution(
    node_pools: Mapping[str, NodePool],
    inventory: Mapping[str, Iterable[NodeOutput]],
) -> None:
    """Compare declared pool counts with the inventory.

    Checks run in order and the first mismatch raises:
      1) total node count
      2) master count, only if some pool declares a master/controlplane role
      3) worker count, only if some pool declares the worker role

    Args:
        node_pools: Pool name -> NodePool, as declared in the cluster config.
        inventory: Provider name -> deployed nodes.

    Raises:
        DistributionMismatchError: On the first count that does not match.
    """
    pools = list(node_pools.values())
    expected_total = sum(p.count for p in pools)
    expected_master = sum(p.count for p in pools if has_master_role(p.roles))
    expected_worker = sum(p.count for p in pools if has_worker_role(p.roles))

    nodes: List[NodeOutput] = [n for items in inventory.values() for n in items]
    actual_total = len(nodes)
    actual_master = sum(1 for n in nodes if n.is_master)
    actual_worker = sum(1 for n in nodes if n.is_worker)

    if actual_total != expected_total:
        raise DistributionMismatchError("total", expected_total, actual_total)
    if expected_master > 0 and actual_master != expected_master:
        raise DistributionMismatchError("master", expected_master, actual_master)
    if expected_worker > 0 and actual_worker != expected_worker:
        raise DistributionMismatchError("worker", expected_worker, actual_worker)
