"""
api_operator/control_plane/capacity.py
──────────────────────────────────────
CapacitySnapshotter: the cluster facts one validation pass is judged against.

What it fetches (concurrently, first error wins)
─────────────────────────────────────────────────
  1. Ingress routes: every virtual service bound to the API gateway,
     reduced to (endpoint, owning API name) pairs.
  2. Node memory: the smallest memory figure known for a worker node, kept
     in a config map so a node that reported less memory once keeps the
     ceiling low even after it is replaced (update_memory_capacity_config_map).

CPU and GPU come straight from the instance metadata in settings.

Reservations
─────────────
Every node runs system daemons; GPU nodes additionally run the NVIDIA device
plugin. Both reservations are subtracted here, so the snapshot holds what a
single API replica can actually be given:

    node_cpu = instance_cpu − cpu_reserve  [− nvidia_cpu_reserve if gpu > 0]
    node_mem = min_known_mem − mem_reserve [− nvidia_mem_reserve if gpu > 0]

The snapshot is a frozen value. Nothing in a validation pass reads the
cluster again after it is taken.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from api_operator.cluster.interfaces import ClusterClient
from api_operator.shared.config import OperatorSettings
from api_operator.shared.errors import wrap_error
from api_operator.shared.models import CapacitySnapshot
from api_operator.shared.parallel import run_first_err
from api_operator.shared.quantity import Quantity

logger = logging.getLogger(__name__)

WORKLOAD_LABEL = "workload"
MEMORY_CAPACITY_KEY = "capacity"


class CapacitySnapshotter:
    """
    Builds CapacitySnapshot values from the cluster.

    Usage:
        snapshotter = CapacitySnapshotter(cluster, settings)
        snapshot = snapshotter.snapshot()
    """

    def __init__(self, cluster: ClusterClient, settings: OperatorSettings) -> None:
        self._cluster = cluster
        self._settings = settings

    def snapshot(self) -> CapacitySnapshot:
        """
        Fetch endpoints and memory capacity concurrently and apply reservations.

        Raises:
            OperatorError: the first failure of either fetch.
        """
        endpoints, max_mem = run_first_err(
            self.existing_endpoints,
            self._memory_capacity,
        )
        node_cpu, node_mem = self._apply_reservations(max_mem)
        snapshot = CapacitySnapshot(
            node_cpu=node_cpu,
            node_mem=node_mem,
            node_gpu=self._settings.instance_gpu,
            existing_endpoints=tuple(endpoints),
        )
        logger.debug(
            "Capacity snapshot: cpu=%s mem=%s gpu=%d endpoints=%d",
            snapshot.node_cpu, snapshot.node_mem, snapshot.node_gpu, len(endpoints),
        )
        return snapshot

    def existing_endpoints(self) -> List[Tuple[str, str]]:
        """(endpoint, apiName) for every route served through the API gateway."""
        pairs: List[Tuple[str, str]] = []
        for virtual_service in self._cluster.list_virtual_services():
            if self._settings.api_gateway not in virtual_service.gateways:
                continue
            owner = virtual_service.labels.get(self._settings.api_label, "")
            for endpoint in virtual_service.endpoints:
                pairs.append((endpoint, owner))
        return pairs

    def _memory_capacity(self) -> Quantity:
        try:
            return update_memory_capacity_config_map(self._cluster, self._settings)
        except Exception as e:
            raise wrap_error(e, "validating memory constraint")

    def _apply_reservations(self, max_mem: Quantity) -> Tuple[Quantity, Quantity]:
        s = self._settings
        node_cpu = s.instance_cpu - s.cpu_reserve
        node_mem = max_mem - s.mem_reserve
        if s.instance_gpu > 0:
            node_cpu = node_cpu - s.nvidia_cpu_reserve
            node_mem = node_mem - s.nvidia_mem_reserve
        return node_cpu, node_mem


# ── Memory capacity cache ─────────────────────────────────────────────────────

def update_memory_capacity_config_map(cluster: ClusterClient, settings: OperatorSettings) -> Quantity:
    """
    Return the smallest known per-node memory (pre-reservation), refreshing the cache.

    Candidates: instance metadata, the smallest allocatable memory reported by
    a worker node, and the value previously cached in the config map. The
    config map is rewritten only when there was no cached value or the new
    minimum is strictly smaller.
    """
    min_mem = settings.instance_mem

    previous = _memory_from_config_map(cluster, settings.memory_config_map)
    if previous is not None and previous < min_mem:
        min_mem = previous

    from_nodes = _memory_from_nodes(cluster)
    if from_nodes is not None and from_nodes < min_mem:
        min_mem = from_nodes

    if previous is None or min_mem < previous:
        cluster.apply_config_map(settings.memory_config_map, {MEMORY_CAPACITY_KEY: str(min_mem)})
        logger.info("Memory capacity config map %s set to %s", settings.memory_config_map, min_mem)

    return min_mem


def _memory_from_config_map(cluster: ClusterClient, name: str) -> Optional[Quantity]:
    data = cluster.get_config_map_data(name)
    if not data or MEMORY_CAPACITY_KEY not in data:
        return None
    try:
        return Quantity.parse(data[MEMORY_CAPACITY_KEY])
    except ValueError:
        logger.warning("Ignoring unparseable memory capacity %r in config map %s", data[MEMORY_CAPACITY_KEY], name)
        return None


def _memory_from_nodes(cluster: ClusterClient) -> Optional[Quantity]:
    min_mem: Optional[Quantity] = None
    for node in cluster.list_nodes():
        if node.labels.get(WORKLOAD_LABEL) != "true" or node.allocatable_mem is None:
            continue
        if min_mem is None or node.allocatable_mem < min_mem:
            min_mem = node.allocatable_mem
    return min_mem
