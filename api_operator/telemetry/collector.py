"""
api_operator/telemetry/collector.py
───────────────────────────────────
InstanceTelemetryCollector: periodic snapshot of the worker fleet.

What one tick does
───────────────────
  1. List every node in the cluster.
  2. Keep worker nodes (label workload=true); control-plane and system nodes
     are not part of the fleet users pay for.
  3. Bucket workers by instance type (label beta.kubernetes.io/instance-type,
     "unknown" when absent).
  4. Emit a single "operator.cron" event:

         {"instanceTypes": {"m5.large": 3, "p2.xlarge": 1}, "instanceCount": 4}

Driven by the cron scheduler at the telemetry interval (hourly by default).
A failed node listing propagates to the cron error handler; no event is
emitted for that tick.

Usage:
    collector = InstanceTelemetryCollector(cluster, sink)
    collector.tick()
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict

from api_operator.cluster.interfaces import ClusterClient, TelemetrySink

logger = logging.getLogger(__name__)

EVENT_NAME = "operator.cron"
WORKLOAD_LABEL = "workload"
INSTANCE_TYPE_LABEL = "beta.kubernetes.io/instance-type"
UNKNOWN_INSTANCE_TYPE = "unknown"


class InstanceTelemetryCollector:
    """Counts worker nodes per instance type and reports them to the telemetry sink."""

    def __init__(self, cluster: ClusterClient, sink: TelemetrySink) -> None:
        self._cluster = cluster
        self._sink = sink
        self._tick_count: int = 0

    def tick(self) -> Dict[str, Any]:
        """
        Execute one collection cycle.

        Returns:
            The event properties that were emitted.
        """
        self._tick_count += 1

        counts: Counter = Counter()
        for node in self._cluster.list_nodes():
            if node.labels.get(WORKLOAD_LABEL) != "true":
                continue
            instance_type = node.labels.get(INSTANCE_TYPE_LABEL) or UNKNOWN_INSTANCE_TYPE
            counts[instance_type] += 1

        properties: Dict[str, Any] = {
            "instanceTypes": dict(counts),
            "instanceCount": sum(counts.values()),
        }
        self._sink.event(EVENT_NAME, properties)
        logger.debug("Emitted %s: %s", EVENT_NAME, properties)
        return properties

    @property
    def tick_count(self) -> int:
        """Total number of tick() calls since this collector was created."""
        return self._tick_count

    def __repr__(self) -> str:
        return f"InstanceTelemetryCollector(ticks={self._tick_count})"
