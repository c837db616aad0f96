"""
api_operator/cluster/interfaces.py
──────────────────────────────────
Capability interfaces the control plane depends on.

The validator, capacity snapshotter, reconciler and telemetry probe never
touch a global client. They receive objects satisfying these protocols:

  ClusterClient  → list/create/delete of the handful of Kubernetes objects
                   the operator cares about (kubernetes_client.py).
  ObjectStore    → existence checks and prefix listing in object storage
                   (s3.py).
  TelemetrySink  → events and errors for product telemetry (telemetry/sink.py).

Tests pass in-memory fakes instead.

Error contract: implementations raise OperatorError with kind
CLUSTER_REQUEST_FAILED or STORAGE_REQUEST_FAILED for I/O failures.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol

from api_operator.shared.models import AutoscalerSpec, Deployment, Node, Pod, VirtualService


class ClusterClient(Protocol):

    def list_virtual_services(self) -> List[VirtualService]:
        """All virtual services in the operator namespace."""
        ...

    def list_deployments_with_label(self, label_key: str) -> List[Deployment]:
        """Deployments carrying label_key (any value)."""
        ...

    def list_pods_with_label(self, label_key: str) -> List[Pod]:
        """Pods carrying label_key (any value)."""
        ...

    def list_failed_pods(self) -> List[Pod]:
        """Pods whose phase is Failed."""
        ...

    def delete_pod(self, name: str) -> bool:
        """Delete a pod. Returns False if it no longer existed."""
        ...

    def autoscaler_exists(self, name: str) -> bool:
        ...

    def create_autoscaler(self, spec: AutoscalerSpec) -> None:
        ...

    def list_nodes(self) -> List[Node]:
        ...

    def get_config_map_data(self, name: str) -> Optional[Dict[str, str]]:
        """Data of the named config map, or None if it does not exist."""
        ...

    def apply_config_map(self, name: str, data: Mapping[str, str]) -> None:
        """Create the config map, or replace its data if it exists."""
        ...


class ObjectStore(Protocol):

    def is_file(self, *paths: str) -> bool:
        """True if every s3:// path exists as a single object."""
        ...

    def is_prefix(self, path: str) -> bool:
        """True if at least one object key starts with the s3:// path."""
        ...

    def list_keys(self, bucket: str, prefix: str) -> List[str]:
        """Every object key in bucket starting with prefix, in listing order."""
        ...


class TelemetrySink(Protocol):

    def event(self, name: str, properties: Mapping[str, Any]) -> None:
        ...

    def error(self, err: BaseException) -> None:
        ...
