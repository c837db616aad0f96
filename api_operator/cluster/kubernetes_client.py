"""
api_operator/cluster/kubernetes_client.py
─────────────────────────────────────────
KubernetesClusterClient: the ClusterClient backed by the official kubernetes client.

Configuration is loaded from the local kubeconfig first and from the
in-cluster service account second. API objects are converted into the
operator's own records (shared/models.py) at this boundary, so nothing else
in the operator imports kubernetes types.

A deployment's spec_fingerprint is the pod-template-hash of the ReplicaSet
at its current revision, and a pod's is its own pod-template-hash label.
Admission (LimitRange defaults, mutating webhooks) rewrites pod containers,
so the containers themselves are only hashed when no template hash is
available: before the deployment controller has observed the latest
generation, or for pods that carry no label. A pod fingerprinted from its
containers never matches a template hash.

Every ApiException is re-raised as OperatorError(CLUSTER_REQUEST_FAILED)
with the operation in its path ("listing pods: ..."). A 404 where absence is
an expected answer (delete, exists, config map read) is not an error.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from api_operator.shared.errors import ErrorKind, OperatorError, wrap_error
from api_operator.shared.models import (
    AutoscalerSpec,
    Deployment,
    DeploymentCondition,
    Node,
    Pod,
    VirtualService,
)
from api_operator.shared.quantity import Quantity

logger = logging.getLogger(__name__)

ISTIO_GROUP = "networking.istio.io"
ISTIO_VERSION = "v1alpha3"
VIRTUAL_SERVICE_PLURAL = "virtualservices"

# Sidecars injected by admission webhooks are not part of the deployment template.
_INJECTED_CONTAINERS = frozenset({"istio-proxy"})
_FINGERPRINT_FIELDS = ("name", "image", "command", "args", "env", "resources")

TEMPLATE_HASH_LABEL = "pod-template-hash"
REVISION_ANNOTATION = "deployment.kubernetes.io/revision"


def load_kube_config() -> None:
    try:
        config.load_kube_config()
        logger.info("Loaded local kubeconfig.")
    except ConfigException:
        logger.info("Local kubeconfig not found. Trying in-cluster config...")
        try:
            config.load_incluster_config()
        except ConfigException as e:
            raise OperatorError(
                ErrorKind.CLUSTER_REQUEST_FAILED,
                f"kubernetes configuration could not be loaded: {e}",
            ) from e
        logger.info("Loaded in-cluster config.")


class KubernetesClusterClient:
    """ClusterClient implementation for one namespace."""

    def __init__(self, namespace: str = "default", api_client: Optional[client.ApiClient] = None) -> None:
        self.namespace = namespace
        self._api_client = api_client or client.ApiClient()
        self._core = client.CoreV1Api(self._api_client)
        self._apps = client.AppsV1Api(self._api_client)
        self._autoscaling = client.AutoscalingV1Api(self._api_client)
        self._custom = client.CustomObjectsApi(self._api_client)

    @classmethod
    def from_environment(cls, namespace: str = "default") -> "KubernetesClusterClient":
        load_kube_config()
        return cls(namespace)

    # ── Reads ──────────────────────────────────────────────────────────────────

    def list_virtual_services(self) -> List[VirtualService]:
        try:
            resp = self._custom.list_namespaced_custom_object(
                ISTIO_GROUP, ISTIO_VERSION, self.namespace, VIRTUAL_SERVICE_PLURAL,
            )
        except ApiException as e:
            raise wrap_error(e, "listing virtual services")
        return [_to_virtual_service(item) for item in resp.get("items", [])]

    def list_deployments_with_label(self, label_key: str) -> List[Deployment]:
        try:
            resp = self._apps.list_namespaced_deployment(self.namespace, label_selector=label_key)
            replica_sets = self._apps.list_namespaced_replica_set(self.namespace, label_selector=label_key)
        except ApiException as e:
            raise wrap_error(e, "listing deployments")
        return [self._to_deployment(d, replica_sets.items) for d in resp.items]

    def list_pods_with_label(self, label_key: str) -> List[Pod]:
        try:
            resp = self._core.list_namespaced_pod(self.namespace, label_selector=label_key)
        except ApiException as e:
            raise wrap_error(e, "listing pods")
        return [self._to_pod(p) for p in resp.items]

    def list_failed_pods(self) -> List[Pod]:
        try:
            resp = self._core.list_namespaced_pod(self.namespace, field_selector="status.phase=Failed")
        except ApiException as e:
            raise wrap_error(e, "listing failed pods")
        return [self._to_pod(p) for p in resp.items]

    def list_nodes(self) -> List[Node]:
        try:
            resp = self._core.list_node()
        except ApiException as e:
            raise wrap_error(e, "listing nodes")
        return [_to_node(n) for n in resp.items]

    def autoscaler_exists(self, name: str) -> bool:
        try:
            self._autoscaling.read_namespaced_horizontal_pod_autoscaler(name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise wrap_error(e, f"reading autoscaler {name}")
        return True

    def get_config_map_data(self, name: str) -> Optional[Dict[str, str]]:
        try:
            config_map = self._core.read_namespaced_config_map(name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise wrap_error(e, f"reading config map {name}")
        return dict(config_map.data or {})

    # ── Writes ─────────────────────────────────────────────────────────────────

    def delete_pod(self, name: str) -> bool:
        try:
            self._core.delete_namespaced_pod(name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise wrap_error(e, f"deleting pod {name}")
        return True

    def create_autoscaler(self, spec: AutoscalerSpec) -> None:
        body = client.V1HorizontalPodAutoscaler(
            api_version="autoscaling/v1",
            kind="HorizontalPodAutoscaler",
            metadata=client.V1ObjectMeta(name=spec.name, namespace=self.namespace, labels=dict(spec.labels)),
            spec=client.V1HorizontalPodAutoscalerSpec(
                min_replicas=spec.min_replicas,
                max_replicas=spec.max_replicas,
                target_cpu_utilization_percentage=spec.target_cpu_utilization,
                scale_target_ref=client.V1CrossVersionObjectReference(
                    api_version="apps/v1",
                    kind="Deployment",
                    name=spec.deployment_name,
                ),
            ),
        )
        try:
            self._autoscaling.create_namespaced_horizontal_pod_autoscaler(self.namespace, body)
        except ApiException as e:
            raise wrap_error(e, f"creating autoscaler {spec.name}")

    def apply_config_map(self, name: str, data: Mapping[str, str]) -> None:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=self.namespace),
            data=dict(data),
        )
        try:
            self._core.replace_namespaced_config_map(name, self.namespace, body)
            return
        except ApiException as e:
            if e.status != 404:
                raise wrap_error(e, f"updating config map {name}")
        try:
            self._core.create_namespaced_config_map(self.namespace, body)
        except ApiException as e:
            raise wrap_error(e, f"creating config map {name}")

    # ── Conversions ────────────────────────────────────────────────────────────

    def _to_deployment(self, deployment: Any, replica_sets: Iterable[Any] = ()) -> Deployment:
        status = deployment.status
        conditions = [
            DeploymentCondition(
                type=c.type,
                status=c.status,
                last_update_time=c.last_update_time,
            )
            for c in ((status.conditions if status else None) or [])
        ]
        replicas = deployment.spec.replicas
        return Deployment(
            name=deployment.metadata.name,
            labels=dict(deployment.metadata.labels or {}),
            replicas=1 if replicas is None else replicas,
            conditions=conditions,
            spec_fingerprint=(
                _current_template_hash(deployment, replica_sets)
                or self._fingerprint(deployment.spec.template.spec.containers)
            ),
        )

    def _to_pod(self, pod: Any) -> Pod:
        status = pod.status
        ready = any(
            c.type == "Ready" and c.status == "True"
            for c in ((status.conditions if status else None) or [])
        )
        return Pod(
            name=pod.metadata.name,
            labels=dict(pod.metadata.labels or {}),
            phase=(status.phase if status else None) or "Unknown",
            reason=status.reason if status else None,
            ready=ready,
            spec_fingerprint=(
                (pod.metadata.labels or {}).get(TEMPLATE_HASH_LABEL)
                or self._fingerprint(pod.spec.containers if pod.spec else [])
            ),
        )

    def _fingerprint(self, containers: Optional[Iterable[Any]]) -> str:
        """Stable hash of the template-controlled parts of a container list."""
        normalized = []
        for container in containers or []:
            as_dict = self._api_client.sanitize_for_serialization(container)
            if as_dict.get("name") in _INJECTED_CONTAINERS:
                continue
            normalized.append({k: as_dict.get(k) for k in _FINGERPRINT_FIELDS})
        normalized.sort(key=lambda c: c.get("name") or "")
        encoded = json.dumps(normalized, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()


def _current_template_hash(deployment: Any, replica_sets: Iterable[Any]) -> Optional[str]:
    """pod-template-hash of the ReplicaSet at the deployment's current revision."""
    metadata = deployment.metadata
    status = deployment.status
    if status is None or (status.observed_generation or 0) < (metadata.generation or 0):
        return None
    revision = (metadata.annotations or {}).get(REVISION_ANNOTATION)
    if revision is None:
        return None
    for replica_set in replica_sets:
        rs_meta = replica_set.metadata
        if not any(owner.uid == metadata.uid for owner in (rs_meta.owner_references or [])):
            continue
        if (rs_meta.annotations or {}).get(REVISION_ANNOTATION) == revision:
            return (rs_meta.labels or {}).get(TEMPLATE_HASH_LABEL)
    return None


def _to_virtual_service(item: Mapping[str, Any]) -> VirtualService:
    metadata = item.get("metadata") or {}
    spec = item.get("spec") or {}
    endpoints: List[str] = []
    for route in spec.get("http") or []:
        for match in route.get("match") or []:
            uri = match.get("uri") or {}
            endpoint = uri.get("exact") or uri.get("prefix")
            if endpoint and endpoint not in endpoints:
                endpoints.append(endpoint)
    return VirtualService(
        name=metadata.get("name", ""),
        gateways=list(spec.get("gateways") or []),
        endpoints=endpoints,
        labels=dict(metadata.get("labels") or {}),
    )


def _to_node(node: Any) -> Node:
    allocatable = (node.status.allocatable if node.status else None) or {}
    mem: Optional[Quantity] = None
    if "memory" in allocatable:
        try:
            mem = Quantity.parse(allocatable["memory"])
        except ValueError:
            logger.warning("Node %s reports unparseable memory %r", node.metadata.name, allocatable["memory"])
    return Node(
        name=node.metadata.name,
        labels=dict(node.metadata.labels or {}),
        allocatable_mem=mem,
    )
