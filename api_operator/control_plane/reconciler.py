"""
api_operator/control_plane/reconciler.py
────────────────────────────────────────
Reconciler: the periodic operator task that keeps API workloads tidy.

One tick
─────────
  1. Fetch, concurrently:
       • deployments carrying the API label
       • pods in phase Failed
  2. Run, concurrently:
       • the evicted-pod sweep
       • autoscaler installation

Evicted-pod sweep
──────────────────
Pods evicted by the kubelet (node memory or disk pressure) stay behind in
phase Failed with reason "Evicted" until someone deletes them. Every such pod
is deleted; failures are collected and the first one is raised after all
deletions were attempted.

Autoscaler installation
────────────────────────
Autoscalers are deleted whenever a deployment is updated, so "an autoscaler
exists for this API" means "already installed for the current rollout".
For every deployment without one:

  • count pods of the API that are ready AND run the latest pod spec; if
    fewer than the desired replica count, the rollout has not converged
  • require the Progressing condition to be True with a non-zero last update
    time at least `dwell` ago; the dwell exceeds the metrics scrape interval,
    so the new autoscaler never starts from empty metrics

API pods are listed at most once per tick, and only when some deployment
still needs an autoscaler. Per-deployment failures are collected; the first
is raised after every deployment was processed.

State
──────
None. Everything derives from the cluster at tick time, so a second tick
against an unchanged cluster performs no writes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from api_operator.cluster.interfaces import ClusterClient
from api_operator.shared.config import OperatorSettings
from api_operator.shared.errors import first_error
from api_operator.shared.models import AutoscalerSpec, Deployment, Pod
from api_operator.shared.parallel import run_first_err

logger = logging.getLogger(__name__)

REASON_EVICTED = "Evicted"
CONDITION_PROGRESSING = "Progressing"
CONDITION_TRUE = "True"

DEFAULT_MIN_REPLICAS = 1
DEFAULT_MAX_REPLICAS = 100
DEFAULT_TARGET_CPU_UTILIZATION = 80


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """
    Usage:
        reconciler = Reconciler(cluster, settings)
        reconciler.tick()          # called by the cron driver every few seconds
    """

    def __init__(
        self,
        cluster: ClusterClient,
        settings: OperatorSettings,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cluster = cluster
        self._settings = settings
        self._now = now
        self._dwell = timedelta(seconds=settings.autoscaler_dwell_seconds)

    def tick(self) -> None:
        """
        Run one reconciliation cycle.

        Raises:
            The first error from either subtask (after both have finished).
        """
        deployments, failed_pods = run_first_err(
            lambda: self._cluster.list_deployments_with_label(self._settings.api_label),
            self._cluster.list_failed_pods,
        )
        run_first_err(
            lambda: self.delete_evicted_pods(failed_pods),
            lambda: self.update_autoscalers(deployments),
        )

    # ── Evicted-pod sweep ──────────────────────────────────────────────────────

    def delete_evicted_pods(self, failed_pods: List[Pod]) -> int:
        """Delete every evicted pod. Returns the number deleted."""
        errs: List[Optional[BaseException]] = []
        deleted = 0
        for pod in failed_pods:
            if pod.reason != REASON_EVICTED:
                continue
            try:
                if self._cluster.delete_pod(pod.name):
                    deleted += 1
                    logger.info("Deleted evicted pod %s", pod.name)
            except Exception as e:
                errs.append(e)

        err = first_error(errs)
        if err is not None:
            raise err
        return deleted

    # ── Autoscaler installation ────────────────────────────────────────────────

    def update_autoscalers(self, deployments: List[Deployment]) -> int:
        """Install autoscalers for converged deployments. Returns the number created."""
        errs: List[Optional[BaseException]] = []
        created = 0
        api_pods: Optional[List[Pod]] = None
        label = self._settings.api_label

        for deployment in deployments:
            api_name = deployment.labels.get(label, "")
            try:
                if self._cluster.autoscaler_exists(api_name):
                    continue

                if api_pods is None:
                    api_pods = self._cluster.list_pods_with_label(label)

                ready = num_updated_ready_replicas(deployment, api_pods, label)
                if ready < deployment.replicas:
                    logger.debug(
                        "Deployment %s not converged (%d/%d updated ready replicas)",
                        deployment.name, ready, deployment.replicas,
                    )
                    continue

                if not self.is_rollout_stable(deployment):
                    continue

                self._cluster.create_autoscaler(autoscaler_spec(deployment, label))
                created += 1
                logger.info("Created autoscaler for api %s (deployment %s)", api_name, deployment.name)
            except Exception as e:
                errs.append(e)

        err = first_error(errs)
        if err is not None:
            raise err
        return created

    def is_rollout_stable(self, deployment: Deployment) -> bool:
        """True once the Progressing condition has been True for at least the dwell time."""
        now = self._now()
        for condition in deployment.conditions:
            if condition.type != CONDITION_PROGRESSING or condition.status != CONDITION_TRUE:
                continue
            if condition.last_update_time is None:
                continue
            if now >= condition.last_update_time + self._dwell:
                return True
        return False


# ── Helpers ───────────────────────────────────────────────────────────────────

def num_updated_ready_replicas(deployment: Deployment, pods: List[Pod], label: str) -> int:
    """Pods of the deployment's API that are ready and run the deployment's current pod spec."""
    api_name = deployment.labels.get(label)
    return sum(
        1
        for pod in pods
        if pod.labels.get(label) == api_name
        and pod.ready
        and pod.spec_fingerprint == deployment.spec_fingerprint
    )


def autoscaler_spec(deployment: Deployment, label: str) -> AutoscalerSpec:
    api_name = deployment.labels.get(label, deployment.name)
    return AutoscalerSpec(
        name=api_name,
        deployment_name=deployment.name,
        min_replicas=_int_label(deployment, "minReplicas", DEFAULT_MIN_REPLICAS),
        max_replicas=_int_label(deployment, "maxReplicas", DEFAULT_MAX_REPLICAS),
        target_cpu_utilization=_int_label(deployment, "targetCPUUtilization", DEFAULT_TARGET_CPU_UTILIZATION),
        labels={label: api_name},
    )


def _int_label(deployment: Deployment, key: str, default: int) -> int:
    raw = deployment.labels.get(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Deployment %s has non-integer label %s=%r, using %d", deployment.name, key, raw, default)
        return default
    return value if value > 0 else default
