"""
tests/test_reconciler.py
────────────────────────
Test suite for api_operator/control_plane/reconciler.py

What we are testing
────────────────────
One Reconciler.tick() against an in-memory cluster:
  • evicted pods are deleted, other failed pods are left alone
  • an autoscaler is installed only for a converged, stable rollout
  • ticks are idempotent against an unchanged cluster
  • per-item failures are collected and the first is raised

Test groups
────────────
Group 1: autoscaler installation
Group 2: evicted-pod sweep
Group 3: failures and call economy
Group 4: helpers
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from api_operator.control_plane.reconciler import (
    Reconciler,
    autoscaler_spec,
    num_updated_ready_replicas,
)
from api_operator.shared.errors import ErrorKind, OperatorError
from api_operator.shared.models import AutoscalerSpec, Deployment, DeploymentCondition, Pod

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
LATEST = "spec-v2"


def _deployment(
    api: str = "iris",
    replicas: int = 2,
    updated_ago: Optional[float] = 40.0,
    progressing: str = "True",
    extra_labels: Optional[dict] = None,
) -> Deployment:
    conditions: List[DeploymentCondition] = []
    if updated_ago is not None:
        conditions.append(DeploymentCondition(
            type="Progressing",
            status=progressing,
            last_update_time=NOW - timedelta(seconds=updated_ago),
        ))
    labels = {"apiName": api}
    labels.update(extra_labels or {})
    return Deployment(
        name=f"api-{api}",
        labels=labels,
        replicas=replicas,
        conditions=conditions,
        spec_fingerprint=LATEST,
    )


def _pods(api: str = "iris", count: int = 2, ready: bool = True, fingerprint: str = LATEST) -> List[Pod]:
    return [
        Pod(
            name=f"{api}-{i}",
            labels={"apiName": api},
            phase="Running",
            ready=ready,
            spec_fingerprint=fingerprint,
        )
        for i in range(count)
    ]


@pytest.fixture
def reconciler(cluster, settings) -> Reconciler:
    return Reconciler(cluster, settings, now=lambda: NOW)


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: autoscaler installation
# ─────────────────────────────────────────────────────────────────────────────

class TestAutoscalerInstallation:
    def test_converged_stable_rollout_gets_autoscaler(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods()

        reconciler.tick()

        assert [spec.name for spec in cluster.created_autoscalers] == ["iris"]
        spec = cluster.created_autoscalers[0]
        assert spec.deployment_name == "api-iris"
        assert spec.labels == {"apiName": "iris"}

    def test_second_tick_creates_nothing(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods()

        reconciler.tick()
        reconciler.tick()

        assert len(cluster.created_autoscalers) == 1

    def test_dwell_not_elapsed(self, reconciler, cluster):
        cluster.deployments = [_deployment(updated_ago=30)]
        cluster.pods = _pods()
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_dwell_boundary_is_inclusive(self, reconciler, cluster):
        cluster.deployments = [_deployment(updated_ago=35)]
        cluster.pods = _pods()
        reconciler.tick()
        assert len(cluster.created_autoscalers) == 1

    def test_not_enough_ready_pods(self, reconciler, cluster):
        cluster.deployments = [_deployment(replicas=3)]
        cluster.pods = _pods(count=2)
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_pods_on_old_spec_do_not_count(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods(fingerprint="spec-v1")
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_unready_pods_do_not_count(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods(ready=False)
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_progressing_false(self, reconciler, cluster):
        cluster.deployments = [_deployment(progressing="False")]
        cluster.pods = _pods()
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_missing_progressing_condition(self, reconciler, cluster):
        cluster.deployments = [_deployment(updated_ago=None)]
        cluster.pods = _pods()
        reconciler.tick()
        assert cluster.created_autoscalers == []

    def test_existing_autoscaler_is_respected(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods()
        cluster.autoscalers["iris"] = AutoscalerSpec(name="iris", deployment_name="api-iris")
        reconciler.tick()
        assert cluster.created_autoscalers == []
        assert "list_pods_with_label" not in cluster.calls

    def test_pods_of_other_apis_do_not_count(self, reconciler, cluster):
        cluster.deployments = [_deployment(api="iris"), _deployment(api="mnist", replicas=1)]
        cluster.pods = _pods(api="mnist", count=2)
        reconciler.tick()
        assert [spec.name for spec in cluster.created_autoscalers] == ["mnist"]


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: evicted-pod sweep
# ─────────────────────────────────────────────────────────────────────────────

class TestEvictedPods:
    def test_only_evicted_pods_deleted(self, reconciler, cluster):
        cluster.pods = [
            Pod(name="evicted-1", phase="Failed", reason="Evicted"),
            Pod(name="oom", phase="Failed", reason="OOMKilled"),
            Pod(name="evicted-2", phase="Failed", reason="Evicted"),
            Pod(name="running", phase="Running"),
        ]
        reconciler.tick()
        assert cluster.deleted_pods == ["evicted-1", "evicted-2"]
        assert {p.name for p in cluster.pods} == {"oom", "running"}

    def test_second_tick_deletes_nothing(self, reconciler, cluster):
        cluster.pods = [Pod(name="evicted-1", phase="Failed", reason="Evicted")]
        reconciler.tick()
        reconciler.tick()
        assert cluster.deleted_pods == ["evicted-1"]

    def test_returns_number_deleted(self, reconciler, cluster):
        pods = [Pod(name="e", phase="Failed", reason="Evicted")]
        cluster.pods = list(pods)
        assert reconciler.delete_evicted_pods(pods) == 1
        assert reconciler.delete_evicted_pods(pods) == 0


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: failures and call economy
# ─────────────────────────────────────────────────────────────────────────────

class TestFailures:
    def test_every_deletion_attempted_before_raising(self, reconciler, cluster):
        cluster.pods = [
            Pod(name="e1", phase="Failed", reason="Evicted"),
            Pod(name="e2", phase="Failed", reason="Evicted"),
        ]
        cluster.fail["delete_pod"] = OperatorError(ErrorKind.CLUSTER_REQUEST_FAILED, "deleting pod: forbidden")
        with pytest.raises(OperatorError, match="forbidden"):
            reconciler.tick()
        assert cluster.calls["delete_pod"] == 2

    def test_every_deployment_processed_before_raising(self, reconciler, cluster):
        cluster.deployments = [_deployment(api="iris"), _deployment(api="mnist")]
        cluster.pods = _pods(api="iris") + _pods(api="mnist")
        cluster.fail["create_autoscaler"] = OperatorError(ErrorKind.CLUSTER_REQUEST_FAILED, "quota exceeded")
        with pytest.raises(OperatorError, match="quota exceeded"):
            reconciler.tick()
        assert cluster.calls["create_autoscaler"] == 2

    def test_sweep_runs_even_when_autoscalers_fail(self, reconciler, cluster):
        cluster.deployments = [_deployment()]
        cluster.pods = _pods() + [Pod(name="e1", phase="Failed", reason="Evicted")]
        cluster.fail["create_autoscaler"] = OperatorError(ErrorKind.CLUSTER_REQUEST_FAILED, "quota exceeded")
        with pytest.raises(OperatorError):
            reconciler.tick()
        assert cluster.deleted_pods == ["e1"]

    def test_listing_failure_aborts_tick(self, reconciler, cluster):
        cluster.pods = [Pod(name="e1", phase="Failed", reason="Evicted")]
        cluster.fail["list_deployments_with_label"] = OperatorError(ErrorKind.CLUSTER_REQUEST_FAILED, "timeout")
        with pytest.raises(OperatorError, match="timeout"):
            reconciler.tick()
        assert cluster.deleted_pods == []

    def test_pods_listed_once_per_tick(self, reconciler, cluster):
        cluster.deployments = [_deployment(api="iris"), _deployment(api="mnist"), _deployment(api="resnet")]
        reconciler.tick()
        assert cluster.calls["list_pods_with_label"] == 1


# ─────────────────────────────────────────────────────────────────────────────
# Group 4: helpers
# ─────────────────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_num_updated_ready_replicas(self):
        pods = _pods(count=2) + _pods(count=1, fingerprint="old") + _pods(api="other", count=3)
        assert num_updated_ready_replicas(_deployment(), pods, "apiName") == 2

    def test_autoscaler_spec_defaults(self):
        spec = autoscaler_spec(_deployment(), "apiName")
        assert (spec.min_replicas, spec.max_replicas, spec.target_cpu_utilization) == (1, 100, 80)

    def test_autoscaler_spec_from_labels(self):
        deployment = _deployment(extra_labels={
            "minReplicas": "2",
            "maxReplicas": "8",
            "targetCPUUtilization": "60",
        })
        spec = autoscaler_spec(deployment, "apiName")
        assert (spec.min_replicas, spec.max_replicas, spec.target_cpu_utilization) == (2, 8, 60)

    def test_bad_label_falls_back_to_default(self):
        spec = autoscaler_spec(_deployment(extra_labels={"maxReplicas": "many"}), "apiName")
        assert spec.max_replicas == 100
