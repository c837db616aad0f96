"""
api_operator/control_plane/operator_service.py
──────────────────────────────────────────────
OperatorService: wires the control plane together.

Owns
─────
  settings        → OperatorSettings (instance metadata, reservations, intervals)
  cluster         → ClusterClient
  object_store    → ObjectStore
  telemetry       → TelemetrySink
  validator       → APIValidator       (manifest admission)
  reconciler      → Reconciler         (operator cron)
  collector       → InstanceTelemetryCollector (telemetry cron)
  scheduler       → CronScheduler

Public API
───────────
  from_environment(settings) → service over the cluster and S3 from the environment
  extract_api_configs(config_bytes, project_files, file_path) → List[API]
  start()   → launches the operator cron and, if enabled, the telemetry cron
  stop()    → cancels both

The service holds no state derived from the cluster; every validation pass
and every tick reads fresh facts.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from api_operator.cluster.interfaces import ClusterClient, ObjectStore, TelemetrySink
from api_operator.cluster.kubernetes_client import KubernetesClusterClient
from api_operator.cluster.s3 import S3ObjectStore
from api_operator.control_plane.cron import CronScheduler, cron_error_handler
from api_operator.control_plane.reconciler import Reconciler
from api_operator.control_plane.validations import APIValidator, extract_api_configs
from api_operator.shared.config import OperatorSettings, get_settings
from api_operator.shared.models import API, ProjectFileMap
from api_operator.telemetry.collector import InstanceTelemetryCollector
from api_operator.telemetry.sink import LoggingTelemetrySink

logger = logging.getLogger(__name__)

OPERATOR_CRON = "operator"
TELEMETRY_CRON = "telemetry"


class OperatorService:
    """Central control plane: admission, reconciliation, telemetry."""

    def __init__(
        self,
        cluster: ClusterClient,
        object_store: ObjectStore,
        telemetry: Optional[TelemetrySink] = None,
        settings: Optional[OperatorSettings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cluster = cluster
        self.object_store = object_store
        self.telemetry = telemetry or LoggingTelemetrySink(enabled=self.settings.telemetry_enabled)

        self.validator = APIValidator(cluster, object_store, self.settings)
        self.reconciler = Reconciler(cluster, self.settings)
        self.collector = InstanceTelemetryCollector(cluster, self.telemetry)
        self.scheduler = CronScheduler()

        logger.info(
            "OperatorService initialised (namespace=%s, instance=%s cpu=%s mem=%s gpu=%d).",
            self.settings.namespace,
            self.settings.instance_type,
            self.settings.instance_cpu,
            self.settings.instance_mem,
            self.settings.instance_gpu,
        )

    @classmethod
    def from_environment(cls, settings: Optional[OperatorSettings] = None) -> "OperatorService":
        """
        Build the service against the real cluster and S3.

        Kubernetes configuration comes from the local kubeconfig or the
        in-cluster service account; AWS credentials from the boto3 chain.
        """
        settings = settings or get_settings()
        return cls(
            KubernetesClusterClient.from_environment(settings.namespace),
            S3ObjectStore(),
            settings=settings,
        )

    def extract_api_configs(
        self,
        config_bytes: bytes,
        project_files: ProjectFileMap,
        file_path: str,
    ) -> List[API]:
        """Parse and validate a manifest. Raises OperatorError on the first problem."""
        return extract_api_configs(config_bytes, project_files, file_path, self.validator)

    def start(self) -> None:
        self.scheduler.run(
            OPERATOR_CRON,
            self.reconciler.tick,
            self.settings.operator_cron_interval_seconds,
            cron_error_handler(OPERATOR_CRON, self.telemetry),
        )
        if self.settings.telemetry_enabled:
            self.scheduler.run(
                TELEMETRY_CRON,
                self.collector.tick,
                self.settings.telemetry_cron_interval_seconds,
                cron_error_handler(TELEMETRY_CRON, self.telemetry),
            )

    def stop(self, timeout: Optional[float] = None) -> None:
        self.scheduler.cancel_all(timeout)
        logger.info("OperatorService stopped.")
