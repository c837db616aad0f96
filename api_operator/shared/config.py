"""
api_operator/shared/config.py
─────────────────────────────
Operator configuration, loaded once at process start.

All values come from environment variables prefixed with OPERATOR_ (or a
.env file), e.g. OPERATOR_INSTANCE_CPU=4, OPERATOR_INSTANCE_MEM=15Gi.

Two groups of settings matter to validation:

  Instance metadata  → what one worker node provides (CPU, memory, GPU).
                       The cluster runs a single instance type, so this is
                       also the ceiling for any single API replica.
  Reservations       → what the system daemons on every node consume, plus
                       the NVIDIA device plugin on GPU nodes. Subtracted from
                       instance metadata before comparing against requests.

The reconciler reads the dwell time: an autoscaler is only installed once a
rollout has been stable for longer than the metrics scrape interval, plus a
safety margin, so the autoscaler never starts from empty metrics.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from api_operator.shared.quantity import Quantity


class OperatorSettings(BaseSettings):
    """Process-wide operator settings."""

    model_config = SettingsConfigDict(
        env_prefix="OPERATOR_",
        env_file=".env",
        extra="ignore",
    )

    # ── Cluster layout ────────────────────────────────────────────────────────
    namespace: str = Field("default", description="Namespace holding API workloads")
    api_gateway: str = Field("apis-gateway", description="Ingress gateway shared by all APIs")
    api_label: str = Field("apiName", description="Label key carrying the owning API name")
    memory_config_map: str = Field(
        "instance-memory-capacity",
        description="Config map caching the smallest observed node memory",
    )

    # ── Instance metadata ─────────────────────────────────────────────────────
    instance_type: str = Field("unknown", description="Worker instance type, e.g. m5.large")
    instance_cpu: Quantity = Field(Quantity.parse("2"), description="CPU per worker node")
    instance_mem: Quantity = Field(Quantity.parse("8Gi"), description="Memory per worker node")
    instance_gpu: int = Field(0, ge=0, description="GPUs per worker node")

    # ── Reservations ──────────────────────────────────────────────────────────
    cpu_reserve: Quantity = Field(Quantity.parse("800m"), description="System CPU overhead per node")
    mem_reserve: Quantity = Field(Quantity.parse("1500Mi"), description="System memory overhead per node")
    nvidia_cpu_reserve: Quantity = Field(Quantity.parse("100m"), description="Device plugin CPU overhead")
    nvidia_mem_reserve: Quantity = Field(Quantity.parse("100Mi"), description="Device plugin memory overhead")

    # ── Reconciliation ────────────────────────────────────────────────────────
    metrics_interval_seconds: float = Field(30.0, gt=0, description="Autoscaler metrics scrape interval")
    dwell_margin_seconds: float = Field(5.0, ge=0, description="Safety margin on top of the scrape interval")
    operator_cron_interval_seconds: float = Field(5.0, gt=0)
    telemetry_cron_interval_seconds: float = Field(3600.0, gt=0)
    telemetry_enabled: bool = Field(True)

    @property
    def autoscaler_dwell_seconds(self) -> float:
        """Minimum stable rollout time before an autoscaler is installed."""
        return self.metrics_interval_seconds + self.dwell_margin_seconds


@lru_cache()
def get_settings() -> OperatorSettings:
    """Settings for the running process. Tests construct OperatorSettings directly."""
    return OperatorSettings()
