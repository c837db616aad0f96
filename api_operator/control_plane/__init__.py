"""
api_operator/control_plane — admission and reconciliation.

Public API:

    Admission:
        parse_api()            — schema table → API model (schema.py)
        CapacitySnapshotter    — cluster facts for one validation pass
        ArtifactProber         — model artifact checks per predictor type
        APIValidator           — cross-field / cross-API rules
        extract_api_configs()  — YAML manifest → accepted APIs

    Reconciliation:
        Reconciler             — evicted-pod sweep + autoscaler installation
        CronScheduler          — non-overlapping periodic driver
        cron_error_handler()   — log + telemetry on failed ticks

    OperatorService            — everything above, wired
"""

from api_operator.control_plane.schema import parse_api
from api_operator.control_plane.capacity import CapacitySnapshotter
from api_operator.control_plane.artifacts import ArtifactProber
from api_operator.control_plane.validations import APIValidator, extract_api_configs
from api_operator.control_plane.reconciler import Reconciler
from api_operator.control_plane.cron import CronScheduler, cron_error_handler
from api_operator.control_plane.operator_service import OperatorService

__all__ = [
    "parse_api",
    "CapacitySnapshotter",
    "ArtifactProber",
    "APIValidator",
    "extract_api_configs",
    "Reconciler",
    "CronScheduler",
    "cron_error_handler",
    "OperatorService",
]
