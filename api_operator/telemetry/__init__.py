"""
api_operator/telemetry — product telemetry for the operator.

Public API:
    InstanceTelemetryCollector  — counts worker nodes per instance type
    LoggingTelemetrySink        — default sink, writes to the operator log
"""

from api_operator.telemetry.collector import InstanceTelemetryCollector
from api_operator.telemetry.sink import LoggingTelemetrySink, RecordingTelemetrySink

__all__ = ["InstanceTelemetryCollector", "LoggingTelemetrySink", "RecordingTelemetrySink"]
