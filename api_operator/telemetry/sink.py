"""Telemetry sink that writes events and errors to the operator log."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

logger = logging.getLogger(__name__)


class LoggingTelemetrySink:
    """
    Default TelemetrySink when no external product-telemetry backend is configured.

    With enabled=False, events and errors are dropped (the operator still logs
    cron failures itself).
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def event(self, name: str, properties: Mapping[str, Any]) -> None:
        if self.enabled:
            logger.info("telemetry event %s: %s", name, dict(properties))

    def error(self, err: BaseException) -> None:
        if self.enabled:
            logger.warning("telemetry error: %s", err)


class RecordingTelemetrySink:
    """Keeps everything in memory. Useful for dry runs and tests."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.errors: List[BaseException] = []

    def event(self, name: str, properties: Mapping[str, Any]) -> None:
        self.events.append((name, dict(properties)))

    def error(self, err: BaseException) -> None:
        self.errors.append(err)
