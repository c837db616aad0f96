"""Shared fixtures: settings with known capacity, and fresh fakes per test."""

from __future__ import annotations

import pytest

from api_operator.shared.config import OperatorSettings
from api_operator.shared.quantity import Quantity
from api_operator.telemetry.sink import RecordingTelemetrySink

from fakes import FakeCluster, FakeObjectStore


@pytest.fixture
def settings() -> OperatorSettings:
    """4 CPU / 16Gi / no GPU per node → 3200m CPU and 14884Mi memory after reservations."""
    return OperatorSettings(
        _env_file=None,
        instance_type="m5.xlarge",
        instance_cpu=Quantity.parse("4"),
        instance_mem=Quantity.parse("16Gi"),
        instance_gpu=0,
    )


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def sink() -> RecordingTelemetrySink:
    return RecordingTelemetrySink()
