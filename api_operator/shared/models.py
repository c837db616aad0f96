"""
api_operator/shared/models.py
─────────────────────────────
The single source of truth for every data structure the operator reasons about.

Design philosophy
-----------------
Every model answers one question: "What does the operator *need to know*
about this thing in order to accept or reconcile an API?"

Validated models are frozen. A validation step that has to change a value
(defaulting the endpoint, resolving a TensorFlow version directory) builds a
new model with model_copy(update=...) instead of mutating the old one, so an
API is never modified after it has been handed to deployment machinery.

Reading guide
-------------
Read top-to-bottom. Section 1 is the enumerations, section 2 the manifest
models, section 3 the cluster facts a validation pass is judged against,
section 4 the cluster records the reconciler reads and writes.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from api_operator.shared.quantity import Quantity


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: ENUMERATIONS
# ─────────────────────────────────────────────────────────────────────────────

class PredictorType(str, Enum):
    """
    The three predictor variants an API can be served with.

    PYTHON      → arbitrary user code; no model artifact is probed.
    TENSORFLOW  → SavedModel export in object storage (directory or .zip).
    ONNX        → single .onnx object in object storage.

    The variant decides which predictor fields are permitted and which
    artifact probe runs (see control_plane/artifacts.py).
    """
    PYTHON = "python"
    TENSORFLOW = "tensorflow"
    ONNX = "onnx"


class ModelType(str, Enum):
    """What the request tracker should assume about predictions."""
    CLASSIFICATION = "classification"
    REGRESSION = "regression"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str) -> "ModelType":
        """Empty or unrecognised strings map to UNKNOWN."""
        for member in (cls.CLASSIFICATION, cls.REGRESSION):
            if member.value == value:
                return member
        return cls.UNKNOWN


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: MANIFEST MODELS
# One API entry of the user's manifest, after the schema table has run.
# ─────────────────────────────────────────────────────────────────────────────

class Tracker(BaseModel):
    """Optional prediction tracking: which response key to monitor, and how."""
    model_config = ConfigDict(frozen=True)

    key: Optional[str] = None
    model_type: ModelType = ModelType.UNKNOWN


class Predictor(BaseModel):
    """
    How the API serves requests.

    Fields:
        type          → PredictorType variant.
        path          → Project-relative path of the predictor implementation.
        model         → s3:// path to the model artifact. Required for
                        TensorFlow and ONNX, forbidden for Python.
        python_path   → Project-relative directory added to PYTHONPATH.
                        Always ends with "/" once validated.
        config        → Arbitrary mapping handed to the predictor constructor.
        env           → Environment variables for the predictor container.
        signature_key → TensorFlow signature to serve. Forbidden for Python and ONNX.
    """
    model_config = ConfigDict(frozen=True)

    type: PredictorType
    path: str
    model: Optional[str] = None
    python_path: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)
    signature_key: Optional[str] = None


class Compute(BaseModel):
    """
    Replica bounds and per-replica resource budget.

    Replica ordering (0 < min ≤ init ≤ max) is a cross-field rule and is
    enforced by the API validator, not here.
    """
    model_config = ConfigDict(frozen=True)

    min_replicas: int = Field(1, gt=0)
    max_replicas: int = Field(100, gt=0)
    init_replicas: int = Field(1, gt=0)
    target_cpu_utilization: int = Field(80, gt=0)
    cpu: Quantity = Field(default_factory=lambda: Quantity.parse("200m"))
    mem: Optional[Quantity] = None
    gpu: int = Field(0, ge=0)


class API(BaseModel):
    """
    A validated deployment intent.

    name      → DNS-1035 label; unique within a manifest and across the cluster.
    endpoint  → URL path on the shared ingress. Defaults to "/<name>".
    index     → Position in the manifest (provenance for diagnostics).
    file_path → Manifest file name (provenance for diagnostics).
    """
    model_config = ConfigDict(frozen=True)

    name: str
    endpoint: Optional[str] = None
    tracker: Optional[Tracker] = None
    predictor: Predictor
    compute: Compute = Field(default_factory=Compute)
    index: int = 0
    file_path: str = ""

    def identify(self) -> str:
        """Diagnostic prefix used in every error path for this API."""
        return identify_api(self.file_path, self.name, self.index)


def identify_api(file_path: str, name: Optional[str], index: int) -> str:
    """
    "<file>: <name>", or "<file>: api at index <i>" when the name is unknown.

    Works before an API model exists, so schema errors can be attributed too.
    """
    subject = name if name else f"api at index {index}"
    if file_path:
        return f"{file_path}: {subject}"
    return subject


# Project files: project-relative path → file contents.
ProjectFileMap = Dict[str, bytes]


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: CAPACITY SNAPSHOT
# Frozen cluster facts for one validation pass.
# ─────────────────────────────────────────────────────────────────────────────

class CapacitySnapshot(BaseModel):
    """
    What the cluster looked like when the validation pass started.

    node_cpu / node_mem are post-reservation: the system overhead (and, on
    GPU instances, the device-plugin overhead) has already been subtracted.

    existing_endpoints lists (endpoint, owning API name) for every route
    currently served through the API gateway, in listing order.
    """
    model_config = ConfigDict(frozen=True)

    node_cpu: Quantity
    node_mem: Quantity
    node_gpu: int = Field(0, ge=0)
    existing_endpoints: Tuple[Tuple[str, str], ...] = ()


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: CLUSTER RECORDS
# The slice of Kubernetes objects the operator reads and writes. The cluster
# adapter (cluster/kubernetes_client.py) converts API objects into these.
# ─────────────────────────────────────────────────────────────────────────────

class VirtualService(BaseModel):
    """An ingress route: which gateways it is bound to and which paths it serves."""
    name: str
    gateways: List[str] = Field(default_factory=list)
    endpoints: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)


class DeploymentCondition(BaseModel):
    type: str
    status: str
    last_update_time: Optional[datetime] = None


class Deployment(BaseModel):
    """
    An API deployment.

    spec_fingerprint identifies the current pod template (its pod-template-hash
    where the cluster reports one); a pod whose own fingerprint matches is
    running the latest spec.
    """
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    replicas: int = Field(1, ge=0)
    conditions: List[DeploymentCondition] = Field(default_factory=list)
    spec_fingerprint: str = ""


class Pod(BaseModel):
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    phase: str = "Pending"
    reason: Optional[str] = None
    ready: bool = False
    spec_fingerprint: str = ""


class Node(BaseModel):
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    allocatable_mem: Optional[Quantity] = None


class AutoscalerSpec(BaseModel):
    """A horizontal autoscaler keyed by API name, targeting one deployment."""
    model_config = ConfigDict(frozen=True)

    name: str
    deployment_name: str
    min_replicas: int = Field(1, gt=0)
    max_replicas: int = Field(100, gt=0)
    target_cpu_utilization: int = Field(80, gt=0)
    labels: Dict[str, str] = Field(default_factory=dict)
