"""
api_operator/control_plane/validations.py
─────────────────────────────────────────
API admission: semantic validation of a manifest before anything is deployed.

The validator is the gate between a user's manifest and the deployment
machinery. It runs AFTER the schema table (schema.py, which handles field
types, defaults and bounds) and BEFORE any workload is created.

Pipeline for one validation pass
─────────────────────────────────
  1. The manifest is non-empty.                          → NO_APIS
  2. API names are pairwise distinct.                    → DUPLICATE_NAME
  3. Effective endpoints are pairwise distinct.          → DUPLICATE_ENDPOINT_SAME_DEPLOYMENT
  4. One CapacitySnapshot is taken (capacity.py).
  5. For each API, in declaration order:
       a. endpoint defaults to "/<name>"
       b. predictor variant rules + artifact probe       → FIELD_*_PREDICTOR_TYPE,
                                                            S3_FILE_NOT_FOUND, INVALID_TENSORFLOW_DIR,
                                                            IMPL_DOES_NOT_EXIST
       c. replica ordering and node capacity             → REPLICA_BOUND_VIOLATION,
                                                            INSUFFICIENT_NODE_CAPACITY
       d. endpoint not served by another API             → DUPLICATE_ENDPOINT_OTHER_DEPLOYMENT

Fail-fast: the first error ends the pass. Every error is wrapped with the
API's identity and the field it concerns, so the message reads like a path:

    cortex.yaml: iris: predictor: model: s3://models/iris is not a valid TensorFlow export directory ...

Determinism: APIs are processed in declaration order and duplicates are
reported in declaration order, so the same manifest against the same
snapshot always produces the same error text.

What it does NOT do
────────────────────
  • Create, update or delete anything in the cluster. Accepted APIs are
    returned as new frozen models; the caller deploys them.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Sequence

import yaml

from api_operator.cluster.interfaces import ClusterClient, ObjectStore
from api_operator.control_plane.artifacts import MODEL_KEY, ArtifactProber
from api_operator.control_plane.capacity import CapacitySnapshotter
from api_operator.control_plane.schema import parse_api
from api_operator.shared import errors
from api_operator.shared.config import OperatorSettings
from api_operator.shared.errors import ErrorKind, OperatorError, wrap_error
from api_operator.shared.models import (
    API,
    CapacitySnapshot,
    Compute,
    Predictor,
    PredictorType,
    ProjectFileMap,
)

logger = logging.getLogger(__name__)

PREDICTOR_KEY = "predictor"
COMPUTE_KEY = "compute"
ENDPOINT_KEY = "endpoint"
PATH_KEY = "path"
PYTHON_PATH_KEY = "pythonPath"
SIGNATURE_KEY_KEY = "signatureKey"


class APIValidator:
    """
    Validates a list of parsed APIs against project files, object storage and the cluster.

    Usage:
        validator = APIValidator(cluster, object_store, settings)
        accepted = validator.validate_apis(apis, project_files)
    """

    def __init__(
        self,
        cluster: ClusterClient,
        object_store: ObjectStore,
        settings: OperatorSettings,
    ) -> None:
        self._snapshotter = CapacitySnapshotter(cluster, settings)
        self._prober = ArtifactProber(object_store)
        self._predictor_rules: Dict[PredictorType, Callable[[Predictor], Predictor]] = {
            PredictorType.PYTHON: self._validate_python_predictor,
            PredictorType.TENSORFLOW: self._validate_tensorflow_predictor,
            PredictorType.ONNX: self._validate_onnx_predictor,
        }

    def validate_apis(self, apis: Sequence[API], project_files: ProjectFileMap) -> List[API]:
        """
        Run one validation pass.

        Returns:
            The accepted APIs, in declaration order, with defaults applied and
            model paths resolved.

        Raises:
            OperatorError: the first rule violation or I/O failure.
        """
        if not apis:
            raise errors.no_apis()

        dups = find_duplicate_names(apis)
        if dups:
            offenders = [f"{api.identify()} (index {api.index})" for api in dups]
            raise errors.duplicate_name(dups[0].name, offenders)

        check_manifest_endpoints(apis)

        snapshot = self._snapshotter.snapshot()

        accepted = [self.validate_api(api, project_files, snapshot) for api in apis]
        logger.info("Validated %d api(s): %s", len(accepted), ", ".join(api.name for api in accepted))
        return accepted

    def validate_api(
        self,
        api: API,
        project_files: ProjectFileMap,
        snapshot: CapacitySnapshot,
    ) -> API:
        """Validate one API against a snapshot; returns the accepted (possibly rewritten) API."""
        if api.endpoint is None:
            api = api.model_copy(update={"endpoint": default_endpoint(api.name)})

        try:
            predictor = self.validate_predictor(api.predictor, project_files)
        except OperatorError as e:
            raise wrap_error(e, api.identify(), PREDICTOR_KEY)

        try:
            validate_compute(api.compute, snapshot)
        except OperatorError as e:
            raise wrap_error(e, api.identify(), COMPUTE_KEY)

        validate_endpoint_collisions(api, snapshot)

        if predictor is not api.predictor:
            api = api.model_copy(update={"predictor": predictor})
        return api

    def validate_predictor(self, predictor: Predictor, project_files: ProjectFileMap) -> Predictor:
        predictor = self._predictor_rules[predictor.type](predictor)

        if predictor.path not in project_files:
            raise wrap_error(errors.impl_does_not_exist(predictor.path), PATH_KEY)

        if predictor.python_path is not None:
            try:
                validate_python_path(predictor.python_path, project_files)
            except OperatorError as e:
                raise wrap_error(e, PYTHON_PATH_KEY)

        return predictor

    # ── Per-variant rules ──────────────────────────────────────────────────────

    def _validate_python_predictor(self, predictor: Predictor) -> Predictor:
        if predictor.signature_key is not None:
            raise errors.field_not_supported_by_predictor_type(SIGNATURE_KEY_KEY, PredictorType.PYTHON.value)
        if predictor.model is not None:
            raise errors.field_not_supported_by_predictor_type(MODEL_KEY, PredictorType.PYTHON.value)
        return predictor

    def _validate_tensorflow_predictor(self, predictor: Predictor) -> Predictor:
        if predictor.model is None:
            raise errors.field_required_for_predictor_type(MODEL_KEY, PredictorType.TENSORFLOW.value)
        return self._prober.probe(predictor)

    def _validate_onnx_predictor(self, predictor: Predictor) -> Predictor:
        if predictor.model is None:
            raise errors.field_required_for_predictor_type(MODEL_KEY, PredictorType.ONNX.value)
        predictor = self._prober.probe(predictor)
        if predictor.signature_key is not None:
            raise errors.field_not_supported_by_predictor_type(SIGNATURE_KEY_KEY, PredictorType.ONNX.value)
        return predictor


# ── Stateless rules ───────────────────────────────────────────────────────────

def default_endpoint(name: str) -> str:
    return "/" + name


def find_duplicate_names(apis: Sequence[API]) -> List[API]:
    """
    All APIs sharing the first name (in declaration order) that occurs more than once.

    Returns an empty list when names are unique.
    """
    by_name: Dict[str, List[API]] = {}
    for api in apis:
        by_name.setdefault(api.name, []).append(api)
    for api in apis:
        if len(by_name[api.name]) > 1:
            return by_name[api.name]
    return []


def check_manifest_endpoints(apis: Sequence[API]) -> None:
    """Reject two APIs of the same manifest claiming the same effective endpoint."""
    claimed: Dict[str, API] = {}
    for api in apis:
        endpoint = api.endpoint if api.endpoint is not None else default_endpoint(api.name)
        owner = claimed.get(endpoint)
        if owner is not None:
            raise wrap_error(
                errors.duplicate_endpoint_same_deployment(endpoint, owner.name, api.name),
                api.identify(),
                ENDPOINT_KEY,
            )
        claimed[endpoint] = api


def validate_python_path(python_path: str, project_files: ProjectFileMap) -> None:
    if not any(file_key.startswith(python_path) for file_key in project_files):
        raise errors.impl_does_not_exist(python_path)


def validate_compute(compute: Compute, snapshot: CapacitySnapshot) -> None:
    """Replica ordering (0 < min ≤ init ≤ max), then per-node capacity."""
    if compute.min_replicas > compute.max_replicas:
        raise errors.min_replicas_greater_than_max(compute.min_replicas, compute.max_replicas)
    if compute.init_replicas > compute.max_replicas:
        raise errors.init_replicas_greater_than_max(compute.init_replicas, compute.max_replicas)
    if compute.init_replicas < compute.min_replicas:
        raise errors.init_replicas_less_than_min(compute.init_replicas, compute.min_replicas)
    validate_available_compute(compute, snapshot)


def validate_available_compute(compute: Compute, snapshot: CapacitySnapshot) -> None:
    if compute.cpu > snapshot.node_cpu:
        raise errors.insufficient_node_capacity("CPU", str(compute.cpu), str(snapshot.node_cpu))
    if compute.mem is not None and compute.mem > snapshot.node_mem:
        raise errors.insufficient_node_capacity("Memory", str(compute.mem), str(snapshot.node_mem))
    if compute.gpu > snapshot.node_gpu:
        raise errors.insufficient_node_capacity("GPU", str(compute.gpu), str(snapshot.node_gpu))


def validate_endpoint_collisions(api: API, snapshot: CapacitySnapshot) -> None:
    for endpoint, owner in snapshot.existing_endpoints:
        if endpoint == api.endpoint and owner != api.name:
            raise wrap_error(
                errors.duplicate_endpoint_other_deployment(endpoint, owner),
                api.identify(),
                ENDPOINT_KEY,
            )


# ── Manifest extraction ───────────────────────────────────────────────────────

def extract_api_configs(
    config_bytes: bytes,
    project_files: ProjectFileMap,
    file_path: str,
    validator: APIValidator,
) -> List[API]:
    """
    Parse a YAML manifest, run the schema table on every entry, then validate the pass.

    Raises:
        OperatorError: MALFORMED_CONFIG for unreadable or mis-shaped YAML, or
                       the first schema / validation error.
    """
    try:
        config_data = yaml.safe_load(config_bytes)
    except yaml.YAMLError as e:
        raise wrap_error(e, file_path, kind=ErrorKind.MALFORMED_CONFIG)

    if config_data is None:
        config_data = []
    if not isinstance(config_data, list) or not all(isinstance(d, dict) for d in config_data):
        raise wrap_error(errors.malformed_config(), file_path)

    apis = [parse_api(data, index=i, file_path=file_path) for i, data in enumerate(config_data)]
    return validator.validate_apis(apis, project_files)

