"""
api_operator/shared/errors.py
─────────────────────────────
OperatorError: the single exception type raised by the operator.

Every failure carries two things:
  kind  → an ErrorKind, so callers and tests can branch on *what* failed
          without parsing strings.
  path  → the semantic keys leading to the failing value, outermost first
          (API identity → field → subfield). Wrapping an error prepends keys.

The user-visible rendering is the path joined by ": " followed by the message:

    cortex.yaml: iris: compute: minReplicas (5) cannot be greater than maxReplicas (3)

Foreign exceptions (kubernetes ApiException, botocore ClientError, YAML
errors) are wrapped with wrap_error() so the cause survives in __cause__.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Sequence


class ErrorKind(str, Enum):
    """Taxonomy of everything the operator can reject or fail on."""

    # Manifest shape
    MALFORMED_CONFIG = "malformed_config"
    NO_APIS = "no_apis"

    # Schema walker
    UNSUPPORTED_KEY = "unsupported_key"
    MISSING_REQUIRED_KEY = "missing_required_key"
    INVALID_TYPE = "invalid_type"
    INVALID_VALUE = "invalid_value"

    # Cross-API rules
    DUPLICATE_NAME = "duplicate_name"
    DUPLICATE_ENDPOINT_SAME_DEPLOYMENT = "duplicate_endpoint_same_deployment"
    DUPLICATE_ENDPOINT_OTHER_DEPLOYMENT = "duplicate_endpoint_other_deployment"

    # Predictor variant rules
    FIELD_REQUIRED_FOR_PREDICTOR_TYPE = "field_required_for_predictor_type"
    FIELD_NOT_SUPPORTED_BY_PREDICTOR_TYPE = "field_not_supported_by_predictor_type"
    S3_FILE_NOT_FOUND = "s3_file_not_found"
    INVALID_TENSORFLOW_DIR = "invalid_tensorflow_dir"
    IMPL_DOES_NOT_EXIST = "impl_does_not_exist"

    # Compute rules
    REPLICA_BOUND_VIOLATION = "replica_bound_violation"
    INSUFFICIENT_NODE_CAPACITY = "insufficient_node_capacity"

    # I/O
    CLUSTER_REQUEST_FAILED = "cluster_request_failed"
    STORAGE_REQUEST_FAILED = "storage_request_failed"
    CRON_FAILED = "cron_failed"


class OperatorError(Exception):
    """
    Raised for every validation rejection and every wrapped I/O failure.

    Attributes:
        kind:    ErrorKind of the failure.
        message: Human-readable description, without the path.
        path:    Semantic keys, outermost first.
        details: Optional extra values (e.g. the offending APIs for DUPLICATE_NAME).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        path: Optional[Sequence[str]] = None,
        details: Optional[Sequence[str]] = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.path: List[str] = [p for p in (path or []) if p]
        self.details: List[str] = list(details or [])
        super().__init__(str(self))

    def __str__(self) -> str:
        return ": ".join(self.path + [self.message])

    def __repr__(self) -> str:
        return f"OperatorError(kind={self.kind.value!r}, message={str(self)!r})"


def wrap_error(
    err: BaseException,
    *keys: str,
    kind: ErrorKind = ErrorKind.CLUSTER_REQUEST_FAILED,
) -> OperatorError:
    """
    Prepend path keys to an error.

    An OperatorError keeps its kind and gets a new path; anything else is
    converted into an OperatorError of `kind` whose cause is the original.
    """
    if isinstance(err, OperatorError):
        wrapped = OperatorError(
            err.kind, err.message, path=list(keys) + err.path, details=err.details,
        )
        wrapped.__cause__ = err.__cause__
        return wrapped
    wrapped = OperatorError(kind, str(err) or err.__class__.__name__, path=list(keys))
    wrapped.__cause__ = err
    return wrapped


def first_error(errors: Iterable[Optional[BaseException]]) -> Optional[BaseException]:
    """Return the first non-None error, or None."""
    for err in errors:
        if err is not None:
            return err
    return None


# ── Constructors ──────────────────────────────────────────────────────────────
# One function per taxonomy entry keeps the wording in a single place.

def malformed_config() -> OperatorError:
    return OperatorError(
        ErrorKind.MALFORMED_CONFIG,
        "api config must be a list of mappings, each describing one api",
    )


def no_apis() -> OperatorError:
    return OperatorError(ErrorKind.NO_APIS, "at least one api must be configured")


def duplicate_name(name: str, identities: Sequence[str]) -> OperatorError:
    return OperatorError(
        ErrorKind.DUPLICATE_NAME,
        f"api name {name!r} must be unique, but is defined more than once "
        f"({', '.join(identities)})",
        details=identities,
    )


def duplicate_endpoint_same_deployment(endpoint: str, first: str, second: str) -> OperatorError:
    return OperatorError(
        ErrorKind.DUPLICATE_ENDPOINT_SAME_DEPLOYMENT,
        f"endpoint {endpoint!r} must be unique, but is used by both {first!r} and {second!r}",
        details=[first, second],
    )


def duplicate_endpoint_other_deployment(endpoint: str, owner: str) -> OperatorError:
    return OperatorError(
        ErrorKind.DUPLICATE_ENDPOINT_OTHER_DEPLOYMENT,
        f"endpoint {endpoint!r} is already being used by api {owner!r}",
        details=[owner],
    )


def field_required_for_predictor_type(field: str, predictor_type: str) -> OperatorError:
    return OperatorError(
        ErrorKind.FIELD_REQUIRED_FOR_PREDICTOR_TYPE,
        f"{field} field must be specified for the {predictor_type} predictor type",
    )


def field_not_supported_by_predictor_type(field: str, predictor_type: str) -> OperatorError:
    return OperatorError(
        ErrorKind.FIELD_NOT_SUPPORTED_BY_PREDICTOR_TYPE,
        f"{field} is not a supported field for the {predictor_type} predictor type",
    )


def s3_file_not_found(path: str) -> OperatorError:
    return OperatorError(ErrorKind.S3_FILE_NOT_FOUND, f"{path}: not found or insufficient permissions")


def invalid_tensorflow_dir(path: str) -> OperatorError:
    return OperatorError(
        ErrorKind.INVALID_TENSORFLOW_DIR,
        f"{path} is not a valid TensorFlow export directory (expected saved_model.pb, "
        f"variables/variables.index and variables/variables.data-* in the directory "
        f"or in a numeric version subdirectory)",
    )


def impl_does_not_exist(path: str) -> OperatorError:
    return OperatorError(ErrorKind.IMPL_DOES_NOT_EXIST, f"{path} does not exist in the project")


def min_replicas_greater_than_max(min_replicas: int, max_replicas: int) -> OperatorError:
    return OperatorError(
        ErrorKind.REPLICA_BOUND_VIOLATION,
        f"minReplicas ({min_replicas}) cannot be greater than maxReplicas ({max_replicas})",
    )


def init_replicas_greater_than_max(init_replicas: int, max_replicas: int) -> OperatorError:
    return OperatorError(
        ErrorKind.REPLICA_BOUND_VIOLATION,
        f"initReplicas ({init_replicas}) cannot be greater than maxReplicas ({max_replicas})",
    )


def init_replicas_less_than_min(init_replicas: int, min_replicas: int) -> OperatorError:
    return OperatorError(
        ErrorKind.REPLICA_BOUND_VIOLATION,
        f"initReplicas ({init_replicas}) cannot be less than minReplicas ({min_replicas})",
    )


def insufficient_node_capacity(resource: str, requested: str, available: str) -> OperatorError:
    return OperatorError(
        ErrorKind.INSUFFICIENT_NODE_CAPACITY,
        f"no instances can satisfy the requested {resource} quantity - requested "
        f"{resource} {requested} but the instances only have {available} available",
    )
