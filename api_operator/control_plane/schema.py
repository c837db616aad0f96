"""
api_operator/control_plane/schema.py
────────────────────────────────────
Declarative field validation: the first gate a manifest entry passes through.

What this is
─────────────
A validation table is data. Each FieldValidation record says, for one key of
a raw mapping:

  • its type (string, int, string map, free-form map, nested struct)
  • whether it is required, and its default (a value, or "copy the already
    validated value of a sibling field" via default_field)
  • numeric bounds (greater_than / greater_than_or_equal_to)
  • allowed values for enumerations
  • a string validator (may transform, e.g. append a trailing "/")
  • a parser producing the domain-typed value (e.g. Quantity, enum member)

validate_struct() walks a table over a raw mapping and returns the typed
values together with every field-scoped error it found, in table order.

What it does NOT do
────────────────────
  • No I/O. Object storage, project files and the cluster are the API
    validator's business (validations.py).
  • No cross-field or cross-API rules (replica ordering, duplicate names,
    endpoint collisions). Those also live in validations.py.

The API table
──────────────
API_VALIDATION at the bottom of this module describes one manifest entry.
parse_api() applies it and builds an API model, surfacing the first error
wrapped with the entry's identity (file, name or index).
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from api_operator.shared.errors import ErrorKind, OperatorError, wrap_error
from api_operator.shared.models import API, ModelType, PredictorType, identify_api
from api_operator.shared.quantity import Quantity
from api_operator.shared.s3_paths import ensure_suffix, is_s3_path

_MISSING = object()


class FieldType(str, Enum):
    STRING = "string"
    INT = "int"
    STRING_MAP = "string_map"
    INTERFACE_MAP = "interface_map"
    STRUCT = "struct"


@dataclass(frozen=True)
class StructValidation:
    """A table: the ordered field records of one mapping."""
    fields: Tuple["FieldValidation", ...]
    default_nil: bool = False


@dataclass(frozen=True)
class FieldValidation:
    """Validation record for one key. `attr` names the output value (defaults to key)."""
    key: str
    type: FieldType
    attr: Optional[str] = None
    required: bool = False
    default: Any = None
    default_field: Optional[str] = None
    allow_empty: bool = False
    allowed_values: Optional[Tuple[str, ...]] = None
    greater_than: Optional[int] = None
    greater_than_or_equal_to: Optional[int] = None
    cast_numeric: bool = False
    validator: Optional[Callable[[str], str]] = None
    parser: Optional[Callable[[Any], Any]] = None
    struct: Optional[StructValidation] = None

    @property
    def out(self) -> str:
        return self.attr or self.key


# ── Walker ────────────────────────────────────────────────────────────────────

def validate_struct(
    validation: StructValidation,
    raw: Any,
    path: Sequence[str] = (),
) -> Tuple[Dict[str, Any], List[OperatorError]]:
    """
    Apply a table to a raw mapping.

    Returns:
        (values, errors): values keyed by each record's output name; errors in
        table order (unsupported keys first). Fields that failed are absent
        from values.
    """
    if not isinstance(raw, Mapping):
        return {}, [OperatorError(ErrorKind.INVALID_TYPE, "must be a mapping", path=path)]

    errors: List[OperatorError] = []
    known = {fv.key for fv in validation.fields}
    for key in raw:
        if key not in known:
            errors.append(OperatorError(ErrorKind.UNSUPPORTED_KEY, "key is not supported", path=[*path, str(key)]))

    values: Dict[str, Any] = {}
    by_key: Dict[str, str] = {fv.key: fv.out for fv in validation.fields}
    for fv in validation.fields:
        field_path = [*path, fv.key]
        value = raw.get(fv.key, _MISSING)
        try:
            result, nested_errors = _validate_field(fv, value, values, by_key, field_path)
        except OperatorError as err:
            errors.append(err)
            continue
        if nested_errors:
            errors.extend(nested_errors)
            continue
        if result is not _MISSING:
            values[fv.out] = result

    return values, errors


def _validate_field(
    fv: FieldValidation,
    value: Any,
    siblings: Dict[str, Any],
    by_key: Dict[str, str],
    path: List[str],
) -> Tuple[Any, List[OperatorError]]:
    if fv.type == FieldType.STRUCT:
        return _validate_nested(fv, value, path)

    if value is _MISSING or value is None:
        if fv.required:
            raise OperatorError(ErrorKind.MISSING_REQUIRED_KEY, "key is required", path=path)
        if fv.default_field is not None:
            # A sibling that failed has already reported its own error.
            return siblings.get(by_key.get(fv.default_field, fv.default_field), _MISSING), []
        if fv.default is None:
            return None, []
        value = copy.deepcopy(fv.default)

    if fv.type == FieldType.STRING:
        return _validate_string(fv, value, path), []
    if fv.type == FieldType.INT:
        return _validate_int(fv, value, path), []
    if fv.type == FieldType.STRING_MAP:
        return _validate_map(fv, value, path, string_values=True), []
    return _validate_map(fv, value, path, string_values=False), []


def _validate_nested(fv: FieldValidation, value: Any, path: List[str]) -> Tuple[Any, List[OperatorError]]:
    assert fv.struct is not None, f"struct field {fv.key} has no table"
    if value is _MISSING or value is None:
        if fv.required:
            raise OperatorError(ErrorKind.MISSING_REQUIRED_KEY, "key is required", path=path)
        if fv.struct.default_nil:
            return None, []
        value = {}
    return validate_struct(fv.struct, value, path)


def _validate_string(fv: FieldValidation, value: Any, path: List[str]) -> Any:
    if fv.cast_numeric and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise OperatorError(ErrorKind.INVALID_TYPE, f"{value!r} must be a string", path=path)
    if value == "":
        if not fv.allow_empty:
            raise OperatorError(ErrorKind.INVALID_VALUE, "must not be empty", path=path)
    elif fv.allowed_values is not None and value not in fv.allowed_values:
        raise OperatorError(
            ErrorKind.INVALID_VALUE,
            f"invalid value {value!r}; allowed values: {', '.join(v for v in fv.allowed_values if v)}",
            path=path,
        )
    return _apply(fv, value, path)


def _validate_int(fv: FieldValidation, value: Any, path: List[str]) -> Any:
    if isinstance(value, bool) or not isinstance(value, int):
        raise OperatorError(ErrorKind.INVALID_TYPE, f"{value!r} must be an integer", path=path)
    if fv.greater_than is not None and not value > fv.greater_than:
        raise OperatorError(ErrorKind.INVALID_VALUE, f"must be greater than {fv.greater_than}", path=path)
    if fv.greater_than_or_equal_to is not None and not value >= fv.greater_than_or_equal_to:
        raise OperatorError(
            ErrorKind.INVALID_VALUE,
            f"must be greater than or equal to {fv.greater_than_or_equal_to}",
            path=path,
        )
    return _apply(fv, value, path)


def _validate_map(fv: FieldValidation, value: Any, path: List[str], string_values: bool) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        raise OperatorError(ErrorKind.INVALID_TYPE, "must be a mapping", path=path)
    if not value and not fv.allow_empty:
        raise OperatorError(ErrorKind.INVALID_VALUE, "must not be empty", path=path)
    result: Dict[str, Any] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise OperatorError(ErrorKind.INVALID_TYPE, f"key {key!r} must be a string", path=path)
        if string_values and not isinstance(item, str):
            raise OperatorError(ErrorKind.INVALID_TYPE, f"{item!r} must be a string", path=[*path, key])
        result[key] = item
    return result


def _apply(fv: FieldValidation, value: Any, path: List[str]) -> Any:
    try:
        if fv.validator is not None:
            value = fv.validator(value)
        if fv.parser is not None:
            value = fv.parser(value)
    except ValueError as e:
        raise OperatorError(ErrorKind.INVALID_VALUE, str(e), path=path) from e
    return value


# ── String validators and parsers ─────────────────────────────────────────────

_DNS_1035_RE = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")
_ENDPOINT_RE = re.compile(r"^/[A-Za-z0-9_.\-/]*$")


def dns_1035(value: str) -> str:
    if len(value) > 63 or not _DNS_1035_RE.match(value):
        raise ValueError(
            f"{value!r} must contain only lower case alphanumeric characters or '-', "
            f"start with an alphabetic character, end with an alphanumeric character, "
            f"and be at most 63 characters long"
        )
    return value


def validate_endpoint(value: str) -> str:
    """Normalise to a leading "/" and reject characters that cannot appear in a route."""
    endpoint = "/" + value.strip().lstrip("/")
    if not _ENDPOINT_RE.match(endpoint):
        raise ValueError(f"{value!r} is not a valid endpoint path")
    return endpoint


def validate_s3_path(value: str) -> str:
    if not is_s3_path(value):
        raise ValueError(f"{value!r} is not a valid s3 path (e.g. s3://bucket/path/to/model)")
    return value


def ensure_trailing_slash(value: str) -> str:
    return ensure_suffix(value, "/")


def positive_quantity(value: str) -> Quantity:
    try:
        quantity = Quantity.parse(value)
    except ValueError as e:
        raise ValueError(f"{value!r} is not a valid quantity") from e
    if not quantity.value > 0:
        raise ValueError(f"must be greater than 0 (got {value})")
    return quantity


# ── The API table ─────────────────────────────────────────────────────────────

PREDICTOR_VALIDATION = FieldValidation(
    key="predictor",
    type=FieldType.STRUCT,
    required=True,
    struct=StructValidation(fields=(
        FieldValidation(
            key="type",
            type=FieldType.STRING,
            required=True,
            allowed_values=tuple(t.value for t in PredictorType),
            parser=PredictorType,
        ),
        FieldValidation(key="path", type=FieldType.STRING, required=True),
        FieldValidation(key="model", type=FieldType.STRING, validator=validate_s3_path),
        FieldValidation(
            key="pythonPath",
            attr="python_path",
            type=FieldType.STRING,
            allow_empty=True,
            validator=ensure_trailing_slash,
        ),
        FieldValidation(key="config", type=FieldType.INTERFACE_MAP, allow_empty=True, default={}),
        FieldValidation(key="env", type=FieldType.STRING_MAP, allow_empty=True, default={}),
        FieldValidation(key="signatureKey", attr="signature_key", type=FieldType.STRING),
    )),
)

COMPUTE_VALIDATION = FieldValidation(
    key="compute",
    type=FieldType.STRUCT,
    struct=StructValidation(fields=(
        FieldValidation(key="minReplicas", attr="min_replicas", type=FieldType.INT, default=1, greater_than=0),
        FieldValidation(key="maxReplicas", attr="max_replicas", type=FieldType.INT, default=100, greater_than=0),
        FieldValidation(
            key="initReplicas",
            attr="init_replicas",
            type=FieldType.INT,
            default_field="minReplicas",
            greater_than=0,
        ),
        FieldValidation(
            key="targetCPUUtilization",
            attr="target_cpu_utilization",
            type=FieldType.INT,
            default=80,
            greater_than=0,
        ),
        FieldValidation(key="cpu", type=FieldType.STRING, default="200m", cast_numeric=True, parser=positive_quantity),
        FieldValidation(key="mem", type=FieldType.STRING, cast_numeric=True, parser=positive_quantity),
        FieldValidation(key="gpu", type=FieldType.INT, default=0, greater_than_or_equal_to=0),
    )),
)

TRACKER_VALIDATION = FieldValidation(
    key="tracker",
    type=FieldType.STRUCT,
    struct=StructValidation(
        default_nil=True,
        fields=(
            FieldValidation(key="key", type=FieldType.STRING),
            FieldValidation(
                key="modelType",
                attr="model_type",
                type=FieldType.STRING,
                allow_empty=True,
                default="",
                allowed_values=(ModelType.CLASSIFICATION.value, ModelType.REGRESSION.value, ""),
                parser=ModelType.from_string,
            ),
        ),
    ),
)

API_VALIDATION = StructValidation(fields=(
    FieldValidation(key="name", type=FieldType.STRING, required=True, validator=dns_1035),
    FieldValidation(key="endpoint", type=FieldType.STRING, validator=validate_endpoint),
    TRACKER_VALIDATION,
    PREDICTOR_VALIDATION,
    COMPUTE_VALIDATION,
))


def parse_api(raw: Any, index: int = 0, file_path: str = "") -> API:
    """
    Run API_VALIDATION over one manifest entry and build the API model.

    Raises:
        OperatorError: the first schema error, wrapped with the entry's identity.
    """
    values, errors = validate_struct(API_VALIDATION, raw)
    name = raw.get("name") if isinstance(raw, Mapping) else None
    identity = identify_api(file_path, name if isinstance(name, str) else None, index)
    if errors:
        raise wrap_error(errors[0], identity)
    return API.model_validate({**values, "index": index, "file_path": file_path})
