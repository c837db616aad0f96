"""
tests/test_schema.py
────────────────────
Test suite for api_operator/control_plane/schema.py

What we are testing
────────────────────
parse_api() turns one raw manifest entry into an API model or raises the
first field-scoped error, prefixed with the entry's identity.

Test groups
────────────
Group 1: defaults        — compute defaults, initReplicas from minReplicas, tracker nil
Group 2: normalisation   — endpoint, pythonPath, numeric cpu, model type
Group 3: rejections      — missing, unsupported, wrong type, out of bounds
Group 4: walker          — validate_struct ordering and value naming
"""

from __future__ import annotations

import pytest

from api_operator.control_plane.schema import (
    API_VALIDATION,
    FieldType,
    FieldValidation,
    StructValidation,
    parse_api,
    validate_struct,
)
from api_operator.shared.errors import ErrorKind, OperatorError
from api_operator.shared.models import ModelType, PredictorType
from api_operator.shared.quantity import Quantity


def _entry(**overrides):
    raw = {"name": "iris", "predictor": {"type": "python", "path": "predictor.py"}}
    raw.update(overrides)
    return raw


def _parse_error(raw, index=0) -> OperatorError:
    with pytest.raises(OperatorError) as exc_info:
        parse_api(raw, index=index, file_path="cortex.yaml")
    return exc_info.value


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: defaults
# ─────────────────────────────────────────────────────────────────────────────

class TestDefaults:
    def test_minimal_entry(self):
        api = parse_api(_entry(), index=2, file_path="cortex.yaml")
        assert api.name == "iris"
        assert api.endpoint is None
        assert api.tracker is None
        assert api.index == 2
        assert api.file_path == "cortex.yaml"
        assert api.predictor.type == PredictorType.PYTHON
        assert api.predictor.config == {}
        assert api.predictor.env == {}

    def test_compute_defaults(self):
        compute = parse_api(_entry()).compute
        assert compute.min_replicas == 1
        assert compute.max_replicas == 100
        assert compute.init_replicas == 1
        assert compute.target_cpu_utilization == 80
        assert compute.cpu == Quantity.parse("200m")
        assert compute.mem is None
        assert compute.gpu == 0

    def test_init_replicas_defaults_to_min_replicas(self):
        compute = parse_api(_entry(compute={"minReplicas": 3})).compute
        assert compute.init_replicas == 3

    def test_explicit_init_replicas_wins(self):
        compute = parse_api(_entry(compute={"minReplicas": 3, "initReplicas": 4})).compute
        assert compute.init_replicas == 4

    def test_identify(self):
        assert parse_api(_entry(), file_path="cortex.yaml").identify() == "cortex.yaml: iris"


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: normalisation
# ─────────────────────────────────────────────────────────────────────────────

class TestNormalisation:
    def test_endpoint_gets_leading_slash(self):
        assert parse_api(_entry(endpoint="classify")).endpoint == "/classify"

    def test_python_path_gets_trailing_slash(self):
        api = parse_api(_entry(predictor={"type": "python", "path": "p.py", "pythonPath": "lib"}))
        assert api.predictor.python_path == "lib/"

    def test_numeric_cpu_is_accepted(self):
        assert parse_api(_entry(compute={"cpu": 2})).compute.cpu == Quantity.parse("2")

    def test_tracker_model_type(self):
        api = parse_api(_entry(tracker={"key": "label", "modelType": "classification"}))
        assert api.tracker.key == "label"
        assert api.tracker.model_type == ModelType.CLASSIFICATION

    def test_tracker_without_model_type_is_unknown(self):
        api = parse_api(_entry(tracker={"key": "label"}))
        assert api.tracker.model_type == ModelType.UNKNOWN

    def test_tensorflow_fields(self):
        api = parse_api(_entry(predictor={
            "type": "tensorflow",
            "path": "p.py",
            "model": "s3://models/iris",
            "signatureKey": "serving_default",
            "env": {"LOG_LEVEL": "debug"},
            "config": {"threshold": 0.5},
        }))
        assert api.predictor.model == "s3://models/iris"
        assert api.predictor.signature_key == "serving_default"
        assert api.predictor.env == {"LOG_LEVEL": "debug"}
        assert api.predictor.config == {"threshold": 0.5}


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: rejections
# ─────────────────────────────────────────────────────────────────────────────

class TestRejections:
    def test_missing_name_is_identified_by_index(self):
        err = _parse_error({"predictor": {"type": "python", "path": "p.py"}}, index=4)
        assert err.kind == ErrorKind.MISSING_REQUIRED_KEY
        assert str(err) == "cortex.yaml: api at index 4: name: key is required"

    def test_missing_predictor(self):
        err = _parse_error({"name": "iris"})
        assert err.kind == ErrorKind.MISSING_REQUIRED_KEY
        assert str(err) == "cortex.yaml: iris: predictor: key is required"

    def test_unsupported_key_reported_first(self):
        err = _parse_error(_entry(replicas=3, compute={"minReplicas": 0}))
        assert err.kind == ErrorKind.UNSUPPORTED_KEY
        assert err.path == ["cortex.yaml", "iris", "replicas"]

    def test_nested_unsupported_key(self):
        err = _parse_error(_entry(compute={"cpus": "1"}))
        assert err.kind == ErrorKind.UNSUPPORTED_KEY
        assert err.path[-2:] == ["compute", "cpus"]

    @pytest.mark.parametrize("name", ["Iris", "1iris", "iris_v2", "iris-", "a" * 64])
    def test_invalid_names(self, name):
        err = _parse_error(_entry(name=name))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-1] == "name"

    def test_unknown_predictor_type(self):
        err = _parse_error(_entry(predictor={"type": "pytorch", "path": "p.py"}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-2:] == ["predictor", "type"]

    def test_replicas_must_be_positive(self):
        err = _parse_error(_entry(compute={"minReplicas": 0}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert str(err) == "cortex.yaml: iris: compute: minReplicas: must be greater than 0"

    def test_replicas_must_be_integers(self):
        err = _parse_error(_entry(compute={"maxReplicas": "3"}))
        assert err.kind == ErrorKind.INVALID_TYPE

    def test_booleans_are_not_integers(self):
        err = _parse_error(_entry(compute={"gpu": True}))
        assert err.kind == ErrorKind.INVALID_TYPE

    def test_cpu_must_be_positive(self):
        err = _parse_error(_entry(compute={"cpu": "0"}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-1] == "cpu"

    def test_invalid_quantity(self):
        err = _parse_error(_entry(compute={"mem": "lots"}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-1] == "mem"

    @pytest.mark.parametrize("cpu", ["NaN", "sNaN", "Infinity", "-Infinity"])
    def test_non_finite_quantity(self, cpu):
        err = _parse_error(_entry(compute={"cpu": cpu}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-1] == "cpu"

    def test_model_must_be_s3_path(self):
        err = _parse_error(_entry(predictor={"type": "onnx", "path": "p.py", "model": "/tmp/m.onnx"}))
        assert err.kind == ErrorKind.INVALID_VALUE
        assert err.path[-1] == "model"

    def test_env_values_must_be_strings(self):
        err = _parse_error(_entry(predictor={"type": "python", "path": "p.py", "env": {"N": 1}}))
        assert err.kind == ErrorKind.INVALID_TYPE
        assert err.path[-2:] == ["env", "N"]

    def test_entry_must_be_a_mapping(self):
        err = _parse_error(["iris"])
        assert err.kind == ErrorKind.INVALID_TYPE


# ─────────────────────────────────────────────────────────────────────────────
# Group 4: walker
# ─────────────────────────────────────────────────────────────────────────────

class TestValidateStruct:
    TABLE = StructValidation(fields=(
        FieldValidation(key="first", type=FieldType.INT, required=True),
        FieldValidation(key="secondKey", attr="second_key", type=FieldType.STRING, default="x"),
    ))

    def test_values_use_output_names(self):
        values, errors = validate_struct(self.TABLE, {"first": 1})
        assert errors == []
        assert values == {"first": 1, "second_key": "x"}

    def test_errors_in_table_order(self):
        _, errors = validate_struct(self.TABLE, {"secondKey": 3, "extra": 1})
        assert [e.kind for e in errors] == [
            ErrorKind.UNSUPPORTED_KEY,
            ErrorKind.MISSING_REQUIRED_KEY,
            ErrorKind.INVALID_TYPE,
        ]

    def test_failed_fields_are_absent(self):
        values, _ = validate_struct(self.TABLE, {"first": "one"})
        assert "first" not in values

    def test_api_table_walks_without_errors(self):
        _, errors = validate_struct(API_VALIDATION, _entry())
        assert errors == []
