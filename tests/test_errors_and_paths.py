"""
tests/test_errors_and_paths.py
──────────────────────────────
OperatorError rendering and wrapping, and the s3:// path helpers.
"""

from __future__ import annotations

import pytest

from api_operator.shared.errors import ErrorKind, OperatorError, first_error, wrap_error
from api_operator.shared.s3_paths import is_s3_path, s3_path_join, split_s3_path


class TestOperatorError:
    def test_rendering(self):
        err = OperatorError(ErrorKind.INVALID_VALUE, "must be greater than 0", path=["cortex.yaml: a", "compute"])
        assert str(err) == "cortex.yaml: a: compute: must be greater than 0"

    def test_wrap_prepends_keys(self):
        inner = OperatorError(ErrorKind.S3_FILE_NOT_FOUND, "missing", path=["model"])
        outer = wrap_error(inner, "cortex.yaml: a", "predictor")
        assert outer.kind == ErrorKind.S3_FILE_NOT_FOUND
        assert outer.path == ["cortex.yaml: a", "predictor", "model"]
        assert inner.path == ["model"]

    def test_wrap_foreign_exception(self):
        cause = KeyError("x")
        err = wrap_error(cause, "reading", kind=ErrorKind.STORAGE_REQUEST_FAILED)
        assert err.kind == ErrorKind.STORAGE_REQUEST_FAILED
        assert err.__cause__ is cause

    def test_first_error(self):
        a, b = ValueError("a"), ValueError("b")
        assert first_error([None, a, b]) is a
        assert first_error([None, None]) is None


class TestS3Paths:
    @pytest.mark.parametrize("path,expected", [
        ("s3://b/m/", True),
        ("s3://models/iris/1", True),
        ("s3://b", False),
        ("s3://b/", False),
        ("s3://Bucket/key", False),
        ("/local/path", False),
    ])
    def test_is_s3_path(self, path, expected):
        assert is_s3_path(path) is expected

    def test_split(self):
        assert split_s3_path("s3://b/m/1/saved_model.pb") == ("b", "m/1/saved_model.pb")

    def test_split_rejects(self):
        with pytest.raises(ValueError):
            split_s3_path("gs://b/m")

    def test_join(self):
        assert s3_path_join("s3://b/m/", "1", "/saved_model.pb") == "s3://b/m/1/saved_model.pb"
