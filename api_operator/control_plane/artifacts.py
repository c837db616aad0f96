"""
api_operator/control_plane/artifacts.py
───────────────────────────────────────
ArtifactProber: does the model artifact a predictor points at look servable?

One strategy per predictor variant
───────────────────────────────────
  PYTHON      → nothing to probe; the implementation lives in the project.
  TENSORFLOW  → either a ".zip" object that must exist, or a SavedModel
                export directory (see below). The predictor's model path may
                be rewritten to the resolved version directory.
  ONNX        → the model must exist as a single object.

TensorFlow export directories
──────────────────────────────
A directory is a valid export when it directly contains:

    saved_model.pb
    variables/variables.index
    variables/variables.data-00000-of-*     (one or more shards)

Exports are usually written into numeric version subdirectories
(s3://bucket/model/1/, s3://bucket/model/1571939473/). When the given path is
not itself a valid export, its immediate children are listed and the valid
child with the greatest numeric version is selected. A child whose name is
not an integer counts as version 0 and a negative one is never selected; on
equal versions the one listed last wins. A listing failure is treated as
"no children".

Storage failures on existence checks are folded into "not found", so the
user sees which path could not be read rather than a transport error.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional

from api_operator.cluster.interfaces import ObjectStore
from api_operator.shared.errors import (
    OperatorError,
    invalid_tensorflow_dir,
    s3_file_not_found,
    wrap_error,
)
from api_operator.shared.models import Predictor, PredictorType
from api_operator.shared.s3_paths import ensure_suffix, s3_path_join, split_s3_path

logger = logging.getLogger(__name__)

MODEL_KEY = "model"

SAVED_MODEL_FILE = "saved_model.pb"
VARIABLES_INDEX_FILE = "variables/variables.index"
VARIABLES_DATA_PREFIX = "variables/variables.data-00000-of"

_VERSION_RE = re.compile(r"-?[0-9]+")


class ArtifactProber:
    """
    Dispatches on predictor type and returns the (possibly rewritten) predictor.

    Raises OperatorError (S3_FILE_NOT_FOUND / INVALID_TENSORFLOW_DIR) wrapped
    with the "model" key when the artifact does not check out.
    """

    def __init__(self, object_store: ObjectStore) -> None:
        self._store = object_store
        self._strategies: Dict[PredictorType, Callable[[Predictor], Predictor]] = {
            PredictorType.PYTHON: self._probe_python,
            PredictorType.TENSORFLOW: self._probe_tensorflow,
            PredictorType.ONNX: self._probe_onnx,
        }

    def probe(self, predictor: Predictor) -> Predictor:
        return self._strategies[predictor.type](predictor)

    # ── Strategies ─────────────────────────────────────────────────────────────

    def _probe_python(self, predictor: Predictor) -> Predictor:
        return predictor

    def _probe_tensorflow(self, predictor: Predictor) -> Predictor:
        model = predictor.model
        assert model is not None, "tensorflow predictor probed without a model"

        if model.endswith(".zip"):
            if not self._exists(model):
                raise wrap_error(s3_file_not_found(model), MODEL_KEY)
            return predictor

        resolved = self.resolve_tensorflow_export(model)
        if resolved is None:
            raise wrap_error(invalid_tensorflow_dir(model), MODEL_KEY)
        if resolved != model:
            logger.info("Resolved TensorFlow model %s to version directory %s", model, resolved)
            return predictor.model_copy(update={"model": resolved})
        return predictor

    def _probe_onnx(self, predictor: Predictor) -> Predictor:
        model = predictor.model
        assert model is not None, "onnx predictor probed without a model"
        if not self._exists(model):
            raise wrap_error(s3_file_not_found(model), MODEL_KEY)
        return predictor

    # ── TensorFlow export resolution ──────────────────────────────────────────

    def resolve_tensorflow_export(self, path: str) -> Optional[str]:
        """
        Return path itself if it is a valid export, else the highest valid version child.

        Returns None when nothing valid is found.
        """
        if self.is_valid_tensorflow_dir(path):
            return path

        try:
            bucket, prefix = split_s3_path(path)
        except ValueError:
            return None
        prefix = ensure_suffix(prefix, "/")

        highest_version = 0
        highest_path: Optional[str] = None
        for child in self._list_children(bucket, prefix):
            version = _parse_version(child)
            if version < highest_version:
                continue
            candidate = f"s3://{bucket}/{prefix}{child}"
            if self.is_valid_tensorflow_dir(candidate):
                highest_version = version
                highest_path = candidate

        return highest_path

    def is_valid_tensorflow_dir(self, path: str) -> bool:
        try:
            if not self._store.is_file(
                s3_path_join(path, SAVED_MODEL_FILE),
                s3_path_join(path, VARIABLES_INDEX_FILE),
            ):
                return False
            return self._store.is_prefix(s3_path_join(path, VARIABLES_DATA_PREFIX))
        except OperatorError as e:
            logger.warning("Treating %s as invalid TensorFlow directory: %s", path, e)
            return False

    def _list_children(self, bucket: str, prefix: str) -> List[str]:
        """Immediate child directory names under prefix, in first-listed order."""
        try:
            keys = self._store.list_keys(bucket, prefix)
        except OperatorError as e:
            logger.warning("Listing s3://%s/%s failed, treating as empty: %s", bucket, prefix, e)
            return []

        children: List[str] = []
        seen = set()
        for key in keys:
            if not key.startswith(prefix):
                continue
            child, sep, _ = key[len(prefix):].partition("/")
            if not sep or not child or child in seen:
                continue
            seen.add(child)
            children.append(child)
        return children

    def _exists(self, path: str) -> bool:
        try:
            return self._store.is_file(path)
        except OperatorError as e:
            logger.warning("Existence check for %s failed: %s", path, e)
            return False


def _parse_version(name: str) -> int:
    return int(name) if _VERSION_RE.fullmatch(name) else 0
