"""Helpers for "s3://<bucket>/<key>" paths. Splitting and joining are by "/"."""

from __future__ import annotations

import re
from typing import Tuple

S3_SCHEME = "s3://"

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{0,62}$")


def is_s3_path(path: str) -> bool:
    if not path.startswith(S3_SCHEME):
        return False
    bucket, _, key = path[len(S3_SCHEME):].partition("/")
    return bool(_BUCKET_RE.match(bucket)) and bool(key)


def split_s3_path(path: str) -> Tuple[str, str]:
    """
    "s3://bucket/a/b" → ("bucket", "a/b").

    Raises:
        ValueError: if path is not an s3:// path with a bucket and a key.
    """
    if not is_s3_path(path):
        raise ValueError(f"{path!r} is not a valid s3 path (e.g. s3://bucket/key)")
    bucket, _, key = path[len(S3_SCHEME):].partition("/")
    return bucket, key


def s3_path_join(base: str, *parts: str) -> str:
    """Join path components with exactly one "/" between them."""
    joined = base.rstrip("/")
    for part in parts:
        part = part.strip("/")
        if part:
            joined = f"{joined}/{part}"
    return joined


def ensure_suffix(value: str, suffix: str) -> str:
    return value if value.endswith(suffix) else value + suffix
