"""
api_operator/cluster/s3.py
──────────────────────────
S3ObjectStore: the ObjectStore backed by boto3.

Credentials and region come from the standard AWS environment / config chain.
A missing object (404 / NoSuchKey on head) is an answer, not an error; any
other client failure is raised as OperatorError(STORAGE_REQUEST_FAILED).
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from api_operator.shared.errors import ErrorKind, wrap_error
from api_operator.shared.s3_paths import split_s3_path

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3ObjectStore:
    """ObjectStore implementation over the S3 API."""

    def __init__(self, s3_client: Optional[Any] = None, region: Optional[str] = None) -> None:
        self._s3 = s3_client or boto3.client("s3", region_name=region)

    def is_file(self, *paths: str) -> bool:
        for path in paths:
            bucket, key = split_s3_path(path)
            try:
                self._s3.head_object(Bucket=bucket, Key=key)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                    return False
                raise wrap_error(e, f"checking {path}", kind=ErrorKind.STORAGE_REQUEST_FAILED)
            except BotoCoreError as e:
                raise wrap_error(e, f"checking {path}", kind=ErrorKind.STORAGE_REQUEST_FAILED)
        return True

    def is_prefix(self, path: str) -> bool:
        bucket, prefix = split_s3_path(path)
        try:
            resp = self._s3.list_objects_v2(Bucket=bucket, Prefix=prefix, MaxKeys=1)
        except (ClientError, BotoCoreError) as e:
            raise wrap_error(e, f"listing {path}", kind=ErrorKind.STORAGE_REQUEST_FAILED)
        return resp.get("KeyCount", 0) > 0

    def list_keys(self, bucket: str, prefix: str) -> List[str]:
        keys: List[str] = []
        paginator = self._s3.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise wrap_error(e, f"listing s3://{bucket}/{prefix}", kind=ErrorKind.STORAGE_REQUEST_FAILED)
        logger.debug("Listed %d key(s) under s3://%s/%s", len(keys), bucket, prefix)
        return keys
