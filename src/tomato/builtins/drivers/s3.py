from __future__ import annotations

import logging
import os
from typing import List, Tuple

from tomato.exception import DriverError
from tomato.resources import require
from tomato.resources.base import ResourceInit, _Base

log = logging.getLogger("tomato.builtins.drivers.s3")


class S3FileStore(_Base):
    """
    Object store backed by boto3 (path-style addressing).

    Targets are `bucket/key`, or a bare `key` when a default `bucket` is set.
    """

    PARAMS = frozenset({"endpoint", "region", "bucket", "access_key", "secret_key"})
    REQUIRED = frozenset({"endpoint", "region"})

    def __init__(self, init: ResourceInit):
        super().__init__(init)
        self.endpoint = self.params["endpoint"]
        self.region = self.params["region"]
        self.bucket = self.param("bucket")
        self._client = None

    def client(self):
        if self._client is None:
            boto3 = require("boto3")
            botocore_config = require("botocore.config")
            kwargs = {
                "endpoint_url": self.endpoint,
                "region_name": self.region,
                "config": botocore_config.Config(s3={"addressing_style": "path"}),
            }
            if self.param("access_key"):
                kwargs["aws_access_key_id"] = self.param("access_key")
                kwargs["aws_secret_access_key"] = self.param("secret_key", "")
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _errors(self):
        exc = require("botocore.exceptions")
        return (exc.ClientError, exc.BotoCoreError)

    def split(self, target: str) -> Tuple[str, str]:
        bucket, sep, key = target.lstrip("/").partition("/")
        if sep and key:
            return bucket, key
        if self.bucket:
            return self.bucket, target.lstrip("/")
        raise DriverError(f"target {target!r} must be bucket/key when no default bucket is set", frames=[self.name])

    def open(self) -> None:
        self.client()

    def ready(self) -> None:
        try:
            if self.bucket:
                self.client().head_bucket(Bucket=self.bucket)
            else:
                self.client().list_buckets()
        except self._errors() as e:
            raise self._fail("ready", e) from e

    def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()

    def download(self, bucket: str, key: str, output_path: str) -> None:
        try:
            obj = self.client().get_object(Bucket=bucket, Key=key)
            data = obj["Body"].read()
        except self._errors() as e:
            raise self._fail(f"download {bucket}/{key}", e) from e
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(data)
        log.debug("s3 %s downloaded %s/%s to %s (%d bytes)", self.name, bucket, key, output_path, len(data))

    def upload(self, target: str, payload: bytes) -> int:
        bucket, key = self.split(target)
        body = bytes(payload or b"")
        try:
            self.client().put_object(Bucket=bucket, Key=key, Body=body)
        except self._errors() as e:
            raise self._fail(f"upload {bucket}/{key}", e) from e
        return len(body)

    def delete(self, target: str) -> None:
        bucket, key = self.split(target)
        try:
            self.client().delete_object(Bucket=bucket, Key=key)
        except self._errors() as e:
            raise self._fail(f"delete {bucket}/{key}", e) from e

    def list(self) -> List[str]:
        try:
            if not self.bucket:
                return [b["Name"] for b in self.client().list_buckets().get("Buckets", [])]
            keys: List[str] = []
            paginator = self.client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                keys.extend(o["Key"] for o in page.get("Contents", []))
            return keys
        except self._errors() as e:
            raise self._fail("list", e) from e
