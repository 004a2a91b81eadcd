"""S3 snapshot backend.

Stores the company snapshot as one JSON object in S3 with optional namespace
prefix::

    s3://{bucket}/{prefix}/company.json

When prefix is None, the key collapses to::

    s3://{bucket}/company.json

Calls are synchronous boto3 calls; ``CompanyStore`` already moves debounced
saves off the event loop.
"""

from __future__ import annotations

import json
from typing import Any

import boto3
from botocore.config import Config

from virtualco.company_runtime.store.base import SNAPSHOT_KEYS, empty_snapshot


def _create_s3_client(
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None = None,
    path_style: bool = False,
) -> Any:
    """Create a boto3 S3 client.

    Args:
        endpoint_url: S3 endpoint URL.
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        region: AWS region name (optional, some endpoints require it).
        path_style: Use path-style addressing instead of virtual-hosted.
            Required by MinIO and some S3-compatible services.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
        s3={"addressing_style": "path" if path_style else "auto"},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
        config=config,
    )


class S3SnapshotBackend:
    """S3 implementation of the SnapshotBackend protocol."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None,
        access_key: str | None,
        secret_key: str | None,
        prefix: str | None = None,
        region: str | None = None,
        path_style: bool = False,
    ) -> None:
        self._bucket = bucket
        self._client = _create_s3_client(endpoint_url, access_key, secret_key, region=region, path_style=path_style)
        self._key = f"{prefix}/company.json" if prefix else "company.json"

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> dict[str, Any]:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=self._key)
        except self._client.exceptions.NoSuchKey:
            return empty_snapshot()
        raw = json.loads(resp["Body"].read().decode("utf-8"))
        snapshot = empty_snapshot()
        for key in SNAPSHOT_KEYS:
            snapshot[key] = raw.get(key) or {}
        return snapshot

    def save(self, snapshot: dict[str, Any]) -> None:
        # A single PUT replaces the whole object, so readers see old or new, never a mix.
        self._client.put_object(
            Bucket=self._bucket,
            Key=self._key,
            Body=json.dumps(snapshot, ensure_ascii=False).encode("utf-8"),
            ContentType="application/json",
        )

    def clear(self) -> None:
        # S3 delete is idempotent -- no error if key doesn't exist.
        self._client.delete_object(Bucket=self._bucket, Key=self._key)
