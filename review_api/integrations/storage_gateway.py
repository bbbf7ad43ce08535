"""
Object storage gateway — S3 via boto3.

Artifacts live in ARTIFACTS_S3_BUCKET under ``<submissionId>/<artifactId>.<ext>``
with the original upload name in object metadata (``originalfilename``).
Submission files live in SUBMISSIONS_S3_BUCKET.

Like the HTTP gateways this returns GatewayResult and never raises;
``status_code`` carries the S3 HTTP status when one is available
(404 for a missing key).

Testability: pass a stub ``client`` to StorageGateway() in tests, or
patch.object the module-level ``storage_gateway`` methods.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from review_api.integrations.gateway import GatewayResult

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def _client_error_result(exc: ClientError, bucket: str, key: str) -> GatewayResult:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    if code in _MISSING_KEY_CODES:
        status = 404
    logger.warning("S3 error bucket=%s key=%s code=%s", bucket, key, code,
                   extra={"service": "storage"})
    return GatewayResult.failure(f"{code}: {error.get('Message', '')}".strip(), status)


class StorageGateway:
    """Thin wrapper over a boto3 S3 client."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self):
        """Return (or lazily create) the boto3 S3 client."""
        if self._client is None:
            self._client = boto3.client("s3", region_name=current_app.config.get("AWS_REGION"))
        return self._client

    def put_object(
        self,
        bucket: str,
        key: str,
        body,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayResult:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata
        try:
            self.client.put_object(**params)
        except ClientError as exc:
            return _client_error_result(exc, bucket, key)
        except BotoCoreError as exc:
            logger.error("S3 put failed bucket=%s key=%s: %s", bucket, key, exc)
            return GatewayResult.failure(str(exc))
        return GatewayResult.success({"bucket": bucket, "key": key})

    def get_object(self, bucket: str, key: str) -> GatewayResult:
        """Return GatewayResult.data = {body, content_type, metadata, content_length}.

        ``body`` is the botocore StreamingBody; callers iterate it in chunks.
        """
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            return _client_error_result(exc, bucket, key)
        except BotoCoreError as exc:
            logger.error("S3 get failed bucket=%s key=%s: %s", bucket, key, exc)
            return GatewayResult.failure(str(exc))
        return GatewayResult.success({
            "body": resp["Body"],
            "content_type": resp.get("ContentType"),
            "metadata": resp.get("Metadata") or {},
            "content_length": resp.get("ContentLength"),
        })

    def delete_object(self, bucket: str, key: str) -> GatewayResult:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            return _client_error_result(exc, bucket, key)
        except BotoCoreError as exc:
            logger.error("S3 delete failed bucket=%s key=%s: %s", bucket, key, exc)
            return GatewayResult.failure(str(exc))
        return GatewayResult.success({"bucket": bucket, "key": key})


storage_gateway = StorageGateway()
