"""S3 operations used to publish and tear down dapp buckets."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from dappbot_engine.executor.retry import RetryingExecutor
from dappbot_engine.models.distribution import ResourceTag

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Thin retrying wrapper over the S3 calls the jobs need.

    Parameters
    ----------
    client:
        A boto3 S3 client.
    executor:
        Retry executor wrapping every call.
    region:
        Region used to build website endpoints.
    """

    def __init__(self, client: Any, executor: RetryingExecutor, *, region: str) -> None:
        self._client = client
        self._executor = executor
        self._region = region

    async def get_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Return the object response with ``Body`` already read into bytes."""

        def _get() -> dict[str, Any]:
            response = self._client.get_object(Bucket=bucket, Key=key)
            body = response.get("Body")
            if body is not None and hasattr(body, "read"):
                response["Body"] = body.read()
            return response

        return await self._executor.run_in_thread(_get)

    async def put_object(self, bucket: str, key: str, body: bytes, **extra: Any) -> None:
        params = {"Bucket": bucket, "Key": key, "Body": body, **extra}
        await self._executor.run_in_thread(lambda: self._client.put_object(**params))

    async def make_object_no_cache(self, bucket: str, key: str) -> None:
        """Re-upload *key* with ``Cache-Control: max-age=0`` and public-read."""
        current = await self.get_object(bucket, key)
        extra: dict[str, Any] = {"ACL": "public-read", "CacheControl": "max-age=0"}
        if current.get("ContentType"):
            extra["ContentType"] = current["ContentType"]
        await self.put_object(bucket, key, current["Body"], **extra)

    async def list_objects(self, bucket: str, continuation_token: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"Bucket": bucket}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        return await self._executor.run_in_thread(lambda: self._client.list_objects_v2(**params))

    async def empty_bucket(self, bucket: str) -> int:
        """Delete every object in *bucket*; returns the number deleted."""
        logger.info("Emptying bucket %s", bucket)
        deleted = 0
        token: str | None = None
        while True:
            page = await self.list_objects(bucket, token)
            keys = [obj["Key"] for obj in page.get("Contents") or []]
            await asyncio.gather(*(self.delete_object(bucket, key) for key in keys))
            deleted += len(keys)
            if not page.get("IsTruncated"):
                return deleted
            token = page.get("NextContinuationToken")

    async def delete_object(self, bucket: str, key: str) -> None:
        await self._executor.run_in_thread(lambda: self._client.delete_object(Bucket=bucket, Key=key))

    async def delete_bucket(self, bucket: str) -> None:
        await self._executor.run_in_thread(lambda: self._client.delete_bucket(Bucket=bucket))

    async def set_bucket_public_readable(self, bucket: str) -> None:
        policy = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "PublicReadGetObject",
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": ["s3:GetObject"],
                    "Resource": [f"arn:aws:s3:::{bucket}/*"],
                }
            ],
        }
        await self._executor.run_in_thread(
            lambda: self._client.put_bucket_policy(Bucket=bucket, Policy=json.dumps(policy))
        )

    async def configure_static_website(self, bucket: str) -> None:
        # index.html doubles as the error document so client-side routes resolve.
        config = {
            "ErrorDocument": {"Key": "index.html"},
            "IndexDocument": {"Suffix": "index.html"},
        }
        await self._executor.run_in_thread(
            lambda: self._client.put_bucket_website(Bucket=bucket, WebsiteConfiguration=config)
        )

    async def get_bucket_website(self, bucket: str) -> dict[str, Any]:
        return await self._executor.run_in_thread(lambda: self._client.get_bucket_website(Bucket=bucket))

    async def enable_cors(self, bucket: str, dns_name: str) -> None:
        cors = {
            "CORSRules": [
                {
                    "AllowedHeaders": ["Authorization"],
                    "AllowedOrigins": [f"https://{dns_name}"],
                    "AllowedMethods": ["GET"],
                    "MaxAgeSeconds": 3000,
                }
            ]
        }
        await self._executor.run_in_thread(
            lambda: self._client.put_bucket_cors(Bucket=bucket, CORSConfiguration=cors)
        )

    async def put_bucket_tags(self, bucket: str, tags: list[ResourceTag]) -> None:
        tagging = {"TagSet": [tag.model_dump(by_alias=True) for tag in tags]}
        await self._executor.run_in_thread(lambda: self._client.put_bucket_tagging(Bucket=bucket, Tagging=tagging))

    def bucket_endpoint(self, bucket: str) -> str:
        return f"{bucket}.s3.{self._region}.amazonaws.com"
