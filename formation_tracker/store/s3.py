"""S3-backed tables: one JSON object per record.

All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid blocking.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import quote, unquote

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StoreConfig
from ..errors import StoreError
from .base import T, Table

logger = structlog.get_logger()


class S3Backend:
    """Owns the boto3 client shared by every :class:`S3Table`."""

    def __init__(self, config: StoreConfig) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def prefix(self) -> str:
        return self._config.prefix

    @property
    def client(self):
        assert self._client is not None, "S3 client not started"
        return self._client

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("s3_store_started", bucket=self._config.bucket, prefix=self._config.prefix)

    async def stop(self) -> None:
        self._client = None
        logger.info("s3_store_stopped")


class S3Table(Table[T]):
    """Table stored under ``s3://<bucket>/<prefix>/<table>/<key>.json``.

    Keys are percent-encoded into the object name, so normalized addresses
    (spaces included) are valid keys.
    """

    def __init__(self, backend: S3Backend, name: str, model: type[T], key_field: str) -> None:
        super().__init__(name, model, key_field)
        self._backend = backend

    def _object_key(self, key: str) -> str:
        return f"{self._table_prefix}{quote(key, safe='')}.json"

    @property
    def _table_prefix(self) -> str:
        return f"{self._backend.prefix}/{self.name}/"

    async def _read(self, key: str) -> dict[str, Any] | None:
        try:
            response = await asyncio.to_thread(
                self._backend.client.get_object,
                Bucket=self._backend.bucket,
                Key=self._object_key(key),
            )
            raw: bytes = await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise StoreError(f"Cannot read {self.name}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Cannot read {self.name}/{key}: {exc}") from exc
        return json.loads(raw)

    async def _write(self, key: str, document: dict[str, Any]) -> None:
        body = json.dumps(document, ensure_ascii=False).encode("utf-8")
        try:
            await asyncio.to_thread(
                self._backend.client.put_object,
                Bucket=self._backend.bucket,
                Key=self._object_key(key),
                Body=body,
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Cannot write {self.name}/{key}: {exc}") from exc
        logger.debug("s3_object_written", table=self.name, key=key, size=len(body))

    async def _remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._backend.client.delete_object,
                Bucket=self._backend.bucket,
                Key=self._object_key(key),
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Cannot delete {self.name}/{key}: {exc}") from exc

    async def _keys(self) -> list[str]:
        return await asyncio.to_thread(self._list_keys_sync)

    def _list_keys_sync(self) -> list[str]:
        prefix = self._table_prefix
        keys: list[str] = []
        try:
            paginator = self._backend.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._backend.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(prefix):]
                    if name.endswith(".json"):
                        keys.append(unquote(name[: -len(".json")]))
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Cannot list {self.name}: {exc}") from exc
        return keys
