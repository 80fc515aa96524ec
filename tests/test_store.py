"""Tests for formation_tracker.store."""

from __future__ import annotations

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from formation_tracker.config import StoreConfig
from formation_tracker.errors import StoreError
from formation_tracker.models import Coordinates, Formation, GeocacheEntry
from formation_tracker.store import MemoryTable, S3Backend, S3Table, TrackerStore, open_store


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")


class TestMemoryTable:
    @pytest.fixture
    def table(self) -> MemoryTable[Formation]:
        return MemoryTable("formations", Formation, "id")

    @pytest.mark.asyncio
    async def test_put_get(self, table):
        await table.put(Formation(id="f-1", title="Python"))
        fetched = await table.get("f-1")
        assert fetched is not None
        assert fetched.title == "Python"

    @pytest.mark.asyncio
    async def test_get_missing(self, table):
        assert await table.get("nope") is None

    @pytest.mark.asyncio
    async def test_returned_records_are_independent(self, table):
        await table.put(Formation(id="f-1", dates=["2025-01-06"]))
        first = await table.get("f-1")
        first.dates.append("2025-01-07")
        second = await table.get("f-1")
        assert second.dates == ["2025-01-06"]

    @pytest.mark.asyncio
    async def test_bulk_get_aligned(self, table):
        await table.put(Formation(id="a"))
        await table.put(Formation(id="c"))
        results = await table.bulk_get(["a", "b", "c"])
        assert [r.id if r else None for r in results] == ["a", None, "c"]

    @pytest.mark.asyncio
    async def test_scan_with_predicate(self, table):
        await table.put(Formation(id="a", title="x"))
        await table.put(Formation(id="b", title="y"))
        assert [f.id for f in await table.scan(lambda f: f.title == "y")] == ["b"]

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, table):
        await table.put(Formation(id="a"))
        await table.put(Formation(id="b"))
        await table.delete("a")
        await table.delete("missing")
        assert await table.count() == 1
        await table.clear()
        assert len(table) == 0


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def backend(store_config: StoreConfig, s3_client: MagicMock) -> S3Backend:
    backend = S3Backend(store_config)
    backend._client = s3_client
    return backend


class TestS3Backend:
    @pytest.mark.asyncio
    async def test_start_creates_client(self, store_config: StoreConfig):
        backend = S3Backend(store_config)
        with patch("formation_tracker.store.s3.boto3") as mock_boto3:
            mock_boto3.client.return_value = MagicMock()
            await backend.start()
            mock_boto3.client.assert_called_once_with("s3", region_name="eu-west-3")

    @pytest.mark.asyncio
    async def test_start_with_endpoint_url(self):
        backend = S3Backend(StoreConfig(endpoint_url="http://minio:9000"))
        with patch("formation_tracker.store.s3.boto3") as mock_boto3:
            mock_boto3.client.return_value = MagicMock()
            await backend.start()
            mock_boto3.client.assert_called_once_with(
                "s3", region_name="eu-west-3", endpoint_url="http://minio:9000"
            )


class TestS3Table:
    @pytest.mark.asyncio
    async def test_put_writes_json_object(self, backend, s3_client):
        table = S3Table(backend, "geocache", GeocacheEntry, "address")
        await table.put(GeocacheEntry(address="1 rue x", coordinates=None, provider="nominatim"))

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["Key"] == "tracker/geocache/1%20rue%20x.json"
        assert kwargs["ContentType"] == "application/json"
        assert json.loads(kwargs["Body"])["provider"] == "nominatim"

    @pytest.mark.asyncio
    async def test_get_reads_object(self, backend, s3_client):
        body = json.dumps(
            GeocacheEntry(
                address="a", coordinates=Coordinates(lat=1, lng=2), provider="google"
            ).model_dump(mode="json")
        ).encode()
        s3_client.get_object.return_value = {"Body": io.BytesIO(body)}
        table = S3Table(backend, "geocache", GeocacheEntry, "address")

        entry = await table.get("a")

        assert entry.coordinates == Coordinates(lat=1, lng=2)
        s3_client.get_object.assert_called_once_with(Bucket="test-bucket", Key="tracker/geocache/a.json")

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, backend, s3_client):
        s3_client.get_object.side_effect = _client_error("NoSuchKey")
        table = S3Table(backend, "formations", Formation, "id")
        assert await table.get("f-1") is None

    @pytest.mark.asyncio
    async def test_access_denied_raises_store_error(self, backend, s3_client):
        s3_client.get_object.side_effect = _client_error("AccessDenied")
        table = S3Table(backend, "formations", Formation, "id")
        with pytest.raises(StoreError):
            await table.get("f-1")

    @pytest.mark.asyncio
    async def test_write_failure_raises_store_error(self, backend, s3_client):
        s3_client.put_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")
        table = S3Table(backend, "formations", Formation, "id")
        with pytest.raises(StoreError):
            await table.put(Formation(id="f-1"))

    @pytest.mark.asyncio
    async def test_keys_are_listed_and_decoded(self, backend, s3_client):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "tracker/geocache/1%20rue%20x.json"}]},
            {"Contents": [{"Key": "tracker/geocache/lyon.json"}]},
        ]
        s3_client.get_paginator.return_value = paginator
        table = S3Table(backend, "geocache", GeocacheEntry, "address")

        assert await table._keys() == ["1 rue x", "lyon"]
        paginator.paginate.assert_called_once_with(Bucket="test-bucket", Prefix="tracker/geocache/")

    @pytest.mark.asyncio
    async def test_delete(self, backend, s3_client):
        table = S3Table(backend, "formations", Formation, "id")
        await table.delete("f-1")
        s3_client.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="tracker/formations/f-1.json"
        )


class TestTrackerStore:
    @pytest.mark.asyncio
    async def test_memory_backend_by_default(self):
        store = await open_store(StoreConfig())
        assert isinstance(store.formations, MemoryTable)
        assert store.backend is None
        await store.close()

    @pytest.mark.asyncio
    async def test_s3_backend(self, store_config: StoreConfig):
        with patch("formation_tracker.store.s3.boto3") as mock_boto3:
            mock_boto3.client.return_value = MagicMock()
            store = await open_store(store_config)
        assert isinstance(store.messages, S3Table)
        assert store.extraction_cache.name == "llm_cache"
        await store.close()

    def test_in_memory_tables_are_separate(self):
        store = TrackerStore.in_memory()
        assert store.messages is not store.formations
