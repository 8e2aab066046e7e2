"""Tests for blob storage, catalog, photo and history stores."""

from io import BytesIO

import pytest
from botocore.exceptions import ClientError

from tryon_mvp.config import S3Config
from tryon_mvp.errors import NotFound, StorageError
from tryon_mvp.services import CatalogStore, HistoryStore, PhotoStore, S3BlobStore

from conftest import FakeSupabase, FakeTable


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


CATALOG_ROWS = [
    {"id": 1, "name": "Basic Tee", "category": "T-Shirts",
     "image_url": "https://tryon-test.s3.us-east-1.amazonaws.com/clothing/1_tee.png",
     "storage_key": "clothing/1_tee.png"},
    {"id": 2, "name": "Zip Hoodie", "category": "Hoodies",
     "image_url": "https://tryon-test.s3.us-east-1.amazonaws.com/clothing/2_hoodie.png",
     "storage_key": "clothing/2_hoodie.png"},
]


class TestS3BlobStore:
    """boto3 calls and error mapping."""

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, blob_store, s3_client, minimal_png_bytes):
        url = await blob_store.upload("clothing/a.png", minimal_png_bytes)

        assert url == "https://tryon-test.s3.us-east-1.amazonaws.com/clothing/a.png"
        s3_client.put_object.assert_called_once_with(
            Bucket="tryon-test", Key="clothing/a.png", Body=minimal_png_bytes, ContentType="image/png",
        )

    def test_public_base_url_override(self, s3_client):
        config = S3Config(bucket_name="b", public_base_url="https://cdn.example.com/")
        store = S3BlobStore(config, client=s3_client)

        assert store.url_for("x.png") == "https://cdn.example.com/x.png"

    @pytest.mark.asyncio
    async def test_upload_failure(self, blob_store, s3_client):
        s3_client.put_object.side_effect = _client_error("AccessDenied", "PutObject")

        with pytest.raises(StorageError, match="AccessDenied"):
            await blob_store.upload("k", b"data")

    @pytest.mark.asyncio
    async def test_exists(self, blob_store, s3_client):
        assert await blob_store.exists("present")

        s3_client.head_object.side_effect = _client_error("404")
        assert not await blob_store.exists("missing")

    @pytest.mark.asyncio
    async def test_exists_other_error(self, blob_store, s3_client):
        s3_client.head_object.side_effect = _client_error("403")

        with pytest.raises(StorageError):
            await blob_store.exists("forbidden")

    @pytest.mark.asyncio
    async def test_download(self, blob_store, s3_client):
        s3_client.get_object.return_value = {"Body": BytesIO(b"payload")}

        assert await blob_store.download("k") == b"payload"

    @pytest.mark.asyncio
    async def test_download_missing(self, blob_store, s3_client):
        s3_client.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

        with pytest.raises(NotFound):
            await blob_store.download("gone")

    def test_unconfigured_bucket(self):
        store = S3BlobStore(S3Config())

        with pytest.raises(StorageError, match="not configured"):
            store.client


class TestCatalogStore:
    """Catalog reads and admin writes."""

    @pytest.fixture
    def table(self):
        return FakeTable(rows=[dict(row) for row in CATALOG_ROWS])

    @pytest.fixture
    def catalog(self, table, blob_store):
        return CatalogStore(FakeSupabase(table), blob_store)

    @pytest.mark.asyncio
    async def test_list_items(self, catalog):
        items = await catalog.list_clothing_items()

        assert [item.name for item in items] == ["Basic Tee", "Zip Hoodie"]
        assert items[0].id == "1"

    @pytest.mark.asyncio
    async def test_list_by_category(self, catalog):
        items = await catalog.list_clothing_items("Hoodies")

        assert [item.id for item in items] == ["2"]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, blob_store):
        catalog = CatalogStore(FakeSupabase(FakeTable(rows=[])), blob_store)

        assert await catalog.list_clothing_items() == []

    @pytest.mark.asyncio
    async def test_get_missing_item(self, catalog):
        with pytest.raises(NotFound):
            await catalog.get_clothing_item("99")

    @pytest.mark.asyncio
    async def test_list_failure_is_storage_error(self, blob_store):
        catalog = CatalogStore(FakeSupabase(FakeTable(error=RuntimeError("connection reset"))), blob_store)

        with pytest.raises(StorageError, match="connection reset"):
            await catalog.list_clothing_items()

    @pytest.mark.asyncio
    async def test_create_uploads_then_inserts(self, catalog, table, s3_client, minimal_png_bytes):
        item = await catalog.create_clothing_item("Denim Jacket", "Jackets", minimal_png_bytes, "my jacket.png")

        key = s3_client.put_object.call_args.kwargs["Key"]
        assert key.startswith("clothing/") and key.endswith("_my_jacket.png")
        assert s3_client.put_object.call_args.kwargs["ContentType"] == "image/png"
        assert table.inserted[0]["storage_key"] == key
        assert item.name == "Denim Jacket"
        assert item.image_url.endswith(key)

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_category(self, catalog, s3_client, minimal_png_bytes):
        with pytest.raises(ValueError, match="Unknown category"):
            await catalog.create_clothing_item("Cap", "Hats", minimal_png_bytes)

        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_requires_name(self, catalog, minimal_png_bytes):
        with pytest.raises(ValueError):
            await catalog.create_clothing_item("  ", "T-Shirts", minimal_png_bytes)

    @pytest.mark.asyncio
    async def test_delete_removes_record_and_image(self, catalog, table, s3_client):
        await catalog.delete_clothing_item("1")

        assert table.deleted
        s3_client.delete_object.assert_called_once_with(Bucket="tryon-test", Key="clothing/1_tee.png")

    @pytest.mark.asyncio
    async def test_delete_survives_image_failure(self, catalog, table, s3_client):
        """Losing the image delete must not fail the record delete."""
        s3_client.delete_object.side_effect = _client_error("InternalError", "DeleteObject")

        await catalog.delete_clothing_item("2")

        assert table.deleted

    @pytest.mark.asyncio
    async def test_delete_missing_item(self, catalog, table):
        with pytest.raises(NotFound):
            await catalog.delete_clothing_item("42")

        assert not table.deleted

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_image(self, blob_store, s3_client, minimal_png_bytes):
        catalog = CatalogStore(FakeSupabase(FakeTable(error=RuntimeError("insert rejected"))), blob_store)

        with pytest.raises(StorageError, match="insert rejected"):
            await catalog.create_clothing_item("Denim Jacket", "Jackets", minimal_png_bytes, "jacket.png")

        key = s3_client.put_object.call_args.kwargs["Key"]
        s3_client.delete_object.assert_called_once_with(Bucket="tryon-test", Key=key)

    @pytest.mark.asyncio
    async def test_failed_cleanup_keeps_insert_error(self, blob_store, s3_client, minimal_png_bytes):
        s3_client.delete_object.side_effect = _client_error("InternalError", "DeleteObject")
        catalog = CatalogStore(FakeSupabase(FakeTable(error=RuntimeError("insert rejected"))), blob_store)

        with pytest.raises(StorageError, match="insert rejected"):
            await catalog.create_clothing_item("Denim Jacket", "Jackets", minimal_png_bytes)


class TestPhotoStore:
    """One profile photo per user."""

    @pytest.mark.asyncio
    async def test_store_and_get(self, blob_store, s3_client, minimal_png_bytes):
        photos = PhotoStore(blob_store)

        url = await photos.store_user_photo("user-1", minimal_png_bytes)

        assert url.endswith("/users/user-1/profile")
        assert await photos.get_user_photo("user-1") == url

    @pytest.mark.asyncio
    async def test_get_missing_photo(self, blob_store, s3_client):
        s3_client.head_object.side_effect = _client_error("404")

        with pytest.raises(NotFound):
            await PhotoStore(blob_store).get_user_photo("user-2")

    @pytest.mark.asyncio
    async def test_read_photo(self, blob_store, s3_client):
        s3_client.get_object.return_value = {"Body": BytesIO(b"jpeg-bytes")}

        assert await PhotoStore(blob_store).read_user_photo("user-1") == b"jpeg-bytes"
        assert s3_client.get_object.call_args.kwargs["Key"] == "users/user-1/profile"


class TestHistoryStore:
    """Saved looks."""

    @pytest.mark.asyncio
    async def test_record_try_on(self, blob_store, s3_client, clothing_item, minimal_png_bytes):
        table = FakeTable()
        history = HistoryStore(FakeSupabase(table), blob_store)

        record = await history.record_try_on("user-1", clothing_item, minimal_png_bytes)

        key = s3_client.put_object.call_args.kwargs["Key"]
        assert key.startswith("tryons/user-1/") and key.endswith(".png")
        assert record.clothing_id == clothing_item.id
        assert record.clothing_name == "Red Tee"
        assert record.image_url.endswith(key)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, blob_store):
        rows = [
            {"id": 1, "user_id": "u", "clothing_id": "1", "clothing_name": "A",
             "image_url": "https://x/1.png", "created_at": "2024-01-01T10:00:00+00:00"},
            {"id": 2, "user_id": "u", "clothing_id": "2", "clothing_name": "B",
             "image_url": "https://x/2.png", "created_at": "2024-03-01T10:00:00+00:00"},
            {"id": 3, "user_id": "u", "clothing_id": "1", "clothing_name": "A",
             "image_url": "https://x/3.png", "created_at": "2024-02-01T10:00:00+00:00"},
        ]
        table = FakeTable(rows=rows)
        history = HistoryStore(FakeSupabase(table), blob_store)

        records = await history.list_try_on_history("u")

        assert [r.id for r in records] == ["2", "3", "1"]
        assert ("user_id", "u") in table.filters
        assert table.ordering == [("created_at", True)]

    @pytest.mark.asyncio
    async def test_insert_failure(self, blob_store, clothing_item):
        history = HistoryStore(FakeSupabase(FakeTable(error=RuntimeError("db down"))), blob_store)

        with pytest.raises(StorageError, match="db down"):
            await history.record_try_on("user-1", clothing_item, b"png")

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_look(self, blob_store, s3_client, clothing_item):
        history = HistoryStore(FakeSupabase(FakeTable(error=RuntimeError("db down"))), blob_store)

        with pytest.raises(StorageError):
            await history.record_try_on("user-1", clothing_item, b"png")

        key = s3_client.put_object.call_args.kwargs["Key"]
        assert key.startswith("tryons/user-1/")
        s3_client.delete_object.assert_called_once_with(Bucket="tryon-test", Key=key)


class TestSupabaseClientFactory:

    def test_missing_configuration(self):
        from tryon_mvp.config import SupabaseConfig
        from tryon_mvp.services import create_supabase_client

        with pytest.raises(StorageError, match="not configured"):
            create_supabase_client(SupabaseConfig())
