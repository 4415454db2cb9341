"""
Tests for the fishing diary service and media attachments.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import settings
from app.core.errors import ErrorCodes, NotFoundError, ServiceUnavailableError, ValidationError
from app.models.diary import DiaryMedia, MediaType
from app.schemas.diary import DiaryEntryUpdate
from app.services.azure_storage import AzureStorageService
from app.services.diary_service import DiaryService, media_extension


@pytest.fixture
def storage():
    storage = AsyncMock()
    storage.upload_diary_media.return_value = {
        "blob_path": "fishing-diary/u/e/abc.jpg",
        "blob_url": "https://acct.blob.core.windows.net/media/fishing-diary/u/e/abc.jpg",
        "sas_url": "https://acct.blob.core.windows.net/media/fishing-diary/u/e/abc.jpg?sig=x",
        "file_size_bytes": 3,
        "content_type": "image/jpeg",
    }
    storage.delete_blob.return_value = True
    return storage


def owned_entry(user_id, media=()):
    return SimpleNamespace(entry_id=uuid.uuid4(), user_id=user_id, media=list(media))


class TestMediaExtension:
    def test_from_filename(self):
        assert media_extension("catch.JPG", "image/jpeg") == "jpg"

    def test_from_mime_type(self):
        assert media_extension(None, "video/mp4") == "mp4"
        assert media_extension("noext", "image/png") == "png"


class TestAddMedia:
    @pytest.mark.asyncio
    async def test_rejects_documents_before_lookup(self, mock_db, storage):
        with pytest.raises(ValidationError) as exc_info:
            await DiaryService(mock_db, storage).add_media(
                uuid.uuid4(), uuid.uuid4(), "notes.pdf", b"%PDF", "application/pdf",
            )
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_INVALID_MEDIA
        mock_db.get.assert_not_awaited()
        storage.upload_diary_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_oversized_files(self, mock_db, storage, monkeypatch):
        monkeypatch.setattr(settings, "MAX_DIARY_MEDIA_SIZE_MB", 1)
        with pytest.raises(ValidationError) as exc_info:
            await DiaryService(mock_db, storage).add_media(
                uuid.uuid4(), uuid.uuid4(), "big.mp4", b"0" * (1024 * 1024 + 1), "video/mp4",
            )
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_MEDIA_TOO_LARGE

    @pytest.mark.asyncio
    async def test_other_users_entry_is_not_found(self, mock_db, storage):
        mock_db.get.return_value = owned_entry(uuid.uuid4())
        with pytest.raises(NotFoundError) as exc_info:
            await DiaryService(mock_db, storage).add_media(
                uuid.uuid4(), uuid.uuid4(), "fish.jpg", b"abc", "image/jpeg",
            )
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_NOT_FOUND

    @pytest.mark.asyncio
    async def test_uploads_and_stores_media(self, mock_db, storage):
        user_id = uuid.uuid4()
        entry = owned_entry(user_id)
        mock_db.get.return_value = entry

        media = await DiaryService(mock_db, storage).add_media(
            user_id, entry.entry_id, "fish.jpg", b"abc", "image/jpeg", gps_latitude=43.5, gps_longitude=16.4,
        )

        assert isinstance(media, DiaryMedia)
        assert media.media_type == MediaType.PHOTO
        assert media.file_url.endswith("?sig=x")
        assert media.gps_latitude == 43.5
        storage.upload_diary_media.assert_awaited_once_with(
            str(user_id), str(entry.entry_id), b"abc", content_type="image/jpeg", extension="jpg",
        )
        mock_db.add.assert_called_once_with(media)


class TestEntryLifecycle:
    @pytest.mark.asyncio
    async def test_update_only_sets_given_fields(self, mock_db):
        user_id = uuid.uuid4()
        entry = owned_entry(user_id)
        entry.title = "Morning"
        entry.tags = ["pike"]
        mock_db.get.return_value = entry

        await DiaryService(mock_db).update_entry(user_id, entry.entry_id, DiaryEntryUpdate(title="Evening"))

        assert entry.title == "Evening"
        assert entry.tags == ["pike"]

    @pytest.mark.asyncio
    async def test_delete_removes_blobs(self, mock_db, storage):
        user_id = uuid.uuid4()
        entry = owned_entry(user_id, media=[
            SimpleNamespace(blob_path="a.jpg"),
            SimpleNamespace(blob_path="b.mp4"),
        ])
        mock_db.get.return_value = entry
        storage.delete_blob.side_effect = [True, False]

        removed = await DiaryService(mock_db, storage).delete_entry(user_id, entry.entry_id)

        assert removed == 1
        mock_db.delete.assert_awaited_once_with(entry)


class TestStoragePaths:
    def test_blob_path_from_signed_url(self, monkeypatch):
        monkeypatch.setattr(settings, "AZURE_STORAGE_ACCOUNT_NAME", "acct")
        monkeypatch.setattr(settings, "AZURE_STORAGE_CONTAINER", "media")
        storage = AzureStorageService()

        url = "https://acct.blob.core.windows.net/media/fishing-diary/u/e/abc.jpg?sig=x"
        assert storage.blob_path_from_url(url) == "fishing-diary/u/e/abc.jpg"
        assert storage.blob_path_from_url("fishing-diary/u/e/abc.jpg") == "fishing-diary/u/e/abc.jpg"

    def test_unsigned_url_without_account_key(self, monkeypatch):
        monkeypatch.setattr(settings, "AZURE_STORAGE_ACCOUNT_NAME", "acct")
        monkeypatch.setattr(settings, "AZURE_STORAGE_ACCOUNT_KEY", "")
        monkeypatch.setattr(settings, "AZURE_STORAGE_CONTAINER", "media")

        url = AzureStorageService().signed_url("fishing-diary/u/e/abc.jpg")

        assert url == "https://acct.blob.core.windows.net/media/fishing-diary/u/e/abc.jpg"

    def test_unconfigured_client_is_unavailable(self, monkeypatch):
        monkeypatch.setattr(settings, "AZURE_STORAGE_CONNECTION_STRING", "")
        with pytest.raises(ServiceUnavailableError) as exc_info:
            AzureStorageService().client
        assert exc_info.value.detail["code"] == ErrorCodes.DIARY_STORAGE_UNAVAILABLE


def rows(value):
    result = MagicMock()
    result.scalar_one.return_value = value
    result.scalar_one_or_none.return_value = value
    result.one.return_value = value
    result.all.return_value = value
    return result


class TestStatistics:
    @pytest.mark.asyncio
    async def test_summary(self, mock_db):
        mock_db.execute.side_effect = [
            rows(4),
            rows((17, 12.5)),
            rows([("Pike", 3), ("Perch", 1)]),
            rows("Lake Bled"),
            rows([("2025-06", 2), ("2025-04", 1)]),
        ]
        now = datetime(2025, 6, 15, 12, 30, tzinfo=timezone.utc)

        stats = await DiaryService(mock_db).get_statistics(uuid.uuid4(), now=now)

        assert stats["totalEntries"] == 4
        assert stats["totalFish"] == 17
        assert stats["totalWeight"] == 12.5
        assert stats["favoriteSpecies"] == "Pike"
        assert stats["bestSpot"] == "Lake Bled"
        assert stats["monthlyStats"] == [
            {"month": "2025-04", "catches": 1},
            {"month": "2025-06", "catches": 2},
        ]
        assert stats["speciesDistribution"][1] == {"species": "Perch", "count": 1}

        monthly_stmt = mock_db.execute.await_args_list[4].args[0]
        params = monthly_stmt.compile().params
        assert datetime(2024, 6, 15, tzinfo=timezone.utc) in params.values()

    @pytest.mark.asyncio
    async def test_empty_diary(self, mock_db):
        mock_db.execute.side_effect = [rows(0), rows((0, 0)), rows([]), rows(None), rows([])]

        stats = await DiaryService(mock_db).get_statistics(uuid.uuid4())

        assert stats["favoriteSpecies"] is None
        assert stats["bestSpot"] is None
        assert stats["totalWeight"] == 0.0
        assert stats["monthlyStats"] == []
