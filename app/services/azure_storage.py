"""
Azure Blob Storage Service
==========================

Fishing diary media (photos, videos, audio notes) in Azure Blob Storage.

Layout inside the configured container:

    fishing-diary/{user_id}/{entry_id}/{uuid}.{ext}

The blob SDK client is synchronous; calls run in a worker thread so an
upload does not hold the event loop.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)

from app.config import settings
from app.core.errors import ErrorCodes, ServiceUnavailableError

logger = logging.getLogger(__name__)

DIARY_PREFIX = "fishing-diary"


class AzureStorageService:
    """Upload, link and delete diary media blobs."""

    def __init__(self):
        self.connection_string = settings.AZURE_STORAGE_CONNECTION_STRING
        self.account_name = settings.AZURE_STORAGE_ACCOUNT_NAME
        self.account_key = settings.AZURE_STORAGE_ACCOUNT_KEY
        self.container_name = settings.AZURE_STORAGE_CONTAINER

        self._client: Optional[BlobServiceClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string)

    @property
    def client(self) -> BlobServiceClient:
        if self._client is None:
            if not self.is_configured:
                raise ServiceUnavailableError(
                    code=ErrorCodes.DIARY_STORAGE_UNAVAILABLE,
                    message="Media storage is not configured",
                )
            self._client = BlobServiceClient.from_connection_string(self.connection_string)
        return self._client

    @staticmethod
    def diary_blob_path(user_id: str, entry_id: str, extension: str) -> str:
        return f"{DIARY_PREFIX}/{user_id}/{entry_id}/{uuid.uuid4()}.{extension}"

    def blob_url(self, blob_path: str) -> str:
        return f"https://{self.account_name}.blob.core.windows.net/{self.container_name}/{blob_path}"

    def blob_path_from_url(self, value: str) -> str:
        """Accept a blob path or a full (possibly signed) URL; return the path."""
        if not value.startswith("https://"):
            return value
        _, sep, tail = value.partition(f"/{self.container_name}/")
        return tail.split("?", 1)[0] if sep else value

    def signed_url(self, blob_path: str) -> str:
        """Read-only SAS link; the plain URL when no account key is set."""
        if not self.account_name or not self.account_key:
            return self.blob_url(blob_path)

        token = generate_blob_sas(
            account_name=self.account_name,
            container_name=self.container_name,
            blob_name=blob_path,
            account_key=self.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(days=settings.DIARY_MEDIA_SAS_DAYS),
        )
        return f"{self.blob_url(blob_path)}?{token}"

    async def upload_diary_media(
        self,
        user_id: str,
        entry_id: str,
        file_content: bytes,
        content_type: str,
        extension: str,
    ) -> dict:
        """
        Store one attachment for a diary entry.

        Returns:
            blob_path, blob_url, sas_url, file_size_bytes and content_type
        """
        blob_path = self.diary_blob_path(user_id, entry_id, extension)
        blob_client = self.client.get_blob_client(container=self.container_name, blob=blob_path)

        try:
            await asyncio.to_thread(
                blob_client.upload_blob,
                file_content,
                overwrite=True,
                metadata={"user_id": user_id, "entry_id": entry_id},
                content_settings=ContentSettings(
                    content_type=content_type,
                    cache_control="private, max-age=86400",
                ),
            )
        except AzureError as e:
            logger.error("Diary media upload failed for entry %s: %s", entry_id, e)
            raise ServiceUnavailableError(
                code=ErrorCodes.DIARY_STORAGE_UNAVAILABLE,
                message="Could not store the media file",
            ) from e

        logger.info("Stored diary media %s (%d bytes)", blob_path, len(file_content))
        return {
            "blob_path": blob_path,
            "blob_url": self.blob_url(blob_path),
            "sas_url": self.signed_url(blob_path),
            "file_size_bytes": len(file_content),
            "content_type": content_type,
        }

    async def delete_blob(self, blob_path: str) -> bool:
        """
        Remove one blob. A blob that is already gone counts as removed;
        other storage failures are logged and reported as False so an entry
        delete is never blocked by storage.
        """
        blob_path = self.blob_path_from_url(blob_path)
        try:
            blob_client = self.client.get_blob_client(container=self.container_name, blob=blob_path)
            await asyncio.to_thread(blob_client.delete_blob)
            return True
        except ResourceNotFoundError:
            return True
        except (AzureError, ServiceUnavailableError) as e:
            logger.warning("Error deleting blob %s: %s", blob_path, e)
            return False


_storage_service: Optional[AzureStorageService] = None


def get_storage_service() -> AzureStorageService:
    global _storage_service

    if _storage_service is None:
        _storage_service = AzureStorageService()

    return _storage_service
