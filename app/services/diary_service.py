"""
Fishing Diary Service
=====================

CRUD for diary entries, catch statistics and media attachments.
"""

import logging
import mimetypes
from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import ErrorCodes, NotFoundError
from app.models.diary import DiaryFishCatch, DiaryMedia, FishingDiaryEntry, MediaType
from app.schemas.common import page_pagination
from app.schemas.diary import DiaryEntryCreate, DiaryEntryUpdate
from app.services.azure_storage import AzureStorageService
from app.utils.helpers import add_months, isoformat_or_none, start_of_day, utc_now
from app.utils.validators import validate_file_size, validate_media_type

logger = logging.getLogger(__name__)

MEDIA_KINDS = {
    "image": MediaType.PHOTO,
    "video": MediaType.VIDEO,
    "audio": MediaType.AUDIO,
}


def media_extension(filename: Optional[str], mime_type: str) -> str:
    """Extension from the upload's filename, falling back to the MIME type."""
    if filename and "." in filename:
        return filename.rsplit(".", 1)[1].lower()
    guessed = mimetypes.guess_extension(mime_type)
    if guessed:
        return guessed.lstrip(".")
    return mime_type.split("/", 1)[1]


def serialize_catch(fish: DiaryFishCatch) -> dict[str, Any]:
    return {
        "id": str(fish.catch_id),
        "species": fish.species,
        "weight": fish.weight,
        "length": fish.length,
        "quantity": fish.quantity,
        "timeOfCatch": isoformat_or_none(fish.time_of_catch),
        "depth": fish.depth,
        "method": fish.method,
        "baitUsed": fish.bait_used,
        "wasReleased": fish.was_released,
        "notes": fish.notes,
    }


def serialize_media(media: DiaryMedia) -> dict[str, Any]:
    return {
        "id": str(media.media_id),
        "fileName": media.file_name,
        "fileUrl": media.file_url,
        "fileSize": media.file_size,
        "mimeType": media.mime_type,
        "mediaType": media.media_type.value,
        "gpsLatitude": media.gps_latitude,
        "gpsLongitude": media.gps_longitude,
        "captureTime": isoformat_or_none(media.capture_time),
    }


def serialize_entry(entry: FishingDiaryEntry) -> dict[str, Any]:
    return {
        "id": str(entry.entry_id),
        "title": entry.title,
        "description": entry.description,
        "date": isoformat_or_none(entry.date),
        "locationName": entry.location_name,
        "latitude": entry.latitude,
        "longitude": entry.longitude,
        "weather": entry.weather,
        "temperature": entry.temperature,
        "windSpeed": entry.wind_speed,
        "windDirection": entry.wind_direction,
        "totalWeight": entry.total_weight,
        "totalCount": entry.total_count,
        "rodType": entry.rod_type,
        "reelType": entry.reel_type,
        "lineType": entry.line_type,
        "baitUsed": list(entry.bait_used or []),
        "lureColor": entry.lure_color,
        "tags": list(entry.tags or []),
        "isPrivate": entry.is_private,
        "rating": entry.rating,
        "fishCaught": [serialize_catch(f) for f in entry.fish_caught],
        "media": [serialize_media(m) for m in entry.media],
        "createdAt": isoformat_or_none(entry.created_at),
    }


class DiaryService:
    """Fishing diary operations scoped to the owning user."""

    def __init__(self, db: AsyncSession, storage: Optional[AzureStorageService] = None):
        self.db = db
        self.storage = storage

    async def _get_owned(self, user_id: uuid.UUID, entry_id: uuid.UUID) -> FishingDiaryEntry:
        entry = await self.db.get(FishingDiaryEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError(
                code=ErrorCodes.DIARY_NOT_FOUND,
                message="Diary entry not found",
            )
        return entry

    async def list_entries(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        result = await self.db.execute(
            select(FishingDiaryEntry)
            .where(FishingDiaryEntry.user_id == user_id)
            .order_by(FishingDiaryEntry.date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        entries = list(result.scalars().all())

        statistics = await self.get_statistics(user_id)
        total = statistics["totalEntries"]

        return {
            "entries": [serialize_entry(e) for e in entries],
            "statistics": statistics,
            "pagination": page_pagination(total, page, limit),
        }

    async def get_statistics(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> dict[str, Any]:
        owned = FishingDiaryEntry.user_id == user_id

        total_entries = (
            await self.db.execute(select(func.count(FishingDiaryEntry.entry_id)).where(owned))
        ).scalar_one()

        totals = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(DiaryFishCatch.quantity), 0),
                    func.coalesce(func.sum(DiaryFishCatch.weight), 0),
                )
                .join(FishingDiaryEntry, FishingDiaryEntry.entry_id == DiaryFishCatch.entry_id)
                .where(owned)
            )
        ).one()

        species_count = func.count(DiaryFishCatch.catch_id)
        species_rows = (
            await self.db.execute(
                select(DiaryFishCatch.species, species_count)
                .join(FishingDiaryEntry, FishingDiaryEntry.entry_id == DiaryFishCatch.entry_id)
                .where(owned)
                .group_by(DiaryFishCatch.species)
                .order_by(species_count.desc())
            )
        ).all()

        spot_count = func.count(FishingDiaryEntry.entry_id)
        best_spot = (
            await self.db.execute(
                select(FishingDiaryEntry.location_name)
                .where(owned, FishingDiaryEntry.location_name.is_not(None))
                .group_by(FishingDiaryEntry.location_name)
                .order_by(spot_count.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        since = start_of_day(add_months(now or utc_now(), -12))
        month = func.to_char(FishingDiaryEntry.date, "YYYY-MM")
        monthly_rows = (
            await self.db.execute(
                select(month.label("month"), func.count(FishingDiaryEntry.entry_id))
                .where(owned, FishingDiaryEntry.date >= since)
                .group_by(month)
                .order_by(month.desc())
                .limit(12)
            )
        ).all()

        return {
            "totalEntries": total_entries,
            "totalFish": int(totals[0] or 0),
            "totalWeight": float(totals[1] or 0),
            "favoriteSpecies": species_rows[0][0] if species_rows else None,
            "bestSpot": best_spot,
            # Oldest month first
            "monthlyStats": [
                {"month": m, "catches": count} for m, count in reversed(monthly_rows)
            ],
            "speciesDistribution": [
                {"species": species, "count": count} for species, count in species_rows
            ],
        }

    async def create_entry(self, user_id: uuid.UUID, data: DiaryEntryCreate) -> FishingDiaryEntry:
        fields = data.model_dump(exclude={"fish_caught"})
        entry = FishingDiaryEntry(
            user_id=user_id,
            **fields,
            fish_caught=[DiaryFishCatch(**fish.model_dump()) for fish in data.fish_caught],
            media=[],
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)

        logger.info("Diary entry %s created for user %s", entry.entry_id, user_id)
        return entry

    async def update_entry(
        self,
        user_id: uuid.UUID,
        entry_id: uuid.UUID,
        data: DiaryEntryUpdate,
    ) -> FishingDiaryEntry:
        entry = await self._get_owned(user_id, entry_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(entry, field, value)

        await self.db.flush()
        await self.db.refresh(entry)
        return entry

    async def delete_entry(self, user_id: uuid.UUID, entry_id: uuid.UUID) -> int:
        """Delete the entry and its media blobs. Returns the number of blobs removed."""
        entry = await self._get_owned(user_id, entry_id)

        removed = 0
        if self.storage is not None:
            for media in entry.media:
                if await self.storage.delete_blob(media.blob_path):
                    removed += 1

        await self.db.delete(entry)
        await self.db.flush()

        logger.info("Diary entry %s deleted (%d blobs removed)", entry_id, removed)
        return removed

    async def add_media(
        self,
        user_id: uuid.UUID,
        entry_id: uuid.UUID,
        file_name: Optional[str],
        content: bytes,
        mime_type: Optional[str],
        gps_latitude: Optional[float] = None,
        gps_longitude: Optional[float] = None,
        capture_time: Optional[datetime] = None,
    ) -> DiaryMedia:
        kind = validate_media_type(mime_type)
        validate_file_size(len(content), settings.MAX_DIARY_MEDIA_SIZE_MB)

        await self._get_owned(user_id, entry_id)

        uploaded = await self.storage.upload_diary_media(
            str(user_id),
            str(entry_id),
            content,
            content_type=mime_type,
            extension=media_extension(file_name, mime_type),
        )

        media = DiaryMedia(
            entry_id=entry_id,
            file_name=file_name or uploaded["blob_path"].rsplit("/", 1)[1],
            blob_path=uploaded["blob_path"],
            file_url=uploaded["sas_url"],
            file_size=uploaded["file_size_bytes"],
            mime_type=mime_type,
            media_type=MEDIA_KINDS[kind],
            gps_latitude=gps_latitude,
            gps_longitude=gps_longitude,
            capture_time=capture_time,
        )
        self.db.add(media)
        await self.db.flush()
        await self.db.refresh(media)

        logger.info("Media %s attached to diary entry %s", media.media_id, entry_id)
        return media
