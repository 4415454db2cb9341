"""
Fishing Diary API Endpoints
===========================

Personal fishing diary with catch statistics and media uploads.
"""

from datetime import datetime
from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession
from app.schemas.common import ErrorResponse
from app.schemas.diary import DiaryEntryCreate, DiaryEntryUpdate, DiaryResponse
from app.services.azure_storage import AzureStorageService, get_storage_service
from app.services.diary_service import DiaryService, serialize_entry, serialize_media

router = APIRouter()

StorageDep = Annotated[AzureStorageService, Depends(get_storage_service)]

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Entry not found"}}


@router.get(
    "",
    response_model=DiaryResponse,
    dependencies=[Depends(create_rate_limit_dependency("read"))],
)
async def get_diary(
    current_user: CurrentUser,
    db: DBSession,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
):
    """Diary entries, newest first, with overall catch statistics."""
    data = await DiaryService(db).list_entries(current_user.user_id, page=page, limit=limit)
    return DiaryResponse(success=True, data=data)


@router.post(
    "",
    response_model=DiaryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(create_rate_limit_dependency("create"))],
)
async def create_diary_entry(
    body: DiaryEntryCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    entry = await DiaryService(db).create_entry(current_user.user_id, body)
    return DiaryResponse(
        success=True,
        data={"entry": serialize_entry(entry)},
        message="Diary entry created",
    )


@router.put("/{entry_id}", response_model=DiaryResponse, responses=_NOT_FOUND)
async def update_diary_entry(
    entry_id: uuid.UUID,
    body: DiaryEntryUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    entry = await DiaryService(db).update_entry(current_user.user_id, entry_id, body)
    return DiaryResponse(
        success=True,
        data={"entry": serialize_entry(entry)},
        message="Diary entry updated",
    )


@router.delete("/{entry_id}", response_model=DiaryResponse, responses=_NOT_FOUND)
async def delete_diary_entry(
    entry_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    storage: StorageDep,
):
    """Delete an entry together with its uploaded media."""
    removed = await DiaryService(db, storage).delete_entry(current_user.user_id, entry_id)
    return DiaryResponse(
        success=True,
        data={"entryId": str(entry_id), "mediaRemoved": removed},
        message="Diary entry deleted",
    )


@router.post(
    "/{entry_id}/media",
    response_model=DiaryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(create_rate_limit_dependency("create"))],
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported type or file too large"},
        **_NOT_FOUND,
    },
)
async def upload_diary_media(
    entry_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    storage: StorageDep,
    file: UploadFile = File(...),
    gps_latitude: Optional[float] = Form(default=None),
    gps_longitude: Optional[float] = Form(default=None),
    capture_time: Optional[datetime] = Form(default=None),
):
    """Attach a photo, video or audio clip to a diary entry."""
    content = await file.read()
    media = await DiaryService(db, storage).add_media(
        current_user.user_id,
        entry_id,
        file_name=file.filename,
        content=content,
        mime_type=file.content_type,
        gps_latitude=gps_latitude,
        gps_longitude=gps_longitude,
        capture_time=capture_time,
    )
    return DiaryResponse(
        success=True,
        data={"media": serialize_media(media)},
        message="Media uploaded",
    )
