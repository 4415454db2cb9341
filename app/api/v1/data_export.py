"""
Data Export API Endpoints
=========================

File exports, export history and scheduled reports.
"""

from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.errors import ValidationError
from app.core.rate_limit import create_rate_limit_dependency
from app.dependencies import CurrentUser, DBSession
from app.models.report import ExportFormat, ExportStatus
from app.schemas.common import ErrorResponse
from app.schemas.export import (
    ExportHistoryCreate,
    ExportRequest,
    ExportResponse,
    ScheduledReportCreate,
    ScheduledReportUpdate,
)
from app.services.export_service import ExportService, serialize_export
from app.services.report_service import ReportService, serialize_report
from app.utils.helpers import parse_date

router = APIRouter()

_REPORT_ERRORS = {404: {"model": ErrorResponse, "description": "Report not found"}}


@router.post(
    "/export",
    dependencies=[Depends(create_rate_limit_dependency("export"))],
    responses={
        200: {"content": {"text/csv": {}, "application/json": {}}},
        400: {"model": ErrorResponse, "description": "Invalid export parameters"},
        503: {"model": ErrorResponse, "description": "Export failed"},
    },
)
async def export_data(
    body: ExportRequest,
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Export the caller's payment data.

    Returns the file itself; the record count and size are mirrored in the
    ``X-Export-Records`` and ``X-Export-Size`` headers.
    """
    export = await ExportService(db).generate(
        current_user.user_id,
        body.format,
        body.data_type,
        body.date_range.start,
        body.date_range.end,
        group_by=body.group_by,
        include_details=body.include_details,
        filters=body.filters,
        selected_ids=body.selected_transaction_ids if body.export_scope == "selected" else None,
    )
    return Response(
        content=export.content,
        media_type=export.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Export-Records": str(export.record_count),
            "X-Export-Size": str(export.size),
        },
    )


@router.get(
    "/history",
    response_model=ExportResponse,
    dependencies=[Depends(create_rate_limit_dependency("read"))],
)
async def get_export_history(
    current_user: CurrentUser,
    db: DBSession,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    export_status: Optional[ExportStatus] = Query(None, alias="status"),
    format: Optional[ExportFormat] = None,
):
    """Past exports, newest first. Stale completed exports are expired on read."""
    data = await ExportService(db).get_history(
        current_user.user_id,
        limit=limit,
        offset=offset,
        status=export_status,
        fmt=format,
    )
    return ExportResponse(success=True, data=data)


@router.post(
    "/history",
    response_model=ExportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_export_history(
    body: ExportHistoryCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    entry = await ExportService(db).add_history(current_user.user_id, body)
    return ExportResponse(
        success=True,
        data={"export": serialize_export(entry)},
        message="Export recorded",
    )


@router.delete(
    "/history",
    response_model=ExportResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid older_than date"}},
)
async def delete_export_history(
    current_user: CurrentUser,
    db: DBSession,
    all: bool = False,
    older_than: Optional[str] = None,
):
    """Delete everything, entries older than a date, or by default expired and failed ones."""
    cutoff = None
    if older_than:
        try:
            cutoff = parse_date(older_than)
        except ValueError:
            raise ValidationError(message=f"Invalid date: {older_than}", field="older_than")

    data = await ExportService(db).delete_history(
        current_user.user_id,
        delete_all=all,
        older_than=cutoff,
    )
    return ExportResponse(
        success=True,
        data=data,
        message=f"Deleted {data['deletedCount']} export(s)",
    )


@router.get("/scheduled-reports", response_model=ExportResponse)
async def list_scheduled_reports(
    current_user: CurrentUser,
    db: DBSession,
):
    reports = await ReportService(db).list_reports(current_user.user_id)
    return ExportResponse(
        success=True,
        data={"reports": [serialize_report(r) for r in reports], "total": len(reports)},
    )


@router.post(
    "/scheduled-reports",
    response_model=ExportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_scheduled_report(
    body: ScheduledReportCreate,
    current_user: CurrentUser,
    db: DBSession,
):
    report = await ReportService(db).create_report(current_user.user_id, body)
    return ExportResponse(
        success=True,
        data={"report": serialize_report(report)},
        message="Scheduled report created",
    )


@router.put(
    "/scheduled-reports/{report_id}",
    response_model=ExportResponse,
    responses=_REPORT_ERRORS,
)
async def update_scheduled_report(
    report_id: uuid.UUID,
    body: ScheduledReportUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    report = await ReportService(db).update_report(current_user.user_id, report_id, body)
    return ExportResponse(
        success=True,
        data={"report": serialize_report(report)},
        message="Scheduled report updated",
    )


@router.delete(
    "/scheduled-reports/{report_id}",
    response_model=ExportResponse,
    responses=_REPORT_ERRORS,
)
async def delete_scheduled_report(
    report_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
):
    await ReportService(db).delete_report(current_user.user_id, report_id)
    return ExportResponse(
        success=True,
        data={"reportId": str(report_id)},
        message="Scheduled report deleted",
    )
