"""Bulk payroll endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, HTTPException, Path, status
from fastapi.responses import Response

from thai_payroll.api.dependencies import (
    SALARY_EDIT_PERMISSION,
    ActingUser,
    CurrentUser,
    DbSession,
    SessionFactory,
    SettingsDep,
)
from thai_payroll.api.schemas import BulkCreateRequest, BulkPreviewRequest, Envelope, ErrorResponse
from thai_payroll.calculators.progressive_tax import NoBracketsConfiguredError
from thai_payroll.models import BulkPayrollBatch
from thai_payroll.services.bulk_payroll_service import (
    BatchNotFoundError,
    BulkFilters,
    BulkPayrollService,
    NoBatchErrorsError,
    NoMatchingEmploymentsError,
    run_batch_in_background,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payrolls/bulk", tags=["bulk-payroll"])


def _filters(payload: BulkPreviewRequest | BulkCreateRequest) -> BulkFilters:
    return BulkFilters.from_dict(payload.filters.model_dump() if payload.filters else None)


async def _authorized_batch(
    service: BulkPayrollService, batch_id: int, user: ActingUser
) -> BulkPayrollBatch:
    try:
        batch = await service.get_batch(batch_id)
    except BatchNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    # Only the creator or salary editors may see a batch
    is_creator = user.user_id is not None and batch.created_by == user.user_id
    if not is_creator and not user.can(SALARY_EDIT_PERMISSION):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
    return batch


@router.post(
    "/preview",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def preview_bulk_payroll(db: DbSession, payload: BulkPreviewRequest) -> Envelope:
    """Dry-run payroll for every selected employment; nothing is stored."""
    try:
        data = await BulkPayrollService(db).preview(
            payload.pay_period, _filters(payload), detailed=payload.detailed
        )
    except NoBracketsConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return Envelope(data=data)


@router.post(
    "/create",
    response_model=Envelope,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_bulk_payroll(
    db: DbSession,
    session_factory: SessionFactory,
    settings: SettingsDep,
    user: CurrentUser,
    payload: BulkCreateRequest,
    background_tasks: BackgroundTasks,
) -> Envelope:
    """Create a pending batch and schedule its run."""
    try:
        batch = await BulkPayrollService(db).create_batch(
            payload.pay_period, _filters(payload), created_by=user.user_id
        )
    except NoMatchingEmploymentsError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()

    background_tasks.add_task(
        run_batch_in_background, batch.id, session_factory, settings.bulk_progress_interval
    )
    logger.info(
        "Scheduled bulk payroll batch",
        extra={"batch_id": batch.id, "pay_period": batch.pay_period, "created_by": user.user_id},
    )
    return Envelope(
        message="Bulk payroll batch created successfully",
        data={
            "batch_id": batch.id,
            "pay_period": batch.pay_period,
            "total_employees": batch.total_employees,
            "status": batch.status,
        },
    )


@router.get(
    "/status/{batch_id}",
    response_model=Envelope,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def bulk_payroll_status(
    db: DbSession, user: CurrentUser, batch_id: Annotated[int, Path()]
) -> Envelope:
    """Progress snapshot for polling."""
    batch = await _authorized_batch(BulkPayrollService(db), batch_id, user)
    return Envelope(data=BulkPayrollService.status_snapshot(batch))


@router.get(
    "/errors/{batch_id}",
    responses={
        200: {"content": {"text/csv": {}}},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def download_bulk_payroll_errors(
    db: DbSession, user: CurrentUser, batch_id: Annotated[int, Path()]
) -> Response:
    """Batch errors as a CSV download."""
    batch = await _authorized_batch(BulkPayrollService(db), batch_id, user)
    try:
        content = BulkPayrollService.errors_csv(batch)
    except NoBatchErrorsError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    filename = f"bulk_payroll_errors_{batch.id}_{batch.pay_period}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
