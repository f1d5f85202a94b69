"""Inter-subsidiary advance endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from thai_payroll.api.dependencies import CurrentUser, DbSession
from thai_payroll.api.schemas import (
    AutoCreateAdvancesRequest,
    BulkSettleRequest,
    Envelope,
    ErrorResponse,
)
from thai_payroll.calculators.profile import month_bounds
from thai_payroll.services.advance_service import (
    AdvanceService,
    NoAdvancesToSettleError,
    advance_to_dict,
)

router = APIRouter(prefix="/advances", tags=["advances"])


@router.get("", response_model=Envelope)
async def list_advances(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status", pattern="^(pending|settled)$")] = None,
    from_subsidiary: str | None = None,
    to_subsidiary: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> Envelope:
    """List advances, optionally only pending or settled ones."""
    advances = await AdvanceService(db).list_advances(
        status=status_filter,
        from_subsidiary=from_subsidiary,
        to_subsidiary=to_subsidiary,
        date_from=date_from,
        date_to=date_to,
    )
    today = date.today()
    return Envelope(
        data={
            "items": [advance_to_dict(a, today) for a in advances],
            "total": len(advances),
            "pending_count": sum(1 for a in advances if not a.is_settled),
            "settled_count": sum(1 for a in advances if a.is_settled),
        }
    )


@router.post("/auto-create", response_model=Envelope)
async def auto_create_advances(
    db: DbSession, user: CurrentUser, payload: AutoCreateAdvancesRequest
) -> Envelope:
    """Create the missing advances for the payrolls of a pay date."""
    data = await AdvanceService(db).auto_create_advances(
        payload.payroll_period_date, dry_run=payload.dry_run, actor=user.user_id
    )
    if not payload.dry_run:
        await db.commit()
    message = (
        "Dry run completed - advances would be created"
        if payload.dry_run
        else "Advances created successfully"
    )
    return Envelope(message=message, data=data)


@router.post(
    "/bulk-settle",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def bulk_settle_advances(
    db: DbSession, user: CurrentUser, payload: BulkSettleRequest
) -> Envelope:
    """Settle the pending advances among the given ids."""
    try:
        settled = await AdvanceService(db).bulk_settle(
            payload.advance_ids, payload.settlement_date, payload.notes, actor=user.user_id
        )
    except NoAdvancesToSettleError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await db.commit()
    return Envelope(
        message="Advances settled successfully",
        data={
            "settled_count": len(settled),
            "settled_ids": [a.id for a in settled],
            "settlement_date": payload.settlement_date.isoformat(),
        },
    )


@router.get("/summary", response_model=Envelope)
async def advance_summary(
    db: DbSession,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Envelope:
    """Totals by subsidiary and grant with aging of pending advances.

    Defaults to the current month.
    """
    current_start, current_end = month_bounds(date.today())
    period_start = start_date or current_start
    period_end = end_date or current_end
    if period_end < period_start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must be on or after start_date",
        )
    return Envelope(data=await AdvanceService(db).summary(period_start, period_end))
