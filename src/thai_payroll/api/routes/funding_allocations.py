"""Funding allocation endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from thai_payroll.api.dependencies import CurrentUser, DbSession
from thai_payroll.api.schemas import (
    AllocationCreateRequest,
    AllocationIn,
    AllocationReplaceRequest,
    Envelope,
    ErrorResponse,
)
from thai_payroll.services.funding_allocation_service import (
    AllocationConflictError,
    AllocationEffortError,
    AllocationInput,
    AllocationTargetNotFoundError,
    FundingAllocationService,
    GrantCapacityError,
    allocation_to_dict,
)

router = APIRouter(prefix="/funding-allocations", tags=["funding-allocations"])

ERROR_RESPONSES = {404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}


def _inputs(allocations: list[AllocationIn]) -> list[AllocationInput]:
    return [AllocationInput(**a.model_dump()) for a in allocations]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, AllocationTargetNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, AllocationEffortError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "current_total": str(exc.total)},
        )
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.post(
    "",
    response_model=Envelope,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_allocations(
    db: DbSession, user: CurrentUser, payload: AllocationCreateRequest
) -> Envelope:
    """Create the allocation set of an employment; efforts must total 100%."""
    try:
        created = await FundingAllocationService(db).allocate_employee(
            payload.employee_id,
            payload.employment_id,
            _inputs(payload.allocations),
            payload.start_date,
            payload.end_date,
            actor=user.user_id,
        )
    except (
        AllocationTargetNotFoundError,
        AllocationEffortError,
        AllocationConflictError,
        GrantCapacityError,
    ) as e:
        raise _http_error(e) from e
    await db.commit()
    return Envelope(
        message="Employee funding allocations created successfully",
        data={
            "total_created": len(created),
            "allocations": [allocation_to_dict(a) for a in created],
        },
    )


@router.put(
    "/employment/{employment_id}",
    response_model=Envelope,
    responses=ERROR_RESPONSES,
)
async def replace_allocations(
    db: DbSession,
    user: CurrentUser,
    employment_id: Annotated[int, Path()],
    payload: AllocationReplaceRequest,
) -> Envelope:
    """Replace the active allocations of an employment."""
    try:
        created = await FundingAllocationService(db).update_allocations(
            employment_id,
            _inputs(payload.allocations),
            payload.start_date,
            payload.end_date,
            actor=user.user_id,
        )
    except (AllocationTargetNotFoundError, AllocationEffortError, GrantCapacityError) as e:
        raise _http_error(e) from e
    await db.commit()
    return Envelope(
        message="Employee funding allocations replaced successfully",
        data={
            "total_created": len(created),
            "allocations": [allocation_to_dict(a) for a in created],
        },
    )


@router.get(
    "/employee/{employee_id}/summary",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def allocation_summary(
    db: DbSession,
    employee_id: Annotated[int, Path()],
    as_of: date | None = None,
) -> Envelope:
    """Active allocations of an employee and their total effort."""
    try:
        data = await FundingAllocationService(db).get_allocation_summary(employee_id, as_of)
    except AllocationTargetNotFoundError as e:
        raise _http_error(e) from e
    return Envelope(data=data)


@router.get(
    "/grants/{grant_id}/capacity",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def grant_capacity(
    db: DbSession,
    grant_id: Annotated[int, Path()],
    as_of: date | None = None,
) -> Envelope:
    """Used and free position slots of a grant."""
    try:
        data = await FundingAllocationService(db).calculate_available_slots(grant_id, as_of)
    except AllocationTargetNotFoundError as e:
        raise _http_error(e) from e
    return Envelope(data=data)
