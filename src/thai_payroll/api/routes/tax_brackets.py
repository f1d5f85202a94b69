"""Tax bracket administration endpoints."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from thai_payroll.api.dependencies import CurrentUser, DbSession, SettingsDep
from thai_payroll.api.schemas import (
    Envelope,
    ErrorResponse,
    TaxBracketCreate,
    TaxBracketListResponse,
    TaxBracketResponse,
    TaxBracketUpdate,
)
from thai_payroll.calculators.progressive_tax import (
    NoBracketsConfiguredError,
    ProgressiveTaxCalculator,
)
from thai_payroll.calculators.types import round_to_satang
from thai_payroll.services.bracket_service import (
    BracketNotFoundError,
    BracketService,
    DuplicateBracketError,
    InvalidBracketRangeError,
)

router = APIRouter(prefix="/tax-brackets", tags=["tax-brackets"])


@router.get("", response_model=TaxBracketListResponse)
async def list_tax_brackets(
    db: DbSession,
    effective_year: int | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    sort_by: str = "bracket_order",
    sort_order: Annotated[str, Query(pattern="^(asc|desc)$")] = "asc",
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 20,
) -> TaxBracketListResponse:
    """List tax brackets with filters, sorting and pagination."""
    brackets, total = await BracketService(db).list_brackets(
        effective_year=effective_year,
        is_active=is_active,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        per_page=per_page,
    )
    return TaxBracketListResponse(
        items=[TaxBracketResponse.model_validate(b) for b in brackets],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/search",
    response_model=list[TaxBracketResponse],
    responses={404: {"model": ErrorResponse}},
)
async def search_tax_brackets(
    db: DbSession,
    order_id: Annotated[int, Query(ge=1)],
    effective_year: int | None = None,
    is_active: bool | None = None,
) -> list[TaxBracketResponse]:
    """Find brackets by bracket order."""
    brackets = await BracketService(db).search_by_order(order_id, effective_year, is_active)
    if not brackets:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No tax brackets found with order {order_id}",
        )
    return [TaxBracketResponse.model_validate(b) for b in brackets]


@router.get(
    "/calculate/{income}",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def calculate_tax_for_income(
    db: DbSession,
    settings: SettingsDep,
    income: Annotated[Decimal, Path(ge=0)],
    year: int | None = None,
) -> Envelope:
    """Tax on an annual taxable income with the bracket breakdown."""
    tax_year = year or settings.tax_year
    try:
        brackets = await BracketService(db).active_brackets(tax_year)
    except NoBracketsConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    calculator = ProgressiveTaxCalculator(brackets, tax_year)
    breakdown = calculator.tax_breakdown(income)
    return Envelope(
        data={
            "income": round_to_satang(income),
            "tax_year": tax_year,
            "total_tax": round_to_satang(breakdown.annual_tax),
            "monthly_tax": calculator.calculate_progressive_income_tax(income),
            "effective_rate": round_to_satang(breakdown.effective_rate),
            "net_income": round_to_satang(income - breakdown.annual_tax),
            "breakdown": breakdown.to_dict()["brackets"],
        }
    )


@router.post(
    "",
    response_model=TaxBracketResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_tax_bracket(
    db: DbSession, user: CurrentUser, payload: TaxBracketCreate
) -> TaxBracketResponse:
    """Create a tax bracket."""
    try:
        bracket = await BracketService(db).create(payload.model_dump(), actor=user.user_id)
    except (DuplicateBracketError, InvalidBracketRangeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    await db.refresh(bracket)
    return TaxBracketResponse.model_validate(bracket)


@router.get(
    "/{bracket_id}",
    response_model=TaxBracketResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_tax_bracket(
    db: DbSession, bracket_id: Annotated[int, Path()]
) -> TaxBracketResponse:
    """Get a specific tax bracket by ID."""
    try:
        bracket = await BracketService(db).get(bracket_id)
    except BracketNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return TaxBracketResponse.model_validate(bracket)


@router.put(
    "/{bracket_id}",
    response_model=TaxBracketResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_tax_bracket(
    db: DbSession,
    user: CurrentUser,
    bracket_id: Annotated[int, Path()],
    payload: TaxBracketUpdate,
) -> TaxBracketResponse:
    """Update fields of a tax bracket."""
    try:
        bracket = await BracketService(db).update(
            bracket_id, payload.model_dump(exclude_unset=True), actor=user.user_id
        )
    except BracketNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (DuplicateBracketError, InvalidBracketRangeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    await db.refresh(bracket)
    return TaxBracketResponse.model_validate(bracket)


@router.delete(
    "/{bracket_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_tax_bracket(db: DbSession, bracket_id: Annotated[int, Path()]) -> None:
    """Delete a tax bracket."""
    try:
        await BracketService(db).delete(bracket_id)
    except BracketNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await db.commit()
