"""Tax setting administration endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from thai_payroll.api.dependencies import CurrentUser, DbSession, SettingsDep
from thai_payroll.api.schemas import (
    TAX_SETTING_TYPE_PATTERN,
    Envelope,
    ErrorResponse,
    TaxSettingBulkUpdate,
    TaxSettingCreate,
    TaxSettingResponse,
    TaxSettingUpdate,
)
from thai_payroll.services.settings_service import (
    DuplicateSettingError,
    InvalidSettingError,
    SettingNotFoundError,
    TaxSettingService,
)

router = APIRouter(prefix="/tax-settings", tags=["tax-settings"])


@router.get("", response_model=list[TaxSettingResponse])
async def list_tax_settings(
    db: DbSession,
    year: int | None = None,
    type: Annotated[str | None, Query(pattern=TAX_SETTING_TYPE_PATTERN)] = None,
    active_only: bool = True,
) -> list[TaxSettingResponse]:
    """List tax settings ordered by type and key."""
    settings = await TaxSettingService(db).list_settings(
        year=year, setting_type=type, selected_only=active_only
    )
    return [TaxSettingResponse.model_validate(s) for s in settings]


@router.get("/by-year/{year}", response_model=Envelope)
async def get_tax_settings_by_year(db: DbSession, year: Annotated[int, Path()]) -> Envelope:
    """Selected values of a year grouped by setting type."""
    grouped = await TaxSettingService(db).grouped_for_year(year)
    return Envelope(
        message="Tax settings retrieved successfully", data={"year": year, "settings": grouped}
    )


@router.get(
    "/value/{key}",
    response_model=Envelope,
    responses={404: {"model": ErrorResponse}},
)
async def get_tax_setting_value(
    db: DbSession,
    settings: SettingsDep,
    key: Annotated[str, Path()],
    year: int | None = None,
) -> Envelope:
    """Selected value of one setting key."""
    tax_year = year or settings.tax_year
    value = await TaxSettingService(db).get_value(key, tax_year)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Tax setting not found"
        )
    return Envelope(data={"key": key, "value": value, "year": tax_year})


@router.post(
    "/bulk-update",
    response_model=Envelope,
    responses={422: {"model": ErrorResponse}},
)
async def bulk_update_tax_settings(
    db: DbSession, user: CurrentUser, payload: TaxSettingBulkUpdate
) -> Envelope:
    """Insert or overwrite the given settings of a year."""
    try:
        count = await TaxSettingService(db).bulk_update(
            payload.effective_year,
            [s.model_dump() for s in payload.settings],
            actor=user.user_id,
        )
    except InvalidSettingError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    return Envelope(
        message="Tax settings updated successfully",
        data={"updated_count": count, "effective_year": payload.effective_year},
    )


@router.post(
    "",
    response_model=TaxSettingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_tax_setting(
    db: DbSession, user: CurrentUser, payload: TaxSettingCreate
) -> TaxSettingResponse:
    """Create a tax setting."""
    try:
        setting = await TaxSettingService(db).create(payload.model_dump(), actor=user.user_id)
    except (DuplicateSettingError, InvalidSettingError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    await db.refresh(setting)
    return TaxSettingResponse.model_validate(setting)


@router.get(
    "/{setting_id}",
    response_model=TaxSettingResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_tax_setting(
    db: DbSession, setting_id: Annotated[int, Path()]
) -> TaxSettingResponse:
    try:
        setting = await TaxSettingService(db).get(setting_id)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return TaxSettingResponse.model_validate(setting)


@router.put(
    "/{setting_id}",
    response_model=TaxSettingResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_tax_setting(
    db: DbSession,
    user: CurrentUser,
    setting_id: Annotated[int, Path()],
    payload: TaxSettingUpdate,
) -> TaxSettingResponse:
    """Update value, type, description or selection of a tax setting."""
    try:
        setting = await TaxSettingService(db).update(
            setting_id, payload.model_dump(exclude_unset=True), actor=user.user_id
        )
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidSettingError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    await db.refresh(setting)
    return TaxSettingResponse.model_validate(setting)


@router.delete(
    "/{setting_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def delete_tax_setting(db: DbSession, setting_id: Annotated[int, Path()]) -> None:
    """Delete a tax setting."""
    try:
        await TaxSettingService(db).delete(setting_id)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidSettingError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
