"""Benefit setting administration endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from thai_payroll.api.dependencies import CurrentUser, DbSession
from thai_payroll.api.schemas import (
    BenefitSettingCreate,
    BenefitSettingResponse,
    BenefitSettingUpdate,
    ErrorResponse,
)
from thai_payroll.services.settings_service import (
    BenefitSettingService,
    DuplicateSettingError,
    SettingNotFoundError,
)

router = APIRouter(prefix="/benefit-settings", tags=["benefit-settings"])


@router.get("", response_model=list[BenefitSettingResponse])
async def list_benefit_settings(
    db: DbSession, is_active: bool | None = None
) -> list[BenefitSettingResponse]:
    settings = await BenefitSettingService(db).list_settings(is_active=is_active)
    return [BenefitSettingResponse.model_validate(s) for s in settings]


@router.post(
    "",
    response_model=BenefitSettingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_benefit_setting(
    db: DbSession, user: CurrentUser, payload: BenefitSettingCreate
) -> BenefitSettingResponse:
    """Create a benefit setting, e.g. ``pvd_percentage``."""
    try:
        setting = await BenefitSettingService(db).create(
            payload.model_dump(), actor=user.user_id
        )
    except DuplicateSettingError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    await db.commit()
    await db.refresh(setting)
    return BenefitSettingResponse.model_validate(setting)


@router.get(
    "/{setting_id}",
    response_model=BenefitSettingResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_benefit_setting(
    db: DbSession, setting_id: Annotated[int, Path()]
) -> BenefitSettingResponse:
    try:
        setting = await BenefitSettingService(db).get(setting_id)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return BenefitSettingResponse.model_validate(setting)


@router.put(
    "/{setting_id}",
    response_model=BenefitSettingResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_benefit_setting(
    db: DbSession,
    user: CurrentUser,
    setting_id: Annotated[int, Path()],
    payload: BenefitSettingUpdate,
) -> BenefitSettingResponse:
    try:
        setting = await BenefitSettingService(db).update(
            setting_id, payload.model_dump(exclude_unset=True), actor=user.user_id
        )
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await db.commit()
    await db.refresh(setting)
    return BenefitSettingResponse.model_validate(setting)


@router.delete(
    "/{setting_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_benefit_setting(db: DbSession, setting_id: Annotated[int, Path()]) -> None:
    try:
        await BenefitSettingService(db).delete(setting_id)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await db.commit()
