"""Stored tax and benefit settings and the rule objects built from them."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thai_payroll.calculators.rules import (
    BenefitRules,
    TaxYearRules,
    benefit_rules_with_overrides,
    rules_with_overrides,
)
from thai_payroll.models import BenefitSetting, TaxSetting

logger = logging.getLogger(__name__)


class SettingNotFoundError(Exception):
    """Raised when a setting id does not exist."""

    def __init__(self, kind: str, setting_id: int):
        self.setting_id = setting_id
        super().__init__(f"{kind} setting {setting_id} not found")


class DuplicateSettingError(Exception):
    """Raised when a setting key is already stored."""

    def __init__(self, setting_key: str, effective_year: int | None = None):
        self.setting_key = setting_key
        self.effective_year = effective_year
        where = f" for year {effective_year}" if effective_year is not None else ""
        super().__init__(f"Setting {setting_key} already exists{where}")


class InvalidSettingError(Exception):
    """Raised when stored values would produce inconsistent rules."""


class TaxSettingService:
    """Per-year tax values overriding the statutory defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_settings(
        self,
        year: int | None = None,
        setting_type: str | None = None,
        selected_only: bool = True,
    ) -> list[TaxSetting]:
        query = select(TaxSetting)
        if year is not None:
            query = query.where(TaxSetting.effective_year == year)
        if setting_type is not None:
            query = query.where(TaxSetting.setting_type == setting_type)
        if selected_only:
            query = query.where(TaxSetting.is_selected.is_(True))
        result = await self.session.execute(
            query.order_by(TaxSetting.setting_type, TaxSetting.setting_key)
        )
        return list(result.scalars().all())

    async def get(self, setting_id: int) -> TaxSetting:
        setting = await self.session.get(TaxSetting, setting_id)
        if setting is None:
            raise SettingNotFoundError("Tax", setting_id)
        return setting

    async def values_for_year(self, year: int) -> dict[str, Decimal]:
        """Selected values of a year keyed by setting key."""
        return {
            s.setting_key: Decimal(s.setting_value)
            for s in await self.list_settings(year=year)
        }

    async def grouped_for_year(self, year: int) -> dict[str, dict[str, Decimal]]:
        """Selected values of a year grouped by setting type."""
        grouped: dict[str, dict[str, Decimal]] = {}
        for setting in await self.list_settings(year=year):
            grouped.setdefault(setting.setting_type, {})[setting.setting_key] = Decimal(
                setting.setting_value
            )
        return grouped

    async def get_value(self, setting_key: str, year: int) -> Decimal | None:
        return (await self.values_for_year(year)).get(setting_key)

    async def rules_for_year(self, year: int) -> TaxYearRules:
        """Year rules with the selected stored values applied."""
        return rules_with_overrides(year, await self.values_for_year(year))

    async def create(self, data: dict[str, Any], actor: str | None = None) -> TaxSetting:
        key, year = data["setting_key"], data["effective_year"]
        if await self._find(key, year) is not None:
            raise DuplicateSettingError(key, year)
        if data.get("is_selected", True):
            await self._check_consistent(year, {key: data["setting_value"]})

        setting = TaxSetting(**data, created_by=actor, updated_by=actor)
        self.session.add(setting)
        await self.session.flush()
        logger.info(
            "Created tax setting",
            extra={"setting_key": key, "effective_year": year},
        )
        return setting

    async def update(
        self, setting_id: int, data: dict[str, Any], actor: str | None = None
    ) -> TaxSetting:
        setting = await self.get(setting_id)
        if data.get("is_selected", setting.is_selected):
            await self._check_consistent(
                setting.effective_year,
                {setting.setting_key: data.get("setting_value", setting.setting_value)},
            )
        elif setting.is_selected:
            await self._check_consistent(
                setting.effective_year, {}, removed=setting.setting_key
            )
        for key, value in data.items():
            setattr(setting, key, value)
        setting.updated_by = actor
        await self.session.flush()
        logger.info(
            "Updated tax setting",
            extra={"setting_key": setting.setting_key, "is_selected": setting.is_selected},
        )
        return setting

    async def delete(self, setting_id: int) -> None:
        setting = await self.get(setting_id)
        if setting.is_selected:
            await self._check_consistent(
                setting.effective_year, {}, removed=setting.setting_key
            )
        await self.session.delete(setting)
        await self.session.flush()
        logger.info("Deleted tax setting", extra={"setting_id": setting_id})

    async def bulk_update(
        self, year: int, settings: Iterable[dict[str, Any]], actor: str | None = None
    ) -> int:
        """Insert or overwrite settings of a year; every row ends up selected.

        Returns the number of settings written.
        """
        settings = list(settings)
        await self._check_consistent(
            year, {s["setting_key"]: s["setting_value"] for s in settings}
        )

        for data in settings:
            setting = await self._find(data["setting_key"], year)
            if setting is None:
                setting = TaxSetting(
                    setting_key=data["setting_key"], effective_year=year, created_by=actor
                )
                self.session.add(setting)
            setting.setting_value = data["setting_value"]
            setting.setting_type = data["setting_type"]
            setting.description = data.get("description")
            setting.is_selected = True
            setting.updated_by = actor
        await self.session.flush()
        logger.info("Bulk updated tax settings", extra={"year": year, "count": len(settings)})
        return len(settings)

    async def _find(self, setting_key: str, year: int) -> TaxSetting | None:
        return await self.session.scalar(
            select(TaxSetting).where(
                TaxSetting.setting_key == setting_key, TaxSetting.effective_year == year
            )
        )

    async def _check_consistent(
        self, year: int, changes: dict[str, Any], removed: str | None = None
    ) -> None:
        values = await self.values_for_year(year)
        values.update({k: Decimal(v) for k, v in changes.items()})
        values.pop(removed, None)
        try:
            rules_with_overrides(year, values)
        except ValueError as e:
            raise InvalidSettingError(str(e)) from e


class BenefitSettingService:
    """Organisation benefit policy values."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_settings(self, is_active: bool | None = None) -> list[BenefitSetting]:
        query = select(BenefitSetting)
        if is_active is not None:
            query = query.where(BenefitSetting.is_active.is_(is_active))
        result = await self.session.execute(query.order_by(BenefitSetting.setting_key))
        return list(result.scalars().all())

    async def get(self, setting_id: int) -> BenefitSetting:
        setting = await self.session.get(BenefitSetting, setting_id)
        if setting is None:
            raise SettingNotFoundError("Benefit", setting_id)
        return setting

    async def active_values(self, as_of: date) -> dict[str, Decimal]:
        return {
            s.setting_key: Decimal(s.setting_value)
            for s in await self.list_settings(is_active=True)
            if s.is_effective_on(as_of)
        }

    async def benefit_rules(self, as_of: date) -> BenefitRules:
        """Benefit policy in force on a date."""
        return benefit_rules_with_overrides(await self.active_values(as_of))

    async def create(self, data: dict[str, Any], actor: str | None = None) -> BenefitSetting:
        existing = await self.session.scalar(
            select(BenefitSetting.id).where(BenefitSetting.setting_key == data["setting_key"])
        )
        if existing is not None:
            raise DuplicateSettingError(data["setting_key"])
        setting = BenefitSetting(**data, created_by=actor, updated_by=actor)
        self.session.add(setting)
        await self.session.flush()
        logger.info("Created benefit setting", extra={"setting_key": setting.setting_key})
        return setting

    async def update(
        self, setting_id: int, data: dict[str, Any], actor: str | None = None
    ) -> BenefitSetting:
        setting = await self.get(setting_id)
        for key, value in data.items():
            setattr(setting, key, value)
        setting.updated_by = actor
        await self.session.flush()
        return setting

    async def delete(self, setting_id: int) -> None:
        setting = await self.get(setting_id)
        await self.session.delete(setting)
        await self.session.flush()
        logger.info("Deleted benefit setting", extra={"setting_id": setting_id})
