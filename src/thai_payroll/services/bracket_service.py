"""Tax bracket persistence and calculator construction."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from thai_payroll.calculators.progressive_tax import NoBracketsConfiguredError
from thai_payroll.calculators.rules import official_brackets
from thai_payroll.calculators.tax_service import PayrollTaxService
from thai_payroll.models import TaxBracket
from thai_payroll.services.settings_service import TaxSettingService

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"bracket_order", "min_income", "max_income", "tax_rate", "effective_year"}


class DuplicateBracketError(Exception):
    """Raised when a bracket order is already used in a year."""

    def __init__(self, effective_year: int, bracket_order: int):
        self.effective_year = effective_year
        self.bracket_order = bracket_order
        super().__init__(
            f"Bracket order {bracket_order} already exists for year {effective_year}"
        )


class BracketNotFoundError(Exception):
    """Raised when a bracket id does not exist."""

    def __init__(self, bracket_id: int):
        self.bracket_id = bracket_id
        super().__init__(f"Tax bracket {bracket_id} not found")


class InvalidBracketRangeError(Exception):
    """Raised when a bracket's maximum is not above its minimum."""

    def __init__(self, min_income: Decimal, max_income: Decimal):
        self.min_income = min_income
        self.max_income = max_income
        super().__init__(
            f"max_income ({max_income}) must be greater than min_income ({min_income})"
        )


class BracketService:
    """Loads and maintains the per-year tax bracket table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_brackets(self, tax_year: int) -> list[TaxBracket]:
        """Active brackets for a year in bracket order.

        Raises NoBracketsConfiguredError when the year has none.
        """
        result = await self.session.execute(
            select(TaxBracket)
            .where(TaxBracket.effective_year == tax_year, TaxBracket.is_active.is_(True))
            .order_by(TaxBracket.bracket_order)
        )
        brackets = list(result.scalars().all())
        if not brackets:
            raise NoBracketsConfiguredError(tax_year)
        return brackets

    async def build_tax_service(self, tax_year: int) -> PayrollTaxService:
        """Tax orchestrator over the active brackets and stored settings of a year."""
        brackets = await self.active_brackets(tax_year)
        rules = await TaxSettingService(self.session).rules_for_year(tax_year)
        return PayrollTaxService(brackets, tax_year, rules=rules)

    async def list_brackets(
        self,
        effective_year: int | None = None,
        is_active: bool | None = None,
        search: str | None = None,
        sort_by: str = "bracket_order",
        sort_order: str = "asc",
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[TaxBracket], int]:
        """Filtered, sorted page of brackets and the total match count."""
        query = select(TaxBracket)
        if effective_year is not None:
            query = query.where(TaxBracket.effective_year == effective_year)
        if is_active is not None:
            query = query.where(TaxBracket.is_active.is_(is_active))
        if search:
            query = query.where(TaxBracket.description.ilike(f"%{search}%"))

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))

        column = getattr(TaxBracket, sort_by if sort_by in SORTABLE_FIELDS else "bracket_order")
        query = query.order_by(column.desc() if sort_order == "desc" else column.asc())
        query = query.offset((page - 1) * per_page).limit(per_page)

        result = await self.session.execute(query)
        return list(result.scalars().all()), total or 0

    async def search_by_order(
        self,
        bracket_order: int,
        effective_year: int | None = None,
        is_active: bool | None = None,
    ) -> list[TaxBracket]:
        query = select(TaxBracket).where(TaxBracket.bracket_order == bracket_order)
        if effective_year is not None:
            query = query.where(TaxBracket.effective_year == effective_year)
        if is_active is not None:
            query = query.where(TaxBracket.is_active.is_(is_active))
        result = await self.session.execute(
            query.order_by(TaxBracket.effective_year.desc())
        )
        return list(result.scalars().all())

    async def get(self, bracket_id: int) -> TaxBracket:
        bracket = await self.session.get(TaxBracket, bracket_id)
        if bracket is None:
            raise BracketNotFoundError(bracket_id)
        return bracket

    async def create(self, data: dict[str, Any], actor: str | None = None) -> TaxBracket:
        await self._ensure_unique(data["effective_year"], data["bracket_order"])
        self._check_range(data["min_income"], data.get("max_income"))
        bracket = TaxBracket(**data, created_by=actor, updated_by=actor)
        self.session.add(bracket)
        await self.session.flush()
        logger.info(
            "Created tax bracket",
            extra={"bracket_id": bracket.id, "effective_year": bracket.effective_year},
        )
        return bracket

    async def update(
        self, bracket_id: int, data: dict[str, Any], actor: str | None = None
    ) -> TaxBracket:
        bracket = await self.get(bracket_id)
        year = data.get("effective_year", bracket.effective_year)
        order = data.get("bracket_order", bracket.bracket_order)
        if (year, order) != (bracket.effective_year, bracket.bracket_order):
            await self._ensure_unique(year, order, exclude_id=bracket.id)

        self._check_range(
            data.get("min_income", bracket.min_income), data.get("max_income", bracket.max_income)
        )

        for key, value in data.items():
            setattr(bracket, key, value)
        bracket.updated_by = actor
        await self.session.flush()
        return bracket

    async def delete(self, bracket_id: int) -> None:
        bracket = await self.get(bracket_id)
        await self.session.delete(bracket)
        await self.session.flush()
        logger.info("Deleted tax bracket", extra={"bracket_id": bracket_id})

    async def seed_official(self, tax_year: int, actor: str = "system") -> int:
        """Insert the official table for a year; existing orders are kept.

        Returns the number of brackets inserted.
        """
        result = await self.session.execute(
            select(TaxBracket.bracket_order).where(TaxBracket.effective_year == tax_year)
        )
        existing = set(result.scalars().all())

        inserted = 0
        for band in official_brackets(tax_year):
            if band.bracket_order in existing:
                continue
            self.session.add(
                TaxBracket(
                    min_income=band.min_income,
                    max_income=band.max_income,
                    tax_rate=band.tax_rate,
                    bracket_order=band.bracket_order,
                    effective_year=tax_year,
                    description=band.description,
                    is_active=True,
                    created_by=actor,
                    updated_by=actor,
                )
            )
            inserted += 1
        await self.session.flush()
        return inserted

    @staticmethod
    def _check_range(min_income: Any, max_income: Any) -> None:
        if max_income is None or min_income is None:
            return
        low, high = Decimal(min_income), Decimal(max_income)
        if high <= low:
            raise InvalidBracketRangeError(low, high)

    async def _ensure_unique(
        self, effective_year: int, bracket_order: int, exclude_id: int | None = None
    ) -> None:
        query = select(TaxBracket.id).where(
            TaxBracket.effective_year == effective_year,
            TaxBracket.bracket_order == bracket_order,
        )
        if exclude_id is not None:
            query = query.where(TaxBracket.id != exclude_id)
        if await self.session.scalar(query) is not None:
            raise DuplicateBracketError(effective_year, bracket_order)
