"""Tests for tax bracket persistence."""

from decimal import Decimal

import pytest

from thai_payroll.calculators.progressive_tax import NoBracketsConfiguredError
from thai_payroll.services.bracket_service import (
    BracketNotFoundError,
    BracketService,
    DuplicateBracketError,
    InvalidBracketRangeError,
)


class TestSeedOfficial:
    """Seeding the statutory table."""

    async def test_seed_inserts_eight_brackets(self, session, brackets):
        """The 2025 table has eight bands."""
        assert brackets == 8
        rows = await BracketService(session).active_brackets(2025)
        assert [b.bracket_order for b in rows] == list(range(1, 9))
        assert rows[-1].max_income is None
        assert rows[1].income_range == "฿150,000 - ฿300,000"
        assert rows[1].formatted_rate == "5%"

    async def test_seed_is_idempotent(self, session, brackets):
        """Seeding again inserts nothing."""
        assert await BracketService(session).seed_official(2025) == 0


class TestActiveBrackets:
    """Loading brackets for calculation."""

    async def test_year_without_brackets(self, session):
        """A year with no rows cannot be calculated."""
        with pytest.raises(NoBracketsConfiguredError) as exc_info:
            await BracketService(session).active_brackets(2024)
        assert str(exc_info.value) == "No active tax brackets configured for tax year 2024"

    async def test_inactive_brackets_are_ignored(self, session, brackets):
        """Deactivated rows drop out of the active table."""
        service = BracketService(session)
        rows = await service.active_brackets(2025)
        rows[0].is_active = False
        await session.flush()

        assert len(await service.active_brackets(2025)) == 7

    async def test_build_tax_service(self, session, brackets):
        """The orchestrator is built over the stored table."""
        tax_service = await BracketService(session).build_tax_service(2025)
        assert tax_service.tax_calculator.calculate_annual_tax(Decimal("300000")) == Decimal(
            "7500"
        )


class TestBracketCrud:
    """Create, update, delete and listing."""

    async def test_create_and_get(self, session):
        """A created bracket can be read back."""
        service = BracketService(session)
        bracket = await service.create(
            {
                "min_income": Decimal("0"),
                "max_income": Decimal("150000"),
                "tax_rate": Decimal("0"),
                "bracket_order": 1,
                "effective_year": 2026,
                "description": "Tax exempt",
            },
            actor="admin",
        )
        fetched = await service.get(bracket.id)
        assert fetched.created_by == "admin"
        assert fetched.effective_year == 2026

    async def test_duplicate_order_rejected(self, session, brackets):
        """A year cannot hold the same order twice."""
        with pytest.raises(DuplicateBracketError):
            await BracketService(session).create(
                {
                    "min_income": Decimal("0"),
                    "max_income": Decimal("1"),
                    "tax_rate": Decimal("0"),
                    "bracket_order": 1,
                    "effective_year": 2025,
                }
            )

    async def test_update_to_taken_order_rejected(self, session, brackets):
        """Moving a bracket onto an existing order fails."""
        service = BracketService(session)
        rows = await service.active_brackets(2025)
        with pytest.raises(DuplicateBracketError):
            await service.update(rows[0].id, {"bracket_order": 2})

    @pytest.mark.parametrize(
        "changes",
        [{"max_income": Decimal("100")}, {"min_income": Decimal("300000")}],
    )
    async def test_update_to_inverted_range_rejected(self, session, brackets, changes):
        """The merged range is checked before anything is written."""
        service = BracketService(session)
        rows = await service.active_brackets(2025)
        with pytest.raises(InvalidBracketRangeError):
            await service.update(rows[1].id, changes)
        assert rows[1].min_income == Decimal("150000")
        assert rows[1].max_income == Decimal("300000")

    async def test_update_fields(self, session, brackets):
        """Plain field updates are applied with the actor."""
        service = BracketService(session)
        rows = await service.active_brackets(2025)
        updated = await service.update(rows[0].id, {"description": "Exempt band"}, actor="hr")
        assert updated.description == "Exempt band"
        assert updated.updated_by == "hr"

    async def test_delete(self, session, brackets):
        """Deleted brackets are gone."""
        service = BracketService(session)
        rows = await service.active_brackets(2025)
        await service.delete(rows[0].id)
        with pytest.raises(BracketNotFoundError):
            await service.get(rows[0].id)

    async def test_missing_bracket(self, session):
        """Unknown ids raise not found."""
        with pytest.raises(BracketNotFoundError):
            await BracketService(session).get(999)

    async def test_list_paginates_and_sorts(self, session, brackets):
        """Pages follow the requested sort."""
        rows, total = await BracketService(session).list_brackets(
            effective_year=2025, sort_by="tax_rate", sort_order="desc", page=1, per_page=3
        )
        assert total == 8
        assert [r.bracket_order for r in rows] == [8, 7, 6]

    async def test_list_search_description(self, session, brackets):
        """Search matches the description."""
        rows, total = await BracketService(session).list_brackets(search="top")
        assert total == 1
        assert rows[0].bracket_order == 8

    async def test_search_by_order(self, session, brackets):
        """Search by order returns one row per year."""
        rows = await BracketService(session).search_by_order(3, effective_year=2025)
        assert len(rows) == 1
        assert rows[0].tax_rate == Decimal("10")
