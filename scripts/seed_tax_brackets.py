"""Seed script for the Thai personal income tax brackets.

Run with:
    python scripts/seed_tax_brackets.py [YEAR ...]

Inserts the official progressive table for each year (defaults to
TAX_YEAR). Brackets already present for a year are left untouched.
"""

from __future__ import annotations

import asyncio
import sys

from sqlalchemy import select

from thai_payroll.config import get_settings
from thai_payroll.database import create_tables, get_session, init_db
from thai_payroll.models import TaxBracket
from thai_payroll.services.bracket_service import BracketService


async def main(years: list[int]) -> None:
    """Run seed script."""
    engine, _ = init_db()
    await create_tables(engine)

    async with get_session() as session:
        service = BracketService(session)
        for year in years:
            inserted = await service.seed_official(year)
            if inserted == 0:
                print(f"Brackets for {year} already exist, skipping...")
                continue
            print(f"Created {inserted} brackets for {year}")

            result = await session.execute(
                select(TaxBracket)
                .where(TaxBracket.effective_year == year)
                .order_by(TaxBracket.bracket_order)
            )
            for bracket in result.scalars():
                print(f"  {bracket.bracket_order}. {bracket.income_range:<28} {bracket.formatted_rate}")

    await engine.dispose()
    print("\nDone! Tax brackets seeded successfully.")


if __name__ == "__main__":
    requested = [int(arg) for arg in sys.argv[1:]] or [get_settings().tax_year]
    asyncio.run(main(requested))
