"""Inter-subsidiary advance persistence, settlement and reporting."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from thai_payroll.calculators.advance_detector import AdvanceCandidate, build_advance_candidate
from thai_payroll.calculators.types import ZERO, round_to_satang
from thai_payroll.models import (
    Employee,
    Employment,
    FundingAllocation,
    Grant,
    GrantItem,
    InterSubsidiaryAdvance,
    Payroll,
)

logger = logging.getLogger(__name__)

AGING_BUCKETS = (("0-30", 30), ("31-60", 60), ("61-90", 90), ("over_90", None))


class NoAdvancesToSettleError(Exception):
    """Raised when none of the requested advances is pending."""

    def __init__(self, advance_ids: list[int]):
        self.advance_ids = advance_ids
        super().__init__("No unsettled advances found with the provided IDs")


class AdvanceService:
    """Creates advances for cross-subsidiary payroll and tracks their settlement."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._hub_grants: dict[str, Grant | None] = {}

    async def hub_grant_for(self, organization: str) -> Grant | None:
        """Hub grant of a subsidiary, cached per service instance."""
        if organization not in self._hub_grants:
            result = await self.session.execute(
                select(Grant)
                .where(Grant.organization == organization, Grant.is_hub.is_(True))
                .order_by(Grant.id)
                .limit(1)
            )
            self._hub_grants[organization] = result.scalar_one_or_none()
        return self._hub_grants[organization]

    async def candidate_for(
        self,
        employee: Employee,
        allocation: FundingAllocation,
        amount: Decimal,
        advance_date: date,
        payroll_id: int | None = None,
    ) -> AdvanceCandidate | None:
        """Advance that a payroll row requires, or None."""
        grant = allocation.grant
        if grant is None:
            return None
        hub = await self.hub_grant_for(grant.organization)
        return build_advance_candidate(
            employee, allocation, amount, advance_date, hub_grant=hub, payroll_id=payroll_id
        )

    async def create_advance_if_needed(
        self,
        payroll: Payroll,
        employee: Employee,
        allocation: FundingAllocation,
        actor: str | None = None,
    ) -> InterSubsidiaryAdvance | None:
        """Persist the advance for a freshly stored payroll row."""
        candidate = await self.candidate_for(
            employee, allocation, payroll.net_salary, payroll.pay_period_date, payroll.id
        )
        if candidate is None:
            return None
        return self._persist(candidate, actor)

    async def auto_create_advances(
        self, pay_period_date: date, dry_run: bool = False, actor: str | None = None
    ) -> dict[str, Any]:
        """Create the missing advances for every payroll of a pay date.

        Only payrolls without an advance are considered, so running twice
        creates nothing the second time. Dry runs report the same candidates
        without writing.
        """
        result = await self.session.execute(
            select(Payroll)
            .outerjoin(InterSubsidiaryAdvance, InterSubsidiaryAdvance.payroll_id == Payroll.id)
            .where(Payroll.pay_period_date == pay_period_date, InterSubsidiaryAdvance.id.is_(None))
            .options(
                selectinload(Payroll.employment).selectinload(Employment.employee),
                selectinload(Payroll.funding_allocation)
                .selectinload(FundingAllocation.grant_item)
                .selectinload(GrantItem.grant),
            )
            .order_by(Payroll.id)
        )

        candidates: list[AdvanceCandidate] = []
        for payroll in result.scalars().all():
            employee = payroll.employment.employee if payroll.employment else None
            if employee is None or payroll.funding_allocation is None:
                continue
            candidate = await self.candidate_for(
                employee,
                payroll.funding_allocation,
                payroll.net_salary,
                pay_period_date,
                payroll.id,
            )
            if candidate is not None:
                candidates.append(candidate)

        total = sum((c.amount for c in candidates), ZERO)
        if not dry_run:
            for candidate in candidates:
                self._persist(candidate, actor)
            await self.session.flush()
            logger.info(
                "Auto-created inter-subsidiary advances",
                extra={
                    "pay_period_date": pay_period_date.isoformat(),
                    "count": len(candidates),
                    "total_amount": str(total),
                },
            )

        return {
            "dry_run": dry_run,
            "created_count": len(candidates),
            "total_amount": round_to_satang(total),
            "payroll_period_date": pay_period_date.isoformat(),
            "advances_preview": [c.to_dict() for c in candidates] if dry_run else None,
        }

    async def list_advances(
        self,
        status: str | None = None,
        from_subsidiary: str | None = None,
        to_subsidiary: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[InterSubsidiaryAdvance]:
        """Advances filtered by settlement status ('pending'/'settled') and parties."""
        query = select(InterSubsidiaryAdvance).options(
            selectinload(InterSubsidiaryAdvance.via_grant)
        )
        if status == "pending":
            query = query.where(InterSubsidiaryAdvance.settlement_date.is_(None))
        elif status == "settled":
            query = query.where(InterSubsidiaryAdvance.settlement_date.is_not(None))
        if from_subsidiary:
            query = query.where(InterSubsidiaryAdvance.from_subsidiary == from_subsidiary)
        if to_subsidiary:
            query = query.where(InterSubsidiaryAdvance.to_subsidiary == to_subsidiary)
        if date_from:
            query = query.where(InterSubsidiaryAdvance.advance_date >= date_from)
        if date_to:
            query = query.where(InterSubsidiaryAdvance.advance_date <= date_to)

        result = await self.session.execute(
            query.order_by(InterSubsidiaryAdvance.advance_date.desc(), InterSubsidiaryAdvance.id)
        )
        return list(result.scalars().all())

    async def bulk_settle(
        self,
        advance_ids: list[int],
        settlement_date: date,
        notes: str | None = None,
        actor: str | None = None,
    ) -> list[InterSubsidiaryAdvance]:
        """Settle the pending advances among the given ids."""
        result = await self.session.execute(
            select(InterSubsidiaryAdvance)
            .where(
                InterSubsidiaryAdvance.id.in_(advance_ids),
                InterSubsidiaryAdvance.settlement_date.is_(None),
            )
            .order_by(InterSubsidiaryAdvance.id)
        )
        advances = list(result.scalars().all())
        if not advances:
            raise NoAdvancesToSettleError(advance_ids)

        for advance in advances:
            advance.settlement_date = settlement_date
            if notes:
                advance.notes = f"{advance.notes} | {notes}" if advance.notes else notes
            advance.updated_by = actor
            logger.info(
                "Advance settled",
                extra={
                    "advance_id": advance.id,
                    "amount": str(advance.amount),
                    "settlement_date": settlement_date.isoformat(),
                    "settled_by": actor or "system",
                },
            )
        await self.session.flush()
        return advances

    async def summary(
        self, period_start: date, period_end: date, as_of: date | None = None
    ) -> dict[str, Any]:
        """Totals by subsidiary, via grant and aging of pending advances."""
        as_of = as_of or date.today()
        advances = await self.list_advances(date_from=period_start, date_to=period_end)

        def bucket() -> dict[str, Any]:
            return {"count": 0, "total_amount": ZERO, "pending_amount": ZERO}

        def add(target: dict[str, Any], advance: InterSubsidiaryAdvance) -> None:
            target["count"] += 1
            target["total_amount"] += advance.amount
            if not advance.is_settled:
                target["pending_amount"] += advance.amount

        totals = {
            "total_advances": 0,
            "total_amount": ZERO,
            "pending_advances": 0,
            "pending_amount": ZERO,
            "settled_advances": 0,
            "settled_amount": ZERO,
        }
        from_subsidiaries: dict[str, dict[str, Any]] = defaultdict(bucket)
        to_subsidiaries: dict[str, dict[str, Any]] = defaultdict(bucket)
        pairs: dict[str, dict[str, Any]] = defaultdict(bucket)
        by_grant: dict[str, dict[str, Any]] = {}
        aging = {name: {"count": 0, "amount": ZERO} for name, _ in AGING_BUCKETS}

        for advance in advances:
            totals["total_advances"] += 1
            totals["total_amount"] += advance.amount
            if advance.is_settled:
                totals["settled_advances"] += 1
                totals["settled_amount"] += advance.amount
            else:
                totals["pending_advances"] += 1
                totals["pending_amount"] += advance.amount
                name = aging_bucket(advance.days_outstanding(as_of))
                aging[name]["count"] += 1
                aging[name]["amount"] += advance.amount

            add(from_subsidiaries[advance.from_subsidiary], advance)
            add(to_subsidiaries[advance.to_subsidiary], advance)
            add(pairs[f"{advance.from_subsidiary}->{advance.to_subsidiary}"], advance)

            grant = advance.via_grant
            code = grant.code if grant else "Unknown"
            if code not in by_grant:
                by_grant[code] = {"grant_name": grant.name if grant else "Unknown", **bucket()}
            add(by_grant[code], advance)

        return {
            "period": {"start_date": period_start.isoformat(), "end_date": period_end.isoformat()},
            "totals": totals,
            "by_subsidiary": {
                "from_subsidiaries": dict(from_subsidiaries),
                "to_subsidiaries": dict(to_subsidiaries),
                "pairs": dict(pairs),
            },
            "by_grant": by_grant,
            "aging_analysis": aging,
        }

    def _persist(
        self, candidate: AdvanceCandidate, actor: str | None
    ) -> InterSubsidiaryAdvance:
        advance = InterSubsidiaryAdvance(
            payroll_id=candidate.payroll_id,
            from_subsidiary=candidate.from_subsidiary,
            to_subsidiary=candidate.to_subsidiary,
            via_grant_id=candidate.via_grant_id,
            amount=candidate.amount,
            advance_date=candidate.advance_date,
            notes=candidate.notes,
            created_by=actor or "system",
            updated_by=actor or "system",
        )
        self.session.add(advance)
        return advance


def aging_bucket(days_outstanding: int) -> str:
    """Aging bucket name for a pending advance."""
    for name, limit in AGING_BUCKETS:
        if limit is None or days_outstanding <= limit:
            return name
    return AGING_BUCKETS[-1][0]


def advance_to_dict(advance: InterSubsidiaryAdvance, as_of: date | None = None) -> dict[str, Any]:
    """Serialisable advance; needs via_grant loaded."""
    as_of = as_of or date.today()
    grant = advance.via_grant
    return {
        "id": advance.id,
        "payroll_id": advance.payroll_id,
        "from_subsidiary": advance.from_subsidiary,
        "to_subsidiary": advance.to_subsidiary,
        "via_grant_id": advance.via_grant_id,
        "via_grant_code": grant.code if grant else None,
        "amount": advance.amount,
        "advance_date": advance.advance_date.isoformat(),
        "settlement_date": advance.settlement_date.isoformat() if advance.settlement_date else None,
        "is_settled": advance.is_settled,
        "days_outstanding": advance.days_outstanding(as_of),
        "notes": advance.notes,
    }
