"""
Tests for rate resolution and the rate catalog.

Covers:
- select_best_rate: specificity, insertion order, date windows, tie-breaks
- resolve_rate against the database
- create/update/deactivate/list and their audit entries
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from commissions.exceptions import NotFoundError, ValidationFailure
from commissions.models import AuditAction, AuditLog, Industry
from commissions.schemas.rate import RateCreate, RateUpdate
from commissions.services.rates import (
    create_rate,
    deactivate_rate,
    get_rate,
    list_rates,
    resolve_rate,
    select_best_rate,
    specificity,
    update_rate,
)

ON = date(2024, 6, 15)


def _rate(id, role_id=None, installer_id=None, state_code=None,
          start=date(2024, 1, 1), end=None, is_active=True):
    return SimpleNamespace(
        id=id,
        role_id=role_id,
        installer_id=installer_id,
        state_code=state_code,
        effective_start=start,
        effective_end=end,
        is_active=is_active,
    )


# ── select_best_rate ──────────────────────────────────────


class TestSelectBestRate:
    def test_most_specific_wins_regardless_of_order(self):
        general = _rate(1)
        by_role = _rate(2, role_id=7)
        by_role_and_state = _rate(3, role_id=7, state_code="TX")

        for candidates in (
            [general, by_role, by_role_and_state],
            [by_role_and_state, by_role, general],
            [by_role, general, by_role_and_state],
        ):
            best = select_best_rate(candidates, ON, role_id=7, state_code="TX")
            assert best is by_role_and_state

    def test_non_matching_scope_excludes(self):
        other_state = _rate(1, state_code="CA")
        general = _rate(2)
        assert select_best_rate([other_state, general], ON, state_code="TX") is general

    def test_scoped_rate_never_matches_null_query(self):
        scoped = _rate(1, installer_id=4)
        assert select_best_rate([scoped], ON, installer_id=None) is None

    def test_date_window(self):
        expired = _rate(1, start=date(2023, 1, 1), end=date(2024, 6, 14))
        future = _rate(2, start=date(2024, 6, 16))
        assert select_best_rate([expired, future], ON) is None

    def test_window_bounds_inclusive(self):
        starts_today = _rate(1, start=ON)
        ends_today = _rate(2, start=date(2024, 1, 1), end=ON)
        assert select_best_rate([starts_today], ON) is starts_today
        assert select_best_rate([ends_today], ON) is ends_today

    def test_inactive_excluded(self):
        assert select_best_rate([_rate(1, is_active=False)], ON) is None

    def test_tie_goes_to_latest_start(self):
        older = _rate(1, role_id=7, start=date(2024, 1, 1))
        newer = _rate(2, role_id=7, start=date(2024, 3, 1))
        assert select_best_rate([older, newer], ON, role_id=7) is newer
        assert select_best_rate([newer, older], ON, role_id=7) is newer

    def test_full_tie_goes_to_lowest_id(self):
        a = _rate(5, role_id=7)
        b = _rate(3, role_id=7)
        assert select_best_rate([a, b], ON, role_id=7) is b

    def test_empty(self):
        assert select_best_rate([], ON) is None


def test_specificity_counts_matching_scopes():
    rate = _rate(1, role_id=7, installer_id=2, state_code="TX")
    assert specificity(rate, 7, 2, "TX") == 3
    assert specificity(_rate(2, role_id=7), 7, 2, "TX") == 1
    assert specificity(_rate(3), 7, 2, "TX") == 0


# ── resolve_rate ──────────────────────────────────────────


class TestResolveRate:
    @pytest.mark.asyncio
    async def test_picks_most_specific(self, db_session, make_rate):
        await make_rate(1, percent_mp1=5)
        specific = await make_rate(1, percent_mp1=8, role_id=7, state_code="TX")
        await make_rate(1, percent_mp1=9, state_code="CA")

        rate = await resolve_rate(db_session, Industry.ROOFING, 1, ON, role_id=7, state_code="TX")
        assert rate.id == specific.id

    @pytest.mark.asyncio
    async def test_industry_and_user_isolated(self, db_session, make_rate):
        await make_rate(1, industry=Industry.SOLAR, percent_mp1=5)
        await make_rate(2, percent_mp1=5)

        assert await resolve_rate(db_session, Industry.ROOFING, 1, ON) is None

    @pytest.mark.asyncio
    async def test_excludes_outside_window_and_inactive(self, db_session, make_rate):
        await make_rate(1, percent_mp1=5, effective_start=date(2024, 7, 1))
        await make_rate(1, percent_mp1=5, effective_end=date(2024, 5, 31))
        await make_rate(1, percent_mp1=5, is_active=False)

        assert await resolve_rate(db_session, Industry.ROOFING, 1, ON) is None

    @pytest.mark.asyncio
    async def test_tie_break_is_deterministic(self, db_session, make_rate):
        first = await make_rate(1, percent_mp1=5, role_id=7)
        await make_rate(1, percent_mp1=6, role_id=7)

        rate = await resolve_rate(db_session, Industry.ROOFING, 1, ON, role_id=7)
        assert rate.id == first.id


# ── Catalog administration ────────────────────────────────


class TestRateCatalog:
    @pytest.mark.asyncio
    async def test_create_and_audit(self, db_session, actor):
        data = RateCreate(user_id=11, state_code="tx", percent_mp1=Decimal("8"), effective_start=ON)
        rate = await create_rate(db_session, Industry.ROOFING, data, actor)

        assert rate.id is not None
        assert rate.state_code == "TX"
        assert rate.is_active is True
        assert rate.created_by == actor.user_id

        await db_session.flush()
        logs = (await db_session.execute(select(AuditLog))).scalars().all()
        assert [log.action for log in logs] == [AuditAction.CREATE_RATE]

    @pytest.mark.asyncio
    async def test_create_defaults_start_to_today(self, db_session, actor):
        rate = await create_rate(db_session, Industry.PEST, RateCreate(user_id=11), actor)
        assert rate.effective_start is not None

    def test_create_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            RateCreate(user_id=1, effective_start=date(2024, 2, 1), effective_end=date(2024, 1, 1))

    def test_create_rejects_percent_over_100(self):
        with pytest.raises(ValueError):
            RateCreate(user_id=1, percent_mp1=Decimal("101"))

    @pytest.mark.asyncio
    async def test_partial_update(self, db_session, actor, make_rate):
        rate = await make_rate(1, percent_mp1=5, flat_mp1=10)
        updated = await update_rate(
            db_session, Industry.ROOFING, rate.id, RateUpdate(percent_mp1=Decimal("6")), actor
        )
        assert updated.percent_mp1 == Decimal("6")
        assert updated.flat_mp1 == Decimal("10")
        assert updated.updated_by == actor.user_id

    @pytest.mark.asyncio
    async def test_update_rejects_end_before_start(self, db_session, actor, make_rate):
        rate = await make_rate(1, percent_mp1=5)
        with pytest.raises(ValidationFailure):
            await update_rate(
                db_session, Industry.ROOFING, rate.id,
                RateUpdate(effective_end=date(2023, 1, 1)), actor,
            )

    @pytest.mark.asyncio
    async def test_wrong_industry_is_not_found(self, db_session, make_rate):
        rate = await make_rate(1, percent_mp1=5)
        with pytest.raises(NotFoundError):
            await get_rate(db_session, Industry.SOLAR, rate.id)

    @pytest.mark.asyncio
    async def test_deactivate_removes_from_resolution(self, db_session, actor, make_rate):
        rate = await make_rate(1, percent_mp1=5)
        await deactivate_rate(db_session, Industry.ROOFING, rate.id, actor)

        assert rate.is_active is False
        assert await resolve_rate(db_session, Industry.ROOFING, 1, ON) is None

    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, db_session, make_rate):
        for start_month in (1, 2, 3):
            await make_rate(1, percent_mp1=5, effective_start=date(2024, start_month, 1))
        await make_rate(2, percent_mp1=5)

        items, total = await list_rates(db_session, Industry.ROOFING, user_id=1, per_page=2)
        assert total == 3
        assert len(items) == 2
        assert items[0].effective_start == date(2024, 3, 1)
