from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidLoanState, LoanNotFound
from app.core.settings import settings
from app.models.loan import Loan
from app.schemas.loan import LoanScheduleEntry, LoanScheduleResponse
from app.services import amortization, loan_queries
from app.utils.redis_client import get_redis_client, redis_key

logger = logging.getLogger(__name__)


def _cache_key(loan_id: int) -> str:
    return redis_key("loan", loan_id, "schedule")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def build_loan_schedule(loan: Loan) -> LoanScheduleResponse:
    """Amortization table for a disbursed loan at its fixed monthly payment."""
    if loan.first_payment_date is None:
        raise InvalidLoanState(
            "Loan has not been disbursed", loan_id=loan.id, status=loan.status
        )
    principal = _as_decimal(loan.loan_amount)
    annual_rate = _as_decimal(loan.interest_rate)
    term_months = int(loan.term_months)
    rows = amortization.build_schedule(
        principal,
        annual_rate,
        term_months,
        loan.first_payment_date,
        payment=_as_decimal(loan.monthly_payment),
    )
    entries = [
        LoanScheduleEntry(
            period=row.period,
            due_date=row.due_date,
            payment=row.payment,
            principal=row.principal,
            interest=row.interest,
            remaining_balance=row.remaining_balance,
        )
        for row in rows
    ]
    return LoanScheduleResponse(
        loan_id=loan.id,
        loan_number=loan.loan_number,
        start_date=loan.disbursement_date or loan.first_payment_date,
        term_months=term_months,
        principal=principal,
        annual_rate_percent=annual_rate,
        monthly_payment=_as_decimal(loan.monthly_payment),
        total_interest=sum((row.interest for row in rows), Decimal("0.00")),
        entries=entries,
    )


async def _get_cached_schedule(loan_id: int) -> LoanScheduleResponse | None:
    try:
        redis = get_redis_client()
        cached = await redis.get(_cache_key(loan_id))
        if cached:
            return LoanScheduleResponse.model_validate_json(cached)
    except Exception as exc:
        logger.warning("Schedule cache read failed loan_id=%s error=%s", loan_id, exc)
        return None
    return None


async def _set_cached_schedule(schedule: LoanScheduleResponse) -> None:
    redis = get_redis_client()
    await redis.setex(
        _cache_key(schedule.loan_id),
        settings.loan_cache_ttl_seconds,
        schedule.model_dump_json(),
    )


async def generate_schedule(loan: Loan) -> LoanScheduleResponse | None:
    """Build and cache the schedule right after disbursement.

    Failures are logged and swallowed; the disbursement has already committed.
    """
    try:
        schedule = build_loan_schedule(loan)
        await _set_cached_schedule(schedule)
    except Exception:
        logger.exception("Schedule generation failed loan_id=%s", loan.id)
        return None
    logger.info(
        "Schedule generated loan_number=%s periods=%s", loan.loan_number, len(schedule.entries)
    )
    return schedule


async def get_schedule(db: AsyncSession, loan_id: int) -> LoanScheduleResponse:
    cached = await _get_cached_schedule(loan_id)
    if cached is not None:
        return cached
    loan = await loan_queries.get_loan(db, loan_id)
    if loan is None:
        raise LoanNotFound(f"Loan not found with id: {loan_id}", loan_id=loan_id)
    schedule = build_loan_schedule(loan)
    try:
        await _set_cached_schedule(schedule)
    except Exception as exc:
        logger.warning("Schedule cache write failed loan_id=%s error=%s", loan_id, exc)
    return schedule

