"""Read and aggregate queries over stored loans.

Each operation has a statement builder (``*_stmt``) and an async executor. The
builders are plain SQLAlchemy ``Select`` objects so they can be inspected or
reused without a session. Soft-deleted rows never appear in any result.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import Select, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.loan import Loan
from app.schemas.loan import (
    OPEN_LOAN_STATUSES,
    CustomerLoanSummary,
    LoanStatus,
    PortfolioStatistic,
)

DELINQUENT_LIST_STATUSES = (
    LoanStatus.ACTIVE.value,
    LoanStatus.DELINQUENT.value,
    LoanStatus.DEFAULT.value,
)


def _not_deleted():
    return Loan.is_deleted.is_(False)


# -- statement builders -------------------------------------------------


def loan_by_id_stmt(loan_id: int, *, for_update: bool = False) -> Select:
    stmt = select(Loan).where(Loan.id == loan_id, _not_deleted())
    if for_update:
        stmt = stmt.with_for_update()
    return stmt


def loan_by_number_stmt(loan_number: str) -> Select:
    return select(Loan).where(Loan.loan_number == loan_number, _not_deleted())


def customer_loans_stmt(customer_id: int, *, page: int, size: int) -> Select:
    return (
        select(Loan)
        .where(Loan.customer_id == customer_id, _not_deleted())
        .order_by(Loan.application_date.desc(), Loan.id.desc())
        .offset(page * size)
        .limit(size)
    )


def customer_loans_count_stmt(customer_id: int) -> Select:
    return select(func.count(Loan.id)).where(Loan.customer_id == customer_id, _not_deleted())


def active_for_customer_stmt(customer_id: int) -> Select:
    return (
        select(Loan)
        .where(
            Loan.customer_id == customer_id,
            Loan.status.in_(OPEN_LOAN_STATUSES),
            _not_deleted(),
        )
        .order_by(Loan.id)
    )


def count_open_for_customer_stmt(customer_id: int) -> Select:
    return select(func.count(Loan.id)).where(
        Loan.customer_id == customer_id,
        Loan.status.in_(OPEN_LOAN_STATUSES),
        _not_deleted(),
    )


def delinquent_stmt() -> Select:
    return (
        select(Loan)
        .where(
            Loan.days_past_due > 0,
            Loan.status.in_(DELINQUENT_LIST_STATUSES),
            _not_deleted(),
        )
        .order_by(Loan.days_past_due.desc(), Loan.id)
    )


def upcoming_payments_stmt(start: date, end: date) -> Select:
    return (
        select(Loan)
        .where(
            Loan.next_payment_date.between(start, end),
            Loan.status == LoanStatus.ACTIVE.value,
            _not_deleted(),
        )
        .order_by(Loan.next_payment_date, Loan.id)
    )


def total_outstanding_for_customer_stmt(customer_id: int) -> Select:
    return select(func.coalesce(func.sum(Loan.outstanding_balance), 0)).where(
        Loan.customer_id == customer_id,
        Loan.status.in_(OPEN_LOAN_STATUSES),
        _not_deleted(),
    )


def maturing_stmt(start: date, end: date) -> Select:
    return (
        select(Loan)
        .where(
            Loan.maturity_date.between(start, end),
            Loan.status == LoanStatus.ACTIVE.value,
            _not_deleted(),
        )
        .order_by(Loan.maturity_date, Loan.id)
    )


def defaulted_stmt() -> Select:
    return (
        select(Loan)
        .where(
            Loan.status == LoanStatus.DEFAULT.value,
            Loan.is_defaulted.is_(True),
            _not_deleted(),
        )
        .order_by(Loan.days_past_due.desc(), Loan.id)
    )


def missed_payments_stmt(min_missed: int) -> Select:
    return (
        select(Loan)
        .where(
            Loan.missed_payments >= min_missed,
            Loan.status.in_(DELINQUENT_LIST_STATUSES),
            _not_deleted(),
        )
        .order_by(Loan.missed_payments.desc(), Loan.id)
    )


def portfolio_statistics_stmt() -> Select:
    return (
        select(
            Loan.loan_type,
            func.count(Loan.id),
            func.coalesce(func.sum(Loan.loan_amount), 0),
            func.coalesce(func.sum(Loan.outstanding_balance), 0),
        )
        .where(Loan.status.in_(OPEN_LOAN_STATUSES), _not_deleted())
        .group_by(Loan.loan_type)
        .order_by(Loan.loan_type)
    )


def customer_summary_stmt(customer_id: int) -> Select:
    open_case = case((Loan.status.in_(OPEN_LOAN_STATUSES), 1), else_=0)
    delinquent_case = case((Loan.days_past_due > 0, 1), else_=0)
    return select(
        func.count(Loan.id),
        func.coalesce(func.sum(open_case), 0),
        func.coalesce(func.sum(Loan.loan_amount), 0),
        func.coalesce(
            func.sum(case((Loan.status.in_(OPEN_LOAN_STATUSES), Loan.outstanding_balance), else_=0)),
            0,
        ),
        func.coalesce(func.sum(Loan.total_principal_paid + Loan.total_interest_paid), 0),
        func.coalesce(func.sum(delinquent_case), 0),
    ).where(Loan.customer_id == customer_id, _not_deleted())


# -- executors ----------------------------------------------------------


async def get_loan(db: AsyncSession, loan_id: int) -> Loan | None:
    result = await db.execute(loan_by_id_stmt(loan_id))
    return result.scalar_one_or_none()


async def get_loan_for_update(db: AsyncSession, loan_id: int) -> Loan | None:
    result = await db.execute(loan_by_id_stmt(loan_id, for_update=True))
    return result.scalar_one_or_none()


async def get_loan_by_number(db: AsyncSession, loan_number: str) -> Loan | None:
    result = await db.execute(loan_by_number_stmt(loan_number))
    return result.scalar_one_or_none()


async def list_customer_loans(
    db: AsyncSession, customer_id: int, *, page: int, size: int
) -> tuple[list[Loan], int]:
    items = (await db.execute(customer_loans_stmt(customer_id, page=page, size=size))).scalars().all()
    total = (await db.execute(customer_loans_count_stmt(customer_id))).scalar_one_or_none() or 0
    return list(items), int(total)


async def list_active_for_customer(db: AsyncSession, customer_id: int) -> list[Loan]:
    return list((await db.execute(active_for_customer_stmt(customer_id))).scalars().all())


async def count_open_for_customer(db: AsyncSession, customer_id: int) -> int:
    count = (await db.execute(count_open_for_customer_stmt(customer_id))).scalar_one_or_none()
    return int(count or 0)


async def list_delinquent(db: AsyncSession) -> list[Loan]:
    return list((await db.execute(delinquent_stmt())).scalars().all())


async def list_upcoming_payments(db: AsyncSession, today: date, within_days: int) -> list[Loan]:
    stmt = upcoming_payments_stmt(today, today + timedelta(days=within_days))
    return list((await db.execute(stmt)).scalars().all())


async def total_outstanding_for_customer(db: AsyncSession, customer_id: int) -> Decimal:
    total = (await db.execute(total_outstanding_for_customer_stmt(customer_id))).scalar_one_or_none()
    return Decimal(str(total or 0)).quantize(Decimal("0.01"))


async def list_maturing(db: AsyncSession, today: date, within_days: int) -> list[Loan]:
    stmt = maturing_stmt(today, today + timedelta(days=within_days))
    return list((await db.execute(stmt)).scalars().all())


async def list_defaulted(db: AsyncSession) -> list[Loan]:
    return list((await db.execute(defaulted_stmt())).scalars().all())


async def list_with_missed_payments(db: AsyncSession, min_missed: int) -> list[Loan]:
    return list((await db.execute(missed_payments_stmt(min_missed))).scalars().all())


async def portfolio_statistics(db: AsyncSession) -> list[PortfolioStatistic]:
    rows = (await db.execute(portfolio_statistics_stmt())).all()
    return [
        PortfolioStatistic(
            loan_type=loan_type,
            count=int(count),
            total_amount=Decimal(str(total_amount)),
            total_outstanding=Decimal(str(total_outstanding)),
        )
        for loan_type, count, total_amount, total_outstanding in rows
    ]


async def customer_summary(db: AsyncSession, customer_id: int) -> CustomerLoanSummary:
    row = (await db.execute(customer_summary_stmt(customer_id))).first()
    total, active, borrowed, outstanding, paid, delinquent = row or (0, 0, 0, 0, 0, 0)
    return CustomerLoanSummary(
        customer_id=customer_id,
        total_loans=int(total or 0),
        active_loans=int(active or 0),
        total_borrowed=Decimal(str(borrowed or 0)),
        total_outstanding=Decimal(str(outstanding or 0)),
        total_paid=Decimal(str(paid or 0)),
        delinquent_loans=int(delinquent or 0),
    )
