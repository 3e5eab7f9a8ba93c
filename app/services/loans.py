"""Loan lifecycle: create, disburse, pay, mark delinquent, close.

Every mutation runs inside a ``LoanUnitOfWork``: the loan row is loaded with
``SELECT ... FOR UPDATE``, mutated through the ``Loan`` methods, committed, and
only then evicted from the read-through cache.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ActiveLoanLimitExceeded,
    InvalidLoanState,
    InvalidPayment,
    LoanNotFound,
    OutstandingBalance,
)
from app.core.logging import audit_event
from app.core.settings import settings
from app.models.loan import Loan
from app.schemas.loan import (
    OPEN_LOAN_STATUSES,
    LoanCreateRequest,
    LoanDTO,
    LoanStatus,
    PaymentRequest,
)
from app.services import amortization, loan_cache, loan_numbers, loan_queries, loan_schedules

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")


def _today() -> date:
    return date.today()


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LoanUnitOfWork:
    """Commit-or-rollback boundary around one loan mutation.

    Cache entries for every loan loaded through ``load_for_update`` are
    invalidated after a successful commit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._touched: set[int] = set()

    async def __aenter__(self) -> LoanUnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            await self.db.rollback()
            return False
        await self.db.commit()
        for loan_id in self._touched:
            await loan_cache.invalidate_loan(loan_id)
        return False

    async def load_for_update(self, loan_id: int) -> Loan:
        loan = await loan_queries.get_loan_for_update(self.db, loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan not found with id: {loan_id}", loan_id=loan_id)
        self._touched.add(loan.id)
        return loan

    def add(self, loan: Loan) -> None:
        self.db.add(loan)


def _loan_to_value_ratio(amount: Decimal, collateral_value: Decimal | None) -> Decimal | None:
    if collateral_value is None or collateral_value <= 0:
        return None
    ratio = (amount / collateral_value).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    return (ratio * 100).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _audit_transition(action: str, loan: Loan, from_status: str | None, **fields) -> None:
    audit_event(
        action,
        loan_id=loan.id,
        loan_number=loan.loan_number,
        from_status=from_status,
        to_status=loan.status,
        **fields,
    )


async def create_loan(db: AsyncSession, payload: LoanCreateRequest) -> Loan:
    today = _today()
    async with LoanUnitOfWork(db) as uow:
        open_count = await loan_queries.count_open_for_customer(db, payload.customer_id)
        if open_count >= settings.max_active_loans_per_customer:
            raise ActiveLoanLimitExceeded(
                "Customer has reached maximum number of active loans",
                customer_id=payload.customer_id,
                limit=settings.max_active_loans_per_customer,
            )

        amount = _as_decimal(payload.loan_amount).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        rate = _as_decimal(payload.interest_rate).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        loan = Loan(
            customer_id=payload.customer_id,
            loan_number=await loan_numbers.next_loan_number(db, today),
            loan_type=payload.loan_type,
            loan_amount=amount,
            interest_rate=rate,
            term_months=payload.term_months,
            monthly_payment=amortization.monthly_payment(amount, rate, payload.term_months),
            outstanding_balance=amount,
            total_principal_paid=Decimal("0.00"),
            total_interest_paid=Decimal("0.00"),
            status=LoanStatus.APPROVED.value,
            application_date=today,
            approval_date=today,
            days_past_due=0,
            missed_payments=0,
            loan_purpose=payload.loan_purpose,
            approved_by=payload.approved_by,
            approval_notes=payload.approval_notes,
            collateral_description=payload.collateral_description,
            collateral_value=payload.collateral_value,
            loan_to_value_ratio=_loan_to_value_ratio(amount, payload.collateral_value),
            application_id=payload.application_id,
            is_defaulted=False,
            is_written_off=False,
            is_deleted=False,
        )
        uow.add(loan)
        await db.flush()

    logger.info(
        "Loan created loan_number=%s customer_id=%s amount=%s",
        loan.loan_number,
        loan.customer_id,
        loan.loan_amount,
    )
    _audit_transition("loan.created", loan, LoanStatus.PENDING.value)
    return loan


async def disburse_loan(db: AsyncSession, loan_id: int) -> Loan:
    async with LoanUnitOfWork(db) as uow:
        loan = await uow.load_for_update(loan_id)
        if loan.status != LoanStatus.APPROVED.value:
            raise InvalidLoanState(
                "Loan must be approved before disbursement",
                loan_id=loan_id,
                status=loan.status,
            )
        from_status = loan.status
        loan.disburse(_today(), settings.first_payment_offset_days)

    logger.info("Loan disbursed loan_number=%s", loan.loan_number)
    _audit_transition("loan.disbursed", loan, from_status)
    await loan_schedules.generate_schedule(loan)
    return loan


async def process_payment(db: AsyncSession, loan_id: int, payload: PaymentRequest) -> Loan:
    principal = _as_decimal(payload.principal_amount)
    interest = _as_decimal(payload.interest_amount)
    async with LoanUnitOfWork(db) as uow:
        loan = await uow.load_for_update(loan_id)
        if loan.status not in OPEN_LOAN_STATUSES:
            raise InvalidLoanState(
                "Loan is not in a valid state for payments",
                loan_id=loan_id,
                status=loan.status,
            )
        balance = _as_decimal(loan.outstanding_balance)
        if principal > balance:
            raise InvalidPayment(
                "Principal amount exceeds outstanding balance",
                loan_id=loan_id,
                principal_amount=principal,
                outstanding_balance=balance,
            )
        from_status = loan.status
        loan.apply_payment(
            principal,
            interest,
            today=_today(),
            payoff_threshold=settings.payoff_threshold,
        )

    logger.info(
        "Payment processed loan_number=%s amount=%s balance=%s",
        loan.loan_number,
        payload.payment_amount,
        loan.outstanding_balance,
    )
    _audit_transition(
        "loan.payment_processed",
        loan,
        from_status,
        payment_amount=payload.payment_amount,
        principal_amount=principal,
        interest_amount=interest,
        payment_method=payload.payment_method,
        transaction_id=payload.transaction_id,
    )
    return loan


async def mark_delinquent(db: AsyncSession, loan_id: int, days_overdue: int) -> Loan:
    if days_overdue < 0:
        raise ValueError("days_overdue must be >= 0")
    async with LoanUnitOfWork(db) as uow:
        loan = await uow.load_for_update(loan_id)
        from_status = loan.status
        loan.mark_delinquent(days_overdue)

    logger.warning(
        "Loan marked delinquent loan_number=%s days_overdue=%s status=%s",
        loan.loan_number,
        days_overdue,
        loan.status,
    )
    _audit_transition("loan.marked_delinquent", loan, from_status, days_overdue=days_overdue)
    return loan


async def close_loan(db: AsyncSession, loan_id: int) -> Loan:
    async with LoanUnitOfWork(db) as uow:
        loan = await uow.load_for_update(loan_id)
        balance = _as_decimal(loan.outstanding_balance)
        if balance > settings.payoff_threshold:
            raise OutstandingBalance(
                "Cannot close loan with outstanding balance",
                loan_id=loan_id,
                outstanding_balance=balance,
            )
        from_status = loan.status
        loan.close(_today())

    logger.info("Loan closed loan_number=%s", loan.loan_number)
    _audit_transition("loan.closed", loan, from_status)
    return loan


async def get_loan(db: AsyncSession, loan_id: int) -> LoanDTO:
    cached = await loan_cache.get_cached_loan(loan_id)
    if cached is not None:
        return cached
    loan = await loan_queries.get_loan(db, loan_id)
    if loan is None:
        raise LoanNotFound(f"Loan not found with id: {loan_id}", loan_id=loan_id)
    dto = LoanDTO.model_validate(loan)
    await loan_cache.put_cached_loan(dto)
    return dto


async def get_loan_by_number(db: AsyncSession, loan_number: str) -> Loan:
    loan = await loan_queries.get_loan_by_number(db, loan_number)
    if loan is None:
        raise LoanNotFound(f"Loan not found with number: {loan_number}", loan_number=loan_number)
    return loan
