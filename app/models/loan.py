from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP, ROUND_UP

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    FetchedValue,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.schemas.loan import LoanStatus
from app.services.amortization import add_months

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

LOAN_TYPES = ("PERSONAL", "AUTO", "MORTGAGE", "HOME_EQUITY", "BUSINESS")
LOAN_STATUSES = tuple(status.value for status in LoanStatus)

DELINQUENT_AFTER_DAYS = 30
DEFAULT_AFTER_DAYS = 90


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _in_list(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{value}'" for value in values)


class Loan(Base):
    """A disbursable credit-union loan and its balance state.

    Status changes happen only through the mutation methods below, which the
    lifecycle service in ``app.services.loans`` calls inside a unit of work.
    """

    __tablename__ = "loans"
    __allow_unmapped__ = True
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(f"loan_type IN ({_in_list(LOAN_TYPES)})", name="ck_loan_type"),
        CheckConstraint(f"status IN ({_in_list(LOAN_STATUSES)})", name="ck_loan_status"),
        CheckConstraint(
            "loan_amount >= 1000 AND loan_amount <= 1000000", name="ck_loan_amount_bounds"
        ),
        CheckConstraint(
            "interest_rate >= 0 AND interest_rate <= 36", name="ck_loan_interest_rate_bounds"
        ),
        CheckConstraint("term_months >= 6 AND term_months <= 360", name="ck_loan_term_bounds"),
        CheckConstraint("outstanding_balance >= 0", name="ck_loan_balance_nonneg"),
        CheckConstraint("days_past_due >= 0", name="ck_loan_days_past_due_nonneg"),
        CheckConstraint("missed_payments >= 0", name="ck_loan_missed_payments_nonneg"),
        Index("idx_loan_customer_id", "customer_id"),
        Index("idx_loan_status", "status"),
        Index("idx_loan_type", "loan_type"),
        Index("idx_loan_application_date", "application_date"),
        Index("idx_loan_next_payment_date", "next_payment_date"),
        Index(
            "idx_loan_delinquent",
            "days_past_due",
            postgresql_where=text("days_past_due > 0"),
        ),
    )

    id = Column("loan_id", BigInteger, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, nullable=False)
    loan_number = Column(String(20), unique=True, nullable=True)
    loan_type = Column(String(20), nullable=False)
    loan_amount = Column(Numeric(12, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    term_months = Column(Integer, nullable=False)
    monthly_payment = Column(Numeric(10, 2), nullable=False)
    outstanding_balance = Column(Numeric(12, 2), nullable=False)
    total_interest_paid = Column(Numeric(12, 2), nullable=False, default=ZERO)
    total_principal_paid = Column(Numeric(12, 2), nullable=False, default=ZERO)
    status = Column(String(20), nullable=False, default=LoanStatus.PENDING.value)
    application_date = Column(Date, nullable=False)
    approval_date = Column(Date, nullable=True)
    disbursement_date = Column(Date, nullable=True)
    maturity_date = Column(Date, nullable=True)
    closed_date = Column(Date, nullable=True)
    first_payment_date = Column(Date, nullable=True)
    next_payment_date = Column(Date, nullable=True)
    days_past_due = Column(Integer, nullable=False, default=0)
    missed_payments = Column(Integer, nullable=False, default=0)
    loan_purpose = Column(String(100), nullable=True)
    approved_by = Column(BigInteger, nullable=True)
    approval_notes = Column(String(500), nullable=True)
    collateral_description = Column(String(500), nullable=True)
    collateral_value = Column(Numeric(12, 2), nullable=True)
    loan_to_value_ratio = Column(Numeric(5, 2), nullable=True)
    application_id = Column(BigInteger, nullable=True)
    is_defaulted = Column(Boolean, nullable=False, default=False)
    is_written_off = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        server_onupdate=FetchedValue(),
    )

    documents = relationship(
        "LoanDocument",
        back_populates="loan",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # -- derived values -------------------------------------------------

    @property
    def remaining_payments(self) -> int:
        payment = _as_decimal(self.monthly_payment)
        if payment <= 0:
            return 0
        return int((_as_decimal(self.outstanding_balance) / payment).to_integral_value(rounding=ROUND_UP))

    @property
    def is_delinquent(self) -> bool:
        return (self.days_past_due or 0) > 0

    @property
    def total_paid(self) -> Decimal:
        return _as_decimal(self.total_principal_paid) + _as_decimal(self.total_interest_paid)

    @property
    def percentage_paid(self) -> Decimal:
        amount = _as_decimal(self.loan_amount)
        if amount == 0:
            return ZERO
        ratio = (_as_decimal(self.total_principal_paid) / amount).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        )
        return (ratio * 100).quantize(TWOPLACES)

    def is_paid_off(self, threshold: Decimal) -> bool:
        return _as_decimal(self.outstanding_balance) < threshold

    # -- mutations ------------------------------------------------------

    def disburse(self, today: date, first_payment_offset_days: int) -> None:
        first_payment = today + timedelta(days=first_payment_offset_days)
        self.status = LoanStatus.ACTIVE.value
        self.disbursement_date = today
        self.first_payment_date = first_payment
        self.next_payment_date = first_payment
        self.maturity_date = add_months(first_payment, int(self.term_months) - 1)

    def apply_payment(
        self,
        principal_amount: Decimal,
        interest_amount: Decimal,
        *,
        today: date,
        payoff_threshold: Decimal,
    ) -> None:
        """Apply the principal/interest split supplied by the caller.

        A balance under ``payoff_threshold`` closes the loan; otherwise the next
        due date moves forward one month.
        """
        principal = _as_decimal(principal_amount)
        interest = _as_decimal(interest_amount)
        self.outstanding_balance = _as_decimal(self.outstanding_balance) - principal
        self.total_principal_paid = _as_decimal(self.total_principal_paid) + principal
        self.total_interest_paid = _as_decimal(self.total_interest_paid) + interest

        if (self.days_past_due or 0) > 0:
            self.days_past_due = 0

        if self.is_paid_off(payoff_threshold):
            self.status = LoanStatus.CLOSED.value
            self.closed_date = today
        elif self.status in (LoanStatus.ACTIVE.value, LoanStatus.DELINQUENT.value):
            if self.next_payment_date is not None:
                self.next_payment_date = add_months(self.next_payment_date, 1)

    def mark_delinquent(self, days_overdue: int) -> None:
        self.days_past_due = days_overdue
        self.missed_payments = (self.missed_payments or 0) + 1

        if days_overdue >= DEFAULT_AFTER_DAYS:
            self.status = LoanStatus.DEFAULT.value
            self.is_defaulted = True
        elif days_overdue >= DELINQUENT_AFTER_DAYS:
            self.status = LoanStatus.DELINQUENT.value

    def close(self, today: date) -> None:
        self.status = LoanStatus.CLOSED.value
        self.closed_date = today
        self.outstanding_balance = ZERO
