from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    FetchedValue,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base
from app.schemas.loan import LoanApplicationStatus

AUTO_APPROVAL_MIN_CREDIT_SCORE = 750
AUTO_APPROVAL_MAX_DTI = Decimal("36")
AUTO_APPROVAL_MIN_FRAUD_SCORE = 80


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(
            "loan_type IN ('PERSONAL', 'AUTO', 'MORTGAGE', 'HOME_EQUITY', 'BUSINESS')",
            name="ck_loan_app_loan_type",
        ),
        CheckConstraint("requested_amount >= 1000", name="ck_loan_app_requested_amount_min"),
        CheckConstraint(
            "preferred_term_months >= 6 AND preferred_term_months <= 360",
            name="ck_loan_app_term_bounds",
        ),
        CheckConstraint("annual_income >= 12000", name="ck_loan_app_annual_income_min"),
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'UNDER_REVIEW', 'INFO_REQUESTED', "
            "'APPROVED', 'REJECTED', 'WITHDRAWN', 'EXPIRED')",
            name="ck_loan_app_status",
        ),
        Index("idx_app_customer_id", "customer_id"),
        Index("idx_app_status", "status"),
        Index("idx_app_date", "application_date"),
        Index("idx_app_credit_score", "credit_score"),
    )

    id = Column("application_id", BigInteger, primary_key=True, autoincrement=True)
    customer_id = Column(BigInteger, nullable=False)
    loan_type = Column(String(20), nullable=False)
    requested_amount = Column(Numeric(12, 2), nullable=False)
    preferred_term_months = Column(Integer, nullable=False)
    loan_purpose = Column(String(200), nullable=False)
    employment_info = Column(JSONB, nullable=True)
    annual_income = Column(Numeric(12, 2), nullable=False)
    monthly_housing_payment = Column(Numeric(10, 2), nullable=True)
    other_monthly_debts = Column(Numeric(10, 2), nullable=True)
    debt_to_income_ratio = Column(Numeric(5, 2), nullable=True)
    credit_score = Column(Integer, nullable=True)
    credit_bureau = Column(String(50), nullable=True)
    income_verification = Column(JSONB, nullable=True)
    collateral_info = Column(JSONB, nullable=True)
    co_borrower_info = Column(JSONB, nullable=True)
    status = Column(String(20), nullable=False, default=LoanApplicationStatus.DRAFT.value)
    underwriting_decision = Column(String(20), nullable=True)
    decision_notes = Column(String(1000), nullable=True)
    approved_amount = Column(Numeric(12, 2), nullable=True)
    approved_rate = Column(Numeric(5, 2), nullable=True)
    approved_term_months = Column(Integer, nullable=True)
    reviewed_by = Column(BigInteger, nullable=True)
    application_date = Column(DateTime(timezone=True), nullable=True)
    reviewed_date = Column(DateTime(timezone=True), nullable=True)
    loan_id = Column(BigInteger, nullable=True)
    submission_ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    fraud_check_completed = Column(Boolean, nullable=False, default=False)
    fraud_check_score = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        server_onupdate=FetchedValue(),
    )

    def calculate_debt_to_income_ratio(self) -> Decimal | None:
        income = Decimal(str(self.annual_income)) if self.annual_income is not None else None
        if income is None or income <= 0:
            return self.debt_to_income_ratio
        monthly_income = (income / 12).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        monthly_debts = Decimal("0")
        if self.monthly_housing_payment is not None:
            monthly_debts += Decimal(str(self.monthly_housing_payment))
        if self.other_monthly_debts is not None:
            monthly_debts += Decimal(str(self.other_monthly_debts))
        ratio = (monthly_debts / monthly_income).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        self.debt_to_income_ratio = (ratio * 100).quantize(Decimal("0.01"))
        return self.debt_to_income_ratio

    def is_eligible_for_auto_approval(self) -> bool:
        return (
            self.credit_score is not None
            and self.credit_score >= AUTO_APPROVAL_MIN_CREDIT_SCORE
            and self.debt_to_income_ratio is not None
            and Decimal(str(self.debt_to_income_ratio)) <= AUTO_APPROVAL_MAX_DTI
            and bool(self.fraud_check_completed)
            and self.fraud_check_score is not None
            and self.fraud_check_score >= AUTO_APPROVAL_MIN_FRAUD_SCORE
        )

    def submit(self, now: datetime | None = None) -> None:
        self.status = LoanApplicationStatus.SUBMITTED.value
        self.application_date = now or datetime.now(timezone.utc)

    def start_review(self) -> None:
        self.status = LoanApplicationStatus.UNDER_REVIEW.value

    def approve(
        self,
        amount: Decimal,
        rate: Decimal,
        term_months: int,
        reviewer_id: int,
        now: datetime | None = None,
    ) -> None:
        self.status = LoanApplicationStatus.APPROVED.value
        self.approved_amount = amount
        self.approved_rate = rate
        self.approved_term_months = term_months
        self.reviewed_by = reviewer_id
        self.reviewed_date = now or datetime.now(timezone.utc)
        self.underwriting_decision = "APPROVED"

    def reject(self, reason: str, reviewer_id: int, now: datetime | None = None) -> None:
        self.status = LoanApplicationStatus.REJECTED.value
        self.decision_notes = reason
        self.reviewed_by = reviewer_id
        self.reviewed_date = now or datetime.now(timezone.utc)
        self.underwriting_decision = "REJECTED"
