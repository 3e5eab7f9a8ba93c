from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LoanType(str, Enum):
    PERSONAL = "PERSONAL"
    AUTO = "AUTO"
    MORTGAGE = "MORTGAGE"
    HOME_EQUITY = "HOME_EQUITY"
    BUSINESS = "BUSINESS"


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    DELINQUENT = "DELINQUENT"
    DEFAULT = "DEFAULT"
    CLOSED = "CLOSED"
    WRITTEN_OFF = "WRITTEN_OFF"
    CANCELLED = "CANCELLED"


# Statuses that count toward the per-customer cap and accept payments.
OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE.value, LoanStatus.DELINQUENT.value)
TERMINAL_LOAN_STATUSES = (
    LoanStatus.CLOSED.value,
    LoanStatus.REJECTED.value,
    LoanStatus.WRITTEN_OFF.value,
    LoanStatus.CANCELLED.value,
)


class LoanApplicationStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    INFO_REQUESTED = "INFO_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    EXPIRED = "EXPIRED"


class LoanDocumentType(str, Enum):
    IDENTIFICATION = "IDENTIFICATION"
    PAY_STUB = "PAY_STUB"
    W2_FORM = "W2_FORM"
    TAX_RETURN = "TAX_RETURN"
    BANK_STATEMENT = "BANK_STATEMENT"
    EMPLOYMENT_VERIFICATION = "EMPLOYMENT_VERIFICATION"
    CREDIT_REPORT = "CREDIT_REPORT"
    APPRAISAL = "APPRAISAL"
    VEHICLE_TITLE = "VEHICLE_TITLE"
    INSURANCE = "INSURANCE"
    LOAN_AGREEMENT = "LOAN_AGREEMENT"
    PROMISSORY_NOTE = "PROMISSORY_NOTE"
    OTHER = "OTHER"


class _CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys; serializes camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class LoanCreateRequest(_CamelModel):
    customer_id: int = Field(gt=0)
    loan_type: LoanType
    loan_amount: Decimal = Field(ge=Decimal("1000.00"), le=Decimal("1000000.00"))
    interest_rate: Decimal = Field(ge=Decimal("0.00"), le=Decimal("36.00"))
    term_months: int = Field(ge=6, le=360)
    loan_purpose: str = Field(min_length=1, max_length=100)
    approved_by: int | None = None
    approval_notes: str | None = Field(default=None, max_length=500)
    application_id: int | None = None
    collateral_description: str | None = Field(default=None, max_length=500)
    collateral_value: Decimal | None = Field(default=None, ge=Decimal("0.00"))

    @field_validator("loan_purpose")
    @classmethod
    def _purpose_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Loan purpose is required")
        return cleaned


class PaymentRequest(_CamelModel):
    payment_amount: Decimal = Field(ge=Decimal("0.01"))
    principal_amount: Decimal = Field(ge=Decimal("0.00"))
    interest_amount: Decimal = Field(ge=Decimal("0.00"))
    payment_method: str | None = Field(default=None, max_length=20)
    transaction_id: str | None = Field(default=None, max_length=100)


class LoanDTO(_CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    loan_number: str | None = None
    loan_type: LoanType
    loan_amount: Decimal
    interest_rate: Decimal
    term_months: int
    monthly_payment: Decimal
    outstanding_balance: Decimal
    total_interest_paid: Decimal = Decimal("0.00")
    total_principal_paid: Decimal = Decimal("0.00")
    status: LoanStatus
    application_date: date
    approval_date: date | None = None
    disbursement_date: date | None = None
    maturity_date: date | None = None
    closed_date: date | None = None
    first_payment_date: date | None = None
    next_payment_date: date | None = None
    days_past_due: int = 0
    missed_payments: int = 0
    loan_purpose: str | None = None
    approved_by: int | None = None
    approval_notes: str | None = None
    collateral_description: str | None = None
    collateral_value: Decimal | None = None
    loan_to_value_ratio: Decimal | None = None
    application_id: int | None = None
    is_defaulted: bool = False
    is_written_off: bool = False
    remaining_payments: int = 0
    total_paid: Decimal = Decimal("0.00")
    percentage_paid: Decimal = Decimal("0.00")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoanPage(_CamelModel):
    items: list[LoanDTO]
    total: int
    page: int
    size: int


class LoanScheduleEntry(_CamelModel):
    period: int
    due_date: date
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


class LoanScheduleResponse(_CamelModel):
    loan_id: int
    loan_number: str | None = None
    start_date: date
    term_months: int
    principal: Decimal
    annual_rate_percent: Decimal
    monthly_payment: Decimal
    total_interest: Decimal
    entries: list[LoanScheduleEntry]


class PortfolioStatistic(_CamelModel):
    loan_type: LoanType
    count: int
    total_amount: Decimal
    total_outstanding: Decimal


class CustomerLoanSummary(_CamelModel):
    customer_id: int
    total_loans: int
    active_loans: int
    total_borrowed: Decimal
    total_outstanding: Decimal
    total_paid: Decimal
    delinquent_loans: int


class LoanDocumentCreateRequest(_CamelModel):
    document_type: LoanDocumentType
    file_name: str = Field(min_length=1, max_length=255)
    document_url: str = Field(min_length=1, max_length=500)
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = Field(default=None, max_length=100)
    uploaded_by: int | None = None
    expiration_date: datetime | None = None


class LoanDocumentDTO(_CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    loan_id: int
    document_type: LoanDocumentType
    file_name: str
    document_url: str
    file_size: int | None = None
    mime_type: str | None = None
    verified: bool = False
    verified_by: int | None = None
    verified_date: datetime | None = None
    verification_notes: str | None = None
    uploaded_by: int | None = None
    uploaded_at: datetime | None = None
    expiration_date: datetime | None = None
