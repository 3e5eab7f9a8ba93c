from datetime import date
from decimal import Decimal

import pytest

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_loan

from app.core.errors import (
    ActiveLoanLimitExceeded,
    InvalidLoanState,
    InvalidPayment,
    LoanNotFound,
    OutstandingBalance,
)
from app.models.loan import Loan
from app.schemas.loan import LoanCreateRequest, LoanDTO, PaymentRequest
from app.services import amortization, loan_cache, loan_numbers, loan_queries, loans

TODAY = date(2026, 1, 31)


@pytest.fixture(autouse=True)
def _fixed_today(monkeypatch):
    monkeypatch.setattr(loans, "_today", lambda: TODAY)


@pytest.fixture
def audit_calls(monkeypatch):
    calls: list[tuple[str, dict]] = []

    def _record(action, **fields):
        calls.append((action, fields))

    monkeypatch.setattr(loans, "audit_event", _record)
    return calls


def _loan_session(loan: Loan) -> FakeAsyncSession:
    return FakeAsyncSession().on_execute(entity_handler(Loan, FakeResult(scalar=loan)))


def _create_payload(**overrides) -> LoanCreateRequest:
    data = {
        "customerId": 1001,
        "loanType": "PERSONAL",
        "loanAmount": "25000",
        "interestRate": "8.99",
        "termMonths": 60,
        "loanPurpose": "Debt Consolidation",
    }
    data.update(overrides)
    return LoanCreateRequest.model_validate(data)


def _patch_creation(monkeypatch, *, open_count: int = 0, loan_number: str = "LOAN-2026-000001"):
    async def _count(db, customer_id):
        return open_count

    async def _number(db, today):
        return loan_number

    monkeypatch.setattr(loan_queries, "count_open_for_customer", _count)
    monkeypatch.setattr(loan_numbers, "next_loan_number", _number)


@pytest.mark.asyncio
async def test_create_loan_sets_approved_state(monkeypatch, fake_redis, audit_calls):
    _patch_creation(monkeypatch)
    db = FakeAsyncSession()

    loan = await loans.create_loan(db, _create_payload(collateralValue="50000"))

    assert loan.id == 1
    assert loan.loan_number == "LOAN-2026-000001"
    assert loan.status == "APPROVED"
    assert loan.outstanding_balance == Decimal("25000.00")
    assert loan.total_principal_paid == Decimal("0.00")
    assert loan.monthly_payment == amortization.monthly_payment(Decimal("25000"), Decimal("8.99"), 60)
    assert loan.application_date == TODAY
    assert loan.approval_date == TODAY
    assert loan.loan_to_value_ratio == Decimal("50.00")
    assert db.commits == 1
    assert audit_calls[0][0] == "loan.created"
    assert audit_calls[0][1]["to_status"] == "APPROVED"


@pytest.mark.asyncio
async def test_sixth_open_loan_is_rejected(monkeypatch, fake_redis):
    _patch_creation(monkeypatch, open_count=5)
    db = FakeAsyncSession()

    with pytest.raises(ActiveLoanLimitExceeded):
        await loans.create_loan(db, _create_payload())

    assert db.added == []
    assert db.commits == 0
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_fifth_open_loan_is_allowed(monkeypatch, fake_redis):
    _patch_creation(monkeypatch, open_count=4)
    loan = await loans.create_loan(FakeAsyncSession(), _create_payload())
    assert loan.status == "APPROVED"


@pytest.mark.asyncio
async def test_disburse_activates_and_generates_schedule(fake_redis, audit_calls):
    loan = make_loan(monthly_payment=amortization.monthly_payment(Decimal("25000"), Decimal("8.99"), 60))
    db = _loan_session(loan)

    result = await loans.disburse_loan(db, 1)

    assert result.status == "ACTIVE"
    assert result.disbursement_date == TODAY
    assert result.first_payment_date == date(2026, 3, 2)
    assert result.next_payment_date == date(2026, 3, 2)
    assert result.maturity_date == date(2031, 2, 2)
    assert db.commits == 1
    assert "loan-service:loan:1:schedule" in fake_redis.store
    assert audit_calls[0][1]["from_status"] == "APPROVED"
    assert audit_calls[0][1]["to_status"] == "ACTIVE"


@pytest.mark.asyncio
async def test_disburse_survives_schedule_failure(monkeypatch, fake_redis):
    class _BrokenRedis:
        async def setex(self, *args, **kwargs):
            raise ConnectionError("redis down")

        async def delete(self, *args, **kwargs):
            return 0

    from app.services import loan_schedules

    monkeypatch.setattr(loan_schedules, "get_redis_client", lambda: _BrokenRedis())
    loan = make_loan()
    result = await loans.disburse_loan(_loan_session(loan), 1)
    assert result.status == "ACTIVE"


@pytest.mark.asyncio
async def test_disburse_requires_approved(fake_redis):
    loan = make_loan(status="ACTIVE")
    db = _loan_session(loan)

    with pytest.raises(InvalidLoanState):
        await loans.disburse_loan(db, 1)

    assert db.commits == 0
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_missing_loan_raises_not_found(fake_redis):
    with pytest.raises(LoanNotFound):
        await loans.disburse_loan(FakeAsyncSession(), 404)


@pytest.mark.asyncio
async def test_mutations_lock_the_row(fake_redis):
    loan = make_loan()
    db = _loan_session(loan)
    await loans.disburse_loan(db, 1)
    assert db.executed[0]._for_update_arg is not None


@pytest.mark.asyncio
async def test_payment_decrements_balance(fake_redis):
    loan = make_loan(status="ACTIVE", next_payment_date=date(2026, 3, 2))
    payload = PaymentRequest(payment_amount="518.84", principal_amount="331.55", interest_amount="187.29")

    result = await loans.process_payment(_loan_session(loan), 1, payload)

    assert result.outstanding_balance == Decimal("24668.45")
    assert result.total_principal_paid == Decimal("331.55")
    assert result.total_interest_paid == Decimal("187.29")
    assert result.next_payment_date == date(2026, 4, 2)


@pytest.mark.asyncio
async def test_double_submission_deducts_twice(fake_redis):
    loan = make_loan(status="ACTIVE", next_payment_date=date(2026, 3, 2))
    db = _loan_session(loan)
    payload = PaymentRequest(payment_amount="518.84", principal_amount="331.55", interest_amount="187.29")

    await loans.process_payment(db, 1, payload)
    await loans.process_payment(db, 1, payload)

    assert loan.outstanding_balance == Decimal("24336.90")
    assert loan.total_principal_paid == Decimal("663.10")
    assert loan.next_payment_date == date(2026, 5, 2)
    assert db.commits == 2


@pytest.mark.asyncio
async def test_payment_rejected_when_not_open(fake_redis):
    loan = make_loan(status="APPROVED")
    payload = PaymentRequest(payment_amount="100", principal_amount="100", interest_amount="0")
    with pytest.raises(InvalidLoanState):
        await loans.process_payment(_loan_session(loan), 1, payload)
    assert loan.outstanding_balance == Decimal("25000.00")


@pytest.mark.asyncio
async def test_principal_above_balance_is_rejected(fake_redis):
    loan = make_loan(status="ACTIVE", outstanding_balance=Decimal("100.00"))
    db = _loan_session(loan)
    payload = PaymentRequest(payment_amount="150", principal_amount="150", interest_amount="0")

    with pytest.raises(InvalidPayment):
        await loans.process_payment(db, 1, payload)

    assert loan.outstanding_balance == Decimal("100.00")
    assert db.rollbacks == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "days, expected_status, defaulted",
    [(95, "DEFAULT", True), (45, "DELINQUENT", False), (10, "ACTIVE", False)],
)
async def test_mark_delinquent(fake_redis, days, expected_status, defaulted):
    loan = make_loan(status="ACTIVE")

    result = await loans.mark_delinquent(_loan_session(loan), 1, days)

    assert result.status == expected_status
    assert result.is_defaulted is defaulted
    assert result.days_past_due == days
    assert result.missed_payments == 1


@pytest.mark.asyncio
async def test_close_with_balance_fails(fake_redis):
    loan = make_loan(status="ACTIVE", outstanding_balance=Decimal("1.01"))
    with pytest.raises(OutstandingBalance):
        await loans.close_loan(_loan_session(loan), 1)
    assert loan.status == "ACTIVE"


@pytest.mark.asyncio
async def test_close_at_threshold_succeeds(fake_redis):
    loan = make_loan(status="ACTIVE", outstanding_balance=Decimal("1.00"))

    result = await loans.close_loan(_loan_session(loan), 1)

    assert result.status == "CLOSED"
    assert result.outstanding_balance == Decimal("0.00")
    assert result.closed_date == TODAY


@pytest.mark.asyncio
async def test_commit_evicts_cached_loan(fake_redis):
    loan = make_loan(status="ACTIVE")
    await loan_cache.put_cached_loan(LoanDTO.model_validate(loan))
    assert loan_cache.cache_key(1) in fake_redis.store

    await loans.mark_delinquent(_loan_session(loan), 1, 45)

    assert loan_cache.cache_key(1) not in fake_redis.store


@pytest.mark.asyncio
async def test_failed_mutation_keeps_cache(fake_redis):
    loan = make_loan(status="ACTIVE", outstanding_balance=Decimal("500.00"))
    await loan_cache.put_cached_loan(LoanDTO.model_validate(loan))

    with pytest.raises(OutstandingBalance):
        await loans.close_loan(_loan_session(loan), 1)

    assert loan_cache.cache_key(1) in fake_redis.store


@pytest.mark.asyncio
async def test_get_loan_reads_through_cache(fake_redis):
    loan = make_loan()
    db = _loan_session(loan)

    first = await loans.get_loan(db, 1)
    second = await loans.get_loan(FakeAsyncSession(), 1)

    assert first.loan_number == "LOAN-2026-000001"
    assert second.loan_number == "LOAN-2026-000001"
    assert len(db.executed) == 1


@pytest.mark.asyncio
async def test_full_term_of_scheduled_payments_closes_loan(monkeypatch, fake_redis):
    _patch_creation(monkeypatch)
    db = FakeAsyncSession()
    loan = await loans.create_loan(db, _create_payload())
    db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))

    await loans.disburse_loan(db, loan.id)
    rows = amortization.build_schedule(
        loan.loan_amount,
        loan.interest_rate,
        loan.term_months,
        loan.first_payment_date,
        payment=loan.monthly_payment,
    )
    assert len(rows) == 60

    for row in rows[:-1]:
        await loans.process_payment(
            db,
            loan.id,
            PaymentRequest(
                payment_amount=row.payment,
                principal_amount=row.principal,
                interest_amount=row.interest,
            ),
        )
        assert loan.status == "ACTIVE"

    final = rows[-1]
    await loans.process_payment(
        db,
        loan.id,
        PaymentRequest(
            payment_amount=final.payment,
            principal_amount=final.principal,
            interest_amount=final.interest,
        ),
    )

    assert loan.status == "CLOSED"
    assert loan.outstanding_balance == Decimal("0.00")
    assert loan.total_principal_paid == Decimal("25000.00")
    assert loan.closed_date == TODAY
