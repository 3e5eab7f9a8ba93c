from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql

from conftest import FakeAsyncSession, FakeResult, make_loan, sequence_handler

from app.services import loan_numbers, loan_queries


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _literal_sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def test_lookup_for_update_locks_row():
    sql = _sql(loan_queries.loan_by_id_stmt(7, for_update=True))
    assert "FOR UPDATE" in sql
    assert "loans.is_deleted IS false" in sql


def test_delinquent_orders_worst_first():
    sql = _sql(loan_queries.delinquent_stmt())
    assert "loans.days_past_due > " in sql
    assert "ORDER BY loans.days_past_due DESC" in sql


def test_open_count_covers_active_and_delinquent():
    sql = _sql(loan_queries.count_open_for_customer_stmt(1001))
    assert "count(loans.loan_id)" in sql
    assert "loans.status IN" in sql


def test_active_for_customer_includes_delinquent_loans():
    sql = _literal_sql(loan_queries.active_for_customer_stmt(1001))
    assert "loans.customer_id = 1001" in sql
    assert "'ACTIVE'" in sql
    assert "'DELINQUENT'" in sql
    assert "loans.is_deleted IS false" in sql


def test_portfolio_statistics_counts_only_open_loans():
    sql = _literal_sql(loan_queries.portfolio_statistics_stmt())
    assert "'ACTIVE'" in sql
    assert "'DELINQUENT'" in sql
    assert "'CLOSED'" not in sql
    assert "GROUP BY loans.loan_type" in sql


def test_missed_payments_skips_closed_loans():
    sql = _literal_sql(loan_queries.missed_payments_stmt(3))
    assert "loans.missed_payments >= 3" in sql
    for status in ("ACTIVE", "DELINQUENT", "DEFAULT"):
        assert f"'{status}'" in sql
    assert "'CLOSED'" not in sql


def test_customer_page_offsets_by_page():
    compiled = loan_queries.customer_loans_stmt(1001, page=2, size=20).compile(
        dialect=postgresql.dialect()
    )
    values = list(compiled.params.values())
    assert 20 in values
    assert 40 in values


def test_sequence_statement_upserts_per_year():
    sql = _sql(loan_numbers.next_sequence_statement(2026))
    assert "INSERT INTO loan_number_sequences" in sql
    assert "ON CONFLICT (year) DO UPDATE" in sql
    assert "RETURNING loan_number_sequences.last_value" in sql


def test_format_loan_number_pads_sequence():
    assert loan_numbers.format_loan_number(2026, 42) == "LOAN-2026-000042"


@pytest.mark.asyncio
async def test_next_loan_number_uses_returned_sequence():
    db = FakeAsyncSession().on_execute_return(FakeResult(scalar=7))
    assert await loan_numbers.next_loan_number(db, date(2026, 10, 18)) == "LOAN-2026-000007"


@pytest.mark.asyncio
async def test_list_customer_loans_returns_items_and_total():
    loan = make_loan()
    db = FakeAsyncSession().on_execute(
        sequence_handler([FakeResult(items=[loan]), FakeResult(scalar=1)])
    )
    items, total = await loan_queries.list_customer_loans(db, 1001, page=0, size=20)
    assert items == [loan]
    assert total == 1


@pytest.mark.asyncio
async def test_total_outstanding_defaults_to_zero():
    db = FakeAsyncSession().on_execute_return(FakeResult(scalar=0))
    assert await loan_queries.total_outstanding_for_customer(db, 1001) == Decimal("0.00")


@pytest.mark.asyncio
async def test_portfolio_statistics_maps_rows():
    db = FakeAsyncSession().on_execute_return(
        FakeResult(rows=[("AUTO", 2, Decimal("70000.00"), Decimal("56000.00"))])
    )
    stats = await loan_queries.portfolio_statistics(db)
    assert stats[0].loan_type == "AUTO"
    assert stats[0].count == 2
    assert stats[0].total_outstanding == Decimal("56000.00")


@pytest.mark.asyncio
async def test_customer_summary_maps_row():
    db = FakeAsyncSession().on_execute_return(
        FakeResult(
            rows=[(3, 2, Decimal("60000.00"), Decimal("41500.00"), Decimal("9000.00"), 1)]
        )
    )
    summary = await loan_queries.customer_summary(db, 1001)
    assert summary.total_loans == 3
    assert summary.active_loans == 2
    assert summary.total_outstanding == Decimal("41500.00")
    assert summary.delinquent_loans == 1
