"""Fixed-payment amortization arithmetic.

Everything here is pure: no I/O, no clock, no database. Amounts are handled as
``Decimal`` with a 34-digit working precision and rounded half-up to cents only
at the end of each computed value.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, localcontext

TWOPLACES = Decimal("0.01")
WORKING_PRECISION = 34


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def monthly_rate(annual_rate_percent) -> Decimal:
    return _as_decimal(annual_rate_percent) / Decimal("1200")


def monthly_payment(principal, annual_rate_percent, term_months: int) -> Decimal:
    """M = P * r(1+r)^n / ((1+r)^n - 1), or P / n when the rate is zero."""
    principal = _as_decimal(principal)
    annual_rate = _as_decimal(annual_rate_percent)
    if term_months is None or int(term_months) <= 0:
        raise ValueError("term_months must be >= 1")
    if principal < 0:
        raise ValueError("principal must be >= 0")
    if annual_rate < 0:
        raise ValueError("annual_rate_percent must be >= 0")

    n = int(term_months)
    with localcontext() as ctx:
        ctx.prec = WORKING_PRECISION
        rate = monthly_rate(annual_rate)
        if rate == 0:
            payment = principal / Decimal(n)
        else:
            factor = (Decimal("1") + rate) ** n
            payment = principal * rate * factor / (factor - Decimal("1"))
        return payment.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class ScheduleRow:
    period: int
    due_date: date
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


def build_schedule(
    principal,
    annual_rate_percent,
    term_months: int,
    first_due_date: date,
    *,
    payment: Decimal | None = None,
) -> list[ScheduleRow]:
    """Period-by-period split of a fixed payment into interest and principal.

    Interest accrues on the opening balance of each period; the final period
    absorbs whatever balance the rounding left behind.
    """
    balance = _as_decimal(principal).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    fixed_payment = (
        _as_decimal(payment)
        if payment is not None
        else monthly_payment(balance, annual_rate_percent, term_months)
    )
    rate = monthly_rate(annual_rate_percent)
    rows: list[ScheduleRow] = []
    for period in range(1, int(term_months) + 1):
        interest = (balance * rate).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        principal_part = (fixed_payment - interest).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        period_payment = fixed_payment
        if period == term_months or principal_part > balance:
            principal_part = balance
            period_payment = (principal_part + interest).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        balance = (balance - principal_part).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        rows.append(
            ScheduleRow(
                period=period,
                due_date=add_months(first_due_date, period - 1),
                payment=period_payment,
                principal=principal_part,
                interest=interest,
                remaining_balance=balance,
            )
        )
        if balance == 0:
            break
    return rows
