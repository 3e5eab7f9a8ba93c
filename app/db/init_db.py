import asyncio
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal
from app.models.loan import Loan
from app.models.loan_number_sequence import LoanNumberSequence

logger = logging.getLogger(__name__)

SAMPLE_YEAR = 2019

# (customer, type, amount, rate, term, payment, balance, status, applied, approved,
#  disbursed, first payment, next payment, maturity, purpose)
SAMPLE_LOANS = [
    (1001, "PERSONAL", "25000.00", "8.99", 60, "518.45", "18750.00", "ACTIVE",
     date(2019, 1, 15), date(2019, 1, 20), date(2019, 1, 25), date(2019, 2, 25),
     date(2024, 11, 25), date(2024, 1, 25), "Debt Consolidation"),
    (1002, "AUTO", "35000.00", "5.49", 72, "567.23", "28000.00", "ACTIVE",
     date(2019, 3, 10), date(2019, 3, 12), date(2019, 3, 15), date(2019, 4, 15),
     date(2024, 11, 15), date(2025, 3, 15), "Vehicle Purchase"),
    (1003, "MORTGAGE", "350000.00", "3.75", 360, "1620.91", "330000.00", "ACTIVE",
     date(2019, 5, 20), date(2019, 6, 1), date(2019, 6, 15), date(2019, 7, 15),
     date(2024, 11, 15), date(2049, 6, 15), "Home Purchase"),
    (1004, "PERSONAL", "15000.00", "12.99", 48, "402.50", "13500.00", "DELINQUENT",
     date(2019, 8, 5), date(2019, 8, 10), date(2019, 8, 15), date(2019, 9, 15),
     date(2024, 10, 15), date(2023, 8, 15), "Medical Expenses"),
    (1005, "BUSINESS", "100000.00", "7.25", 120, "1174.15", "85000.00", "ACTIVE",
     date(2019, 10, 1), date(2019, 10, 10), date(2019, 10, 15), date(2019, 11, 15),
     date(2024, 11, 15), date(2029, 10, 15), "Business Expansion"),
]

DELINQUENT_SAMPLE = {"LOAN-2019-000004": (45, 2)}


def build_sample_loans() -> list[Loan]:
    loans: list[Loan] = []
    for index, row in enumerate(SAMPLE_LOANS, start=1):
        (
            customer_id, loan_type, amount, rate, term, payment, balance, status,
            applied, approved, disbursed, first_payment, next_payment, maturity, purpose,
        ) = row
        loan_number = f"LOAN-{SAMPLE_YEAR}-{index:06d}"
        days_past_due, missed = DELINQUENT_SAMPLE.get(loan_number, (0, 0))
        loans.append(
            Loan(
                customer_id=customer_id,
                loan_number=loan_number,
                loan_type=loan_type,
                loan_amount=Decimal(amount),
                interest_rate=Decimal(rate),
                term_months=term,
                monthly_payment=Decimal(payment),
                outstanding_balance=Decimal(balance),
                total_principal_paid=Decimal("0.00"),
                total_interest_paid=Decimal("0.00"),
                status=status,
                application_date=applied,
                approval_date=approved,
                disbursement_date=disbursed,
                first_payment_date=first_payment,
                next_payment_date=next_payment,
                maturity_date=maturity,
                loan_purpose=purpose,
                days_past_due=days_past_due,
                missed_payments=missed,
                is_defaulted=False,
                is_written_off=False,
                is_deleted=False,
            )
        )
    return loans


async def init_db() -> None:
    """
    Seed the loans table with the sample portfolio when it is empty.
    """
    async with AsyncSessionLocal() as session:
        existing = (await session.execute(select(func.count(Loan.id)))).scalar_one()
        if existing:
            logger.info("Loans table already populated count=%s; skipping seed", existing)
            return

        logger.info("Seeding sample loans")
        session.add_all(build_sample_loans())
        await session.execute(
            pg_insert(LoanNumberSequence)
            .values(year=SAMPLE_YEAR, last_value=len(SAMPLE_LOANS))
            .on_conflict_do_nothing(index_elements=[LoanNumberSequence.year])
        )
        await session.commit()
        logger.info("Sample loans created count=%s", len(SAMPLE_LOANS))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
