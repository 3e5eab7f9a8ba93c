from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.loan_number_sequence import LoanNumberSequence

logger = logging.getLogger(__name__)

LOAN_NUMBER_PREFIX = "LOAN"


def format_loan_number(year: int, sequence: int) -> str:
    return f"{LOAN_NUMBER_PREFIX}-{year}-{sequence:06d}"


def next_sequence_statement(year: int):
    """Atomic upsert that bumps the per-year counter and returns the new value.

    Two transactions racing on the same year serialize on the row lock taken by
    ``ON CONFLICT DO UPDATE``, so each caller sees a distinct value.
    """
    insert_stmt = pg_insert(LoanNumberSequence).values(year=year, last_value=1)
    return insert_stmt.on_conflict_do_update(
        index_elements=[LoanNumberSequence.year],
        set_={"last_value": LoanNumberSequence.last_value + 1},
    ).returning(LoanNumberSequence.last_value)


async def next_loan_number(db: AsyncSession, today: date) -> str:
    result = await db.execute(next_sequence_statement(today.year))
    sequence = int(result.scalar_one())
    loan_number = format_loan_number(today.year, sequence)
    logger.debug("Allocated loan number %s", loan_number)
    return loan_number
