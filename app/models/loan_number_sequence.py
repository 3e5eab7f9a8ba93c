from sqlalchemy import BigInteger, CheckConstraint, Column, Integer

from app.db.base import Base


class LoanNumberSequence(Base):
    """Per-year counter backing ``LOAN-<year>-<sequence>`` numbers."""

    __tablename__ = "loan_number_sequences"
    __table_args__ = (
        CheckConstraint("last_value >= 0", name="ck_loan_number_seq_nonneg"),
    )

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(BigInteger, nullable=False, default=0)
