from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.schemas.loan import LoanDocumentType

DOCUMENT_TYPES = tuple(document_type.value for document_type in LoanDocumentType)


class LoanDocument(Base):
    """Metadata for a loan document; the file itself lives in external storage."""

    __tablename__ = "loan_documents"
    __allow_unmapped__ = True
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(
            "document_type IN ("
            + ", ".join(f"'{value}'" for value in DOCUMENT_TYPES)
            + ")",
            name="ck_loan_document_type",
        ),
        Index("idx_doc_loan_id", "loan_id"),
        Index("idx_doc_type", "document_type"),
        Index("idx_doc_verified", "verified"),
    )

    id = Column("document_id", BigInteger, primary_key=True, autoincrement=True)
    loan_id = Column(
        BigInteger,
        ForeignKey("loans.loan_id", ondelete="CASCADE"),
        nullable=False,
    )
    document_type = Column(String(50), nullable=False)
    file_name = Column(String(255), nullable=False)
    document_url = Column(String(500), nullable=False)
    file_size = Column(BigInteger, nullable=True)
    mime_type = Column(String(100), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    verified_by = Column(BigInteger, nullable=True)
    verified_date = Column(DateTime(timezone=True), nullable=True)
    verification_notes = Column(String(500), nullable=True)
    uploaded_by = Column(BigInteger, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expiration_date = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    loan = relationship("Loan", back_populates="documents")

    def verify(self, verifier_id: int, notes: str | None = None, now: datetime | None = None) -> None:
        self.verified = True
        self.verified_by = verifier_id
        self.verified_date = now or datetime.now(timezone.utc)
        self.verification_notes = notes

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiration_date is None:
            return False
        return (now or datetime.now(timezone.utc)) > self.expiration_date
