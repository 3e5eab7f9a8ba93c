from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import LoanNotFound
from app.core.logging import audit_event
from app.models.loan_document import LoanDocument
from app.schemas.loan import LoanDocumentCreateRequest
from app.services import loan_queries

logger = logging.getLogger(__name__)


async def list_documents(db: AsyncSession, loan_id: int) -> list[LoanDocument]:
    loan = await loan_queries.get_loan(db, loan_id)
    if loan is None:
        raise LoanNotFound(f"Loan not found with id: {loan_id}", loan_id=loan_id)
    stmt = (
        select(LoanDocument)
        .where(LoanDocument.loan_id == loan_id, LoanDocument.is_deleted.is_(False))
        .order_by(LoanDocument.uploaded_at.desc(), LoanDocument.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def attach_document(
    db: AsyncSession, loan_id: int, payload: LoanDocumentCreateRequest
) -> LoanDocument:
    loan = await loan_queries.get_loan(db, loan_id)
    if loan is None:
        raise LoanNotFound(f"Loan not found with id: {loan_id}", loan_id=loan_id)
    document = LoanDocument(
        loan_id=loan.id,
        document_type=payload.document_type,
        file_name=payload.file_name,
        document_url=payload.document_url,
        file_size=payload.file_size,
        mime_type=payload.mime_type,
        uploaded_by=payload.uploaded_by,
        expiration_date=payload.expiration_date,
        verified=False,
        is_deleted=False,
    )
    db.add(document)
    await db.commit()
    await db.refresh(document)
    logger.info("Document attached loan_id=%s document_type=%s", loan_id, document.document_type)
    audit_event(
        "loan.document_attached",
        loan_id=loan.id,
        loan_number=loan.loan_number,
        document_id=document.id,
        document_type=document.document_type,
    )
    return document
