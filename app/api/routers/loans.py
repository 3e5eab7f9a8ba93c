from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.limiter import limiter
from app.core.settings import settings
from app.db.session import get_db
from app.schemas.loan import (
    CustomerLoanSummary,
    LoanCreateRequest,
    LoanDocumentCreateRequest,
    LoanDocumentDTO,
    LoanDTO,
    LoanPage,
    LoanScheduleResponse,
    PaymentRequest,
    PortfolioStatistic,
)
from app.services import loan_documents, loan_queries, loan_schedules, loans

router = APIRouter(prefix="/loans", tags=["loans"])


def _to_dtos(items) -> list[LoanDTO]:
    return [LoanDTO.model_validate(item) for item in items]


# Fixed paths first so they are not captured by /{loan_id}.


@router.get("/health", response_class=PlainTextResponse, summary="Loan service heartbeat")
@limiter.exempt
async def loan_service_health() -> str:
    return "Loan Service is running"


@router.get("/delinquent", response_model=list[LoanDTO])
async def list_delinquent_loans(db: AsyncSession = Depends(get_db)) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_delinquent(db))


@router.get("/defaulted", response_model=list[LoanDTO])
async def list_defaulted_loans(db: AsyncSession = Depends(get_db)) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_defaulted(db))


@router.get("/upcoming-payments", response_model=list[LoanDTO])
async def list_upcoming_payments(
    within_days: int = Query(7, alias="withinDays", ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_upcoming_payments(db, date.today(), within_days))


@router.get("/maturing", response_model=list[LoanDTO])
async def list_maturing_loans(
    within_days: int = Query(30, alias="withinDays", ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_maturing(db, date.today(), within_days))


@router.get("/missed-payments", response_model=list[LoanDTO])
async def list_loans_with_missed_payments(
    min_missed: int = Query(3, alias="minMissed", ge=1),
    db: AsyncSession = Depends(get_db),
) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_with_missed_payments(db, min_missed))


@router.get("/portfolio/statistics", response_model=list[PortfolioStatistic])
async def portfolio_statistics(db: AsyncSession = Depends(get_db)) -> list[PortfolioStatistic]:
    return await loan_queries.portfolio_statistics(db)


@router.get("/number/{loan_number}", response_model=LoanDTO)
async def get_loan_by_number(
    loan_number: str,
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.get_loan_by_number(db, loan_number))


@router.get("/customer/{customer_id}", response_model=LoanPage)
async def list_customer_loans(
    customer_id: int = Path(..., gt=0),
    page: int = Query(0, ge=0),
    size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
) -> LoanPage:
    items, total = await loan_queries.list_customer_loans(db, customer_id, page=page, size=size)
    return LoanPage(items=_to_dtos(items), total=total, page=page, size=size)


@router.get("/customer/{customer_id}/active", response_model=list[LoanDTO])
async def list_active_customer_loans(
    customer_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> list[LoanDTO]:
    return _to_dtos(await loan_queries.list_active_for_customer(db, customer_id))


@router.get("/customer/{customer_id}/total-balance", response_model=Decimal)
async def customer_total_balance(
    customer_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> Decimal:
    return await loan_queries.total_outstanding_for_customer(db, customer_id)


@router.get("/customer/{customer_id}/summary", response_model=CustomerLoanSummary)
async def customer_loan_summary(
    customer_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> CustomerLoanSummary:
    return await loan_queries.customer_summary(db, customer_id)


@router.post("", response_model=LoanDTO, status_code=status.HTTP_201_CREATED)
async def create_loan(
    payload: LoanCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.create_loan(db, payload))


@router.get("/{loan_id}", response_model=LoanDTO)
async def get_loan(
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await loans.get_loan(db, loan_id)


@router.put("/{loan_id}/disburse", response_model=LoanDTO)
async def disburse_loan(
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.disburse_loan(db, loan_id))


@router.post("/{loan_id}/payments", response_model=LoanDTO)
async def process_payment(
    payload: PaymentRequest,
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.process_payment(db, loan_id, payload))


@router.put("/{loan_id}/delinquent", response_model=LoanDTO)
async def mark_delinquent(
    loan_id: int = Path(..., gt=0),
    days_overdue: int = Query(..., alias="daysOverdue", ge=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.mark_delinquent(db, loan_id, days_overdue))


@router.put("/{loan_id}/close", response_model=LoanDTO)
async def close_loan(
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return LoanDTO.model_validate(await loans.close_loan(db, loan_id))


@router.get("/{loan_id}/schedule", response_model=LoanScheduleResponse)
async def get_loan_schedule(
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanScheduleResponse:
    return await loan_schedules.get_schedule(db, loan_id)


@router.get("/{loan_id}/documents", response_model=list[LoanDocumentDTO])
async def list_loan_documents(
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> list[LoanDocumentDTO]:
    documents = await loan_documents.list_documents(db, loan_id)
    return [LoanDocumentDTO.model_validate(document) for document in documents]


@router.post(
    "/{loan_id}/documents",
    response_model=LoanDocumentDTO,
    status_code=status.HTTP_201_CREATED,
)
async def attach_loan_document(
    payload: LoanDocumentCreateRequest,
    loan_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
) -> LoanDocumentDTO:
    document = await loan_documents.attach_document(db, loan_id, payload)
    return LoanDocumentDTO.model_validate(document)
