from fastapi import APIRouter, Depends, Query, Request
from typing import Optional
from datetime import date
import logging
import math
from sqlalchemy.orm import Session

from fintrack.api.auth import get_current_user_id
from fintrack.api.limits import limiter
from fintrack.categories import keyword_category
from fintrack.config import settings
from fintrack.database.connection import get_db as get_session
from fintrack.database.db_service import get_db_service
from fintrack.exceptions import NotFoundError
from fintrack.models.schemas import (
    EnrichmentResult, Pagination, TransactionAnalytics, TransactionPage, TransactionType,
)
from fintrack.services.breakdown import category_slices, top_merchants
from fintrack.services.enrichment import TransactionEnricher
from fintrack.services.llm_client import LLMClient, get_llm_client
from fintrack.services.metrics import monthly_totals
from fintrack.services.normalizer import normalize_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])

MAX_PAGE_SIZE = 200


@router.get("", response_model=TransactionPage)
async def get_transactions(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    account_id: Optional[int] = None,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    category: Optional[str] = None,
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    description: Optional[str] = None,
    merchant_name: Optional[str] = None,
    amount_gte: Optional[float] = None,
    amount_lte: Optional[float] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)

    query = {"user_id": user_id}
    if account_id is not None:
        query["account_id"] = account_id
    if category:
        query["category"] = category
    if transaction_type:
        query["transaction_type"] = transaction_type.value

    filters = {
        "date_from": date_from,
        "date_to": date_to,
        "description": description,
        "merchant_name": merchant_name,
        "amount_gte": amount_gte,
        "amount_lte": amount_lte,
    }

    total = db.count_records("transactions", query, filters)
    raws = db.fetch_records(
        "transactions", query, filters, limit=page_size, offset=(page - 1) * page_size
    )

    return TransactionPage(
        transactions=normalize_records(raws),
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        ),
    )


@router.get("/analytics", response_model=TransactionAnalytics)
async def get_transaction_analytics(
    account_id: Optional[int] = None,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)

    query = {"user_id": user_id}
    if account_id is not None:
        query["account_id"] = account_id

    records = normalize_records(
        db.fetch_records("transactions", query, {"date_from": date_from, "date_to": date_to})
    )
    total_amount = round(sum(record.amount for record in records), 2)

    return TransactionAnalytics(
        total_transactions=len(records),
        total_amount=total_amount,
        average_amount=round(total_amount / len(records), 2) if records else 0.0,
        category_breakdown=category_slices(records),
        monthly_trends=monthly_totals(records),
        top_merchants=top_merchants(records),
    )


@router.post("/{transaction_id}/enrich", response_model=EnrichmentResult)
@limiter.limit(settings.AI_RATE_LIMIT)
async def enrich_transaction(
    request: Request,
    transaction_id: int,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    client: LLMClient = Depends(get_llm_client)
):
    db = get_db_service(session)

    enrichment = await TransactionEnricher(db, client).enrich(transaction_id, user_id)

    if not db.save_enrichment(transaction_id, user_id, enrichment):
        raise NotFoundError("Transaction not found")
    session.commit()

    return enrichment


@router.post("/{transaction_id}/categorize")
async def categorize_transaction(
    transaction_id: int,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    """Rule-based categorisation from description and merchant keywords (no AI call)."""
    db = get_db_service(session)

    transaction = db.find_one("transactions", {"id": transaction_id, "user_id": user_id})
    if not transaction:
        raise NotFoundError("Transaction not found")

    category = keyword_category(transaction.get("description"), transaction.get("merchant_name"))
    db.update("transactions", {"id": transaction_id, "user_id": user_id}, {"category": category})
    session.commit()

    logger.info("Transaction %s categorized as %s", transaction_id, category)
    return {"message": "Transaction categorized successfully", "category": category}
