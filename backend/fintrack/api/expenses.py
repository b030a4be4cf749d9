from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session

from fintrack.api.auth import get_current_user_id
from fintrack.config import settings
from fintrack.database.connection import get_db as get_session
from fintrack.database.db_service import DatabaseService, get_db_service
from fintrack.exceptions import NotFoundError
from fintrack.models.schemas import CanonicalRecord, ExpenseCreate, MetricsSnapshot
from fintrack.services.metrics import compute_metrics
from fintrack.services.normalizer import normalize_record, normalize_records

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _expense_document(expense: ExpenseCreate) -> dict:
    """Map a validated payload onto expense columns."""
    return {
        "amount": Decimal(str(expense.amount)),
        "description": expense.description,
        "category": expense.category,
        "date": date.fromisoformat(expense.date),
        "account_id": expense.account_id,
    }


def _ensure_account(db: DatabaseService, account_id: Optional[int], user_id: str):
    if account_id is None:
        return
    if not db.find_one("accounts", {"id": account_id, "user_id": user_id}):
        raise NotFoundError("Account not found")


def _load_expense(db: DatabaseService, expense_id: int, user_id: str) -> dict:
    rows = db.fetch_records("expenses", {"id": expense_id, "user_id": user_id}, limit=1)
    if not rows:
        raise NotFoundError("Expense not found")
    return rows[0]


@router.get("", response_model=List[CanonicalRecord])
async def get_expenses(
    category: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)

    query = {"user_id": user_id}
    if category:
        query["category"] = category

    return normalize_records(db.fetch_records("expenses", query))


@router.post("", response_model=CanonicalRecord)
async def create_expense(
    expense: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)
    _ensure_account(db, expense.account_id, user_id)

    expense_doc = _expense_document(expense)
    expense_doc["user_id"] = user_id
    record = normalize_record(db.insert("expenses", expense_doc))
    session.commit()

    return record


@router.get("/metrics", response_model=MetricsSnapshot)
async def get_expense_metrics(
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)
    records = normalize_records(db.fetch_records("expenses", {"user_id": user_id}))

    return compute_metrics(
        records,
        reference_date or date.today(),
        threshold=settings.TREND_THRESHOLD,
    )


@router.put("/{expense_id}", response_model=CanonicalRecord)
async def update_expense(
    expense_id: int,
    expense: ExpenseCreate,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)

    if not db.find_one("expenses", {"id": expense_id, "user_id": user_id}):
        raise NotFoundError("Expense not found")
    _ensure_account(db, expense.account_id, user_id)

    db.update("expenses", {"id": expense_id, "user_id": user_id}, _expense_document(expense))
    record = normalize_record(_load_expense(db, expense_id, user_id))
    session.commit()

    return record


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    db = get_db_service(session)

    deleted = db.delete("expenses", {"id": expense_id, "user_id": user_id})
    if not deleted:
        raise NotFoundError("Expense not found")
    session.commit()

    return {"message": "Expense deleted successfully"}
