from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional
from datetime import date
from enum import Enum
import re

from fintrack.categories import resolve_category, EXPENSE_CATEGORIES

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire; both accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


MAX_AMOUNT = 9999999999.99  # largest value a Numeric(12, 2) column holds


class ExpenseCreate(CamelModel):
    amount: float = Field(gt=0, le=MAX_AMOUNT, allow_inf_nan=False)
    description: str = Field(min_length=1, max_length=500)
    category: str = Field(min_length=1, max_length=100)
    date: str
    account_id: Optional[int] = None

    @field_validator("description")
    @classmethod
    def _validate_description(cls, value):
        if not value.strip():
            raise ValueError("description must not be blank")
        return value.strip()

    @field_validator("category")
    @classmethod
    def _validate_category(cls, value):
        canonical = resolve_category(value)
        if canonical is None:
            raise ValueError(f"category must be one of: {', '.join(EXPENSE_CATEGORIES)}")
        return canonical

    @field_validator("date")
    @classmethod
    def _validate_date(cls, value):
        if not DATE_PATTERN.match(value):
            raise ValueError("date must match YYYY-MM-DD")
        try:
            date.fromisoformat(value)
        except ValueError:
            raise ValueError("date is not a valid calendar date")
        return value


class CanonicalRecord(CamelModel):
    """Normalized expense/transaction as served to clients."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    amount: float
    description: str
    category: str
    date: str
    account_name: Optional[str] = None
    account_type: Optional[str] = None
    merchant_name: Optional[str] = None
    is_synced_from_bank: bool = False


class MetricsSnapshot(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    total_amount: float = 0.0
    current_period_amount: float = 0.0
    previous_period_amount: float = 0.0
    average_per_record: float = 0.0
    trend: Trend = Trend.STABLE


class Insight(CamelModel):
    summary: str
    tips: List[str]
    category_breakdown: Dict[str, float] = Field(default_factory=dict)
    spending_trend: Trend = Trend.STABLE


class MerchantInfo(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    mcc: Optional[str] = None


class PaymentInfo(CamelModel):
    method: Optional[str] = None
    pix_key: Optional[str] = None
    end_to_end_id: Optional[str] = None


class EnrichmentResult(CamelModel):
    suggested_category: str
    tags: List[str] = Field(default_factory=list)  # unique, first-seen order
    notes: str = ""
    is_recurring: bool = False
    risk_level: RiskLevel = RiskLevel.LOW
    merchant_info: Optional[MerchantInfo] = None
    payment_info: Optional[PaymentInfo] = None


class CategorizeRequest(CamelModel):
    description: str = Field(min_length=1, max_length=500)


class CategorizeResponse(CamelModel):
    category: str


class Pagination(CamelModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class TransactionPage(CamelModel):
    transactions: List[CanonicalRecord]
    pagination: Pagination


class CategorySlice(CamelModel):
    category: str
    total_amount: float
    transaction_count: int
    percentage: float


class MonthlyTotal(CamelModel):
    month: str  # YYYY-MM
    total_amount: float
    transaction_count: int


class MerchantTotal(CamelModel):
    merchant_name: str
    total_amount: float
    transaction_count: int


class TransactionAnalytics(CamelModel):
    total_transactions: int
    total_amount: float
    average_amount: float
    category_breakdown: List[CategorySlice]
    monthly_trends: List[MonthlyTotal]
    top_merchants: List[MerchantTotal]
