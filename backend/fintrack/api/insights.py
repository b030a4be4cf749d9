from fastapi import APIRouter, Depends
from datetime import date
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fintrack.api.auth import get_current_user_id
from fintrack.config import settings
from fintrack.database.connection import get_db as get_session
from fintrack.database.db_service import get_db_service
from fintrack.models.schemas import Insight
from fintrack.services.breakdown import build_breakdown
from fintrack.services.insights import fallback_insight, generate_insight
from fintrack.services.llm_client import LLMClient, get_llm_client
from fintrack.services.metrics import compute_metrics
from fintrack.services.normalizer import normalize_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/insights", tags=["insights"])


@router.get("", response_model=Insight)
async def get_insights(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    client: LLMClient = Depends(get_llm_client)
):
    """Always answers 200: storage or model trouble yields the fallback insight."""
    try:
        raws = get_db_service(session).fetch_records("expenses", {"user_id": user_id})
    except SQLAlchemyError as e:
        logger.error(f"Could not load expenses for insights: {e}")
        return fallback_insight()

    # Order matters: the insight consumes these results and never recomputes them
    records = normalize_records(raws)
    breakdown = build_breakdown(records)
    metrics = compute_metrics(records, date.today(), threshold=settings.TREND_THRESHOLD)

    return await generate_insight(records, breakdown, metrics.trend, client=client)
