from fastapi import APIRouter, Depends, Request

from fintrack.api.auth import get_current_user_id
from fintrack.api.limits import limiter
from fintrack.config import settings
from fintrack.exceptions import ExternalModelError
from fintrack.models.schemas import CategorizeRequest, CategorizeResponse
from fintrack.services.category_suggester import suggest_category
from fintrack.services.llm_client import LLMClient, get_llm_client

router = APIRouter(prefix="/categorize", tags=["categorize"])


@router.post("", response_model=CategorizeResponse)
@limiter.limit(settings.AI_RATE_LIMIT)
async def categorize_description(
    request: Request,
    body: CategorizeRequest,
    user_id: str = Depends(get_current_user_id),
    client: LLMClient = Depends(get_llm_client)
):
    try:
        category = await suggest_category(body.description, client=client)
    except ExternalModelError as e:
        raise ExternalModelError("Category suggestion is unavailable right now") from e

    return CategorizeResponse(category=category)
