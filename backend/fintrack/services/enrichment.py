"""
AI Transaction Enrichment Service

User-triggered: unlike insights, failures are raised (``EnrichmentError``) so
the client can offer a retry. Nothing is guessed when the model answer cannot
be used. Field-level problems inside an otherwise usable answer are repaired:
unknown risk levels become "low", bad tags are dropped, empty merchant/payment
blocks are omitted.
"""
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from fintrack.categories import DEFAULT_CATEGORY, EXPENSE_CATEGORIES, resolve_category
from fintrack.database.db_service import DatabaseService
from fintrack.exceptions import EnrichmentError, ExternalModelError, NotFoundError
from fintrack.models.schemas import EnrichmentResult, MerchantInfo, PaymentInfo, RiskLevel
from fintrack.services.llm_client import LLMClient, extract_json_object, get_llm_client
from fintrack.services.normalizer import decode_bool, to_json_safe

logger = logging.getLogger(__name__)

MAX_TAGS = 10

# Raw transaction fields sent to the model
_PROMPT_FIELDS = (
    "description", "amount", "date", "transaction_type", "category",
    "merchant_name", "merchant_category", "payment_method",
)

_RISK_LEVELS = {level.value: level for level in RiskLevel}


def _pick(payload: Mapping, *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _clean_tags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    tags: List[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def _risk_level(value: Any) -> RiskLevel:
    if isinstance(value, str):
        return _RISK_LEVELS.get(value.strip().lower(), RiskLevel.LOW)
    return RiskLevel.LOW


def _merchant_info(value: Any) -> Optional[MerchantInfo]:
    if not isinstance(value, Mapping):
        return None
    info = MerchantInfo(
        name=_text(value.get("name")),
        category=_text(value.get("category")),
        mcc=_text(value.get("mcc")),
    )
    if not any((info.name, info.category, info.mcc)):
        return None
    return info


def _payment_info(value: Any) -> Optional[PaymentInfo]:
    if not isinstance(value, Mapping):
        return None
    info = PaymentInfo(
        method=_text(value.get("method")),
        pix_key=_text(_pick(value, "pixKey", "pix_key")),
        end_to_end_id=_text(_pick(value, "endToEndId", "end_to_end_id")),
    )
    if not any((info.method, info.pix_key, info.end_to_end_id)):
        return None
    return info


def validate_enrichment(payload: Any) -> EnrichmentResult:
    """
    Check and sanitise a parsed model answer.

    Raises:
        EnrichmentError: if the answer is not an object or has no suggested category
    """
    if not isinstance(payload, Mapping):
        raise EnrichmentError("The AI model returned an unexpected enrichment format")

    suggested = _text(_pick(payload, "suggestedCategory", "suggested_category"))
    if suggested is None:
        raise EnrichmentError("The AI model did not suggest a category")

    category = resolve_category(suggested)
    if category is None:
        logger.info("Enrichment suggested unknown category %r; using %s", suggested, DEFAULT_CATEGORY)
        category = DEFAULT_CATEGORY

    notes = _pick(payload, "notes")
    return EnrichmentResult(
        suggested_category=category,
        tags=_clean_tags(payload.get("tags")),
        notes=notes.strip() if isinstance(notes, str) else "",
        is_recurring=decode_bool(_pick(payload, "isRecurring", "is_recurring")),
        risk_level=_risk_level(_pick(payload, "riskLevel", "risk_level")),
        merchant_info=_merchant_info(_pick(payload, "merchantInfo", "merchant_info")),
        payment_info=_payment_info(_pick(payload, "paymentInfo", "payment_info")),
    )


def build_enrichment_prompt(transaction: Dict[str, Any]) -> str:
    details = to_json_safe({key: transaction.get(key) for key in _PROMPT_FIELDS}, path="transaction")
    account = transaction.get("account")
    if isinstance(account, Mapping):
        details["account"] = to_json_safe(
            {"name": account.get("name"), "account_type": account.get("account_type")}, path="account"
        )

    return f"""You are a financial transaction analyst for a Brazilian personal finance app. Enrich the transaction below.

Transaction:
{json.dumps(details, ensure_ascii=False, indent=2)}

Available Categories: {", ".join(EXPENSE_CATEGORIES)}

Instructions:
1. Choose the SINGLE most appropriate category from the available list
2. Add up to 5 short tags
3. Say whether it looks like a recurring charge (subscription, bill, rent)
4. Rate the risk (low, medium or high) of it being unusual, fraudulent or a bad financial decision
5. Fill merchantInfo / paymentInfo only with values you can infer; use null otherwise

Respond in this EXACT JSON format:
{{
  "suggestedCategory": "category name",
  "tags": ["tag"],
  "notes": "one sentence",
  "isRecurring": false,
  "riskLevel": "low",
  "merchantInfo": {{"name": null, "category": null, "mcc": null}},
  "paymentInfo": {{"method": null, "pixKey": null, "endToEndId": null}}
}}

Response:"""


class TransactionEnricher:
    """Looks a transaction up, asks the model about it and validates the answer."""

    def __init__(self, db: DatabaseService, client: Optional[LLMClient] = None):
        self.db = db
        self.client = client or get_llm_client()

    async def enrich(self, transaction_id: int, user_id: str) -> EnrichmentResult:
        """
        Raises:
            NotFoundError: no such transaction for this user
            EnrichmentError: model unavailable or answer unusable
        """
        transaction = self.db.fetch_transaction_by_id(transaction_id, user_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")

        try:
            text = await self.client.agenerate(build_enrichment_prompt(transaction), json_mode=True)
            payload = extract_json_object(text)
        except ExternalModelError as e:
            logger.error(f"Enrichment of transaction {transaction_id} failed: {e.message}")
            raise EnrichmentError("Could not enrich the transaction right now. Please try again.") from e

        result = validate_enrichment(payload)
        logger.info(
            "Enriched transaction %s (category=%s, risk=%s)",
            transaction_id, result.suggested_category, result.risk_level.value,
        )
        return result
