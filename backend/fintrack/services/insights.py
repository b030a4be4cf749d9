"""
AI spending insights

Passive, read-only feature: any model failure is absorbed and answered with
``fallback_insight()``. The fallback never carries the computed breakdown or
trend, so clients see either a full AI insight or the fixed "unavailable" one.
"""
import json
import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from fintrack.exceptions import ExternalModelError
from fintrack.models.schemas import CanonicalRecord, Insight, Trend
from fintrack.services.llm_client import LLMClient, extract_json_object, get_llm_client

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = (
    "Não foi possível gerar insights automáticos no momento. "
    "Os dados estão sendo processados e estarão disponíveis em breve."
)

FALLBACK_TIPS: Tuple[str, ...] = (
    "Continue registrando seus gastos para melhor análise",
    "Use a sincronização bancária para importar transações automaticamente",
    "Revise suas categorias de gastos regularmente",
    "Estabeleça metas de economia mensais",
)

MAX_TIPS = 6
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")


def fallback_insight() -> Insight:
    return Insight(
        summary=FALLBACK_SUMMARY,
        tips=list(FALLBACK_TIPS),
        category_breakdown={},
        spending_trend=Trend.STABLE,
    )


def build_insight_prompt(
    records: Sequence[CanonicalRecord],
    breakdown: Dict[str, float],
    trend: Trend,
) -> str:
    """Aggregates only: no per-record descriptions leave the service."""
    total = sum(record.amount for record in records)
    dates = sorted(record.date for record in records)
    summary = {
        "recordCount": len(records),
        "totalAmount": round(total, 2),
        "period": {"from": dates[0], "to": dates[-1]} if dates else None,
        "categoryBreakdown": {name: round(amount, 2) for name, amount in
                              sorted(breakdown.items(), key=lambda item: item[1], reverse=True)},
        "spendingTrend": trend.value,
    }

    return f"""You are a personal finance assistant for a Brazilian user. Analyze the aggregated spending data below and write short, practical advice in Brazilian Portuguese.

Aggregated data (amounts in BRL):
{json.dumps(summary, ensure_ascii=False, indent=2)}

Respond in this EXACT JSON format:
{{
  "summary": "two or three sentences describing the spending pattern",
  "tips": ["actionable tip", "actionable tip", "actionable tip"]
}}

Response:"""


def _clean_tips(values) -> List[str]:
    if not isinstance(values, list):
        return []
    tips = [value.strip() for value in values if isinstance(value, str) and value.strip()]
    return tips[:MAX_TIPS]


def parse_insight_text(text: str) -> Tuple[str, List[str]]:
    """
    Loosely parse a model answer into (summary, tips).

    A JSON object with ``summary``/``tips`` wins; otherwise bullet lines become
    tips and the remaining prose the summary.
    """
    try:
        parsed = extract_json_object(text)
    except ExternalModelError:
        parsed = None

    if parsed is not None:
        summary = parsed.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise ExternalModelError("AI insight has no summary")
        return summary.strip(), _clean_tips(parsed.get("tips"))

    prose, tips = [], []
    for line in text.splitlines():
        bullet = _BULLET.match(line)
        if bullet:
            tips.append(bullet.group(1))
        elif line.strip():
            prose.append(line.strip())

    summary = " ".join(prose).strip()
    if not summary:
        raise ExternalModelError("AI insight has no summary")
    return summary, tips[:MAX_TIPS]


async def generate_insight(
    records: Sequence[CanonicalRecord],
    breakdown: Dict[str, float],
    trend: Trend,
    client: Optional[LLMClient] = None,
) -> Insight:
    """
    Produce the spending insight for already-aggregated data.

    Never raises for model problems: returns ``fallback_insight()`` instead.
    """
    client = client or get_llm_client()
    prompt = build_insight_prompt(records, breakdown, trend)

    try:
        text = await client.agenerate(prompt, json_mode=True, max_tokens=500)
        summary, tips = parse_insight_text(text)
    except ExternalModelError as e:
        logger.warning(f"AI insight unavailable, serving fallback: {e.message}")
        return fallback_insight()
    except Exception as e:
        logger.error(f"AI insight generation error, serving fallback: {e}")
        return fallback_insight()

    return Insight(
        summary=summary,
        tips=tips,
        category_breakdown=dict(breakdown),
        spending_trend=trend,
    )
