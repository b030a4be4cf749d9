import asyncio
import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fintrack.exceptions import EnrichmentError, ExternalModelError, NotFoundError
from fintrack.models.schemas import RiskLevel
from fintrack.services.enrichment import (
    MAX_TAGS,
    TransactionEnricher,
    build_enrichment_prompt,
    validate_enrichment,
)


class FakeClient:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    async def agenerate(self, prompt, json_mode=True, max_tokens=400):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


TRANSACTION = {
    "id": 7,
    "user_id": "user-1",
    "description": "PIX RECEBIDO JOAO",
    "amount": Decimal("250.00"),
    "date": date(2024, 3, 10),
    "transaction_type": "income",
    "category": None,
    "merchant_name": None,
    "merchant_category": None,
    "payment_method": "pix",
    "account": {"id": 1, "name": "Conta Corrente", "account_type": "checking", "institution_name": "Nubank"},
}


def _db(transaction=TRANSACTION):
    return SimpleNamespace(fetch_transaction_by_id=lambda transaction_id, user_id: transaction)


def _enrich(client, db=None):
    enricher = TransactionEnricher(db or _db(), client)
    return asyncio.run(enricher.enrich(7, "user-1"))


def test_minimal_answer_gets_defaults():
    result = validate_enrichment({"suggestedCategory": "Compras"})

    assert result.suggested_category == "Compras"
    assert result.tags == []
    assert result.notes == ""
    assert result.is_recurring is False
    assert result.risk_level == RiskLevel.LOW
    assert result.merchant_info is None
    assert result.payment_info is None


def test_full_answer_is_kept():
    result = validate_enrichment({
        "suggestedCategory": "Contas e Serviços",
        "tags": ["assinatura", "streaming"],
        "notes": " Cobrança mensal ",
        "isRecurring": True,
        "riskLevel": "MEDIUM",
        "merchantInfo": {"name": "Netflix", "category": "Streaming", "mcc": 4899},
        "paymentInfo": {"method": "credit_card", "pixKey": None, "endToEndId": None},
    })

    assert result.notes == "Cobrança mensal"
    assert result.is_recurring is True
    assert result.risk_level == RiskLevel.MEDIUM
    assert result.merchant_info.name == "Netflix"
    assert result.merchant_info.mcc == "4899"
    assert result.payment_info.method == "credit_card"
    assert result.payment_info.pix_key is None


@pytest.mark.parametrize("risk", [None, "extreme", 3, ""])
def test_unknown_risk_level_becomes_low(risk):
    result = validate_enrichment({"suggestedCategory": "Outros", "riskLevel": risk})
    assert result.risk_level == RiskLevel.LOW


def test_tags_are_cleaned():
    tags = ["pix", " pix ", "", 5, None, "transferência"] + [f"t{i}" for i in range(20)]

    result = validate_enrichment({"suggestedCategory": "Outros", "tags": tags})

    assert result.tags[:2] == ["pix", "transferência"]
    assert len(result.tags) == MAX_TAGS
    assert len(set(result.tags)) == len(result.tags)


def test_tags_not_a_list_are_dropped():
    assert validate_enrichment({"suggestedCategory": "Outros", "tags": "a,b"}).tags == []


def test_empty_sub_objects_are_omitted():
    result = validate_enrichment({
        "suggestedCategory": "Outros",
        "merchantInfo": {"name": None, "category": "", "mcc": None},
        "paymentInfo": {},
    })

    assert result.merchant_info is None
    assert result.payment_info is None
    dumped = result.model_dump(by_alias=True, exclude_none=True)
    assert "merchantInfo" not in dumped
    assert "paymentInfo" not in dumped


def test_unknown_category_maps_to_default():
    assert validate_enrichment({"suggestedCategory": "Mascotes"}).suggested_category == "Outros"


def test_category_spelling_is_canonicalized():
    assert validate_enrichment({"suggested_category": "alimentacao"}).suggested_category == "Alimentação"


@pytest.mark.parametrize("payload", [None, [], "Compras", {"tags": ["a"]}, {"suggestedCategory": "  "}])
def test_unusable_answers_raise(payload):
    with pytest.raises(EnrichmentError):
        validate_enrichment(payload)


def test_prompt_is_json_safe():
    prompt = build_enrichment_prompt(TRANSACTION)

    assert '"amount": 250.0' in prompt
    assert '"date": "2024-03-10"' in prompt
    assert '"name": "Conta Corrente"' in prompt
    assert "Nubank" not in prompt
    assert "user-1" not in prompt


def test_enrich_returns_validated_result():
    client = FakeClient(answer=json.dumps({"suggestedCategory": "Outros", "tags": ["pix"]}))

    result = _enrich(client)

    assert result.suggested_category == "Outros"
    assert result.tags == ["pix"]
    assert len(client.prompts) == 1


def test_enrich_missing_transaction_never_calls_model():
    client = FakeClient(answer="{}")

    with pytest.raises(NotFoundError):
        _enrich(client, db=_db(transaction=None))

    assert client.prompts == []


def test_enrich_unparseable_output_raises():
    with pytest.raises(EnrichmentError):
        _enrich(FakeClient(answer="desculpe, não sei"))


def test_enrich_model_failure_raises_retryable_error():
    with pytest.raises(EnrichmentError) as exc_info:
        _enrich(FakeClient(error=ExternalModelError("AI model request timed out")))

    assert "try again" in exc_info.value.message
    assert isinstance(exc_info.value, ExternalModelError)
