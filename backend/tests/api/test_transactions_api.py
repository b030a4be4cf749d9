import json
from datetime import date

import pytest

from fintrack.exceptions import ExternalModelError


@pytest.fixture
def account_id(seed):
    return seed("accounts", name="Conta Corrente", account_type="checking", institution_name="Itaú")


@pytest.fixture
def transactions(seed, account_id):
    return {
        "uber": seed(
            "transactions", account_id=account_id, amount="32.90", description="UBER *TRIP",
            category="Transporte", date=date(2024, 3, 2), merchant_name="Uber",
        ),
        "ifood": seed(
            "transactions", account_id=account_id, amount="57.10", description="IFOOD *PEDIDO",
            category="Alimentação", date=date(2024, 3, 12), merchant_name="iFood",
        ),
        "salary": seed(
            "transactions", account_id=account_id, amount="5000.00", description="SALARIO",
            transaction_type="income", date=date(2024, 2, 28),
        ),
    }


def test_list_is_paginated(client, headers, transactions):
    response = client.get("/api/transactions", params={"page": 1, "page_size": 2}, headers=headers)

    body = response.json()
    assert response.status_code == 200
    assert body["pagination"] == {"page": 1, "pageSize": 2, "total": 3, "totalPages": 2}
    assert [t["description"] for t in body["transactions"]] == ["IFOOD *PEDIDO", "UBER *TRIP"]
    assert body["transactions"][0]["accountName"] == "Conta Corrente"
    assert body["transactions"][0]["merchantName"] == "iFood"

    second = client.get("/api/transactions", params={"page": 2, "page_size": 2}, headers=headers).json()
    assert [t["description"] for t in second["transactions"]] == ["SALARIO"]


@pytest.mark.parametrize(
    "params,expected",
    [
        ({"from": "2024-03-01"}, ["IFOOD *PEDIDO", "UBER *TRIP"]),
        ({"to": "2024-03-01"}, ["SALARIO"]),
        ({"type": "income"}, ["SALARIO"]),
        ({"category": "Transporte"}, ["UBER *TRIP"]),
        ({"description": "pedido"}, ["IFOOD *PEDIDO"]),
        ({"merchant_name": "ube"}, ["UBER *TRIP"]),
        ({"amount_gte": 50, "amount_lte": 100}, ["IFOOD *PEDIDO"]),
    ],
)
def test_list_filters(client, headers, transactions, params, expected):
    body = client.get("/api/transactions", params=params, headers=headers).json()

    assert [t["description"] for t in body["transactions"]] == expected
    assert body["pagination"]["total"] == len(expected)


def test_page_size_is_bounded(client, headers):
    response = client.get("/api/transactions", params={"page_size": 1000}, headers=headers)

    assert response.status_code == 422
    assert response.json()["field"] == "page_size"


def test_analytics(client, headers, transactions):
    body = client.get(
        "/api/transactions/analytics", params={"from": "2024-03-01"}, headers=headers
    ).json()

    assert body["totalTransactions"] == 2
    assert body["totalAmount"] == 90.0
    assert body["averageAmount"] == 45.0
    assert [s["category"] for s in body["categoryBreakdown"]] == ["Alimentação", "Transporte"]
    assert body["monthlyTrends"] == [{"month": "2024-03", "totalAmount": 90.0, "transactionCount": 2}]
    assert [m["merchantName"] for m in body["topMerchants"]] == ["iFood", "Uber"]


def test_enrich_persists_and_returns_result(client, headers, llm, transactions, load_row):
    llm.answer = json.dumps({
        "suggestedCategory": "Transporte",
        "tags": ["mobilidade", "app", "mobilidade"],
        "notes": "Corrida por aplicativo",
        "isRecurring": False,
        "riskLevel": "medium",
        "merchantInfo": {"name": "Uber do Brasil", "category": "Transporte", "mcc": "4121"},
        "paymentInfo": None,
    })

    response = client.post(f"/api/transactions/{transactions['uber']}/enrich", headers=headers)

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["suggestedCategory"] == "Transporte"
    assert body["tags"] == ["mobilidade", "app"]
    assert body["riskLevel"] == "medium"
    assert body["merchantInfo"]["name"] == "Uber do Brasil"
    assert body["paymentInfo"] is None
    assert "UBER *TRIP" in llm.prompts[0]

    row = load_row("transactions", transactions["uber"])
    assert row["suggested_category"] == "Transporte"
    assert json.loads(row["tags"]) == ["mobilidade", "app"]
    assert row["risk_level"] == "medium"
    assert row["merchant_name"] == "Uber do Brasil"
    assert row["merchant_mcc"] == "4121"
    assert row["enriched_at"] is not None


def test_enrich_unknown_transaction(client, headers, llm):
    response = client.post("/api/transactions/999/enrich", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Transaction not found"}
    assert llm.prompts == []


def test_enrich_is_scoped_to_owner(client, llm, transactions):
    response = client.post(
        f"/api/transactions/{transactions['uber']}/enrich", headers={"X-User-ID": "user-2"}
    )

    assert response.status_code == 404
    assert llm.prompts == []


def test_enrich_model_failure_is_reported(client, headers, llm, transactions, load_row):
    llm.error = ExternalModelError("AI model request timed out")

    response = client.post(f"/api/transactions/{transactions['uber']}/enrich", headers=headers)

    assert response.status_code == 502
    assert response.json() == {"error": "Could not enrich the transaction right now. Please try again."}
    assert load_row("transactions", transactions["uber"])["enriched_at"] is None


def test_enrich_unusable_answer_is_reported(client, headers, llm, transactions):
    llm.answer = '{"tags": ["sem categoria"]}'

    response = client.post(f"/api/transactions/{transactions['uber']}/enrich", headers=headers)

    assert response.status_code == 502
    assert "error" in response.json()


def test_keyword_categorize(client, headers, seed, load_row):
    transaction_id = seed("transactions", description="Pagamento Conta de Energia", category="Outros")

    response = client.post(f"/api/transactions/{transaction_id}/categorize", headers=headers)

    assert response.json() == {"message": "Transaction categorized successfully", "category": "Contas e Serviços"}
    assert load_row("transactions", transaction_id)["category"] == "Contas e Serviços"


def test_keyword_categorize_unknown_transaction(client, headers):
    response = client.post("/api/transactions/999/categorize", headers=headers)
    assert response.status_code == 404
