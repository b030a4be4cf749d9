from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from fintrack.api.limits import limiter
from fintrack.database import connection
from fintrack.database.models import Account, Expense, Transaction
from fintrack.main import app
from fintrack.services.llm_client import get_llm_client

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

_MODELS = {"accounts": Account, "expenses": Expense, "transactions": Transaction}


class FakeLLMClient:
    """Stands in for the model endpoint; set ``answer`` or ``error`` per test."""

    def __init__(self):
        self.answer = None
        self.error = None
        self.prompts = []

    async def agenerate(self, prompt, json_mode=True, max_tokens=400):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def client(llm):
    connection.close_db()
    connection.init_db("sqlite://")
    limiter.enabled = False
    app.dependency_overrides[get_llm_client] = lambda: llm

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.enabled = True
    connection.close_db()


@pytest.fixture
def headers():
    return {"X-User-ID": USER_ID}


@pytest.fixture
def seed(client):
    """Insert a row directly and return its id."""

    def _seed(collection, **fields):
        fields.setdefault("user_id", USER_ID)
        if collection in ("expenses", "transactions"):
            fields.setdefault("description", "Compra")
            fields.setdefault("category", "Outros")
            fields.setdefault("date", date(2024, 3, 10))
            fields["amount"] = Decimal(str(fields.get("amount", "10.00")))
        session = connection.SessionLocal()
        try:
            row = _MODELS[collection](**fields)
            session.add(row)
            session.commit()
            return row.id
        finally:
            session.close()

    return _seed


@pytest.fixture
def load_row(client):
    """Read a persisted row back as a column dict."""

    def _load(collection, row_id):
        session = connection.SessionLocal()
        try:
            row = session.get(_MODELS[collection], row_id)
            if row is None:
                return None
            return {column.name: getattr(row, column.name) for column in row.__table__.columns}
        finally:
            session.close()

    return _load
