"""
Database Service Layer - storage collaborator for the analytics pipeline

Records are returned in their raw persisted form (``Decimal`` amounts, ``date``
objects, 0/1 integer flags, the account relation embedded as a nested mapping).
Turning them into client-safe values is the normaliser's job, not this layer's.
"""
from typing import List, Optional, Dict, Any, Union
from datetime import datetime
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import and_
import json
import logging

from fintrack.database.models import (
    Account as AccountModel,
    Expense as ExpenseModel,
    Transaction as TransactionModel,
)
from fintrack.services.normalizer import RELATION_KEY

logger = logging.getLogger(__name__)

# Collection to model mapping
COLLECTION_MODEL_MAP = {
    "accounts": AccountModel,
    "expenses": ExpenseModel,
    "transactions": TransactionModel,
}

_RELATION_FIELDS = ("id", "name", "account_type", "institution_name")


class DatabaseService:
    """Database service for SQLAlchemy-backed operations."""

    def __init__(self, session: Session):
        """
        Initialize database service.

        Args:
            session: SQLAlchemy session (required)
        """
        if session is None:
            raise ValueError("Session is required")
        self.session = session

    def _model_class(self, collection: str):
        model_class = COLLECTION_MODEL_MAP.get(collection)
        if not model_class:
            raise ValueError(f"Unknown collection: {collection}")
        return model_class

    def _model_to_dict(self, model_instance, with_relation: bool = False) -> Optional[Dict[str, Any]]:
        """Convert a model instance to a raw dictionary, optionally embedding its account."""
        if model_instance is None:
            return None

        result = {}
        for column in model_instance.__table__.columns:
            result[column.name] = getattr(model_instance, column.name)

        if with_relation and hasattr(model_instance, RELATION_KEY):
            account = getattr(model_instance, RELATION_KEY)
            if account is not None:
                result[RELATION_KEY] = {field: getattr(account, field) for field in _RELATION_FIELDS}
        return result

    def _build_query_filters(self, model_class, query: Dict[str, Any]):
        """Build SQLAlchemy filter conditions from query dict."""
        filters = []
        for key, value in query.items():
            if hasattr(model_class, key):
                filters.append(getattr(model_class, key) == value)
        return filters

    def _build_range_filters(self, model_class, filters: Dict[str, Any]):
        """Date range, amount range and substring filters used by listing endpoints."""
        conditions = []
        if filters.get("date_from") is not None:
            conditions.append(model_class.date >= filters["date_from"])
        if filters.get("date_to") is not None:
            conditions.append(model_class.date <= filters["date_to"])
        if filters.get("amount_gte") is not None:
            conditions.append(model_class.amount >= filters["amount_gte"])
        if filters.get("amount_lte") is not None:
            conditions.append(model_class.amount <= filters["amount_lte"])
        for key in ("description", "merchant_name"):
            term = filters.get(key)
            if term and hasattr(model_class, key):
                conditions.append(getattr(model_class, key).ilike(f"%{term}%"))
        return conditions

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document into the collection."""
        model_class = self._model_class(collection)

        if 'created_at' not in document and hasattr(model_class, 'created_at'):
            document['created_at'] = datetime.utcnow()

        instance = model_class(**document)
        self.session.add(instance)
        self.session.flush()

        return self._model_to_dict(instance, with_relation=True)

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find the first document matching the query."""
        model_class = self._model_class(collection)
        q = self.session.query(model_class)
        filters = self._build_query_filters(model_class, query)

        if filters:
            q = q.filter(and_(*filters))

        result = q.first()
        return self._model_to_dict(result) if result else None

    def update(self, collection: str, document_id_or_query: Union[int, Dict[str, Any]],
               update_data: Dict[str, Any] = None) -> int:
        """Update documents matching the query."""
        if update_data is None:
            raise ValueError("update_data is required")

        model_class = self._model_class(collection)

        if isinstance(document_id_or_query, dict):
            query = document_id_or_query
        else:
            query = {"id": document_id_or_query}

        q = self.session.query(model_class)
        filters = self._build_query_filters(model_class, query)

        if filters:
            q = q.filter(and_(*filters))

        if 'updated_at' not in update_data and hasattr(model_class, 'updated_at'):
            update_data['updated_at'] = datetime.utcnow()

        count = q.update(update_data, synchronize_session="fetch")
        self.session.flush()

        return count

    def delete(self, collection: str, document_id_or_query: Union[int, Dict[str, Any]]) -> int:
        """Delete documents matching the query."""
        model_class = self._model_class(collection)

        if isinstance(document_id_or_query, dict):
            query = document_id_or_query
        else:
            query = {"id": document_id_or_query}

        q = self.session.query(model_class)
        filters = self._build_query_filters(model_class, query)

        if filters:
            q = q.filter(and_(*filters))

        count = q.delete(synchronize_session=False)
        self.session.flush()

        return count

    def fetch_records(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Fetch raw records (newest first) with the account relation embedded.

        Args:
            collection: "expenses" or "transactions"
            query: Equality filters (user_id, category...)
            filters: Range/substring filters (date_from, date_to, amount_gte,
                amount_lte, description, merchant_name)
            limit: Page size, or None for every matching row
            offset: Rows to skip
        """
        model_class = self._model_class(collection)
        q = self._listing_query(model_class, query, filters).options(joinedload(model_class.account))
        q = q.order_by(model_class.date.desc(), model_class.created_at.desc(), model_class.id.desc())
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return [self._model_to_dict(r, with_relation=True) for r in q.all()]

    def count_records(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Count rows matched by the same filters ``fetch_records`` accepts."""
        model_class = self._model_class(collection)
        return self._listing_query(model_class, query, filters).count()

    def _listing_query(self, model_class, query, filters):
        q = self.session.query(model_class)
        conditions = []
        if query:
            conditions.extend(self._build_query_filters(model_class, query))
        if filters:
            conditions.extend(self._build_range_filters(model_class, filters))
        if conditions:
            q = q.filter(and_(*conditions))
        return q

    def fetch_transaction_by_id(self, transaction_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw transaction owned by ``user_id`` or None."""
        result = (
            self.session.query(TransactionModel)
            .options(joinedload(TransactionModel.account))
            .filter(TransactionModel.id == transaction_id, TransactionModel.user_id == user_id)
            .first()
        )
        return self._model_to_dict(result, with_relation=True)

    def save_enrichment(self, transaction_id: int, user_id: str, enrichment) -> bool:
        """
        Persist an enrichment result onto its transaction.

        One UPDATE keyed by transaction and owner; a later call overwrites an
        earlier one. Returns False when no row matched.
        """
        merchant = enrichment.merchant_info
        payment = enrichment.payment_info
        update_data = {
            "suggested_category": enrichment.suggested_category,
            "tags": json.dumps(list(enrichment.tags), ensure_ascii=False),
            "notes": enrichment.notes,
            "is_recurring": 1 if enrichment.is_recurring else 0,
            "risk_level": enrichment.risk_level.value,
            "enriched_at": datetime.utcnow(),
        }
        if merchant is not None:
            update_data.update({
                "merchant_name": merchant.name,
                "merchant_category": merchant.category,
                "merchant_mcc": merchant.mcc,
            })
        if payment is not None:
            update_data.update({
                "payment_method": payment.method,
                "pix_key": payment.pix_key,
                "end_to_end_id": payment.end_to_end_id,
            })

        count = self.update("transactions", {"id": transaction_id, "user_id": user_id}, update_data)
        if count:
            logger.info("Saved enrichment for transaction %s", transaction_id)
        return count > 0


def get_db_service(session: Session) -> DatabaseService:
    """
    Get database service instance.

    Args:
        session: SQLAlchemy session (required)

    Returns:
        DatabaseService instance
    """
    return DatabaseService(session)
