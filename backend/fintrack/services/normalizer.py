"""
Record Normalization Service

Turns raw persisted expense/transaction rows into ``CanonicalRecord`` values.
This is the only place that knows about storage encodings:

- amounts may be ``Decimal`` (Numeric columns), fixed-point strings, ints or floats
- boolean flags may be 0/1 integers, "true"/"false" strings or real booleans
- dates may be ``date``/``datetime`` objects or ISO strings (time is truncated,
  never shifted across timezones: expense dates are calendar dates)
- the account relation may arrive embedded (``{"account": {...}}``), as an ORM
  object, or already flattened by a SQL join (``account_name``/``account_type``)
"""
import enum
import logging
import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from fintrack.categories import DEFAULT_CATEGORY, resolve_category
from fintrack.exceptions import NormalizationError
from fintrack.models.schemas import CanonicalRecord

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2 ** 53 - 1
MAX_DESCRIPTION_LENGTH = 500
RELATION_KEY = "account"

_CENT = Decimal("0.01")
_ISO_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")
_TRUTHY_STRINGS = {"true", "1"}


def _check_safe_integer(value: int, field: str) -> int:
    if abs(value) > MAX_SAFE_INTEGER:
        raise NormalizationError(field, f"Integer value for '{field}' exceeds safe precision")
    return value


def decode_amount(value: Any, field: str = "amount") -> float:
    """
    Decode a stored monetary value into a float rounded to cents.

    Decimal-capable values are converted through ``Decimal`` itself rather than
    by re-parsing their string form, so 12.34 stays 12.34.
    """
    if value is None or isinstance(value, bool):
        raise NormalizationError(field, f"Missing or non-numeric '{field}'")

    if isinstance(value, int):
        decimal_value = Decimal(_check_safe_integer(value, field))
    elif isinstance(value, Decimal):
        decimal_value = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise NormalizationError(field, f"Non-finite '{field}'")
        decimal_value = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            decimal_value = Decimal(value.strip())
        except InvalidOperation:
            raise NormalizationError(field, f"Non-numeric '{field}': {value!r}")
    elif hasattr(value, "__float__"):
        # Foreign numeric types (numpy scalars, driver decimals...)
        decimal_value = Decimal(repr(float(value)))
    else:
        raise NormalizationError(field, f"Unsupported type for '{field}': {type(value).__name__}")

    if not decimal_value.is_finite():
        raise NormalizationError(field, f"Non-finite '{field}'")
    if decimal_value < 0:
        raise NormalizationError(field, f"Negative '{field}'")

    try:
        cents = decimal_value.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Quantizing needs more digits than the decimal context allows
        raise NormalizationError(field, f"'{field}' is out of range")
    return float(cents)


def decode_id(value: Any, field: str = "id") -> int:
    if value is None or isinstance(value, bool):
        raise NormalizationError(field, f"Missing '{field}'")
    if isinstance(value, int):
        return _check_safe_integer(value, field)
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return _check_safe_integer(int(value), field)
    if isinstance(value, str) and value.strip().isdigit():
        return _check_safe_integer(int(value.strip()), field)
    raise NormalizationError(field, f"Non-integer '{field}': {value!r}")


def decode_bool(value: Any) -> bool:
    """1, "true" and True are true; everything else (None included) is false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return False


def decode_date(value: Any, field: str = "date") -> str:
    """Render a stored date as ``YYYY-MM-DD`` without timezone conversion."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        match = _ISO_DATE_PREFIX.match(value.strip())
        if match:
            try:
                return date.fromisoformat(match.group(1)).isoformat()
            except ValueError:
                pass
    raise NormalizationError(field, f"Invalid '{field}': {value!r}")


def _relation_value(relation: Any, key: str) -> Optional[str]:
    if isinstance(relation, Mapping):
        value = relation.get(key)
    else:
        value = getattr(relation, key, None)
    if isinstance(value, enum.Enum):
        value = value.value
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_record(raw: Mapping) -> CanonicalRecord:
    """
    Build a fresh ``CanonicalRecord`` from a raw row.

    Raises:
        NormalizationError: carrying the name of the offending field
    """
    if not isinstance(raw, Mapping):
        raise NormalizationError("record", "Record is not a mapping")

    record_id = decode_id(raw.get("id"))
    amount = decode_amount(raw.get("amount"))

    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raise NormalizationError("description", "Empty description")
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise NormalizationError("description", "Description longer than 500 characters")

    category = resolve_category(raw.get("category"))
    if category is None:
        logger.warning(
            "Record %s has unknown category %r; using %s", record_id, raw.get("category"), DEFAULT_CATEGORY
        )
        category = DEFAULT_CATEGORY

    relation = raw.get(RELATION_KEY)
    if relation is not None:
        account_name = _relation_value(relation, "name")
        account_type = _relation_value(relation, "account_type")
    else:
        account_name = _optional_text(raw.get("account_name"))
        account_type = _optional_text(raw.get("account_type"))

    return CanonicalRecord(
        id=record_id,
        amount=amount,
        description=description,
        category=category,
        date=decode_date(raw.get("date")),
        account_name=account_name,
        account_type=account_type,
        merchant_name=_optional_text(raw.get("merchant_name")),
        is_synced_from_bank=decode_bool(raw.get("is_synced_from_bank")),
    )


def normalize_records(raws: Iterable[Mapping]) -> List[CanonicalRecord]:
    """Normalize many rows, skipping (and logging) the ones that violate the invariants."""
    records: List[CanonicalRecord] = []
    for raw in raws:
        try:
            records.append(normalize_record(raw))
        except NormalizationError as exc:
            record_id = raw.get("id") if isinstance(raw, Mapping) else None
            logger.warning("Skipping record %s: %s (field=%s)", record_id, exc.message, exc.field)
    return records


def to_json_safe(value: Any, path: str = "value") -> Any:
    """
    Recursively convert a raw value into JSON-serialisable primitives.

    Decimals become floats, dates/datetimes become ISO calendar dates, enums
    their values, mappings and sequences are walked. Integers beyond the safe
    range raise ``NormalizationError`` naming the path.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return _check_safe_integer(value, path)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else None
    if isinstance(value, (datetime, date)):
        return decode_date(value, path)
    if isinstance(value, enum.Enum):
        return to_json_safe(value.value, path)
    if isinstance(value, Mapping):
        return {str(key): to_json_safe(item, f"{path}.{key}") for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(item, f"{path}[{index}]") for index, item in enumerate(value)]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
