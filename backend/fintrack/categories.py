"""
Expense category vocabulary.

This module owns the fixed list of categories. Request validation, the
normaliser, the AI category suggester and the enrichment validator all resolve
names through ``resolve_category``; adding a category means editing
``EXPENSE_CATEGORIES`` (and, optionally, ``CATEGORY_KEYWORDS``) only.
"""
import unicodedata
from typing import Dict, List, Optional, Tuple

EXPENSE_CATEGORIES: Tuple[str, ...] = (
    "Alimentação",
    "Transporte",
    "Compras",
    "Entretenimento",
    "Contas e Serviços",
    "Saúde",
    "Viagem",
    "Educação",
    "Cuidados Pessoais",
    "Outros",
)

DEFAULT_CATEGORY = "Outros"

# Ordered: the first rule with a matching keyword wins
CATEGORY_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("Transporte", ["uber", "taxi", "transporte", "metro", "onibus"]),
    ("Alimentação", ["ifood", "restaurante", "lanchonete", "comida", "alimentacao"]),
    ("Compras", ["shopping", "loja", "magazine", "mercado"]),
    ("Entretenimento", ["cinema", "teatro", "entretenimento", "lazer"]),
    ("Saúde", ["farmacia", "hospital", "medico", "saude"]),
    ("Contas e Serviços", ["energia", "agua", "telefone", "internet", "conta"]),
]


def _fold(value: str) -> str:
    """Lowercase and strip accents so 'SAÚDE' and 'saude' compare equal."""
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


_LOOKUP: Dict[str, str] = {_fold(name): name for name in EXPENSE_CATEGORIES}


def resolve_category(name: Optional[str]) -> Optional[str]:
    """Return the canonical spelling of ``name`` or None if it is not a known category."""
    if not isinstance(name, str) or not name.strip():
        return None
    return _LOOKUP.get(_fold(name))


def keyword_category(*texts: Optional[str]) -> str:
    """
    Rule-based categorisation over free text (description, merchant name...).

    Returns ``DEFAULT_CATEGORY`` when no rule matches.
    """
    haystack = " ".join(_fold(text) for text in texts if text)
    if not haystack:
        return DEFAULT_CATEGORY
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return category
    return DEFAULT_CATEGORY
