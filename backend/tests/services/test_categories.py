import pytest

from fintrack.categories import (
    DEFAULT_CATEGORY,
    EXPENSE_CATEGORIES,
    keyword_category,
    resolve_category,
)


def test_default_category_is_part_of_vocabulary():
    assert DEFAULT_CATEGORY in EXPENSE_CATEGORIES
    assert len(set(EXPENSE_CATEGORIES)) == len(EXPENSE_CATEGORIES)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Alimentação", "Alimentação"),
        ("alimentacao", "Alimentação"),
        ("  EDUCAÇÃO ", "Educação"),
        ("cuidados pessoais", "Cuidados Pessoais"),
        ("Food", None),
        ("", None),
        (None, None),
        (42, None),
    ],
)
def test_resolve_category(name, expected):
    assert resolve_category(name) == expected


@pytest.mark.parametrize(
    "texts,expected",
    [
        (("UBER *TRIP",), "Transporte"),
        (("Pedido", "iFood"), "Alimentação"),
        (("Farmácia São João",), "Saúde"),
        (("Conta de Energia",), "Contas e Serviços"),
        (("Ingresso Cinema",), "Entretenimento"),
        (("Transferência",), DEFAULT_CATEGORY),
        ((None, None), DEFAULT_CATEGORY),
        ((), DEFAULT_CATEGORY),
    ],
)
def test_keyword_category(texts, expected):
    assert keyword_category(*texts) == expected


def test_first_matching_rule_wins():
    # "uber" (Transporte) is listed before "restaurante" (Alimentação)
    assert keyword_category("Uber para o restaurante") == "Transporte"
