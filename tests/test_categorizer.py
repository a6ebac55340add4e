from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope

from finledger.categorizer import (
    CategoryRule,
    KeywordCategorizer,
    kind_for_bank_sync,
    kind_for_import,
    parse_keywords,
)


def _rules() -> KeywordCategorizer:
    return KeywordCategorizer(
        [
            CategoryRule(id=1, name="Groceries", keywords=("whole foods", "safeway")),
            CategoryRule(id=2, name="Shopping", keywords=("amazon",)),
            CategoryRule(id=3, name="Other", keywords=()),
            CategoryRule(id=4, name="Dining", keywords=("starbucks",)),
        ]
    )


def test_first_matching_category_wins():
    cat = _rules()
    assert cat.categorize("AMAZON WHOLE FOODS DELIVERY").name == "Groceries"
    assert cat.categorize("Amazon Marketplace").name == "Shopping"


def test_matching_is_case_insensitive_substring():
    assert _rules().categorize("STARBUCKS STORE 456").name == "Dining"


@pytest.mark.parametrize("description", ["", None, "RANDOM VENDOR"])
def test_no_match_is_uncategorized(description):
    assert _rules().categorize(description) is None


def test_categories_without_keywords_never_match():
    cat = KeywordCategorizer([CategoryRule(id=9, name="Other", keywords=())])
    assert cat.categorize("anything at all") is None


def test_parse_keywords_trims_lowercases_and_drops_blanks():
    assert parse_keywords(" Rent, ,HOA ") == ("rent", "hoa")
    assert parse_keywords(["Whole Foods", "  "]) == ("whole foods",)
    assert parse_keywords(None) == ()


def test_from_session_follows_seed_order(seeded_url):
    with session_scope(database_url=seeded_url) as session:
        cat = KeywordCategorizer.from_session(session)
    assert cat.categorize("WHOLE FOODS MARKET #123").name == "Groceries"
    # "gas" is listed under Utilities before Transportation.
    assert cat.categorize("PG&E GAS BILL").name == "Utilities"
    assert cat.categorize("ACME PAYROLL").name == "Income"
    assert cat.by_name("Transfer") is not None
    assert cat.by_name("Nope") is None


@pytest.mark.parametrize(
    ("amount", "category", "explicit", "expected"),
    [
        ("-50.00", "Transfer", None, "transfer"),
        ("50.00", "Transfer", "income", "transfer"),
        ("-50.00", "Dining", "Income", "income"),
        ("-50.00", "Dining", "transfer", "transfer"),
        ("-50.00", "Dining", "bogus", "expense"),
        ("2500.00", "Income", None, "income"),
        ("0.00", None, None, "expense"),
        ("-5.75", None, None, "expense"),
    ],
)
def test_kind_for_import(amount, category, explicit, expected):
    assert kind_for_import(Decimal(amount), category, explicit) == expected


@pytest.mark.parametrize(
    ("amount", "description", "expected"),
    [
        ("-50.00", "ZELLE TO JOHN", "transfer"),
        ("300.00", "Online Transfer from Savings", "transfer"),
        ("-120.00", "CREDIT CARD PAYMENT", "transfer"),
        ("0.00", "INTEREST", "income"),
        ("2500.00", "ACME PAYROLL", "income"),
        ("-85.23", "WHOLE FOODS MARKET", "expense"),
    ],
)
def test_kind_for_bank_sync(amount, description, expected):
    assert kind_for_bank_sync(Decimal(amount), description) == expected
