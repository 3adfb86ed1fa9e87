from __future__ import annotations

import pytest

from spending_analysis.vendors import (
    clean_vendor_name,
    extract_vendor,
    transaction_vendor,
    vendor_key,
)
from tests.helpers.messages import AMAZON_BODY, mk_tx


@pytest.mark.parametrize(
    ("body", "vendor"),
    [
        (AMAZON_BODY, "Amazon"),
        ("Rs 350 paid at Swiggy via UPI", "Swiggy"),
        ("ATM withdrawal of Rs 2000 at MG Road", "MG Road"),
        ("Rs 499 debited for Netflix subscription", "Netflix"),
        ("Rs 200 sent to zomato@okaxis on 03-03", "Zomato"),
        ("Rs 120 paid to big.basket@ybl", "Big Basket"),
        ("Rs 90 at Chai Point Cafe Koramangala today", "Chai Point Cafe"),
        ("Rs 640 spent, Croma store receipt attached", "Croma"),
    ],
)
def test_extract_vendor(body: str, vendor: str) -> None:
    assert extract_vendor(body) == vendor


def test_later_anchor_is_tried_when_the_first_names_nothing() -> None:
    body = "INR 45,000.00 credited to your a/c XX1234 towards salary"
    assert extract_vendor(body) == "Salary"


@pytest.mark.parametrize(
    "body",
    [
        "INR 500 credited to your account",
        "Rs 75 debited from your account",
        "Lunch tomorrow?",
        "",
    ],
)
def test_no_vendor(body: str) -> None:
    assert extract_vendor(body) is None


def test_clean_vendor_name() -> None:
    assert clean_vendor_name("amazon.in purchase") == "Amazon.in"
    assert clean_vendor_name("the shop") is None
    assert clean_vendor_name("Swiggy.") == "Swiggy"
    assert clean_vendor_name("x") is None


def test_vendor_key_ignores_case_and_spacing() -> None:
    assert vendor_key("MG  Road") == vendor_key("mg road") == "mg road"


def test_transaction_vendor_reads_the_body() -> None:
    assert transaction_vendor(mk_tx(1, "10", body="Rs 10 paid at Swiggy")) == "Swiggy"
    assert transaction_vendor(mk_tx(2, "10", body="")) is None
