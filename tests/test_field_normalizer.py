"""
Tests for the field normalizer: amounts, dates, enums and default fallback.
"""
from datetime import date
from decimal import Decimal

from smsledger.models.patterns import (
    MessageSubtype,
    MessageType,
    PatternDefaults,
    TransactionType,
)
from smsledger.services.field_normalizer import (
    normalize,
    normalize_amount,
    normalize_date,
    normalize_transaction_type,
)
from smsledger.services.merchant_categories import MerchantCategoryIndex


class TestNormalizeAmount:
    def test_plain_integer_gets_two_places(self):
        assert normalize_amount("500") == Decimal("500.00")
        assert str(normalize_amount("500")) == "500.00"

    def test_currency_markers_and_separators(self):
        assert normalize_amount("Rs.1,234.50") == Decimal("1234.50")
        assert normalize_amount("INR 2,00,000") == Decimal("200000.00")
        assert normalize_amount("₹ 99.9") == Decimal("99.90")

    def test_zero_is_not_missing(self):
        assert normalize_amount("0") == Decimal("0.00")
        assert normalize_amount("") is None
        assert normalize_amount(None) is None

    def test_unparseable_is_missing(self):
        assert normalize_amount("abc") is None
        assert normalize_amount("NaN") is None

    def test_too_many_digits_is_missing(self):
        assert normalize_amount("1" * 30) is None
        assert normalize_amount("Rs." + "9" * 27 + ".50") is None
        assert normalize_amount("9" * 20) == Decimal("9" * 20 + ".00")


class TestNormalizeDate:
    def test_sms_formats(self):
        assert normalize_date("10-Jan-26") == date(2026, 1, 10)
        assert normalize_date("10-Jan-2026") == date(2026, 1, 10)
        assert normalize_date("14Jan26") == date(2026, 1, 14)
        assert normalize_date("2026-01-10") == date(2026, 1, 10)
        assert normalize_date("10/01/2026") == date(2026, 1, 10)

    def test_day_first_fallback(self):
        assert normalize_date("05.02.2026") == date(2026, 2, 5)

    def test_unparseable(self):
        assert normalize_date("garbage text") is None
        assert normalize_date("   ") is None


def test_transaction_type_keyword_containment():
    assert normalize_transaction_type("upi") == TransactionType.UPI
    assert normalize_transaction_type("UPI/P2M") == TransactionType.UPI
    assert normalize_transaction_type("Debit Card") == TransactionType.CARD
    assert normalize_transaction_type("cheque") == TransactionType.OTHER


def test_defaults_fill_uncaptured_fields():
    defaults = PatternDefaults(bank_name="SBI", transaction_type=TransactionType.UPI)
    fields = normalize({"amount": "500", "bankName": None}, defaults)

    assert fields.amount == Decimal("500.00")
    assert fields.bank_name == "SBI"
    assert fields.parsed_bank_name is False
    assert fields.transaction_type == TransactionType.UPI
    assert fields.parsed_transaction_type is False


def test_captured_values_win_over_defaults():
    defaults = PatternDefaults(bank_name="SBI", message_type=MessageType.CREDITED)
    fields = normalize({"bankName": " HDFC ", "msgType": "Dr."}, defaults)

    assert fields.bank_name == "HDFC"
    assert fields.parsed_bank_name is True
    assert fields.message_type == MessageType.DEBITED
    assert fields.parsed_message_type is True


def test_empty_capture_counts_as_absent():
    defaults = PatternDefaults(merchant_name="AMAZON")
    fields = normalize({"merchantName": ""}, defaults)

    assert fields.merchant_name == "AMAZON"
    assert fields.parsed_merchant_name is False


def test_unknown_message_type_falls_back_to_default():
    defaults = PatternDefaults(message_type=MessageType.CREDITED)
    fields = normalize({"msgType": "reversal"}, defaults)

    assert fields.message_type == MessageType.CREDITED
    assert fields.parsed_message_type is False


def test_subtype_inferred_from_merchant():
    fields = normalize({"merchant": "Swiggy Instamart"})
    assert fields.message_subtype == MessageSubtype.FOOD
    assert fields.parsed_message_subtype is False

    unknown = normalize({"merchant": "Corner Store"})
    assert unknown.message_subtype == MessageSubtype.OTHER

    no_merchant = normalize({"amount": "10"})
    assert no_merchant.message_subtype is None


def test_subtype_capture_outside_enum_becomes_other():
    fields = normalize({"msgSubtype": "fuel"})
    assert fields.message_subtype == MessageSubtype.OTHER
    assert fields.parsed_message_subtype is True


def test_merchant_override_beats_keywords():
    categories = MerchantCategoryIndex({"AMAZON PRIME": "ENTERTAINMENT"})
    fields = normalize({"merchantName": "Amazon Prime Video"}, categories=categories)
    assert fields.message_subtype == MessageSubtype.ENTERTAINMENT


def test_raw_and_parsed_date_are_both_kept():
    fields = normalize({"date": "10-Jan-26", "refNo": "123456", "availableBalance": "1,000.5"})
    assert fields.date == "10-Jan-26"
    assert fields.transaction_date == date(2026, 1, 10)
    assert fields.reference_no == "123456"
    assert fields.available_balance == Decimal("1000.50")


def test_oversized_balance_is_missing_but_amount_kept():
    fields = normalize({"amount": "250", "availableBalance": "8" * 30})
    assert fields.amount == Decimal("250.00")
    assert fields.available_balance is None
