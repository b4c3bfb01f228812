"""
Field Normalizer

Turns raw named captures into typed transaction fields. Each field comes
either from the SMS (parsed_* = True) or from the pattern's stored default.
Empty captures count as absent.
"""
import re
from dataclasses import asdict, dataclass
from datetime import date as date_type, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from dateutil import parser as date_parser

from smsledger.models.patterns import (
    MessageSubtype,
    MessageType,
    PatternDefaults,
    TransactionType,
)
from smsledger.services.merchant_categories import MerchantCategoryIndex

# Canonical field -> accepted capture group names, first non-empty wins.
CAPTURE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "amount": ("amount",),
    "account_number": ("accountNumber", "account_number"),
    "bank_name": ("bankName", "bank_name"),
    "merchant_name": ("merchantName", "merchant_name", "merchant"),
    "transaction_type": ("txType", "transaction_type", "type"),
    "message_type": ("msgType", "message_type"),
    "message_subtype": ("msgSubtype", "message_subtype"),
    "date": ("date",),
    "available_balance": ("availableBalance", "available_balance"),
    "reference_no": ("referenceNumber", "reference_no", "refNo"),
}

DEBIT_WORDS = {"DEBIT", "DEBITED", "DR", "SPENT", "WITHDRAWN", "PAID", "SENT"}
CREDIT_WORDS = {"CREDIT", "CREDITED", "CR", "RECEIVED", "DEPOSITED", "REFUND"}

# Order matters: first keyword contained in the capture wins.
TRANSACTION_TYPE_KEYWORDS = ("UPI", "NEFT", "RTGS", "IMPS", "ATM", "CARD", "CASH")

SMS_DATE_FORMATS = (
    "%d-%b-%y",
    "%d-%b-%Y",
    "%d%b%y",
    "%d%b%Y",
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d/%m/%y",
)

_CURRENCY_RE = re.compile(r"(?i)\b(?:rs\.?|inr)|[₹$]")
_TWO_PLACES = Decimal("0.01")


@dataclass
class NormalizedFields:
    amount: Optional[Decimal] = None
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    merchant_name: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    message_type: Optional[MessageType] = None
    message_subtype: Optional[MessageSubtype] = None
    date: Optional[str] = None
    transaction_date: Optional[date_type] = None
    reference_no: Optional[str] = None
    available_balance: Optional[Decimal] = None
    parsed_bank_name: bool = False
    parsed_merchant_name: bool = False
    parsed_transaction_type: bool = False
    parsed_message_type: bool = False
    parsed_message_subtype: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def captured(raw_captures: Mapping[str, Optional[str]], field: str) -> Optional[str]:
    """First non-empty trimmed capture for a canonical field, else None."""
    for name in CAPTURE_ALIASES[field]:
        value = raw_captures.get(name)
        if value is None:
            continue
        value = value.strip()
        if value:
            return value
    return None


def normalize_amount(amount_str: Optional[str]) -> Optional[Decimal]:
    """
    Parse an SMS amount to a two-place Decimal.

    Strips currency markers (Rs, Rs., INR, ₹, $), thousands separators and
    whitespace. Returns None when unparseable so that zero stays distinct
    from missing.
    """
    if not amount_str or not isinstance(amount_str, str):
        return None

    cleaned = _CURRENCY_RE.sub("", amount_str)
    cleaned = cleaned.replace(",", "").replace(" ", "").strip()
    if not cleaned:
        return None

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    try:
        return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # more digits than the decimal context can hold at two places
        return None


def normalize_date(date_str: Optional[str]) -> Optional[date_type]:
    """
    Parse SMS date formats (10-Jan-26, 14Jan2026, 10/01/26, ...). Day-first.
    Returns None if unparseable.
    """
    if not date_str or not isinstance(date_str, str):
        return None

    date_str = date_str.strip()
    if not date_str:
        return None

    for fmt in SMS_DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    try:
        return date_parser.parse(date_str, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def normalize_transaction_type(raw: str) -> TransactionType:
    upper = raw.strip().upper()
    try:
        return TransactionType(upper)
    except ValueError:
        pass
    for keyword in TRANSACTION_TYPE_KEYWORDS:
        if keyword in upper:
            return TransactionType(keyword)
    return TransactionType.OTHER


def normalize_message_type(raw: str) -> Optional[MessageType]:
    upper = raw.strip().upper().rstrip(".")
    if upper in DEBIT_WORDS:
        return MessageType.DEBITED
    if upper in CREDIT_WORDS:
        return MessageType.CREDITED
    return None


def normalize_message_subtype(raw: str) -> MessageSubtype:
    try:
        return MessageSubtype(raw.strip().upper())
    except ValueError:
        return MessageSubtype.OTHER


def normalize(
    raw_captures: Mapping[str, Optional[str]],
    defaults: Optional[PatternDefaults] = None,
    categories: Optional[MerchantCategoryIndex] = None,
) -> NormalizedFields:
    """Build typed fields from captures, falling back to pattern defaults."""
    defaults = defaults or PatternDefaults()
    categories = categories or MerchantCategoryIndex()
    fields = NormalizedFields()

    fields.amount = normalize_amount(captured(raw_captures, "amount"))
    fields.available_balance = normalize_amount(captured(raw_captures, "available_balance"))
    fields.account_number = captured(raw_captures, "account_number")
    fields.reference_no = captured(raw_captures, "reference_no")

    raw_date = captured(raw_captures, "date")
    fields.date = raw_date
    fields.transaction_date = normalize_date(raw_date)

    bank_name = captured(raw_captures, "bank_name")
    if bank_name:
        fields.bank_name = bank_name
        fields.parsed_bank_name = True
    else:
        fields.bank_name = defaults.bank_name

    merchant_name = captured(raw_captures, "merchant_name")
    if merchant_name:
        fields.merchant_name = merchant_name
        fields.parsed_merchant_name = True
    else:
        fields.merchant_name = defaults.merchant_name

    tx_type = captured(raw_captures, "transaction_type")
    if tx_type:
        fields.transaction_type = normalize_transaction_type(tx_type)
        fields.parsed_transaction_type = True
    else:
        fields.transaction_type = defaults.transaction_type

    msg_type = captured(raw_captures, "message_type")
    message_type = normalize_message_type(msg_type) if msg_type else None
    if message_type is not None:
        fields.message_type = message_type
        fields.parsed_message_type = True
    else:
        fields.message_type = defaults.message_type

    msg_subtype = captured(raw_captures, "message_subtype")
    if msg_subtype:
        fields.message_subtype = normalize_message_subtype(msg_subtype)
        fields.parsed_message_subtype = True
    elif defaults.message_subtype is not None:
        fields.message_subtype = defaults.message_subtype
    else:
        fields.message_subtype = categories.lookup(fields.merchant_name)

    return fields
