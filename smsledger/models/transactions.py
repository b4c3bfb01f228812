"""Ledger transaction models."""
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import AliasChoices, ConfigDict, Field

from smsledger.models.base import LedgerBaseModel
from smsledger.models.patterns import MessageSubtype, MessageType, TransactionType


class TransactionCreateRequest(LedgerBaseModel):
    """A matched extraction result posted back by the user, plus the raw SMS."""

    # Clients post the extraction result as-is; provenance flags and messages are dropped.
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    matched: bool
    raw_message: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("raw_message", "sms_text", "msg")
    )
    pattern_id: Optional[int] = None
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


class Transaction(LedgerBaseModel):
    tx_id: int
    owner_id: int
    pattern_id: Optional[int] = None
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
    raw_message: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls.model_validate(dict(row))


class LedgerSummary(LedgerBaseModel):
    count: int
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal
    by_category: Dict[str, Decimal] = Field(default_factory=dict)
