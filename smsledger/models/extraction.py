"""Extraction results, bulk requests and batch reports."""
from datetime import date as date_type
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, ConfigDict, Field

from smsledger.models.base import LedgerBaseModel
from smsledger.models.patterns import (
    MessageSubtype,
    MessageType,
    PatternStatus,
    TransactionType,
)


class ErrorKind:
    NO_MATCH = "no_match"
    INVALID_EXPRESSION = "invalid_expression"
    MATCHER_TIMEOUT = "matcher_timeout"
    INVALID_ITEM = "invalid_item"
    PROCESSING_ERROR = "processing_error"


NO_PATTERN_MESSAGE = "no matching pattern found for this SMS"
MATCHED_MESSAGE = "Pattern matched successfully"


class ExtractionResult(LedgerBaseModel):
    """Outcome of applying a pattern to one SMS. Unmatched results carry only a message."""

    matched: bool
    message: Optional[str] = None
    error_kind: Optional[str] = None
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

    parsed_bank_name: bool = False
    parsed_merchant_name: bool = False
    parsed_transaction_type: bool = False
    parsed_message_type: bool = False
    parsed_message_subtype: bool = False

    @classmethod
    def no_match(cls, message: str, error_kind: str = ErrorKind.NO_MATCH) -> "ExtractionResult":
        return cls(matched=False, message=message, error_kind=error_kind)


class ExtractRequest(LedgerBaseModel):
    sms_title: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("sms_title", "smsTitle")
    )
    sms_text: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("sms_text", "smsText", "sms")
    )


class BulkItem(LedgerBaseModel):
    # Items are checked one by one by the coordinator, so nothing here is required.
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    sms_title: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sms_title", "smsTitle")
    )
    sms_text: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sms_text", "smsText", "sms")
    )


class BulkExtractRequest(LedgerBaseModel):
    # Raw items; each one is parsed into a BulkItem by the coordinator so a
    # malformed entry fails alone.
    items: List[Any]


class BatchItemResult(ExtractionResult):
    index: int
    sms_title: Optional[str] = None
    sms_text: Optional[str] = None


class BatchReport(LedgerBaseModel):
    total_count: int
    success_count: int
    failed_count: int
    results: List[BatchItemResult]


class ValidationRunReport(LedgerBaseModel):
    pattern_id: int
    status: PatternStatus
    marked_failed: bool
    report: BatchReport
