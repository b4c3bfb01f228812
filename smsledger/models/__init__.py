from smsledger.models.base import LedgerBaseModel
from smsledger.models.patterns import (
    MessageSubtype,
    MessageType,
    Pattern,
    PatternDefaults,
    PatternEvent,
    PatternStatus,
    TransactionType,
)
from smsledger.models.extraction import BatchItemResult, BatchReport, ExtractionResult, ErrorKind
from smsledger.models.transactions import LedgerSummary, Transaction, TransactionCreateRequest
from smsledger.models.users import Role

__all__ = [
    "LedgerBaseModel",
    "MessageSubtype",
    "MessageType",
    "Pattern",
    "PatternDefaults",
    "PatternEvent",
    "PatternStatus",
    "TransactionType",
    "BatchItemResult",
    "BatchReport",
    "ExtractionResult",
    "ErrorKind",
    "LedgerSummary",
    "Transaction",
    "TransactionCreateRequest",
    "Role",
]
