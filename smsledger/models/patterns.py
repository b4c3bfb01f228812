"""Pattern entities, enums and request bodies for the maker/checker workflow."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator

from smsledger.models.base import LedgerBaseModel


class TransactionType(str, Enum):
    UPI = "UPI"
    NEFT = "NEFT"
    RTGS = "RTGS"
    IMPS = "IMPS"
    CASH = "CASH"
    CARD = "CARD"
    ATM = "ATM"
    OTHER = "OTHER"


class MessageType(str, Enum):
    DEBITED = "DEBITED"
    CREDITED = "CREDITED"


class MessageSubtype(str, Enum):
    FOOD = "FOOD"
    HEALTH = "HEALTH"
    SHOPPING = "SHOPPING"
    TRAVEL = "TRAVEL"
    ENTERTAINMENT = "ENTERTAINMENT"
    BILLS = "BILLS"
    SALARY = "SALARY"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class PatternStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class PatternDefaults(LedgerBaseModel):
    """Values a pattern contributes when its expression does not capture them."""

    bank_name: Optional[str] = None
    merchant_name: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    message_type: Optional[MessageType] = None
    message_subtype: Optional[MessageSubtype] = None


class Pattern(LedgerBaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    pattern_id: int
    expression: str = ""
    sample_text: str = ""
    sender_title: Optional[str] = None
    bank_name: Optional[str] = None
    merchant_name: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    message_type: Optional[MessageType] = None
    message_subtype: Optional[MessageSubtype] = None
    status: PatternStatus
    owner_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    review_comment: Optional[str] = None
    parent_pattern_id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Pattern":
        return cls.model_validate(dict(row))

    @property
    def defaults(self) -> PatternDefaults:
        return PatternDefaults(
            bank_name=self.bank_name,
            merchant_name=self.merchant_name,
            transaction_type=self.transaction_type,
            message_type=self.message_type,
            message_subtype=self.message_subtype,
        )


class PatternEvent(LedgerBaseModel):
    event_id: int
    pattern_id: int
    action: str
    from_status: Optional[PatternStatus] = None
    to_status: PatternStatus
    actor_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime


class PatternFields(LedgerBaseModel):
    """Editable metadata shared by create, update, resubmit and review corrections."""

    # Leading and trailing spaces in an expression are literal; only metadata is trimmed.
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    expression: Optional[str] = None
    sample_text: Optional[str] = None
    sender_title: Optional[str] = None
    bank_name: Optional[str] = None
    merchant_name: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    message_type: Optional[MessageType] = None
    message_subtype: Optional[MessageSubtype] = None

    @field_validator("sample_text", "sender_title", "bank_name", "merchant_name", mode="before")
    @classmethod
    def strip_metadata(cls, value: Any) -> Any:
        return _strip(value)

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, enums flattened to their values."""
        data = self.model_dump(exclude_unset=True)
        return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


class PatternCreateRequest(PatternFields):
    expression: str = Field(..., min_length=1)
    sample_text: str = Field(..., min_length=1)
    status: PatternStatus = PatternStatus.DRAFT

    @field_validator("status")
    @classmethod
    def creation_status(cls, value: PatternStatus) -> PatternStatus:
        if value not in (PatternStatus.DRAFT, PatternStatus.PENDING):
            raise ValueError("patterns can only be created as DRAFT or PENDING")
        return value

    def changes(self) -> Dict[str, Any]:
        data = super().changes()
        data.pop("status", None)
        data["expression"] = self.expression
        data["sample_text"] = self.sample_text
        return data


class PatternUpdateRequest(PatternFields):
    pass


class ResubmitRequest(PatternFields):
    target_status: PatternStatus = PatternStatus.PENDING

    def changes(self) -> Dict[str, Any]:
        data = super().changes()
        data.pop("target_status", None)
        return data


class ReviewRequest(PatternFields):
    comment: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        data = super().changes()
        data.pop("comment", None)
        return data


class PatternTestRequest(PatternDefaults):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    expression: str = Field(..., min_length=1)
    sample_text: str = Field(..., min_length=1)

    @field_validator("sample_text", "bank_name", "merchant_name", mode="before")
    @classmethod
    def strip_metadata(cls, value: Any) -> Any:
        return _strip(value)


class StoredPatternTestRequest(LedgerBaseModel):
    sms_text: Optional[str] = None


class ValidationRunRequest(LedgerBaseModel):
    samples: List[str] = Field(..., min_length=1)

