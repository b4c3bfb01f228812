"""User ledger: append-only transactions and pure aggregation over them."""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from smsledger.core.auth import Actor
from smsledger.core.database import LedgerDB, get_db
from smsledger.models.patterns import MessageSubtype, MessageType
from smsledger.models.transactions import LedgerSummary, Transaction, TransactionCreateRequest
from smsledger.services.errors import ValidationError
from smsledger.services.logging import log_event

ZERO = Decimal("0.00")


def summarize(
    transactions: Iterable[Transaction],
    message_type: Optional[MessageType] = None,
    category: Optional[MessageSubtype] = None,
) -> LedgerSummary:
    """Totals over ``transactions`` after applying the optional filters."""
    debit_total = ZERO
    credit_total = ZERO
    count = 0
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for tx in transactions:
        if message_type is not None and tx.message_type != message_type:
            continue
        if category is not None and tx.message_subtype != category:
            continue
        count += 1
        amount = tx.amount or ZERO
        if tx.message_type == MessageType.DEBITED:
            debit_total += amount
        elif tx.message_type == MessageType.CREDITED:
            credit_total += amount
        key = tx.message_subtype.value if tx.message_subtype else MessageSubtype.OTHER.value
        by_category[key] += amount

    return LedgerSummary(
        count=count,
        debit_total=debit_total,
        credit_total=credit_total,
        balance=credit_total - debit_total,
        by_category=dict(by_category),
    )


class TransactionService:
    def __init__(self, db: Optional[LedgerDB] = None):
        self.db = db or get_db()

    def save(self, actor: Actor, request: TransactionCreateRequest) -> Transaction:
        """Persist a matched extraction result for ``actor``."""
        if not request.matched:
            raise ValidationError(
                "Only matched extraction results can be saved", field="matched"
            )
        payload = request.model_dump(exclude={"matched"})
        payload["owner_id"] = actor.user_id
        tx = Transaction.from_row(self.db.create_transaction(payload))
        log_event("transaction_saved", tx_id=tx.tx_id, owner_id=actor.user_id, pattern_id=tx.pattern_id)
        return tx

    def list_for_actor(self, actor: Actor) -> List[Transaction]:
        return [Transaction.from_row(row) for row in self.db.list_transactions(actor.user_id)]

    def summary(
        self,
        actor: Actor,
        message_type: Optional[MessageType] = None,
        category: Optional[MessageSubtype] = None,
    ) -> LedgerSummary:
        return summarize(self.list_for_actor(actor), message_type, category)
