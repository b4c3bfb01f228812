"""User ledger endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from smsledger.api.deps import get_transaction_service
from smsledger.core.auth import Actor, require_roles
from smsledger.models.patterns import MessageSubtype, MessageType
from smsledger.models.transactions import LedgerSummary, Transaction, TransactionCreateRequest
from smsledger.models.users import Role
from smsledger.services.transactions import TransactionService

router = APIRouter(prefix="/transaction", tags=["Transactions"])

require_user = require_roles(Role.USER)


@router.post("", response_model=Transaction, status_code=201)
def save_transaction(
    request: TransactionCreateRequest,
    actor: Actor = Depends(require_user),
    service: TransactionService = Depends(get_transaction_service),
):
    """Save a matched extraction result to the caller's ledger."""
    return service.save(actor, request)


@router.get("", response_model=List[Transaction])
def list_transactions(
    actor: Actor = Depends(require_user),
    service: TransactionService = Depends(get_transaction_service),
):
    return service.list_for_actor(actor)


@router.get("/summary", response_model=LedgerSummary)
def transaction_summary(
    message_type: Optional[MessageType] = Query(None),
    category: Optional[MessageSubtype] = Query(None),
    actor: Actor = Depends(require_user),
    service: TransactionService = Depends(get_transaction_service),
):
    return service.summary(actor, message_type, category)
