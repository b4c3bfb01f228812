"""FastAPI dependencies for SMS ledger services."""
from smsledger.core.database import get_db
from smsledger.services.batch_coordinator import BatchCoordinator
from smsledger.services.extraction_engine import ExtractionEngine
from smsledger.services.merchant_categories import MerchantCategoryIndex
from smsledger.services.pattern_store import PatternStore
from smsledger.services.transactions import TransactionService


def get_pattern_store() -> PatternStore:
    return PatternStore(get_db())


def get_extraction_engine() -> ExtractionEngine:
    # Snapshot of merchant overrides for the lifetime of one request.
    categories = MerchantCategoryIndex.from_rows(get_db().list_merchant_categories())
    return ExtractionEngine(categories=categories)


def get_batch_coordinator() -> BatchCoordinator:
    return BatchCoordinator(get_extraction_engine())


def get_transaction_service() -> TransactionService:
    return TransactionService(get_db())
