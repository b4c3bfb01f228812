"""
Extraction API

Users resolve SMS against APPROVED patterns, one at a time or in bulk.
"""
import logging
import os

from fastapi import APIRouter, Depends

from smsledger.api.deps import get_batch_coordinator, get_extraction_engine, get_pattern_store
from smsledger.core.auth import Actor, require_roles
from smsledger.models.extraction import BatchReport, BulkExtractRequest, ExtractRequest, ExtractionResult
from smsledger.models.users import Role
from smsledger.services import metrics
from smsledger.services.batch_coordinator import BatchCoordinator
from smsledger.services.extraction_engine import ExtractionEngine
from smsledger.services.pattern_store import PatternStore

logger = logging.getLogger(__name__)

CAPTURE_UNMATCHED = os.getenv("SMSLEDGER_CAPTURE_UNMATCHED", "true").lower() == "true"

router = APIRouter(prefix="/extract", tags=["Extraction"])

require_user = require_roles(Role.USER)


@router.post("", response_model=ExtractionResult)
def extract(
    request: ExtractRequest,
    actor: Actor = Depends(require_user),
    store: PatternStore = Depends(get_pattern_store),
    engine: ExtractionEngine = Depends(get_extraction_engine),
):
    """
    Extract fields from one SMS.

    An SMS that no approved pattern matches is kept as an ownerless FAILED
    pattern so makers can write a rule for it.
    """
    result = engine.extract_single(
        request.sms_text, request.sms_title, candidates=store.list_approved()
    )
    metrics.record_extraction("single", "matched" if result.matched else "failed")
    if not result.matched and CAPTURE_UNMATCHED:
        captured = store.capture_unmatched(request.sms_text, request.sms_title)
        logger.info("Captured unmatched SMS from %s as pattern %s", request.sms_title, captured.pattern_id)
    return result


@router.post("/bulk", response_model=BatchReport)
async def extract_bulk(
    request: BulkExtractRequest,
    actor: Actor = Depends(require_user),
    store: PatternStore = Depends(get_pattern_store),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Extract many SMS; each item succeeds or fails on its own. Nothing is captured."""
    return await coordinator.extract_batch(request.items, store.list_approved())
