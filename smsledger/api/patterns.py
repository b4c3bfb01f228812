"""
Pattern API

Maker authoring, checker review, test runs and validation runs.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from smsledger.api.deps import get_batch_coordinator, get_extraction_engine, get_pattern_store
from smsledger.core.auth import Actor, require_roles
from smsledger.models.extraction import ExtractRequest, ExtractionResult, ValidationRunReport
from smsledger.models.patterns import (
    Pattern,
    PatternCreateRequest,
    PatternDefaults,
    PatternEvent,
    PatternStatus,
    PatternTestRequest,
    PatternUpdateRequest,
    ResubmitRequest,
    ReviewRequest,
    StoredPatternTestRequest,
    ValidationRunRequest,
)
from smsledger.models.users import Role
from smsledger.services import metrics
from smsledger.services.batch_coordinator import BatchCoordinator
from smsledger.services.extraction_engine import ExtractionEngine
from smsledger.services.pattern_lifecycle import authorize_validation
from smsledger.services.pattern_store import PatternStore

router = APIRouter(prefix="/pattern", tags=["Patterns"])

require_maker = require_roles(Role.MAKER)
require_checker = require_roles(Role.CHECKER)
require_author_or_reviewer = require_roles(Role.MAKER, Role.CHECKER)
require_pattern_reader = require_roles(Role.MAKER, Role.CHECKER, Role.ADMIN)


# ---------------------------------------------------------------------------
# Test mode
# ---------------------------------------------------------------------------

@router.post("/test", response_model=ExtractionResult)
def test_expression(
    request: PatternTestRequest,
    actor: Actor = Depends(require_author_or_reviewer),
    engine: ExtractionEngine = Depends(get_extraction_engine),
):
    """Try an unsaved expression against a sample SMS."""
    defaults = PatternDefaults(
        bank_name=request.bank_name,
        merchant_name=request.merchant_name,
        transaction_type=request.transaction_type,
        message_type=request.message_type,
        message_subtype=request.message_subtype,
    )
    return engine.apply(request.expression, request.sample_text, defaults)


@router.post("/check", response_model=ExtractionResult)
def check_coverage(
    request: ExtractRequest,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
    engine: ExtractionEngine = Depends(get_extraction_engine),
):
    """Does an approved pattern already cover this SMS? Nothing is captured."""
    return engine.extract_single(
        request.sms_text, request.sms_title, candidates=store.list_approved()
    )


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------

@router.post("", response_model=Pattern, status_code=201)
def create_pattern(
    request: PatternCreateRequest,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
):
    """Create a pattern as DRAFT or PENDING."""
    return store.create(actor, request)


@router.get("", response_model=List[Pattern])
def list_patterns(
    status: Optional[PatternStatus] = Query(None),
    actor: Actor = Depends(require_pattern_reader),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.list_for_actor(actor, status)


@router.get("/{pattern_id}", response_model=Pattern)
def get_pattern(
    pattern_id: int,
    actor: Actor = Depends(require_pattern_reader),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.get_for_actor(actor, pattern_id)


@router.get("/{pattern_id}/history", response_model=List[PatternEvent])
def pattern_history(
    pattern_id: int,
    actor: Actor = Depends(require_pattern_reader),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.history(actor, pattern_id)


@router.put("/{pattern_id}", response_model=Pattern)
def update_pattern(
    pattern_id: int,
    request: PatternUpdateRequest,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.update(actor, pattern_id, request)


@router.put("/{pattern_id}/submit", response_model=Pattern)
def submit_pattern(
    pattern_id: int,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.submit(actor, pattern_id)


@router.put("/{pattern_id}/resubmit", response_model=Pattern)
def resubmit_pattern(
    pattern_id: int,
    request: ResubmitRequest,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.resubmit(actor, pattern_id, request)


@router.post("/{pattern_id}/revise", response_model=Pattern, status_code=201)
def revise_pattern(
    pattern_id: int,
    actor: Actor = Depends(require_maker),
    store: PatternStore = Depends(get_pattern_store),
):
    """New DRAFT copied from an APPROVED pattern."""
    return store.revise(actor, pattern_id)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

@router.post("/{pattern_id}/approve", response_model=Pattern)
def approve_pattern(
    pattern_id: int,
    review: Optional[ReviewRequest] = None,
    actor: Actor = Depends(require_checker),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.approve(actor, pattern_id, review)


@router.post("/{pattern_id}/reject", response_model=Pattern)
def reject_pattern(
    pattern_id: int,
    review: Optional[ReviewRequest] = None,
    actor: Actor = Depends(require_checker),
    store: PatternStore = Depends(get_pattern_store),
):
    return store.reject(actor, pattern_id, review)


@router.post("/{pattern_id}/test", response_model=ExtractionResult)
def test_stored_pattern(
    pattern_id: int,
    request: Optional[StoredPatternTestRequest] = None,
    actor: Actor = Depends(require_author_or_reviewer),
    store: PatternStore = Depends(get_pattern_store),
    engine: ExtractionEngine = Depends(get_extraction_engine),
):
    """Re-run a stored pattern against its sample or a supplied SMS."""
    pattern = store.get_for_actor(actor, pattern_id)
    sms_text = request.sms_text if request and request.sms_text else pattern.sample_text
    result = engine.extract_single(sms_text, pattern=pattern)
    metrics.record_extraction("test", "matched" if result.matched else "failed")
    return result


@router.post("/{pattern_id}/validate", response_model=ValidationRunReport)
async def validate_pattern(
    pattern_id: int,
    request: ValidationRunRequest,
    actor: Actor = Depends(require_author_or_reviewer),
    store: PatternStore = Depends(get_pattern_store),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
):
    """Run the pattern over samples; a PENDING pattern with no matches becomes FAILED."""
    pattern = store.get(pattern_id)
    authorize_validation(actor.user_id, actor.role, pattern)
    return await coordinator.validate_pattern(store, pattern, request.samples, actor.user_id)
