"""
Tests for the pattern lifecycle: creation, review, resubmission, revisions,
ownership and the compare-and-swap guard on status transitions.
"""
from __future__ import annotations

import threading

import pytest

from smsledger.core.auth import Actor
from smsledger.models.patterns import (
    PatternCreateRequest,
    PatternStatus,
    PatternUpdateRequest,
    ResubmitRequest,
    ReviewRequest,
)
from smsledger.models.users import Role
from smsledger.services.errors import (
    AuthorizationError,
    ConflictError,
    InvalidExpressionError,
    InvalidTransitionError,
    ValidationError,
)
from smsledger.services.pattern_lifecycle import ACTION_RULES, VALID_TRANSITIONS, authorize
from smsledger.services.pattern_store import PatternStore

EXPRESSION = r"Rs\.?(?<amount>\d+(?:\.\d{2})?) debited"
SAMPLE = "Rs.500 debited from A/c XX1234"


@pytest.fixture()
def store(db):
    return PatternStore(db)


def _create(store, actor, status=PatternStatus.DRAFT, **overrides):
    body = {"expression": EXPRESSION, "sample_text": SAMPLE, "bank_name": "SBI", "status": status}
    body.update(overrides)
    return store.create(actor, PatternCreateRequest(**body))


def test_create_as_draft(store, maker):
    pattern = _create(store, maker)

    assert pattern.status == PatternStatus.DRAFT
    assert pattern.owner_id == maker.user_id
    assert pattern.version == 1
    assert pattern.submitted_at is None
    assert [e.action for e in store.history(maker, pattern.pattern_id)] == ["create"]


def test_create_as_pending_requires_working_expression(store, maker):
    pending = _create(store, maker, status=PatternStatus.PENDING)
    assert pending.status == PatternStatus.PENDING
    assert pending.submitted_at is not None

    with pytest.raises(InvalidExpressionError):
        _create(store, maker, status=PatternStatus.PENDING, expression=r"Rs\.(\d+)")

    with pytest.raises(ValidationError):
        _create(store, maker, status=PatternStatus.PENDING, expression=r"(?<amount>\d+) credited")


def test_draft_expression_is_not_validated(store, maker):
    draft = _create(store, maker, expression=r"(?<amount>\d+")
    assert draft.status == PatternStatus.DRAFT



def test_expression_whitespace_is_kept_while_metadata_is_trimmed(store, maker):
    pattern = _create(
        store,
        maker,
        status=PatternStatus.PENDING,
        expression=r"Rs\.(?<amount>\d+) debited ",
        sample_text="  Rs.500 debited from A/c XX1234 ",
        bank_name=" SBI ",
        sender_title=" SBIINB",
    )
    assert pattern.expression == r"Rs\.(?<amount>\d+) debited "
    assert pattern.sample_text == "Rs.500 debited from A/c XX1234"
    assert pattern.bank_name == "SBI"
    assert pattern.sender_title == "SBIINB"
    assert store.get(pattern.pattern_id).expression.endswith("debited ")

    draft = _create(store, maker)
    updated = store.update(maker, draft.pattern_id, PatternUpdateRequest(expression="debited ", bank_name=" HDFC"))
    assert updated.expression == "debited "
    assert updated.bank_name == "HDFC"


def test_only_makers_create(store, checker):
    with pytest.raises(AuthorizationError):
        _create(store, checker)


def test_owner_updates_draft(store, maker, other_maker):
    pattern = _create(store, maker)

    with pytest.raises(AuthorizationError):
        store.update(other_maker, pattern.pattern_id, PatternUpdateRequest(bank_name="HDFC"))

    updated = store.update(maker, pattern.pattern_id, PatternUpdateRequest(bank_name="HDFC"))
    assert updated.bank_name == "HDFC"
    assert updated.expression == EXPRESSION
    assert updated.status == PatternStatus.DRAFT
    assert updated.version == 2


def test_submit_then_approve(store, maker, checker):
    pattern = _create(store, maker)
    submitted = store.submit(maker, pattern.pattern_id)
    assert submitted.status == PatternStatus.PENDING

    approved = store.approve(checker, pattern.pattern_id, ReviewRequest(comment="looks good"))
    assert approved.status == PatternStatus.APPROVED
    assert approved.reviewer_id == checker.user_id
    assert approved.review_comment == "looks good"
    assert approved.reviewed_at is not None

    history = store.history(checker, pattern.pattern_id)
    assert [(e.action, e.to_status) for e in history] == [
        ("create", PatternStatus.DRAFT),
        ("submit", PatternStatus.PENDING),
        ("approve", PatternStatus.APPROVED),
    ]


def test_self_review_is_rejected_and_status_unchanged(store, maker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    same_person_as_checker = Actor(user_id=maker.user_id, username="maker", role=Role.CHECKER)

    with pytest.raises(AuthorizationError):
        store.approve(same_person_as_checker, pattern.pattern_id)

    assert store.get(pattern.pattern_id).status == PatternStatus.PENDING


def test_maker_cannot_review(store, maker, other_maker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    with pytest.raises(AuthorizationError):
        store.approve(other_maker, pattern.pattern_id)


def test_review_requires_pending(store, maker, checker):
    pattern = _create(store, maker)
    with pytest.raises(InvalidTransitionError):
        store.approve(checker, pattern.pattern_id)
    with pytest.raises(InvalidTransitionError):
        store.reject(checker, pattern.pattern_id)


def test_checker_corrections_applied_with_approval(store, maker, checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    approved = store.approve(
        checker,
        pattern.pattern_id,
        ReviewRequest(bank_name="State Bank", sender_title="SBIINB"),
    )
    assert approved.bank_name == "State Bank"
    assert approved.sender_title == "SBIINB"


def test_rejected_pattern_edited_and_resubmitted(store, maker, checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    rejected = store.reject(checker, pattern.pattern_id, ReviewRequest(comment="missing account"))
    assert rejected.status == PatternStatus.REJECTED
    assert rejected.reviewer_id == checker.user_id

    with pytest.raises(InvalidTransitionError):
        store.resubmit(
            maker, pattern.pattern_id, ResubmitRequest(target_status=PatternStatus.DRAFT)
        )

    resubmitted = store.resubmit(
        maker,
        pattern.pattern_id,
        ResubmitRequest(expression=EXPRESSION + r" from A/c (?<accountNumber>\w+)"),
    )
    assert resubmitted.status == PatternStatus.PENDING
    assert resubmitted.reviewer_id is None
    assert resubmitted.review_comment is None
    assert "accountNumber" in resubmitted.expression


def test_rejected_pattern_can_be_edited_in_place(store, maker, checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    store.reject(checker, pattern.pattern_id)

    edited = store.update(maker, pattern.pattern_id, PatternUpdateRequest(merchant_name="AMAZON"))
    assert edited.status == PatternStatus.REJECTED
    assert edited.merchant_name == "AMAZON"


def test_captured_failed_pattern_is_claimed_by_first_editor(store, maker, other_maker):
    captured = store.capture_unmatched("Rs.250 spent at ZOMATO", "VM-ICICIB")
    assert captured.status == PatternStatus.FAILED
    assert captured.owner_id is None
    assert captured.expression == ""

    visible_to = [p.pattern_id for p in store.list_for_actor(other_maker, PatternStatus.FAILED)]
    assert captured.pattern_id in visible_to

    with pytest.raises(InvalidExpressionError):
        store.resubmit(maker, captured.pattern_id, ResubmitRequest())

    draft = store.resubmit(
        maker,
        captured.pattern_id,
        ResubmitRequest(
            expression=r"Rs\.(?<amount>\d+) spent at (?<merchantName>\w+)",
            target_status=PatternStatus.DRAFT,
        ),
    )
    assert draft.status == PatternStatus.DRAFT
    assert draft.owner_id == maker.user_id

    with pytest.raises(AuthorizationError):
        store.update(other_maker, captured.pattern_id, PatternUpdateRequest(bank_name="ICICI"))


def test_revision_leaves_approved_record_untouched(store, maker, other_maker, checker):
    original = _create(store, maker, status=PatternStatus.PENDING)
    store.approve(checker, original.pattern_id)

    with pytest.raises(InvalidTransitionError):
        store.update(maker, original.pattern_id, PatternUpdateRequest(bank_name="X"))

    revision = store.revise(other_maker, original.pattern_id)
    assert revision.status == PatternStatus.DRAFT
    assert revision.parent_pattern_id == original.pattern_id
    assert revision.owner_id == other_maker.user_id
    assert revision.expression == EXPRESSION

    unchanged = store.get(original.pattern_id)
    assert unchanged.status == PatternStatus.APPROVED
    assert unchanged.version == 2


def test_revise_requires_approved(store, maker):
    pattern = _create(store, maker)
    with pytest.raises(InvalidTransitionError):
        store.revise(maker, pattern.pattern_id)


def test_failed_is_never_an_actor_action(store, maker, checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    with pytest.raises(AuthorizationError):
        authorize(checker.user_id, checker.role, pattern, "mark_failed")
    assert PatternStatus.FAILED not in VALID_TRANSITIONS[PatternStatus.DRAFT]
    assert not VALID_TRANSITIONS[PatternStatus.APPROVED]
    assert ACTION_RULES["mark_failed"].role is None


def test_mark_failed_only_from_pending(store, maker):
    draft = _create(store, maker)
    with pytest.raises(InvalidTransitionError):
        store.mark_failed(draft, None, "no matches")

    pending = _create(store, maker, status=PatternStatus.PENDING)
    failed = store.mark_failed(pending, None, "no matches")
    assert failed.status == PatternStatus.FAILED


def test_stale_version_loses(store, maker, checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    store.approve(checker, pattern.pattern_id)

    with pytest.raises(ConflictError) as exc_info:
        store.mark_failed(pattern, None, "stale snapshot")
    assert exc_info.value.context["retryable"] is True
    assert store.get(pattern.pattern_id).status == PatternStatus.APPROVED


def test_concurrent_reviews_have_one_winner(store, maker, checker, second_checker):
    pattern = _create(store, maker, status=PatternStatus.PENDING)
    barrier = threading.Barrier(2)
    outcomes = {}

    def _review(name, actor, action):
        barrier.wait()
        try:
            getattr(store, action)(actor, pattern.pattern_id)
            outcomes[name] = "won"
        except (ConflictError, InvalidTransitionError) as exc:
            outcomes[name] = type(exc).__name__

    threads = [
        threading.Thread(target=_review, args=("approve", checker, "approve")),
        threading.Thread(target=_review, args=("reject", second_checker, "reject")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes.values()).count("won") == 1
    final = store.get(pattern.pattern_id)
    winner = next(name for name, outcome in outcomes.items() if outcome == "won")
    expected = PatternStatus.APPROVED if winner == "approve" else PatternStatus.REJECTED
    assert final.status == expected

    review_events = [e.action for e in store.history(checker, pattern.pattern_id) if e.action in ("approve", "reject")]
    assert review_events == [winner]


def test_listing_is_scoped_by_role(store, maker, other_maker, checker, user):
    mine = _create(store, maker)
    theirs = _create(store, other_maker)

    maker_ids = {p.pattern_id for p in store.list_for_actor(maker)}
    assert mine.pattern_id in maker_ids
    assert theirs.pattern_id not in maker_ids

    checker_ids = {p.pattern_id for p in store.list_for_actor(checker)}
    assert {mine.pattern_id, theirs.pattern_id} <= checker_ids

    with pytest.raises(AuthorizationError):
        store.list_for_actor(user)
