"""
Pattern Store

Owns Pattern records and their lifecycle. Every status change is a
compare-and-swap on (status, version) so that concurrent reviewers produce
at most one winning transition; the loser gets a retryable ConflictError.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from smsledger.core.auth import Actor
from smsledger.core.database import LedgerDB, get_db
from smsledger.models.patterns import (
    Pattern,
    PatternCreateRequest,
    PatternEvent,
    PatternStatus,
    PatternUpdateRequest,
    ResubmitRequest,
    ReviewRequest,
)
from smsledger.models.users import Role
from smsledger.services import metrics
from smsledger.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from smsledger.services.logging import log_event
from smsledger.services.matcher import Matcher, validate_expression
from smsledger.services.pattern_lifecycle import (
    CREATION_STATES,
    assert_valid_transition,
    authorize,
    is_claimable,
)

logger = logging.getLogger(__name__)

# Fields copied onto a revision of an approved pattern.
REVISION_FIELDS = (
    "expression",
    "sample_text",
    "sender_title",
    "bank_name",
    "merchant_name",
    "transaction_type",
    "message_type",
    "message_subtype",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PatternStore:
    """Role-gated pattern mutations on top of LedgerDB."""

    def __init__(self, db: Optional[LedgerDB] = None, matcher: Optional[Matcher] = None):
        self.db = db or get_db()
        self.matcher = matcher or Matcher()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, pattern_id: int) -> Pattern:
        row = self.db.get_pattern(pattern_id)
        if not row:
            raise NotFoundError("Pattern", pattern_id)
        return Pattern.from_row(row)

    def get_for_actor(self, actor: Actor, pattern_id: int) -> Pattern:
        pattern = self.get(pattern_id)
        if actor.role in (Role.CHECKER, Role.ADMIN):
            return pattern
        if actor.role == Role.MAKER and (
            pattern.owner_id == actor.user_id
            or is_claimable(pattern)
            or pattern.status == PatternStatus.APPROVED
        ):
            return pattern
        raise AuthorizationError(
            "Not authorized to view this pattern", {"pattern_id": pattern_id}
        )

    def list_for_actor(self, actor: Actor, status: Optional[PatternStatus] = None) -> List[Pattern]:
        """Checkers see every pattern; makers see their own plus unclaimed FAILED captures."""
        status_value = status.value if status else None
        if actor.role in (Role.CHECKER, Role.ADMIN):
            rows = self.db.list_patterns(status=status_value)
        elif actor.role == Role.MAKER:
            rows = self.db.list_patterns(
                status=status_value, owner_id=actor.user_id, include_unowned_failed=True
            )
        else:
            raise AuthorizationError("Role 'USER' cannot list patterns")
        return [Pattern.from_row(row) for row in rows]

    def list_approved(self) -> List[Pattern]:
        return [Pattern.from_row(row) for row in self.db.list_approved_patterns()]

    def history(self, actor: Actor, pattern_id: int) -> List[PatternEvent]:
        self.get_for_actor(actor, pattern_id)
        return [PatternEvent.model_validate(row) for row in self.db.list_pattern_events(pattern_id)]

    # ------------------------------------------------------------------
    # Maker actions
    # ------------------------------------------------------------------

    def create(self, actor: Actor, request: PatternCreateRequest) -> Pattern:
        if actor.role != Role.MAKER:
            raise AuthorizationError(f"Role '{actor.role.value}' cannot create patterns")
        if request.status not in CREATION_STATES:
            raise ValidationError("Patterns can only be created as DRAFT or PENDING", field="status")

        payload = request.changes()
        if request.status == PatternStatus.PENDING:
            self.check_submittable(payload["expression"], payload["sample_text"])
            payload["submitted_at"] = _now()
        payload["status"] = request.status.value
        payload["owner_id"] = actor.user_id

        pattern = Pattern.from_row(self.db.create_pattern(payload, actor_id=actor.user_id, action="create"))
        self._record(pattern, "create", actor.user_id)
        return pattern

    def update(self, actor: Actor, pattern_id: int, request: PatternUpdateRequest) -> Pattern:
        """Edit metadata without changing status (DRAFT, REJECTED or FAILED)."""
        pattern = self.get(pattern_id)
        authorize(actor.user_id, actor.role, pattern, "update")
        assert_valid_transition(pattern.status, "update", pattern.status)

        fields = request.changes()
        self._claim(actor, pattern, fields)
        return self._apply(pattern, pattern.status, "update", actor.user_id, **fields)

    def submit(self, actor: Actor, pattern_id: int) -> Pattern:
        pattern = self.get(pattern_id)
        authorize(actor.user_id, actor.role, pattern, "submit")
        assert_valid_transition(pattern.status, "submit", PatternStatus.PENDING)
        self.check_submittable(pattern.expression, pattern.sample_text)
        return self._apply(
            pattern, PatternStatus.PENDING, "submit", actor.user_id, submitted_at=_now()
        )

    def resubmit(self, actor: Actor, pattern_id: int, request: ResubmitRequest) -> Pattern:
        """
        Edit a REJECTED or FAILED pattern and send it back into the workflow.

        REJECTED may only go to PENDING; FAILED may go to PENDING or DRAFT.
        The previous review is cleared.
        """
        pattern = self.get(pattern_id)
        authorize(actor.user_id, actor.role, pattern, "resubmit")
        target = request.target_status
        assert_valid_transition(pattern.status, "resubmit", target)

        fields: Dict[str, Any] = request.changes()
        if target == PatternStatus.PENDING:
            merged = self._merged(pattern, fields)
            self.check_submittable(merged["expression"], merged["sample_text"])
            fields["submitted_at"] = _now()
        fields["reviewer_id"] = None
        fields["review_comment"] = None
        self._claim(actor, pattern, fields)
        return self._apply(pattern, target, "resubmit", actor.user_id, **fields)

    def revise(self, actor: Actor, pattern_id: int) -> Pattern:
        """Start a new DRAFT from an APPROVED pattern; the approved record is untouched."""
        pattern = self.get(pattern_id)
        authorize(actor.user_id, actor.role, pattern, "revise")
        assert_valid_transition(pattern.status, "revise", PatternStatus.DRAFT)

        source = pattern.model_dump(mode="json")
        payload = {key: source[key] for key in REVISION_FIELDS}
        payload["status"] = PatternStatus.DRAFT.value
        payload["owner_id"] = actor.user_id
        payload["parent_pattern_id"] = pattern.pattern_id

        revision = Pattern.from_row(self.db.create_pattern(payload, actor_id=actor.user_id, action="revise"))
        self._record(revision, "revise", actor.user_id, parent_pattern_id=pattern.pattern_id)
        return revision

    # ------------------------------------------------------------------
    # Checker actions
    # ------------------------------------------------------------------

    def approve(self, actor: Actor, pattern_id: int, review: Optional[ReviewRequest] = None) -> Pattern:
        return self._review(actor, pattern_id, PatternStatus.APPROVED, "approve", review)

    def reject(self, actor: Actor, pattern_id: int, review: Optional[ReviewRequest] = None) -> Pattern:
        return self._review(actor, pattern_id, PatternStatus.REJECTED, "reject", review)

    def _review(
        self,
        actor: Actor,
        pattern_id: int,
        to_status: PatternStatus,
        action: str,
        review: Optional[ReviewRequest],
    ) -> Pattern:
        pattern = self.get(pattern_id)
        authorize(actor.user_id, actor.role, pattern, action)
        assert_valid_transition(pattern.status, action, to_status)

        review = review or ReviewRequest()
        fields: Dict[str, Any] = review.changes()
        if to_status == PatternStatus.APPROVED:
            merged = self._merged(pattern, fields)
            self.check_submittable(merged["expression"], merged["sample_text"])
        fields["reviewer_id"] = actor.user_id
        fields["review_comment"] = review.comment
        fields["reviewed_at"] = _now()
        return self._apply(pattern, to_status, action, actor.user_id, comment=review.comment, **fields)

    # ------------------------------------------------------------------
    # System actions
    # ------------------------------------------------------------------

    def mark_failed(self, pattern: Pattern, actor_id: Optional[int], comment: str) -> Pattern:
        """Move a PENDING pattern to FAILED after a validation run found no matches."""
        assert_valid_transition(pattern.status, "mark_failed", PatternStatus.FAILED)
        return self._apply(pattern, PatternStatus.FAILED, "mark_failed", actor_id, comment=comment)

    def capture_unmatched(self, sms_text: str, sms_title: Optional[str]) -> Pattern:
        """Store an SMS that no approved pattern matched as an ownerless FAILED pattern."""
        payload = {
            "expression": "",
            "sample_text": sms_text,
            "sender_title": sms_title,
            "status": PatternStatus.FAILED.value,
            "owner_id": None,
        }
        pattern = Pattern.from_row(self.db.create_pattern(payload, actor_id=None, action="capture"))
        self._record(pattern, "capture", None, sender_title=sms_title)
        return pattern

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def check_submittable(self, expression: Optional[str], sample_text: Optional[str]) -> None:
        """A pattern entering review must compile, name a group and match its own sample."""
        validate_expression(expression or "")
        if not sample_text:
            raise ValidationError("sample_text is required before submission", field="sample_text")
        if self.matcher.match(expression, sample_text) is None:
            raise ValidationError(
                "Expression does not match its sample_text",
                field="expression",
                detail="Edit the expression or the sample so that the sample is matched",
            )

    @staticmethod
    def _merged(pattern: Pattern, fields: Dict[str, Any]) -> Dict[str, Any]:
        merged = pattern.model_dump(mode="json")
        merged.update(fields)
        return merged

    @staticmethod
    def _claim(actor: Actor, pattern: Pattern, fields: Dict[str, Any]) -> None:
        if is_claimable(pattern):
            fields["owner_id"] = actor.user_id

    def _apply(
        self,
        pattern: Pattern,
        to_status: PatternStatus,
        action: str,
        actor_id: Optional[int],
        comment: Optional[str] = None,
        **fields,
    ) -> Pattern:
        applied = self.db.apply_pattern_change(
            pattern.pattern_id,
            pattern.status.value,
            pattern.version,
            to_status.value,
            action,
            actor_id=actor_id,
            comment=comment,
            **fields,
        )
        if not applied:
            logger.warning(
                "Lost transition race on pattern %s (%s from %s)",
                pattern.pattern_id, action, pattern.status.value,
            )
            raise ConflictError(pattern.pattern_id)
        updated = self.get(pattern.pattern_id)
        self._record(updated, action, actor_id, from_status=pattern.status.value)
        return updated

    @staticmethod
    def _record(pattern: Pattern, action: str, actor_id: Optional[int], **extra) -> None:
        metrics.record_transition(action, pattern.status.value)
        log_event(
            "pattern_transition",
            pattern_id=pattern.pattern_id,
            action=action,
            to_status=pattern.status.value,
            actor_id=actor_id,
            **extra,
        )
