"""Pattern lifecycle state machine, action rules and authorization helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from smsledger.models.patterns import Pattern, PatternStatus
from smsledger.models.users import Role
from smsledger.services.errors import AuthorizationError, InvalidTransitionError

DRAFT = PatternStatus.DRAFT
PENDING = PatternStatus.PENDING
APPROVED = PatternStatus.APPROVED
REJECTED = PatternStatus.REJECTED
FAILED = PatternStatus.FAILED

VALID_TRANSITIONS: Dict[PatternStatus, FrozenSet[PatternStatus]] = {
    DRAFT: frozenset({DRAFT, PENDING}),
    PENDING: frozenset({APPROVED, REJECTED, FAILED}),
    APPROVED: frozenset(),  # immutable; revisions are new records
    REJECTED: frozenset({REJECTED, PENDING}),
    FAILED: frozenset({FAILED, PENDING, DRAFT}),
}

CREATION_STATES = frozenset({DRAFT, PENDING})


@dataclass(frozen=True)
class ActionRule:
    from_states: FrozenSet[PatternStatus]
    to_states: FrozenSet[PatternStatus]
    role: Optional[Role]
    owner_only: bool = False
    forbid_owner: bool = False


# role=None marks system-driven actions that no actor may request directly.
ACTION_RULES: Dict[str, ActionRule] = {
    "update": ActionRule(frozenset({DRAFT, REJECTED, FAILED}), frozenset({DRAFT, REJECTED, FAILED}), Role.MAKER, owner_only=True),
    "submit": ActionRule(frozenset({DRAFT}), frozenset({PENDING}), Role.MAKER, owner_only=True),
    "resubmit": ActionRule(frozenset({REJECTED, FAILED}), frozenset({PENDING, DRAFT}), Role.MAKER, owner_only=True),
    "revise": ActionRule(frozenset({APPROVED}), frozenset({DRAFT}), Role.MAKER),
    "approve": ActionRule(frozenset({PENDING}), frozenset({APPROVED}), Role.CHECKER, forbid_owner=True),
    "reject": ActionRule(frozenset({PENDING}), frozenset({REJECTED}), Role.CHECKER, forbid_owner=True),
    "mark_failed": ActionRule(frozenset({PENDING}), frozenset({FAILED}), None),
}


def is_claimable(pattern: Pattern) -> bool:
    """Ownerless FAILED captures may be taken over by the first Maker that edits them."""
    return pattern.owner_id is None and pattern.status == FAILED


def authorize(actor_id: int, role: Role, pattern: Pattern, action: str) -> None:
    """
    Role and ownership check for an actor-requested action.

    Runs before transition validity so that a caller who may not act on a
    pattern learns nothing about its state.
    """
    rule = ACTION_RULES[action]
    context = {"pattern_id": pattern.pattern_id, "action": action}
    if rule.role is None:
        raise AuthorizationError(f"'{action}' is performed by the system only", context)
    if role != rule.role:
        raise AuthorizationError(f"Role '{role.value}' cannot {action} patterns", context)
    if rule.owner_only and pattern.owner_id != actor_id and not is_claimable(pattern):
        raise AuthorizationError("Only the owning maker can change this pattern", context)
    if rule.forbid_owner and pattern.owner_id == actor_id:
        raise AuthorizationError("Checkers cannot review their own patterns", context)


def assert_valid_transition(from_status: PatternStatus, action: str, to_status: PatternStatus) -> None:
    rule = ACTION_RULES[action]
    if from_status not in rule.from_states or to_status not in rule.to_states:
        raise InvalidTransitionError(from_status.value, action)
    if action != "revise" and to_status not in VALID_TRANSITIONS[from_status]:
        raise InvalidTransitionError(from_status.value, action)


def authorize_validation(actor_id: int, role: Role, pattern: Pattern) -> None:
    """Validation runs may be started by any checker or by the owning maker."""
    if role == Role.CHECKER:
        return
    if role == Role.MAKER and pattern.owner_id == actor_id:
        return
    raise AuthorizationError(
        "Only a checker or the owning maker can validate this pattern",
        {"pattern_id": pattern.pattern_id, "action": "validate"},
    )
