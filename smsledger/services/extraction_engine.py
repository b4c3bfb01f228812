"""
Extraction Engine

Applies one pattern (test mode) or the first matching approved candidate
(resolution mode) to an SMS and returns an ExtractionResult. Reads only;
never mutates patterns or transactions.
"""
import logging
from typing import Iterable, List, Optional

from smsledger.models.extraction import (
    MATCHED_MESSAGE,
    NO_PATTERN_MESSAGE,
    ErrorKind,
    ExtractionResult,
)
from smsledger.models.patterns import Pattern, PatternDefaults
from smsledger.services.errors import InvalidExpressionError, MatcherTimeoutError
from smsledger.services.field_normalizer import normalize
from smsledger.services.matcher import Matcher
from smsledger.services.merchant_categories import MerchantCategoryIndex

logger = logging.getLogger(__name__)


def select_candidates(title_hint: Optional[str], patterns: Iterable[Pattern]) -> List[Pattern]:
    """
    Approved patterns whose sender title or bank name appears in the hint,
    case-insensitively. Input order is kept.
    """
    hint = (title_hint or "").strip().lower()
    if not hint:
        return []
    selected = []
    for pattern in patterns:
        keys = [k.strip().lower() for k in (pattern.sender_title, pattern.bank_name) if k and k.strip()]
        if any(key in hint for key in keys):
            selected.append(pattern)
    return selected


class ExtractionEngine:
    def __init__(
        self,
        matcher: Optional[Matcher] = None,
        categories: Optional[MerchantCategoryIndex] = None,
    ):
        self.matcher = matcher or Matcher()
        self.categories = categories or MerchantCategoryIndex()

    def apply(
        self,
        expression: str,
        sms_text: str,
        defaults: Optional[PatternDefaults] = None,
        pattern_id: Optional[int] = None,
    ) -> ExtractionResult:
        """
        Run one expression against one SMS.

        Raises InvalidExpressionError or MatcherTimeoutError; a plain miss is
        returned as ``matched=False``.
        """
        captures = self.matcher.match(expression, sms_text)
        if captures is None:
            return ExtractionResult.no_match("Pattern did not match the SMS")
        fields = normalize(captures, defaults, self.categories)
        return ExtractionResult(
            matched=True,
            message=MATCHED_MESSAGE,
            pattern_id=pattern_id,
            **fields.to_dict(),
        )

    def extract_single(
        self,
        sms_text: str,
        title_hint: Optional[str] = "",
        *,
        pattern: Optional[Pattern] = None,
        candidates: Iterable[Pattern] = (),
    ) -> ExtractionResult:
        """
        Extract fields from one SMS.

        With ``pattern`` (maker/checker test mode) exactly that pattern is
        used whatever its status, and matcher failures propagate so the
        caller sees why. Otherwise ``candidates`` (approved patterns, most
        recently approved first) are narrowed by ``title_hint`` and tried in
        order; matcher failures count as a miss.
        """
        if pattern is not None:
            return self.apply(pattern.expression, sms_text, pattern.defaults, pattern.pattern_id)

        for candidate in select_candidates(title_hint, candidates):
            try:
                result = self.apply(
                    candidate.expression, sms_text, candidate.defaults, candidate.pattern_id
                )
            except (InvalidExpressionError, MatcherTimeoutError) as exc:
                logger.warning(
                    "Skipping pattern %s during resolution: %s", candidate.pattern_id, exc.message
                )
                continue
            if result.matched:
                return result

        return ExtractionResult.no_match(NO_PATTERN_MESSAGE, ErrorKind.NO_MATCH)
