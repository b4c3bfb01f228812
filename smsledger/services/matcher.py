"""
Matcher

Evaluates one named-group regular expression against one SMS. Backed by the
``regex`` library, which accepts both ``(?<name>...)`` and ``(?P<name>...)``
groups and enforces a per-match timeout natively.
"""
import os
from functools import lru_cache
from typing import Dict, Optional

import regex

from smsledger.services.errors import InvalidExpressionError, MatcherTimeoutError
from smsledger.services.logging import log_error

MATCHER_TIMEOUT = float(os.getenv("SMSLEDGER_MATCHER_TIMEOUT", "1.0"))


@lru_cache(maxsize=512)
def _compile(expression: str):
    return regex.compile(expression, regex.IGNORECASE)


def compile_expression(expression: str):
    """Compile an expression or raise InvalidExpressionError."""
    if not expression or not expression.strip():
        raise InvalidExpressionError(expression or "", "expression is empty")
    try:
        return _compile(expression)
    except regex.error as exc:
        raise InvalidExpressionError(expression, str(exc)) from exc


def validate_expression(expression: str):
    """Compile and require at least one named capture group."""
    compiled = compile_expression(expression)
    if not compiled.groupindex:
        raise InvalidExpressionError(
            expression, "expression must contain at least one named capture group"
        )
    return compiled


class Matcher:
    """Thin wrapper that turns a search into a dict of named captures."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = MATCHER_TIMEOUT if timeout_seconds is None else timeout_seconds

    def match(self, expression: str, text: str) -> Optional[Dict[str, Optional[str]]]:
        """
        Search ``text`` for ``expression``.

        Returns the named captures (unmatched optional groups map to None) or
        None when the expression does not match.

        Raises:
            InvalidExpressionError: expression does not compile.
            MatcherTimeoutError: evaluation exceeded the per-match timeout.
        """
        compiled = compile_expression(expression)
        try:
            found = compiled.search(text or "", timeout=self.timeout_seconds)
        except TimeoutError as exc:
            log_error(
                "matcher_timeout",
                "Pattern evaluation timed out",
                context={"expression": expression, "timeout_seconds": self.timeout_seconds},
            )
            raise MatcherTimeoutError(self.timeout_seconds) from exc
        if found is None:
            return None
        return found.groupdict()
