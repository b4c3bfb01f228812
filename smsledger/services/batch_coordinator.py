"""
Batch Coordinator

Fans SMS items through the extraction engine with bounded concurrency.
Each item fails on its own; results come back in input order keyed by
``index``. Only a structurally invalid payload aborts the whole call.
"""
import asyncio
import logging
import os
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import ValidationError as ItemValidationError

from smsledger.models.extraction import (
    BatchItemResult,
    BatchReport,
    BulkItem,
    ErrorKind,
    ExtractionResult,
    ValidationRunReport,
)
from smsledger.models.patterns import Pattern, PatternStatus
from smsledger.services import metrics
from smsledger.services.errors import (
    InvalidExpressionError,
    MatcherTimeoutError,
    SmsLedgerError,
    ValidationError,
)
from smsledger.services.extraction_engine import ExtractionEngine
from smsledger.services.logging import log_event
from smsledger.services.pattern_store import PatternStore

logger = logging.getLogger(__name__)

BULK_CONCURRENCY = int(os.getenv("SMSLEDGER_BULK_CONCURRENCY", "8"))
BULK_MAX_ITEMS = int(os.getenv("SMSLEDGER_BULK_MAX_ITEMS", "500"))


def error_kind_for(exc: Exception) -> str:
    if isinstance(exc, MatcherTimeoutError):
        return ErrorKind.MATCHER_TIMEOUT
    if isinstance(exc, InvalidExpressionError):
        return ErrorKind.INVALID_EXPRESSION
    return ErrorKind.PROCESSING_ERROR


def _missing_fields_message(missing: List[str]) -> str:
    verb = "is" if len(missing) == 1 else "are"
    return f"{', '.join(missing)} {verb} required"


# Accepted spellings of each item field, as reported in pydantic error locations.
ITEM_FIELD_NAMES = {
    "sms_title": "sms_title",
    "smsTitle": "sms_title",
    "sms_text": "sms_text",
    "smsText": "sms_text",
    "sms": "sms_text",
}


def parse_item(raw: Any) -> Tuple[Optional[BulkItem], Optional[str]]:
    """
    Parse one raw bulk entry. Returns the item, or None and a message naming
    what is wrong with it.
    """
    try:
        return BulkItem.model_validate(raw), None
    except ItemValidationError as exc:
        bad_fields = set()
        for error in exc.errors():
            loc = error.get("loc") or ()
            if not loc or loc[0] not in ITEM_FIELD_NAMES:
                return None, "item must be an object with sms_title and sms_text"
            bad_fields.add(ITEM_FIELD_NAMES[loc[0]])
        names = [name for name in ("sms_title", "sms_text") if name in bad_fields]
        return None, f"{', '.join(names)} must be text"


def _raw_text(raw: Any, *keys: str) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str):
            return value
    return None


class BatchCoordinator:
    def __init__(
        self,
        engine: ExtractionEngine,
        concurrency: Optional[int] = None,
        max_items: Optional[int] = None,
    ):
        self.engine = engine
        self.concurrency = max(1, concurrency or BULK_CONCURRENCY)
        self.max_items = max_items or BULK_MAX_ITEMS

    async def extract_batch(
        self,
        items: Sequence[Any],
        candidates: Sequence[Pattern],
    ) -> BatchReport:
        """
        Resolve every item against the approved ``candidates``.

        ``items`` may be BulkItem instances or raw decoded JSON values; an
        entry that is not an object with text fields fails on its own.
        """
        self._check_size(items)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _process_item(index: int, raw: Any) -> BatchItemResult:
            item, problem = parse_item(raw)
            if item is None:
                return self._item_result(
                    index,
                    _raw_text(raw, "sms_title", "smsTitle"),
                    _raw_text(raw, "sms_text", "smsText", "sms"),
                    ExtractionResult.no_match(problem, ErrorKind.INVALID_ITEM),
                )
            missing = [
                name for name, value in (("sms_title", item.sms_title), ("sms_text", item.sms_text))
                if not value
            ]
            if missing:
                return self._item_result(
                    index,
                    item.sms_title,
                    item.sms_text,
                    ExtractionResult.no_match(_missing_fields_message(missing), ErrorKind.INVALID_ITEM),
                )
            async with semaphore:
                try:
                    result = await asyncio.to_thread(
                        self.engine.extract_single,
                        item.sms_text,
                        item.sms_title,
                        candidates=candidates,
                    )
                except Exception as exc:
                    logger.warning("Bulk item %s failed: %s", index, exc)
                    result = self._failure(exc)
            return self._item_result(index, item.sms_title, item.sms_text, result)

        results = await asyncio.gather(*[_process_item(i, raw) for i, raw in enumerate(items)])
        report = self._report(results)
        metrics.record_extraction("bulk", "matched", report.success_count)
        metrics.record_extraction("bulk", "failed", report.failed_count)
        log_event(
            "bulk_extraction",
            total_count=report.total_count,
            success_count=report.success_count,
            failed_count=report.failed_count,
        )
        return report

    async def run_samples(self, pattern: Pattern, samples: Sequence[str]) -> BatchReport:
        """Apply one pattern to every sample in test mode, whatever its status."""
        self._check_size(samples)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _process_sample(index: int, sample: str) -> BatchItemResult:
            if not sample or not sample.strip():
                return self._item_result(
                    index,
                    pattern.sender_title,
                    sample,
                    ExtractionResult.no_match("sms_text is required", ErrorKind.INVALID_ITEM),
                )
            async with semaphore:
                try:
                    result = await asyncio.to_thread(self.engine.extract_single, sample, pattern=pattern)
                except Exception as exc:
                    result = self._failure(exc)
            return self._item_result(index, pattern.sender_title, sample, result)

        results = await asyncio.gather(*[_process_sample(i, s) for i, s in enumerate(samples)])
        return self._report(results)

    async def validate_pattern(
        self,
        store: PatternStore,
        pattern: Pattern,
        samples: Sequence[str],
        actor_id: Optional[int],
    ) -> ValidationRunReport:
        """
        Validation run: a PENDING pattern that matches none of the samples
        is moved to FAILED for maker attention.
        """
        report = await self.run_samples(pattern, samples)
        marked_failed = False
        if report.success_count == 0 and pattern.status == PatternStatus.PENDING:
            pattern = store.mark_failed(
                pattern,
                actor_id,
                comment=f"validation run matched 0 of {report.total_count} samples",
            )
            marked_failed = True
        log_event(
            "validation_run",
            pattern_id=pattern.pattern_id,
            total_count=report.total_count,
            success_count=report.success_count,
            marked_failed=marked_failed,
        )
        return ValidationRunReport(
            pattern_id=pattern.pattern_id,
            status=pattern.status,
            marked_failed=marked_failed,
            report=report,
        )

    def _check_size(self, items: Sequence) -> None:
        if len(items) > self.max_items:
            raise ValidationError(
                f"Batch of {len(items)} items exceeds the limit of {self.max_items}",
                field="items",
            )

    @staticmethod
    def _failure(exc: Exception) -> ExtractionResult:
        if isinstance(exc, SmsLedgerError):
            message = exc.message if not exc.detail else f"{exc.message}: {exc.detail}"
        else:
            message = f"Error processing SMS: {exc}"
        return ExtractionResult.no_match(message, error_kind_for(exc))

    @staticmethod
    def _item_result(
        index: int,
        sms_title: Optional[str],
        sms_text: Optional[str],
        result: ExtractionResult,
    ) -> BatchItemResult:
        return BatchItemResult(index=index, sms_title=sms_title, sms_text=sms_text, **result.model_dump())

    @staticmethod
    def _report(results: Sequence[BatchItemResult]) -> BatchReport:
        ordered = sorted(results, key=lambda r: r.index)
        success_count = sum(1 for r in ordered if r.matched)
        return BatchReport(
            total_count=len(ordered),
            success_count=success_count,
            failed_count=len(ordered) - success_count,
            results=ordered,
        )
