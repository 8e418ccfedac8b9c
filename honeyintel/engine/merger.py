import asyncio
from typing import Any, Dict, Iterable, List, Optional

from honeyintel.core.logging import get_logger
from honeyintel.engine.extractor import PatternExtractor, default_extractor
from honeyintel.engine.llm_extractor import ExternalExtractor
from honeyintel.engine.resolver import ConflictResolver
from honeyintel.models.schemas import CATEGORIES, ExtractionResult, IntelligenceRecord

logger = get_logger(__name__)


def union(*records: Optional[ExtractionResult]) -> IntelligenceRecord:
    """Per-category set union with exact-string dedup. None inputs are skipped."""
    buckets: Dict[str, List[str]] = {name: [] for name in CATEGORIES}
    for record in records:
        if record is None:
            continue
        for name in CATEGORIES:
            buckets[name].extend(getattr(record, name))
    return IntelligenceRecord(**buckets)


def merge(
    pattern_result: ExtractionResult,
    external_result: Optional[ExtractionResult],
    resolver: Optional[ConflictResolver] = None,
) -> IntelligenceRecord:
    """
    Unions both extractors' output, then cleanses the union: external entries
    were never checked against the pattern findings.
    """
    resolver = resolver or default_extractor.resolver
    try:
        merged = resolver.cleanse(union(pattern_result, external_result))
    except Exception as e:
        logger.error(f"Merge error, keeping pattern result: {e}", exc_info=True)
        return union(pattern_result)

    if external_result is not None:
        logger.info("Hybrid merge", extra={
            "pattern": pattern_result.total() if pattern_result is not None else 0,
            "external": external_result.total(),
            "merged": merged.total(),
        })
    return merged


async def extract_hybrid(
    text: Any,
    history: Iterable[Any] = (),
    external: Optional[ExternalExtractor] = None,
    pattern: Optional[PatternExtractor] = None,
) -> IntelligenceRecord:
    """
    Runs the pattern extractor and the external extractor concurrently and
    merges whatever they return. The external branch is bounded by its own
    timeout and collapses to None on any failure.
    """
    pattern = pattern or default_extractor
    loop = asyncio.get_event_loop()
    pattern_task = loop.run_in_executor(None, pattern.extract, text)

    if external is None:
        return await pattern_task

    pattern_result, external_result = await asyncio.gather(
        pattern_task,
        external.extract(text, history),
    )
    if external_result is None:
        logger.info("Using pattern-only extraction for this turn")
    return merge(pattern_result, external_result, pattern.resolver)
