"""Normalize provider result shapes into OcrResult.

Inline responses wrap the document (``{"document": {...}}``); batch output shards
are bare document JSON. Both reduce to text plus one confidence score.
A literal 0 confidence means "unscored" and is dropped, never averaged.
"""

from collections.abc import Iterable
from typing import Any

from docuhealth.models.processing import OcrResult


def _scored(values: Iterable[Any]) -> list[float]:
    scores: list[float] = []
    for value in values:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            scores.append(min(float(value), 1.0))
    return scores


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 4)


def extract_confidence(document: dict[str, Any]) -> float | None:
    """Entity confidences first, page layout confidences as fallback."""
    entities = document.get("entities") or []
    entity_scores = _scored(entity.get("confidence") for entity in entities)
    if entity_scores:
        return _mean(entity_scores)

    pages = document.get("pages") or []
    page_scores = _scored((page.get("layout") or {}).get("confidence") for page in pages)
    return _mean(page_scores)


def normalize_document(payload: dict[str, Any]) -> OcrResult:
    """Convert an inline response or a batch shard into OcrResult."""
    document = payload.get("document", payload) if isinstance(payload, dict) else {}
    if not isinstance(document, dict):
        document = {}

    return OcrResult(
        text=document.get("text") or "",
        confidence_score=extract_confidence(document),
        page_count=len(document.get("pages") or []),
        shard_count=1,
    )


def merge_results(results: list[OcrResult]) -> OcrResult:
    """Concatenate shard texts in order; page-weighted mean of scored shards."""
    if not results:
        return OcrResult(text="", confidence_score=None, page_count=0, shard_count=0)

    weighted_total = 0.0
    weight_sum = 0
    for result in results:
        if result.confidence_score is None:
            continue
        weight = max(result.page_count, 1)
        weighted_total += result.confidence_score * weight
        weight_sum += weight

    return OcrResult(
        text="".join(result.text for result in results),
        confidence_score=round(weighted_total / weight_sum, 4) if weight_sum else None,
        page_count=sum(result.page_count for result in results),
        shard_count=len(results),
    )
