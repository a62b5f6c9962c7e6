from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from common.utils import call_with_timeout
from inventory.models import SkuMatchResult

logger = logging.getLogger("intake.matching")


@dataclass
class SkuMatch:
    matched_sku: str
    confidence: float
    method: str = ""
    notes: str = ""


@dataclass
class MatchDecision:
    status: str
    sku: str
    match: SkuMatch | None

    @property
    def needs_review(self) -> bool:
        return self.status != SkuMatchResult.Status.MATCHED


@lru_cache(maxsize=8)
def _load(path: str) -> Callable[..., Any]:
    try:
        return import_string(path)
    except ImportError as exc:
        raise ImproperlyConfigured(f"INTAKE_SKU_MATCHER could not be imported: {path}") from exc


def get_matcher() -> Callable[..., Any] | None:
    path = getattr(settings, "INTAKE_SKU_MATCHER", "")
    if not path:
        return None
    return _load(path)


def coerce_match(raw: Any) -> SkuMatch | None:
    """Accept a SkuMatch, a snake_case or camelCase mapping, or None."""
    if raw is None or isinstance(raw, SkuMatch):
        return raw
    if not isinstance(raw, dict):
        raise TypeError(f"SKU matcher returned unsupported type {type(raw).__name__}")
    matched_sku = raw.get("matched_sku") or raw.get("matchedSku") or ""
    confidence = raw.get("confidence", raw.get("confidenceScore", 0)) or 0
    if not matched_sku:
        return None
    return SkuMatch(
        matched_sku=str(matched_sku),
        confidence=float(confidence),
        method=str(raw.get("method") or raw.get("matchMethod") or ""),
        notes=str(raw.get("notes") or ""),
    )


def classify(generated_sku: str, match: SkuMatch | None) -> MatchDecision:
    if match is None:
        return MatchDecision(status=SkuMatchResult.Status.NO_MATCH, sku=generated_sku, match=None)
    if match.confidence >= settings.INTAKE_SKU_MATCH_THRESHOLD:
        return MatchDecision(status=SkuMatchResult.Status.MATCHED, sku=match.matched_sku, match=match)
    if match.confidence >= settings.INTAKE_SKU_REVIEW_THRESHOLD:
        return MatchDecision(status=SkuMatchResult.Status.MANUAL_REVIEW, sku=generated_sku, match=match)
    return MatchDecision(status=SkuMatchResult.Status.NO_MATCH, sku=generated_sku, match=match)


def match_sku(generated_sku: str, *, brand, model, storage, color, carrier) -> MatchDecision | None:
    """Ask the configured SKU-master matcher for a candidate.

    Returns None when no matcher is configured. Raises OperationTimeoutError
    when the matcher does not answer within INTAKE_EXTERNAL_TIMEOUT_SECONDS.
    """
    matcher = get_matcher()
    if matcher is None:
        return None

    raw = call_with_timeout(
        matcher,
        settings.INTAKE_EXTERNAL_TIMEOUT_SECONDS,
        label="sku_matcher",
        sku=generated_sku,
        brand=brand,
        model=model,
        storage=storage,
        color=color,
        carrier=carrier,
    )
    decision = classify(generated_sku, coerce_match(raw))
    logger.info(
        "sku_match_decided",
        extra={"sku": decision.sku, "reason": decision.status},
    )
    return decision
