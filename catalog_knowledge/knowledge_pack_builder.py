"""
Catalog Knowledge — Knowledge Pack Builder

Joins products with their spec evidence, normalizes values through the
discovered unit rules and picks the snippets used to justify a
recommendation ("why reasons").
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable

from .models import (
    EvidenceEntry, KnowledgePack, ProductSummaryRow, SpecEvidenceRow,
    UnitRule, WhyReason, coerce_rows, to_attribute_id,
)
from .unit_normalizer import normalize_value

logger = logging.getLogger(__name__)

WHY_REASON_LIMIT = 3
FALLBACK_LIMIT = 2
FALLBACK_SOURCES = ('key_feature', 'best_for')


def select_why_reasons(
    product: ProductSummaryRow,
    evidence: list[SpecEvidenceRow],
    limit: int = WHY_REASON_LIMIT,
    fallback_limit: int = FALLBACK_LIMIT,
) -> list[WhyReason]:
    """
    Highest-confidence snippets first (missing confidence counts as 0).
    Without any snippet, fall back to key features then best-for entries;
    sources are assigned by position, not by the list an entry came from.
    """
    with_snippet = [row for row in evidence if row.snippet and row.snippet.strip()]
    ranked = sorted(with_snippet, key=lambda r: r.confidence or 0.0, reverse=True)

    reasons = [
        WhyReason(text=row.snippet.strip(), source=row.spec_key or '')
        for row in ranked[:limit]
    ]
    if reasons:
        return reasons

    extras = [e for e in (product.key_features or []) + (product.best_for or []) if e]
    return [
        WhyReason(text=entry, source=FALLBACK_SOURCES[min(i, len(FALLBACK_SOURCES) - 1)])
        for i, entry in enumerate(extras[:fallback_limit])
    ]


def build_knowledge_pack(
    product: ProductSummaryRow,
    evidence: list[SpecEvidenceRow],
    unit_rules: list[UnitRule],
    why_limit: int = WHY_REASON_LIMIT,
    fallback_limit: int = FALLBACK_LIMIT,
) -> KnowledgePack:
    pack = KnowledgePack(product_id=product.product_id)

    for row in evidence:
        key = to_attribute_id(row.spec_key or '')
        if not key:
            continue
        snippet = row.snippet.strip() if row.snippet else None
        if snippet:
            pack.normalized_specs[key] = snippet
            metric = normalize_value(unit_rules, key, snippet)
            if metric is not None:
                pack.derived_metrics[key] = metric

    pack.why_reasons = select_why_reasons(product, evidence, why_limit, fallback_limit)
    pack.evidence = [
        EvidenceEntry(
            key=to_attribute_id(row.spec_key or ''),
            snippet=row.snippet,
            confidence=row.confidence,
        )
        for row in evidence
    ]
    return pack


def build_knowledge_packs(
    products: Iterable[ProductSummaryRow | dict[str, Any]],
    spec_evidence: Iterable[SpecEvidenceRow | dict[str, Any]],
    unit_rules: list[UnitRule],
    why_limit: int = WHY_REASON_LIMIT,
    fallback_limit: int = FALLBACK_LIMIT,
) -> list[KnowledgePack]:
    """One pack per product, in product order. Products without evidence get an empty pack."""
    product_rows: list[ProductSummaryRow] = coerce_rows(ProductSummaryRow, list(products))
    evidence_rows: list[SpecEvidenceRow] = coerce_rows(SpecEvidenceRow, list(spec_evidence))

    by_product: dict[str, list[SpecEvidenceRow]] = defaultdict(list)
    for row in evidence_rows:
        by_product[row.product_id].append(row)

    packs = [
        build_knowledge_pack(p, by_product.get(p.product_id, []), unit_rules,
                             why_limit, fallback_limit)
        for p in product_rows
    ]

    logger.info(
        "Built %d knowledge packs from %d evidence rows (%d with derived metrics)",
        len(packs), len(evidence_rows), sum(1 for p in packs if p.derived_metrics),
    )
    return packs
