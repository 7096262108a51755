"""
Catalog Knowledge — Ontology Builder

Aggregates a shop's facet values and spec samples into typed attribute
definitions (number / enum / string) and a facet display order.

The facet order is ranked once per shop and the same list is applied to
every category.
"""
from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .models import (
    AttributeType, FacetSample, OntologyAttribute, OntologyDefinition,
    SpecSample, coerce_rows, to_attribute_id,
)

logger = logging.getLogger(__name__)

SAMPLE_CAP = 40
NUMERIC_SHARE = 0.6
MAX_ALLOWED_VALUES = 12
MAX_SYNONYMS = 8
FACET_ORDER_LIMIT = 8

_BARE_NUMBER = re.compile(r'^(?:[0-9]+(?:\.[0-9]+)?|\.[0-9]+)$')


def is_bare_numeric(value: str) -> bool:
    """'1,200' and '12.5' are numeric; '12 mm' and '-3' are not."""
    return bool(_BARE_NUMBER.match(re.sub(r'[, ]', '', value.strip())))


def guess_type(values: list[str]) -> AttributeType:
    """
    Classify an attribute from its samples.

    More than 60% bare numbers → NUMBER. Otherwise few distinct values
    (at most max(3, min(12, n/2))) → ENUM. Anything else → STRING.
    """
    non_empty = [v.strip() for v in values if v and v.strip()]
    if not non_empty:
        return AttributeType.STRING

    numeric_count = 0
    enumerated: set[str] = set()
    for v in non_empty:
        if is_bare_numeric(v):
            numeric_count += 1
        else:
            enumerated.add(v.lower())

    if numeric_count / len(non_empty) > NUMERIC_SHARE:
        return AttributeType.NUMBER

    if len(enumerated) <= max(3, min(MAX_ALLOWED_VALUES, len(non_empty) / 2)):
        return AttributeType.ENUM

    return AttributeType.STRING


def collect_allowed_values(values: list[str]) -> list[str]:
    cleaned = (v.strip() for v in values if v and v.strip())
    return list(dict.fromkeys(cleaned))[:MAX_ALLOWED_VALUES]


def collect_synonyms(values: list[str]) -> list[str]:
    cleaned = (v.strip().lower() for v in values if v and v.strip())
    return list(dict.fromkeys(cleaned))[:MAX_SYNONYMS]


def facet_order(
    categories: Iterable[str],
    facets: list[FacetSample],
    limit: int = FACET_ORDER_LIMIT,
) -> dict[str, list[str]]:
    """Shop-wide facet ranking by observation count, copied to each category."""
    counts = Counter(f.facet for f in facets)
    # Counter.most_common keeps first-seen order among equal counts
    default_order = [facet for facet, _ in counts.most_common()][:limit]

    per_category: dict[str, list[str]] = {}
    for category in categories:
        per_category[to_attribute_id(category) or 'uncategorized'] = list(default_order)
    return per_category


def build_ontology_definition(
    shop_id: str,
    categories: Iterable[str],
    facets: list[FacetSample | dict[str, Any]],
    spec_keys: list[SpecSample | dict[str, Any]],
    sample_cap: int = SAMPLE_CAP,
    facet_limit: int = FACET_ORDER_LIMIT,
    now: Optional[datetime] = None,
) -> OntologyDefinition:
    """Build a fresh ontology generation for one shop."""
    facet_rows: list[FacetSample] = coerce_rows(FacetSample, facets)
    spec_rows: list[SpecSample] = coerce_rows(SpecSample, spec_keys)

    pools: dict[str, tuple[str, list[str]]] = {}

    for row in facet_rows:
        attr_id = to_attribute_id(row.facet)
        if not attr_id:
            continue
        label, samples = pools.setdefault(attr_id, (row.facet, []))
        if len(samples) < sample_cap:
            samples.append(row.value)

    for row in spec_rows:
        attr_id = to_attribute_id(row.key)
        if not attr_id:
            continue
        label, samples = pools.setdefault(attr_id, (row.key, []))
        if row.sample and len(samples) < sample_cap:
            samples.append(row.sample)

    attributes: list[OntologyAttribute] = []
    for attr_id, (label, samples) in pools.items():
        attr_type = guess_type(samples)
        attr = OntologyAttribute(id=attr_id, label=label, type=attr_type)
        if attr_type == AttributeType.ENUM:
            attr.allowed_values = collect_allowed_values(samples)
            attr.synonyms = collect_synonyms(samples)
        attributes.append(attr)

    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    ontology = OntologyDefinition(
        version=now.strftime('%Y%m%d%H%M%S'),
        generated_at=now.strftime('%Y-%m-%dT%H:%M:%SZ'),
        attributes=attributes,
        facet_order_by_category=facet_order(categories, facet_rows, facet_limit),
    )

    logger.info(
        "Built ontology %s for shop %s: %d attributes, %d categories",
        ontology.version, shop_id, len(attributes),
        len(ontology.facet_order_by_category),
    )
    return ontology
