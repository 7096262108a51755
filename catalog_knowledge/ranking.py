"""
Catalog Knowledge — Multi-Factor Product Re-Ranker

Scores candidate products on five weighted dimensions and reorders them:
  1. Semantic similarity (precomputed by hybrid search)
  2. Facet match (share of shopper constraints satisfied)
  3. Review quality (rating × ln(review_count + 1))
  4. Price fit (distance from the shopper's budget)
  5. Brand priority (store merchandising preferences)

Category-specific weights are shallow-merged onto the context weights using
the first segment of a product's category path.
"""
from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


# ============================================================
# Weights
# ============================================================

@dataclass(frozen=True)
class RankingWeights:
    """How much each dimension contributes to the composite score."""
    semantic_similarity: float = 0.30
    facet_match: float = 0.25
    review_quality: float = 0.20
    price_fit: float = 0.15
    brand_priority: float = 0.10


DEFAULT_WEIGHTS = RankingWeights()


CATEGORY_WEIGHTS: dict[str, dict[str, float]] = {
    # Fit and comfort feedback dominate
    'running_shoes': {
        'facet_match': 0.35,
        'review_quality': 0.25,
        'price_fit': 0.10,
        'semantic_similarity': 0.20,
    },
    'shoes': {
        'facet_match': 0.35,
        'review_quality': 0.25,
        'price_fit': 0.10,
    },
    # Specs and reliability
    'electronics': {
        'semantic_similarity': 0.25,
        'facet_match': 0.30,
        'review_quality': 0.25,
        'price_fit': 0.20,
    },
    'laptops': {
        'facet_match': 0.35,
        'review_quality': 0.25,
        'price_fit': 0.20,
        'semantic_similarity': 0.20,
    },
    # Skill level / riding style, strong brand loyalty
    'snowboards': {
        'facet_match': 0.35,
        'brand_priority': 0.15,
        'price_fit': 0.15,
        'review_quality': 0.20,
        'semantic_similarity': 0.15,
    },
    'apparel': {
        'facet_match': 0.30,
        'review_quality': 0.25,
        'price_fit': 0.15,
        'semantic_similarity': 0.20,
        'brand_priority': 0.10,
    },
    'furniture': {
        'facet_match': 0.30,
        'review_quality': 0.30,
        'price_fit': 0.20,
        'semantic_similarity': 0.20,
    },
}


def get_weights_for_category(
    category_path: Optional[list[str]],
    base_weights: RankingWeights = DEFAULT_WEIGHTS,
) -> RankingWeights:
    """Exact category key first, then substring containment either way."""
    if not category_path or not category_path[0]:
        return base_weights

    category = re.sub(r'\s+', '_', category_path[0].lower())
    overrides = CATEGORY_WEIGHTS.get(category)
    if overrides:
        return replace(base_weights, **overrides)

    for key, overrides in CATEGORY_WEIGHTS.items():
        if key in category or category in key:
            return replace(base_weights, **overrides)

    return base_weights


# ============================================================
# Context & Product View
# ============================================================

@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def coerce(cls, value: Any) -> Optional[PriceRange]:
        if value is None or isinstance(value, PriceRange):
            return value
        if isinstance(value, Mapping):
            return cls(min=_as_float(value.get('min')), max=_as_float(value.get('max')))
        return None


@dataclass
class RankingContext:
    query: str = ''
    constraints: dict[str, Any] = field(default_factory=dict)
    weights: RankingWeights = DEFAULT_WEIGHTS
    priority_brands: Optional[list[str]] = None
    price_range: Optional[PriceRange] = None

    def __post_init__(self):
        self.price_range = PriceRange.coerce(self.price_range)


@dataclass(frozen=True)
class RankableProduct:
    """
    The fields the ranker reads, resolved once from an arbitrary candidate
    (dict, pydantic model or plain object).
    """
    source: Any
    fields: Mapping[str, Any]
    price: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[float] = None
    similarity: Optional[float] = None
    vendor: Optional[str] = None
    category_path: list[str] = field(default_factory=list)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    tags: list[Any] = field(default_factory=list)

    @classmethod
    def from_candidate(cls, candidate: Any) -> RankableProduct:
        if isinstance(candidate, RankableProduct):
            return candidate
        fields = _candidate_fields(candidate)

        vendor = fields.get('vendor') or fields.get('brand')
        category_path = fields.get('category_path')
        attributes = fields.get('attributes')
        tags = fields.get('tags')

        return cls(
            source=candidate,
            fields=fields,
            price=_as_float(fields.get('price')),
            rating=_as_float(fields.get('rating')),
            review_count=_as_float(fields.get('review_count')),
            similarity=_as_float(fields.get('combined_score')) or _as_float(fields.get('similarity')),
            vendor=vendor if isinstance(vendor, str) else None,
            category_path=[c for c in category_path if isinstance(c, str)]
            if isinstance(category_path, (list, tuple)) else [],
            attributes=attributes if isinstance(attributes, Mapping) else {},
            tags=list(tags) if isinstance(tags, (list, tuple)) else [],
        )


@dataclass(frozen=True)
class ScoreBreakdown:
    """Weighted contribution of each dimension to the composite score."""
    semantic: float
    facet: float
    review: float
    price: float
    brand: float

    @property
    def total(self) -> float:
        return self.semantic + self.facet + self.review + self.price + self.brand


@dataclass(frozen=True)
class ScoredProduct:
    product: Any
    score: float
    breakdown: ScoreBreakdown

    def to_dict(self) -> dict[str, Any]:
        return {'score': self.score, 'breakdown': asdict(self.breakdown)}


# ============================================================
# Dimension Scores
# ============================================================

def score_semantic(product: RankableProduct) -> float:
    return max(0.0, min(1.0, product.similarity or 0.0))


def score_facet_match(product: RankableProduct, constraints: Optional[Mapping[str, Any]]) -> float:
    """Fraction of constraints satisfied; 0.5 when there are none."""
    if not constraints:
        return 0.5

    matches = 0
    for key, value in constraints.items():
        if key in ('price_range', 'price_bucket'):
            rng = PriceRange.coerce(value)
            lo = (rng.min if rng else None) or 0.0
            hi = (rng.max if rng else None) or math.inf
            if lo <= (product.price or 0.0) <= hi:
                matches += 1
            continue

        if key in product.fields and product.fields[key] == value:
            matches += 1
            continue

        if key in product.attributes and product.attributes[key] == value:
            matches += 1
            continue

        if key == 'tag':
            if value in product.tags:
                matches += 1
            continue

        if key == 'category' and isinstance(value, str):
            needle = value.lower()
            if any(needle in cat.lower() for cat in product.category_path):
                matches += 1
            continue

    return matches / len(constraints)


def score_review_quality(product: RankableProduct) -> float:
    """rating × ln(count + 1), normalized against ≈5★ × ln(1000) = 35."""
    rating = product.rating or 0.0
    count = product.review_count or 0.0
    if rating == 0 and count == 0:
        return 0.5
    raw = rating * math.log(max(count, 0.0) + 1)
    return max(0.0, min(raw / 35, 1.0))


def score_price_fit(price: Optional[float], price_range: Optional[PriceRange]) -> float:
    """
    Piecewise budget fit.

    Min only: below min decays to 0; from min, 0.7 rising to 1.0 over the
    next 25% of min. Max only: above max decays to 0; below max, 1.0 at max
    falling to 0.7 at 75% of max. Both: outside decays by distance over the
    midpoint; inside, 1.0 at the midpoint down to 0.5 at either edge.
    """
    if not price or price_range is None:
        return 0.5

    lo, hi = price_range.min, price_range.max
    if lo is None and hi is None:
        return 0.5

    if hi is None:
        if lo <= 0:
            return 1.0
        if price < lo:
            return max(0.0, 1 - (lo - price) / lo)
        t = _clamp01((price - lo) / (lo * 0.25))
        return 0.7 + 0.3 * t

    if lo is None:
        if hi <= 0:
            return 0.0
        if price > hi:
            return max(0.0, 1 - (price - hi) / hi)
        t = _clamp01(1 - (hi - price) / (hi * 0.25))
        return 0.7 + 0.3 * t

    midpoint = (lo + hi) / 2
    if price < lo or price > hi:
        if midpoint <= 0:
            return 0.0
        distance = lo - price if price < lo else price - hi
        return max(0.0, 1 - distance / midpoint)

    half_range = (hi - lo) / 2
    if half_range == 0:
        return 1.0
    return max(0.5, 1 - abs(price - midpoint) / half_range * 0.5)


def score_brand_priority(vendor: Optional[str], priority_brands: Optional[list[str]]) -> float:
    if not priority_brands:
        return 0.5
    if not vendor:
        return 0.0
    v = vendor.lower()
    for brand in priority_brands:
        b = brand.lower()
        if b in v or v in b:
            return 1.0
    return 0.0


# ============================================================
# Scoring & Ranking
# ============================================================

def _score(
    product: RankableProduct,
    context: RankingContext,
    apply_category_overrides: bool = True,
) -> ScoredProduct:
    weights = (
        get_weights_for_category(product.category_path, context.weights)
        if apply_category_overrides else context.weights
    )
    breakdown = ScoreBreakdown(
        semantic=weights.semantic_similarity * score_semantic(product),
        facet=weights.facet_match * score_facet_match(product, context.constraints),
        review=weights.review_quality * score_review_quality(product),
        price=weights.price_fit * score_price_fit(product.price, context.price_range),
        brand=weights.brand_priority * score_brand_priority(
            product.vendor, context.priority_brands),
    )
    return ScoredProduct(product=product.source, score=breakdown.total, breakdown=breakdown)


def score_products(
    products: list[Any],
    context: RankingContext,
    apply_category_overrides: bool = True,
) -> list[ScoredProduct]:
    """Score and sort, best first. Equal scores keep input order."""
    scored = [
        _score(RankableProduct.from_candidate(p), context, apply_category_overrides)
        for p in products
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    if scored:
        logger.debug("Re-ranked %d products; top score %.4f", len(scored), scored[0].score)
    return scored


def rerank_products(products: list[Any], context: RankingContext) -> list[Any]:
    """Return the same product objects ordered by composite score."""
    if not products:
        return list(products)
    return [s.product for s in score_products(products, context)]


def get_score_breakdown(product: Any, context: RankingContext) -> ScoredProduct:
    return _score(RankableProduct.from_candidate(product), context)


def rerank_with_custom_weights(
    products: list[Any],
    context: RankingContext,
    weights: RankingWeights,
) -> list[Any]:
    """Rank with an explicit full weight set; category overrides are not applied."""
    custom = replace(context, weights=weights)
    return [s.product for s in score_products(products, custom, apply_category_overrides=False)]


# ============================================================
# Helpers
# ============================================================

def _candidate_fields(candidate: Any) -> Mapping[str, Any]:
    if isinstance(candidate, Mapping):
        return candidate
    if isinstance(candidate, BaseModel):
        return candidate.model_dump()
    if hasattr(candidate, '__dict__'):
        return vars(candidate)
    return {}


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        val = float(value)
    except (TypeError, ValueError):
        return None
    return val if math.isfinite(val) else None


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))
