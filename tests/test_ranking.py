"""
Unit tests for the multi-factor re-ranker.
"""
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from catalog_knowledge.ranking import (
    DEFAULT_WEIGHTS, PriceRange, RankableProduct, RankingContext, RankingWeights,
    get_score_breakdown, get_weights_for_category, rerank_products,
    rerank_with_custom_weights, score_brand_priority, score_facet_match,
    score_price_fit, score_review_quality, score_semantic,
)


@pytest.fixture
def budget_context():
    return RankingContext(query='all mountain board', priority_brands=['burton'],
                          price_range={'max': 500})


def product(**fields):
    return RankableProduct.from_candidate(fields)


class TestPriceFit:
    """Budget fit scoring."""

    def test_max_only(self):
        budget = PriceRange(max=500)
        assert score_price_fit(450, budget) == pytest.approx(0.88)
        assert score_price_fit(500, budget) == pytest.approx(1.0)
        assert score_price_fit(300, budget) == pytest.approx(0.7)
        assert score_price_fit(600, budget) == pytest.approx(0.8)
        assert score_price_fit(1000, budget) == pytest.approx(0.0)
        assert score_price_fit(2000, budget) == 0.0

    def test_over_budget_scores_lower_than_in_budget(self):
        budget = PriceRange(max=500)
        assert score_price_fit(600, budget) < score_price_fit(450, budget)

    def test_min_only(self):
        floor = PriceRange(min=100)
        assert score_price_fit(50, floor) == pytest.approx(0.5)
        assert score_price_fit(100, floor) == pytest.approx(0.7)
        assert score_price_fit(125, floor) == pytest.approx(1.0)
        assert score_price_fit(400, floor) == pytest.approx(1.0)

    def test_full_range(self):
        window = PriceRange(min=100, max=300)
        assert score_price_fit(200, window) == 1.0
        assert score_price_fit(100, window) == pytest.approx(0.5)
        assert score_price_fit(300, window) == pytest.approx(0.5)
        assert score_price_fit(150, window) == pytest.approx(0.75)
        assert score_price_fit(50, window) == pytest.approx(0.75)
        assert score_price_fit(350, window) == pytest.approx(0.75)
        assert score_price_fit(100, PriceRange(min=100, max=100)) == 1.0

    def test_neutral_cases(self):
        assert score_price_fit(None, PriceRange(max=500)) == 0.5
        assert score_price_fit(0, PriceRange(max=500)) == 0.5
        assert score_price_fit(200, None) == 0.5
        assert score_price_fit(200, PriceRange()) == 0.5

    def test_degenerate_bounds(self):
        assert score_price_fit(10, PriceRange(min=0)) == 1.0
        assert score_price_fit(10, PriceRange(max=0)) == 0.0
        assert score_price_fit(10, PriceRange(min=0, max=0)) == 0.0

    def test_range_coercion(self):
        assert PriceRange.coerce({'min': '100', 'max': None}) == PriceRange(min=100.0)
        assert PriceRange.coerce('cheap') is None
        assert RankingContext(price_range={'max': 50}).price_range == PriceRange(max=50.0)


class TestDimensionScores:
    """Semantic, facet, review and brand scores."""

    def test_semantic_clamped(self):
        assert score_semantic(product(similarity=1.4)) == 1.0
        assert score_semantic(product(similarity=-0.2)) == 0.0
        assert score_semantic(product()) == 0.0
        assert score_semantic(product(combined_score=0.8, similarity=0.1)) == pytest.approx(0.8)

    def test_facet_match(self):
        board = product(
            color='red', price=120, attributes={'skill': 'beginner'}, tags=['park'],
            category_path=['Snowboards', 'All Mountain'],
        )
        assert score_facet_match(board, {}) == 0.5
        assert score_facet_match(board, {'color': 'red'}) == 1.0
        assert score_facet_match(board, {'color': 'blue'}) == 0.0
        assert score_facet_match(board, {
            'skill': 'beginner', 'tag': 'park', 'category': 'snow',
            'price_range': {'min': 100, 'max': 150},
        }) == 1.0
        assert score_facet_match(board, {'tag': 'powder', 'color': 'red'}) == 0.5
        assert score_facet_match(board, {'price_bucket': {'max': 100}}) == 0.0
        assert score_facet_match(board, {'unknown': 'x'}) == 0.0

    def test_review_quality(self):
        assert score_review_quality(product()) == 0.5
        assert score_review_quality(product(rating=5, review_count=999)) == pytest.approx(0.9868, abs=1e-4)
        assert score_review_quality(product(rating=5, review_count=10 ** 6)) == 1.0
        assert score_review_quality(product(rating=4, review_count=0)) == 0.0

    def test_brand_priority(self):
        assert score_brand_priority('Burton', None) == 0.5
        assert score_brand_priority('Burton', []) == 0.5
        assert score_brand_priority(None, ['burton']) == 0.0
        assert score_brand_priority('Burton Snowboards', ['burton']) == 1.0
        assert score_brand_priority('Burton', ['Burton Snowboards']) == 1.0
        assert score_brand_priority('Ride', ['burton']) == 0.0

    def test_brand_falls_back_to_brand_field(self):
        assert product(brand='Burton').vendor == 'Burton'
        assert product(vendor=42).vendor is None


class TestCategoryWeights:
    """Category-specific weight merging."""

    def test_exact_match(self):
        weights = get_weights_for_category(['Running Shoes'])
        assert weights.facet_match == 0.35
        assert weights.semantic_similarity == 0.20
        assert weights.brand_priority == DEFAULT_WEIGHTS.brand_priority

    def test_partial_match(self):
        assert get_weights_for_category(['Trail Running Shoes']).semantic_similarity == 0.20
        kids = get_weights_for_category(['Kids Shoes'])
        assert kids.facet_match == 0.35
        assert kids.semantic_similarity == DEFAULT_WEIGHTS.semantic_similarity
        assert get_weights_for_category(['Snow']).brand_priority == 0.15

    def test_unknown_or_missing_category(self):
        assert get_weights_for_category(['Garden']) == DEFAULT_WEIGHTS
        assert get_weights_for_category([]) == DEFAULT_WEIGHTS
        assert get_weights_for_category(None) == DEFAULT_WEIGHTS
        assert get_weights_for_category(['']) == DEFAULT_WEIGHTS

    def test_merge_is_shallow_over_base(self):
        base = RankingWeights(brand_priority=0.5)
        assert get_weights_for_category(['Shoes'], base).brand_priority == 0.5
        assert get_weights_for_category(['Shoes'], base).facet_match == 0.35


class TestRerank:
    """End-to-end re-ranking."""

    def test_order(self, ranked_candidates, budget_context):
        ranked = rerank_products(ranked_candidates, budget_context)
        assert [p['id'] for p in ranked] == ['A', 'C', 'B']

    def test_returns_same_objects(self, ranked_candidates, budget_context):
        ranked = rerank_products(ranked_candidates, budget_context)
        assert ranked[0] is ranked_candidates[0]
        assert len(ranked) == len(ranked_candidates)

    def test_idempotent(self, ranked_candidates, budget_context):
        once = rerank_products(ranked_candidates, budget_context)
        twice = rerank_products(once, budget_context)
        assert [p['id'] for p in twice] == [p['id'] for p in once]

    def test_ties_keep_input_order(self):
        items = [{'id': 'x', 'similarity': 0.5}, {'id': 'y', 'similarity': 0.5}]
        assert [p['id'] for p in rerank_products(items, RankingContext())] == ['x', 'y']

    def test_empty(self):
        assert rerank_products([], RankingContext()) == []

    def test_heterogeneous_candidates(self):
        class Hit(BaseModel):
            id: str
            similarity: float

        items = [
            SimpleNamespace(id='ns', similarity=0.2, price=True),
            Hit(id='model', similarity=0.9),
            {'id': 'dict', 'similarity': 0.5},
        ]
        ranked = rerank_products(items, RankingContext())
        assert [p.id if not isinstance(p, dict) else p['id'] for p in ranked] == ['model', 'dict', 'ns']

    def test_breakdown_applies_category_weights(self):
        scored = get_score_breakdown({'similarity': 1.0, 'category_path': ['Snowboards']}, RankingContext())
        assert scored.breakdown.semantic == pytest.approx(0.15)
        assert scored.score == pytest.approx(scored.breakdown.total)
        assert set(scored.to_dict()['breakdown']) == {'semantic', 'facet', 'review', 'price', 'brand'}

    def test_custom_weights(self, ranked_candidates, budget_context):
        reviews_only = RankingWeights(
            semantic_similarity=0.0, facet_match=0.0, review_quality=1.0,
            price_fit=0.0, brand_priority=0.0,
        )
        ranked = rerank_with_custom_weights(ranked_candidates, budget_context, reviews_only)
        assert [p['id'] for p in ranked] == ['A', 'B', 'C']
        assert budget_context.weights == DEFAULT_WEIGHTS

    def test_custom_weights_skip_category_overrides(self):
        items = [{'id': 'snow', 'similarity': 1.0, 'category_path': ['Snowboards']}]
        weights = RankingWeights(semantic_similarity=1.0, facet_match=0.0, review_quality=0.0,
                                 price_fit=0.0, brand_priority=0.0)
        ctx = RankingContext()
        assert rerank_with_custom_weights(items, ctx, weights) == items
        assert get_score_breakdown(items[0], RankingContext(weights=weights)).breakdown.semantic \
            == pytest.approx(0.15)
