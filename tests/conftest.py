"""
Shared pytest fixtures.
"""
from datetime import datetime, timezone

import pytest

from catalog_knowledge.calculators import build_default_registry
from catalog_knowledge.config import Settings


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def fixed_now():
    return datetime(2026, 10, 17, 6, 5, 9, tzinfo=timezone.utc)


@pytest.fixture
def snowboard_facets():
    """Facet rows for a small snowboard shop."""
    rows = []
    for value in ['Beginner', 'Intermediate', 'Advanced', 'beginner',
                  'Beginner', 'Advanced', 'Intermediate', 'Expert']:
        rows.append({'facet': 'Skill Level', 'value': value})
    for value in ['All-Mountain', 'Park', 'Freeride', 'Park', 'All-Mountain']:
        rows.append({'facet': 'Terrain', 'value': value})
    for value in ['150', '154', '158']:
        rows.append({'facet': 'Board Length', 'value': value})
    rows.append({'facet': 'Flex', 'value': 'Soft'})
    return rows


@pytest.fixture
def ranked_candidates():
    """Three products whose expected order is A, C, B with the budget context below."""
    return [
        {'id': 'A', 'similarity': 0.9, 'price': 450, 'rating': 4.5,
         'review_count': 200, 'vendor': 'Burton'},
        {'id': 'B', 'similarity': 0.4, 'price': 700, 'vendor': 'Generic'},
        {'id': 'C', 'similarity': 0.7, 'price': 300, 'rating': 4.0,
         'review_count': 10, 'vendor': 'Burton Snowboards'},
    ]
