"""
Catalog Knowledge — normalization, ontology, knowledge packs, calculators
and multi-factor re-ranking for shop product data.
"""
from .calculators import (
    CalculatorRegistry, build_default_registry, detect_and_run_calculators,
)
from .canon import rank_canon_shards
from .enrichment import EnrichmentRequest, build_enrichment_artifacts
from .knowledge_pack_builder import build_knowledge_packs
from .ontology_builder import build_ontology_definition
from .ranking import RankingContext, RankingWeights, rerank_products
from .unit_normalizer import discover_unit_rules, normalize_value
from .verticals import detect_vertical_for_product, ensure_spec_placeholders

__version__ = "1.0.0"

__all__ = [
    "CalculatorRegistry", "build_default_registry", "detect_and_run_calculators",
    "rank_canon_shards",
    "EnrichmentRequest", "build_enrichment_artifacts",
    "build_knowledge_packs",
    "build_ontology_definition",
    "RankingContext", "RankingWeights", "rerank_products",
    "discover_unit_rules", "normalize_value",
    "detect_vertical_for_product", "ensure_spec_placeholders",
]
