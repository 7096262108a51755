"""
Catalog Knowledge — Enrichment Pipeline

Runs one shop's knowledge generation in dependency order:
  samples → unit rules → ontology → knowledge packs

Unit rules must exist before any pack is normalized, so callers that need
all three artifacts should go through build_enrichment_artifacts().
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .knowledge_pack_builder import build_knowledge_packs
from .models import (
    FacetSample, KnowledgePack, OntologyDefinition, ProductSummaryRow,
    SpecEvidenceRow, SpecSample, UnitRule, UnitSample, coerce_rows,
)
from .ontology_builder import build_ontology_definition
from .unit_normalizer import discover_unit_rules

logger = logging.getLogger(__name__)


class EnrichmentRequest(BaseModel):
    shop_id: str
    categories: list[str] = Field(default_factory=list)
    facets: list[dict[str, Any] | FacetSample] = Field(default_factory=list)
    spec_keys: list[dict[str, Any] | SpecSample] = Field(default_factory=list)
    products: list[dict[str, Any] | ProductSummaryRow] = Field(default_factory=list)
    spec_evidence: list[dict[str, Any] | SpecEvidenceRow] = Field(default_factory=list)


class EnrichmentArtifacts(BaseModel):
    ontology: OntologyDefinition
    unit_rules: list[UnitRule] = Field(default_factory=list)
    knowledge_packs: list[KnowledgePack] = Field(default_factory=list)


def collect_unit_samples(
    facets: list[FacetSample],
    spec_keys: list[SpecSample],
) -> list[UnitSample]:
    samples = [UnitSample(attribute_id=f.facet, value=f.value) for f in facets]
    samples.extend(
        UnitSample(attribute_id=s.key, value=s.sample) for s in spec_keys if s.sample
    )
    return samples


def build_enrichment_artifacts(
    request: EnrichmentRequest,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> EnrichmentArtifacts:
    settings = settings or get_settings()
    start = time.monotonic()

    facets: list[FacetSample] = coerce_rows(FacetSample, request.facets)
    spec_keys: list[SpecSample] = coerce_rows(SpecSample, request.spec_keys)

    unit_rules = [
        r.model_copy(update={'precision': settings.normalize_precision})
        for r in discover_unit_rules(collect_unit_samples(facets, spec_keys))
    ]

    ontology = build_ontology_definition(
        shop_id=request.shop_id,
        categories=request.categories,
        facets=facets,
        spec_keys=spec_keys,
        sample_cap=settings.ontology_sample_cap,
        facet_limit=settings.ontology_facet_limit,
        now=now,
    )

    packs = build_knowledge_packs(
        request.products,
        request.spec_evidence,
        unit_rules,
        why_limit=settings.why_reason_limit,
        fallback_limit=settings.why_fallback_limit,
    )

    elapsed = int((time.monotonic() - start) * 1000)
    logger.info(
        "Enrichment for shop %s: %d unit rules, %d attributes, %d packs in %dms",
        request.shop_id, len(unit_rules), len(ontology.attributes), len(packs), elapsed,
    )
    return EnrichmentArtifacts(ontology=ontology, unit_rules=unit_rules, knowledge_packs=packs)
