"""
Catalog Knowledge — Core Pydantic Models

Shared domain types for unit rules, ontology, knowledge packs and canon
shards, plus the input row types supplied by catalog collaborators.
"""
from __future__ import annotations

import logging
import math
import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# ============================================================
# Enums
# ============================================================

class AttributeType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    ENUM = "enum"

# ============================================================
# Unit Rules
# ============================================================

class UnitRule(BaseModel):
    """Conversion from one detected source unit to an attribute's canonical unit."""
    model_config = ConfigDict(frozen=True)

    attribute_id: str
    source_unit: str
    target_unit: str
    multiplier: float
    offset: float = 0.0
    precision: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Optional[UnitRule]:
        """Coerce a persisted unit-rule row; returns None if it is unusable."""
        try:
            offset = row.get("offset_value", row.get("offset"))
            precision = row.get("precision")
            return cls(
                attribute_id=to_attribute_id(str(row["attribute_id"])),
                source_unit=str(row["source_unit"]),
                target_unit=str(row["target_unit"]),
                multiplier=float(row["multiplier"]),
                offset=0.0 if offset is None else float(offset),
                precision=None if precision is None else int(precision),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.debug("Dropping malformed unit rule row %r: %s", row, e)
            return None

# ============================================================
# Ontology
# ============================================================

class OntologyAttribute(BaseModel):
    id: str
    label: str
    type: AttributeType
    unit: Optional[str] = None
    allowed_values: Optional[list[str]] = None
    synonyms: Optional[list[str]] = None
    description: Optional[str] = None

class OntologyDefinition(BaseModel):
    version: str
    generated_at: str
    attributes: list[OntologyAttribute] = Field(default_factory=list)
    facet_order_by_category: dict[str, list[str]] = Field(default_factory=dict)
    normalizers: dict[str, list[dict[str, str]]] = Field(default_factory=dict)

    def attribute(self, attribute_id: str) -> Optional[OntologyAttribute]:
        attribute_id = to_attribute_id(attribute_id)
        for attr in self.attributes:
            if attr.id == attribute_id:
                return attr
        return None

# ============================================================
# Knowledge Packs
# ============================================================

class WhyReason(BaseModel):
    text: str
    source: str

class EvidenceEntry(BaseModel):
    key: str
    snippet: Optional[str] = None
    confidence: Optional[float] = None

class KnowledgePack(BaseModel):
    product_id: str
    normalized_specs: dict[str, Optional[str | float]] = Field(default_factory=dict)
    derived_metrics: dict[str, Optional[float]] = Field(default_factory=dict)
    why_reasons: list[WhyReason] = Field(default_factory=list)
    evidence: list[EvidenceEntry] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Optional[KnowledgePack]:
        """Coerce a persisted knowledge-pack row; missing blobs become empty."""
        try:
            return cls(
                product_id=str(row["product_id"]),
                normalized_specs=row.get("normalized_specs") or {},
                derived_metrics=row.get("derived_metrics") or {},
                why_reasons=row.get("why_reasons") or [],
                evidence=row.get("evidence") or [],
            )
        except (KeyError, ValidationError) as e:
            logger.debug("Dropping malformed knowledge pack row: %s", e)
            return None

# ============================================================
# Canon Shards
# ============================================================

class CanonShard(BaseModel):
    """An atomic, citeable fact distilled from merchant reference material."""
    topic: str
    tags: list[str] = Field(default_factory=list)
    assertions: list[str] = Field(default_factory=list)
    caveats: list[str] = Field(default_factory=list)
    citation: Optional[str] = None
    embedding: Optional[list[float]] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Optional[CanonShard]:
        try:
            return cls(
                topic=str(row["topic"]),
                tags=row.get("tags") or [],
                assertions=row.get("assertions") or [],
                caveats=row.get("caveats") or [],
                citation=row.get("citation") or None,
                embedding=row.get("embedding") or None,
            )
        except (KeyError, ValidationError) as e:
            logger.debug("Dropping malformed canon shard row: %s", e)
            return None

class RankedShard(BaseModel):
    shard: CanonShard
    score: float

# ============================================================
# Input Rows (from catalog store / extractors)
# ============================================================

def _number_to_str(v: Any) -> Any:
    # bool is an int subclass but never a facet value
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class UnitSample(BaseModel):
    attribute_id: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Any:
        return _number_to_str(v)

class FacetSample(BaseModel):
    facet: str
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> Any:
        return _number_to_str(v)

class SpecSample(BaseModel):
    key: str
    sample: Optional[str] = None

    @field_validator("sample", mode="before")
    @classmethod
    def _coerce_sample(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

class SpecEvidenceRow(BaseModel):
    """One extracted spec snippet. Malformed fields coerce to None."""
    product_id: str
    spec_key: Optional[str] = None
    snippet: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("spec_key", "snippet", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v: Any) -> Optional[float]:
        if v is None or isinstance(v, bool):
            return None
        try:
            val = float(v)
        except (TypeError, ValueError):
            return None
        return val if math.isfinite(val) else None

class ProductSummaryRow(BaseModel):
    product_id: str
    title: str = ""
    description: Optional[str] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    key_features: Optional[list[str]] = None
    best_for: Optional[list[str]] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("description", "product_type", "vendor", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

    @field_validator("key_features", "best_for", mode="before")
    @classmethod
    def _coerce_text_list(cls, v: Any) -> Optional[list[str]]:
        if not isinstance(v, (list, tuple)):
            return None
        return [x for x in v if isinstance(x, str)]


def coerce_rows(model: type[BaseModel], rows: list[Any]) -> list[Any]:
    """
    Validate input rows into `model`, skipping rows that cannot be coerced.
    Rows that are already instances pass through untouched.
    """
    result = []
    for row in rows or []:
        if isinstance(row, model):
            result.append(row)
            continue
        try:
            result.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping malformed %s row: %s",
                           model.__name__, e.errors()[0].get("msg", e))
    return result

# ============================================================
# Utility: Identifiers & Numbers
# ============================================================

_NON_ALNUM = re.compile(r'[^a-z0-9]+')
_NUMERIC = re.compile(r'-?\d+(?:\.\d+)?')


def to_attribute_id(value: str) -> str:
    """'Flow Rate (GPM)' -> 'flow_rate_gpm'."""
    return _NON_ALNUM.sub('_', value.lower()).strip('_')


def extract_numeric(value: str) -> Optional[float]:
    """First signed decimal literal in the string, thousands separators ignored."""
    if not value:
        return None
    m = _NUMERIC.search(value.replace(',', ''))
    return float(m.group(0)) if m else None
