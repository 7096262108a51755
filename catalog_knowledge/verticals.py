"""
Catalog Knowledge — Vertical Packs

Detects which vertical knowledge pack (e.g. snowboards) a product belongs
to, and plans spec ingestion for the products that have one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .models import coerce_rows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerticalPack:
    id: str
    label: str
    keywords: tuple[str, ...]

    def detect(self, product_type: Optional[str], tags: Optional[Iterable[str]]) -> bool:
        haystack = [v.lower() for v in [product_type, *(tags or [])] if v]
        if not haystack:
            return False
        return any(kw in value for kw in self.keywords for value in haystack)


VERTICAL_PACKS: tuple[VerticalPack, ...] = (
    VerticalPack(
        id='snowboard',
        label='Snowboard Pack',
        keywords=('snowboard', 'snow board', 'splitboard'),
    ),
)


class SpecIngestionCandidate(BaseModel):
    product_id: str
    product_type: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    vendor: Optional[str] = None


class PlannedSpecOperation(BaseModel):
    product_id: str
    vertical: str


def detect_vertical_for_product(
    product_type: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
) -> Optional[str]:
    for pack in VERTICAL_PACKS:
        if pack.detect(product_type, tags):
            return pack.id
    return None


def plan_spec_ingestion(
    candidates: Iterable[SpecIngestionCandidate | dict[str, Any]],
) -> list[PlannedSpecOperation]:
    operations = []
    for c in coerce_rows(SpecIngestionCandidate, list(candidates)):
        vertical = detect_vertical_for_product(c.product_type, c.tags)
        if vertical:
            operations.append(PlannedSpecOperation(product_id=c.product_id, vertical=vertical))
    return operations


def ensure_spec_placeholders(
    shop_id: str,
    candidates: list[SpecIngestionCandidate | dict[str, Any]],
    settings: Optional[Settings] = None,
) -> list[PlannedSpecOperation]:
    """Plan vertical spec ingestion; disabled unless the vertical-packs flag is on."""
    settings = settings or get_settings()
    if not settings.enable_vertical_packs:
        return []

    operations = plan_spec_ingestion(candidates)
    if operations:
        logger.debug(
            "Planned spec ingestion for shop %s: %d products, operations=%s",
            shop_id, len(candidates),
            [op.model_dump() for op in operations],
        )
    return operations
