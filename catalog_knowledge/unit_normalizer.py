"""
Catalog Knowledge — Unit Rule Discovery & Value Normalization

Detects unit tokens in sample attribute values and emits conversion rules
to one canonical unit per quantity (mm, psi, celsius, gpm, kg). Rules are
then applied to single raw values.

Pattern order matters: the first pattern that matches a value wins, even
when a later pattern would be more specific.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .models import (
    UnitRule, UnitSample, coerce_rows, extract_numeric, to_attribute_id,
)

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 4


@dataclass(frozen=True)
class UnitPattern:
    pattern: re.Pattern
    unit: str
    multiplier: float
    offset: float = 0.0


def _p(source: str) -> re.Pattern:
    return re.compile(source, re.IGNORECASE)


UNIT_PATTERNS: list[UnitPattern] = [
    # Length → mm
    UnitPattern(_p(r'\b(mm|millimet(?:er|re)s?)\b'), 'mm', 1),
    UnitPattern(_p(r'\b(cm|centimet(?:er|re)s?)\b'), 'mm', 10),
    UnitPattern(_p(r'\b(m|met(?:er|re)s?)\b'), 'mm', 1000),
    UnitPattern(_p(r'\b(in|inch(?:es)?)\b'), 'mm', 25.4),
    UnitPattern(_p(r'\b(ft|foot|feet)\b'), 'mm', 304.8),
    # Pressure → psi
    UnitPattern(_p(r'\bpsi\b'), 'psi', 1),
    UnitPattern(_p(r'\bbar\b'), 'psi', 14.5038),
    UnitPattern(_p(r'\bpa\b'), 'psi', 0.000145038),
    # Temperature → celsius
    UnitPattern(_p(r'°c\b|deg(?:ree)?c\b'), 'celsius', 1),
    UnitPattern(_p(r'°f\b|deg(?:ree)?f\b'), 'celsius', 5 / 9, offset=-32),
    # Flow → gpm
    UnitPattern(_p(r'\bgpm\b'), 'gpm', 1),
    UnitPattern(_p(r'\blpm\b'), 'gpm', 0.264172),
    UnitPattern(_p(r'\bl/min\b'), 'gpm', 0.264172),
    # Mass → kg
    UnitPattern(_p(r'\bkg\b'), 'kg', 1),
    UnitPattern(_p(r'\b(lb|pound)'), 'kg', 0.453592),
]


def match_unit_pattern(value: str) -> Optional[tuple[UnitPattern, str]]:
    """Return the first pattern matching `value` and the matched token."""
    for up in UNIT_PATTERNS:
        m = up.pattern.search(value)
        if m:
            return up, m.group(0).lower()
    return None


def discover_unit_rules(samples: Iterable[UnitSample | dict[str, Any]]) -> list[UnitRule]:
    """
    Derive conversion rules from sample values.

    Samples without a numeric literal or without a recognised unit are
    skipped. Repeats of the same (attribute, target unit, pattern) collapse
    into the first rule seen.
    """
    rules: list[UnitRule] = []
    seen: set[tuple[str, str, str]] = set()

    for sample in coerce_rows(UnitSample, list(samples)):
        if extract_numeric(sample.value) is None:
            continue

        hit = match_unit_pattern(sample.value)
        if hit is None:
            continue
        up, token = hit

        attribute_id = to_attribute_id(sample.attribute_id)
        key = (attribute_id, up.unit, up.pattern.pattern)
        if key in seen:
            continue
        seen.add(key)

        rules.append(UnitRule(
            attribute_id=attribute_id,
            source_unit=token,
            target_unit=up.unit,
            multiplier=up.multiplier,
            offset=up.offset,
        ))

    logger.debug("Discovered %d unit rules", len(rules))
    return rules


def find_rule(rules: Iterable[UnitRule], attribute_id: str, raw_value: str) -> Optional[UnitRule]:
    # Containment, not tokenization: '°f' also matches inside '°fahrenheit'.
    attribute_id = to_attribute_id(attribute_id)
    lowered = raw_value.lower()
    for rule in rules:
        if rule.attribute_id == attribute_id and rule.source_unit.lower() in lowered:
            return rule
    return None


def normalize_value(
    rules: Iterable[UnitRule],
    attribute_id: str,
    raw_value: str,
) -> Optional[float]:
    """Convert `raw_value` to its attribute's canonical unit, or None."""
    if not isinstance(raw_value, str) or not raw_value:
        return None
    rule = find_rule(rules, attribute_id, raw_value)
    if rule is None:
        return None
    numeric = extract_numeric(raw_value)
    if numeric is None:
        return None
    precision = DEFAULT_PRECISION if rule.precision is None else rule.precision
    return round((numeric + rule.offset) * rule.multiplier, precision)
