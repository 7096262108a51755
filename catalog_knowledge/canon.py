"""
Catalog Knowledge — Canon Shards

Ranking of pre-embedded fact shards against a query embedding, plus the
helpers that turn a model's JSON shard payload into CanonShard objects and
compose the text a shard is embedded from.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Sequence

import json_repair
import numpy as np

from .config import Settings, get_settings
from .models import CanonShard, RankedShard

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 4

_FENCE_OPEN = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_FENCE_CLOSE = re.compile(r'```\s*$')


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine of two vectors; 0.0 when either is empty, lengths differ or a norm is zero."""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def rank_canon_shards(
    candidates: list[CanonShard],
    query_embedding: Sequence[float],
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[RankedShard]:
    """
    Score shards by cosine similarity to the query, best first.

    Shards without an embedding score 0. Shards with no assertions are never
    returned. Ties keep candidate order.
    """
    ranked = [
        RankedShard(shard=shard, score=cosine_similarity(shard.embedding, query_embedding))
        for shard in candidates
        if shard.assertions
    ]
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked[:max(0, max_results)]


def select_canon_context(
    candidates: list[CanonShard],
    query_embedding: Sequence[float],
    settings: Optional[Settings] = None,
) -> list[RankedShard]:
    """Rank at most `canon_candidate_limit` candidates, keep `canon_max_results`."""
    settings = settings or get_settings()
    return rank_canon_shards(
        candidates[:settings.canon_candidate_limit],
        query_embedding,
        settings.canon_max_results,
    )


def shard_embedding_text(shard: CanonShard) -> str:
    return f"{shard.topic}. {' '.join(shard.assertions)}"


def parse_canon_payload(text: str, fallback_topic: str) -> list[CanonShard]:
    """
    Parse a `{"shards": [...]}` response into shards.

    Markdown code fences are stripped. Assertions are trimmed and shards left
    without any are dropped. Malformed JSON goes through json_repair first;
    payloads that still do not decode to an object yield an empty list.
    """
    if not text or not text.strip():
        return []
    payload = _FENCE_CLOSE.sub('', _FENCE_OPEN.sub('', text.strip())).strip()

    try:
        parsed: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        parsed = json_repair.loads(payload)
        if not isinstance(parsed, dict):
            logger.warning("Invalid JSON in canon payload for %r: %s", fallback_topic, e)
            return []

    entries = parsed.get('shards') if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        return []

    shards: list[CanonShard] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        assertions = [a.strip() for a in _str_list(entry.get('assertions')) if a.strip()]
        if not assertions:
            continue
        shards.append(CanonShard(
            topic=_str_or(entry.get('topic'), fallback_topic),
            tags=_str_list(entry.get('tags')),
            assertions=assertions,
            caveats=_str_list(entry.get('caveats')),
            citation=_str_or(entry.get('citation'), fallback_topic),
        ))
    return shards


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _str_or(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) and value else fallback
