"""
Unit tests for canon shard ranking and payload parsing.
"""
import pytest

from catalog_knowledge.canon import (
    cosine_similarity, parse_canon_payload, rank_canon_shards,
    select_canon_context, shard_embedding_text,
)
from catalog_knowledge.config import Settings
from catalog_knowledge.models import CanonShard


def shard(topic, embedding=None, assertions=('fact',)):
    return CanonShard(topic=topic, assertions=list(assertions), embedding=embedding)


class TestCosineSimilarity:
    """Vector similarity edge cases."""

    def test_identical_and_orthogonal(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_degenerate_inputs_score_zero(self):
        assert cosine_similarity(None, [1.0]) == 0.0
        assert cosine_similarity([], []) == 0.0
        assert cosine_similarity([1.0, 2.0], [1.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


class TestRankCanonShards:
    """Shard ranking against a query embedding."""

    def test_best_match_first(self):
        a = shard('A', [1.0, 0.0])
        b = shard('B', [0.0, 1.0])
        ranked = rank_canon_shards([a, b], [0.0, 1.0])
        assert ranked[0].shard.topic == 'B'
        assert ranked[0].score == pytest.approx(1.0)
        assert ranked[1].score == pytest.approx(0.0)

    def test_shards_without_assertions_are_excluded(self):
        empty = shard('Empty', [0.0, 1.0], assertions=())
        other = shard('Other', [1.0, 0.0])
        ranked = rank_canon_shards([empty, other], [0.0, 1.0])
        assert [r.shard.topic for r in ranked] == ['Other']

    def test_missing_embedding_scores_zero(self):
        ranked = rank_canon_shards([shard('NoVec'), shard('Vec', [1.0, 1.0])], [1.0, 1.0])
        assert [(r.shard.topic, round(r.score, 6)) for r in ranked] == [('Vec', 1.0), ('NoVec', 0.0)]

    def test_max_results_and_stable_ties(self):
        shards = [shard(f'S{i}', [1.0, 0.0]) for i in range(6)]
        ranked = rank_canon_shards(shards, [1.0, 0.0], max_results=4)
        assert [r.shard.topic for r in ranked] == ['S0', 'S1', 'S2', 'S3']

    def test_inputs_are_not_mutated(self):
        a = shard('A', [3.0, 4.0])
        rank_canon_shards([a], [3.0, 4.0])
        assert a.embedding == [3.0, 4.0]
        assert not hasattr(a, 'score')

    def test_empty_candidates(self):
        assert rank_canon_shards([], [1.0]) == []


class TestSelectCanonContext:
    """Settings-driven candidate and result limits."""

    def test_limits_from_settings(self):
        settings = Settings(_env_file=None, canon_max_results=1, canon_candidate_limit=2)
        shards = [shard('A', [1.0, 0.0]), shard('B', [0.9, 0.1]), shard('C', [0.0, 1.0])]
        ranked = select_canon_context(shards, [0.0, 1.0], settings)
        # C lies beyond the candidate window
        assert [r.shard.topic for r in ranked] == ['B']


class TestCanonPayload:
    """Model payload parsing."""

    def test_fenced_payload(self):
        text = '```json\n{"shards": [{"topic": "Flex", "tags": ["flex"], ' \
               '"assertions": [" Soft flex suits park. ", ""], "caveats": [], ' \
               '"citation": "Buying guide"}]}\n```'
        shards = parse_canon_payload(text, 'Guide')
        assert len(shards) == 1
        assert shards[0].assertions == ['Soft flex suits park.']
        assert shards[0].citation == 'Buying guide'

    def test_fallback_topic_and_citation(self):
        shards = parse_canon_payload('{"shards": [{"assertions": ["A fact"]}]}', 'Sizing')
        assert shards[0].topic == 'Sizing'
        assert shards[0].citation == 'Sizing'

    def test_shards_without_assertions_are_dropped(self):
        text = '{"shards": [{"topic": "x", "assertions": ["  "]}, "junk", {"topic": "y", "assertions": ["ok"]}]}'
        assert [s.topic for s in parse_canon_payload(text, 'z')] == ['y']

    def test_string_assertions_are_not_split(self):
        text = '{"shards": [{"topic": "Wax", "assertions": "Wax often"}, ' \
               '{"topic": "Edges", "assertions": ["Tune edges"]}]}'
        shards = parse_canon_payload(text, 'Care')
        assert [s.assertions for s in shards] == [['Tune edges']]

    def test_non_string_topic_and_citation_fall_back(self):
        text = '{"shards": [{"topic": 5, "citation": ["x"], "tags": "wax", ' \
               '"assertions": ["Wax every few days"]}]}'
        shards = parse_canon_payload(text, 'Care')
        assert len(shards) == 1
        assert shards[0].topic == 'Care'
        assert shards[0].citation == 'Care'
        assert shards[0].tags == []

    def test_malformed_json_is_repaired(self, caplog):
        trailing_comma = '{"shards": [{"topic": "Wax", "assertions": ["Wax often"]},]}'
        shards = parse_canon_payload(trailing_comma, 'Care')
        assert [(s.topic, s.assertions) for s in shards] == [('Wax', ['Wax often'])]

        truncated = '```json\n{"shards": [{"topic": "Wax", "assertions": ["Wax often"]}'
        assert [s.topic for s in parse_canon_payload(truncated, 'Care')] == ['Wax']
        assert 'Invalid JSON' not in caplog.text

    def test_invalid_payloads(self, caplog):
        assert parse_canon_payload('not json', 'Guide') == []
        assert 'Invalid JSON' in caplog.text
        assert parse_canon_payload('', 'Guide') == []
        assert parse_canon_payload('[1, 2]', 'Guide') == []
        assert parse_canon_payload('{"shards": "nope"}', 'Guide') == []

    def test_embedding_text(self):
        s = CanonShard(topic='Flex', assertions=['Soft flex.', 'Forgiving.'])
        assert shard_embedding_text(s) == 'Flex. Soft flex. Forgiving.'

    def test_from_row(self):
        s = CanonShard.from_row({'topic': 'Flex', 'assertions': None, 'embedding': [0.1]})
        assert s.assertions == []
        assert s.embedding == [0.1]
        assert CanonShard.from_row({'assertions': ['x']}) is None
