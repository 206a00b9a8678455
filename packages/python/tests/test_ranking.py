from datetime import date, datetime, timedelta, timezone

import numpy as np
import pytest

from marquee_ranking.diversification import diversify_by_genre
from marquee_ranking.explain import confidence, reasons_for
from marquee_ranking.hybrid import merge_hybrid
from marquee_ranking.metadata import (
    genre_score,
    platform_score,
    recency_score,
    score_candidate,
    type_score,
)
from marquee_ranking.types import DiversifyParams, RankedItem, ScoredHit, ScoringWeights
from marquee_user.taste.schemas import PreferenceProfile


def test_feature_defaults():
    assert genre_score([], {"Action": 1.0}) == 0.5
    assert genre_score(["Action", "Drama"], {"Action": 0.8}) == pytest.approx(0.4)
    assert platform_score([], {"Netflix": 0.9}) == 0.0
    assert platform_score(["Hulu"], {"Netflix": 0.9}) == 0.0
    assert platform_score(["Hulu", "Netflix"], {"Netflix": 0.9, "Hulu": 0.2}) == pytest.approx(0.9)
    assert type_score("movie", {}) == 0.5


def test_recency_decays_with_age():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert recency_score(date(2024, 1, 1), now) == pytest.approx(1.0)
    assert recency_score(date(2023, 1, 1), now) == pytest.approx(np.exp(-1.0))
    assert recency_score(date(2030, 1, 1), now) == pytest.approx(1.0)
    assert recency_score(None, now) == 0.0


def test_composite_score(make_item):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    profile = PreferenceProfile(
        user_id="u",
        preference_vector=np.array([1.0, 0.0], dtype=np.float32),
        genre_weights={"Action": 0.5},
        platform_weights={"Netflix": 0.9},
    )
    item = make_item("m", genres=["Action"], rating=8.0, release_date=date(2024, 1, 1))
    bd = score_candidate(profile, item, np.array([1.0, 0.0]), weights=ScoringWeights(), now=now)
    expected = 1.0 * 0.6 + 0.5 * 0.2 + 0.8 * 0.1 + 1.0 * 0.1
    assert bd.total == pytest.approx(expected)
    assert bd.value("platform") == pytest.approx(0.9)
    assert bd.features["platform"].contribution == 0.0


def test_confidence_is_strictly_increasing():
    values = [confidence(n) for n in range(0, 60)]
    assert all(a < b for a, b in zip(values, values[1:]))
    assert confidence(20) == pytest.approx(0.5)
    assert confidence(20) > confidence(3)


def test_reasons_rules_and_cap(make_item):
    profile = PreferenceProfile(
        user_id="u",
        preference_vector=np.array([1.0, 0.0], dtype=np.float32),
        genre_weights={"Action": 0.9, "Sci-Fi": 0.8},
        platform_weights={"Netflix": 0.9},
    )
    item = make_item("m", genres=["Action", "Sci-Fi"], rating=8.5)
    bd = score_candidate(profile, item, np.array([1.0, 0.0]))
    reasons = reasons_for(item, bd, rating_threshold=7.0)
    assert reasons == [
        "You enjoy Action and Sci-Fi content",
        "Matches your viewing preferences",
        "Highly rated (8.5/10)",
    ]


def _ranked(make_item, rows):
    return [
        RankedItem(item=make_item(mid, genres=genres), score=score)
        for mid, genres, score in rows
    ]


def test_diversify_prefers_new_genres_then_fills(make_item):
    ranked = _ranked(
        make_item,
        [
            ("a", ["Action"], 0.65),
            ("b", ["Action"], 0.64),
            ("c", ["Action"], 0.63),
            ("d", ["Comedy"], 0.62),
            ("e", ["Action"], 0.61),
        ],
    )
    out = diversify_by_genre(ranked, limit=4)
    # a, b fill the guaranteed half; c brings nothing new; d brings Comedy; c fills the last slot
    assert [r.item.id for r in out] == ["a", "b", "d", "c"]


def test_diversify_constants_are_configurable(make_item):
    ranked = _ranked(make_item, [("a", ["X"], 0.1), ("b", ["X"], 0.1), ("c", ["Y"], 0.1)])
    strict = DiversifyParams(diversity_factor=0.3, bonus_threshold=1.0, score_threshold=1.0, guaranteed_fraction=0.0)
    out = diversify_by_genre(ranked, limit=2, params=strict)
    assert [r.item.id for r in out] == ["a", "b"]
    assert diversify_by_genre(ranked, limit=0) == []


def _hits(make_item, pairs):
    return [ScoredHit(item=make_item(mid), relevance=r) for mid, r in pairs]


def test_merge_blends_overlapping_items(make_item):
    keyword = _hits(make_item, [("x", 0.8), ("k", 0.5)])
    semantic = _hits(make_item, [("x", 0.6), ("s", 0.9)])
    merged = merge_hybrid(keyword, semantic, hybrid_weight=0.5, limit=10)
    scores = {h.item.id: h.relevance for h in merged}
    assert scores["x"] == pytest.approx(0.7)
    assert scores["s"] == pytest.approx(0.45)
    assert scores["k"] == pytest.approx(0.25)
    assert [h.item.id for h in merged] == ["x", "s", "k"]


def test_merge_with_one_empty_side(make_item):
    semantic = _hits(make_item, [("a", 0.9), ("b", 0.8)])
    merged = merge_hybrid([], semantic, hybrid_weight=0.3, limit=10)
    assert [h.item.id for h in merged] == ["a", "b"]
    assert [h.relevance for h in merged] == pytest.approx([0.27, 0.24])
    keyword = _hits(make_item, [("a", 0.5)])
    merged = merge_hybrid(keyword, [], hybrid_weight=0.3, limit=10)
    assert merged[0].relevance == pytest.approx(0.35)
    assert merge_hybrid([], [], hybrid_weight=0.5) == []


def test_merge_is_independent_of_input_order(make_item):
    keyword = _hits(make_item, [("a", 0.5), ("b", 0.5), ("c", 0.9)])
    semantic = _hits(make_item, [("d", 1.0), ("a", 0.2)])
    one = merge_hybrid(keyword, semantic, hybrid_weight=0.5, limit=3)
    two = merge_hybrid(list(reversed(keyword)), list(reversed(semantic)), hybrid_weight=0.5, limit=3)
    assert [(h.item.id, h.relevance) for h in one] == [(h.item.id, h.relevance) for h in two]


def test_merge_honours_extreme_weights(make_item):
    keyword = _hits(make_item, [("k", 1.0)])
    semantic = _hits(make_item, [("s", 1.0)])
    pure_keyword = merge_hybrid(keyword, semantic, hybrid_weight=0.0)
    assert [(h.item.id, h.relevance) for h in pure_keyword] == [("k", 1.0), ("s", 0.0)]
    with pytest.raises(ValueError):
        merge_hybrid(keyword, semantic, hybrid_weight=1.5)
