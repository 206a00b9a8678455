import pytest

from marquee_ranking.explain import COLD_START_CONFIDENCE, COLD_START_REASON, confidence
from marquee_recommendation.personalization import RecommendationOptions, cold_start
from marquee_user.interactions.schemas import InteractionType, UserInteraction

PLAIN = RecommendationOptions(diversify=False)


async def _like(ctx, user_id, item):
    interaction = UserInteraction(user_id=user_id, media_id=item.id, type=InteractionType.LIKE)
    return await ctx.learner.learn(user_id, interaction, item)


async def _warm_user(ctx, make_item, unit_vector, user_id="u", n=3):
    for i in range(n):
        await _like(ctx, user_id, make_item(f"seed{i}", embedding=unit_vector(0)))


def test_cold_start_orders_by_rating(make_item):
    items = [
        make_item("low", rating=5.0),
        make_item("high", rating=9.0),
        make_item("none", rating=None),
        make_item("mid", rating=7.5),
    ]
    out = cold_start(items, limit=3)
    assert [r.item.id for r in out] == ["high", "mid", "low"]
    assert out[0].score == pytest.approx(0.9)
    assert all(r.reasons == [COLD_START_REASON] for r in out)
    assert all(r.confidence == COLD_START_CONFIDENCE for r in out)


@pytest.mark.anyio
async def test_unknown_user_gets_cold_start(ctx, make_item):
    items = [make_item("a", rating=6.0), make_item("b", rating=8.0)]
    out = await ctx.personalization.get_recommendations("stranger", items)
    assert [r.item.id for r in out] == ["b", "a"]
    assert out[0].confidence == 0.5
    assert out[0].breakdown is None


@pytest.mark.anyio
async def test_few_interactions_still_cold_start(ctx, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector, n=2)
    out = await ctx.personalization.get_recommendations("u", [make_item("a", embedding=unit_vector(0))])
    assert out[0].reasons == [COLD_START_REASON]


@pytest.mark.anyio
async def test_personalized_ranking_prefers_profile_direction(ctx, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector)
    candidates = [
        make_item("far", embedding=unit_vector(1)),
        make_item("close", embedding=unit_vector(0)),
    ]
    out = await ctx.personalization.get_recommendations("u", candidates, PLAIN)

    assert [r.item.id for r in out] == ["close", "far"]
    close = out[0]
    assert close.breakdown.value("personal") == pytest.approx(1.0)
    assert close.confidence == pytest.approx(confidence(3))
    assert "Matches your viewing preferences" in close.reasons
    assert out[1].breakdown.value("personal") == pytest.approx(0.0)
    assert close.score == pytest.approx(close.breakdown.total)


@pytest.mark.anyio
async def test_candidates_without_embedding_are_skipped(ctx, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector)
    ctx.media_store.insert("indexed", unit_vector(0))
    candidates = [
        make_item("bare"),
        make_item("indexed"),
        make_item("inline", embedding=unit_vector(2)),
    ]
    out = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert {r.item.id for r in out} == {"indexed", "inline"}
    assert out[0].item.id == "indexed"


@pytest.mark.anyio
async def test_limit_and_diversified_output(ctx, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector)
    candidates = [make_item(f"c{i}", embedding=unit_vector(i), genres=["Drama"]) for i in range(6)]
    candidates.append(make_item("comedy", embedding=unit_vector(9), genres=["Comedy"]))

    out = await ctx.personalization.get_recommendations("u", candidates, RecommendationOptions(limit=4))
    ids = [r.item.id for r in out]
    assert len(ids) == 4
    assert len(set(ids)) == 4
    assert ids[0] == "c0"


@pytest.mark.anyio
async def test_results_are_cached_until_profile_changes(ctx, cache, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector)
    candidates = [make_item("a", embedding=unit_vector(0)), make_item("b", embedding=unit_vector(1))]

    first = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert any(k.startswith("recommendations:u:") for k in cache.keys())
    second = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert [(r.item.id, r.score, r.reasons) for r in second] == [
        (r.item.id, r.score, r.reasons) for r in first
    ]

    await _like(ctx, "u", make_item("b", embedding=unit_vector(1)))
    assert not any(k.startswith("recommendations:u:") for k in cache.keys())
    third = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert third[0].confidence == pytest.approx(confidence(4))


@pytest.mark.anyio
async def test_deleted_profile_falls_back_to_cold_start(ctx, make_item, unit_vector):
    await _warm_user(ctx, make_item, unit_vector)
    candidates = [make_item("a", embedding=unit_vector(0))]
    warm = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert warm[0].reasons != [COLD_START_REASON]

    await ctx.learner.delete_profile("u")
    out = await ctx.personalization.get_recommendations("u", candidates, PLAIN)
    assert out[0].reasons == [COLD_START_REASON]
    assert out[0].confidence == COLD_START_CONFIDENCE
