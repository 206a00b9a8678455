def test_health(test_client):
    res = test_client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_interaction_creates_profile(test_client):
    res = test_client.post("/v1/users/u1/interactions", json={"media_id": "m1", "type": "like"})
    assert res.status_code == 201
    body = res.json()
    assert body["interaction_count"] == 1
    assert body["weight"] == 1.0
    assert body["vector_updated"] is True

    profile = test_client.get("/v1/users/u1/profile").json()
    assert profile["interaction_count"] == 1
    assert profile["genre_weights"]["Sci-Fi"] > 0
    assert profile["vector_norm"] > 0


def test_interaction_for_unknown_media_is_404(test_client):
    res = test_client.post("/v1/users/u1/interactions", json={"media_id": "nope", "type": "like"})
    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_invalid_interaction_is_422(test_client):
    res = test_client.post("/v1/users/u1/interactions", json={"media_id": "m1", "type": "rate"})
    assert res.status_code == 422
    res = test_client.post(
        "/v1/users/u1/interactions", json={"media_id": "m1", "type": "watch", "completion": 2}
    )
    assert res.status_code == 422


def test_profile_lifecycle(test_client):
    assert test_client.get("/v1/users/u2/profile").status_code == 404
    test_client.post("/v1/users/u2/interactions", json={"media_id": "m2", "type": "watch", "duration": 900})

    stats = test_client.get("/v1/users/u2/profile/stats").json()
    assert stats["total"] == 1
    assert stats["counts"]["watch"] == 1

    analytics = test_client.get("/v1/users/u2/profile/analytics").json()
    assert analytics["total_interactions"] == 1
    assert analytics["top_genres"][0]["name"] == "Food"

    exported = test_client.get("/v1/users/u2/profile/export").json()
    assert len(exported["interactions"]) == 1

    assert test_client.post("/v1/users/u2/profile/rebuild").status_code == 200

    res = test_client.delete("/v1/users/u2/profile")
    assert res.json() == {"ok": True, "deleted": True}
    assert test_client.get("/v1/users/u2/profile").status_code == 404


def test_recommendations_for_new_user_are_cold_start(test_client):
    res = test_client.post("/v1/users/new/recommendations", json={"limit": 2})
    assert res.status_code == 200
    items = res.json()
    assert [i["media_id"] for i in items] == ["m1", "m3"]
    assert items[0]["reasons"] == ["Popular with other users"]
    assert items[0]["confidence"] == 0.5


def test_recommendations_after_learning(test_client, catalog_json):
    # orthogonal embeddings keep the expected order exact
    for i, item in enumerate(catalog_json):
        item["embedding"] = [1.0 if j == i else 0.0 for j in range(16)]
    test_client.post("/v1/index", json={"items": catalog_json})
    for mid in ("m1", "m3", "m1"):
        test_client.post("/v1/users/fan/interactions", json={"media_id": mid, "type": "like"})

    res = test_client.post(
        "/v1/users/fan/recommendations",
        json={"candidate_ids": ["m1", "m2", "m3", "missing"], "diversify": False},
    )
    assert res.status_code == 200
    items = res.json()
    assert [i["media_id"] for i in items] == ["m1", "m3", "m2"]
    assert all(i["reasons"] != ["Popular with other users"] for i in items)


def test_index_and_hybrid_search(test_client, catalog_json):
    res = test_client.post("/v1/index", json={"items": catalog_json})
    assert res.status_code == 201
    assert res.json()["indexed"] == 3
    assert test_client.get("/v1/index/stats").json() == {"count": 3, "dim": 16, "metric": "cosine"}

    res = test_client.post("/v1/search/hybrid", json={"query": "space opera", "limit": 5})
    assert res.status_code == 200
    body = res.json()
    assert body["items"][0]["media_id"] == "m1"
    assert body["cached"] is False
    assert test_client.post("/v1/search/hybrid", json={"query": "space opera", "limit": 5}).json()["cached"]

    similar = test_client.get("/v1/media/m1/similar")
    assert similar.status_code == 200
    assert all(h["media_id"] != "m1" for h in similar.json())

    assert test_client.delete("/v1/index/m2").json() == {"ok": True, "removed": True}
    assert test_client.get("/v1/index/stats").json()["count"] == 2


def test_empty_search_query_is_422(test_client):
    assert test_client.post("/v1/search/hybrid", json={"query": "  "}).status_code == 422


def test_similar_for_unindexed_media_is_404(test_client):
    assert test_client.get("/v1/media/m9/similar").status_code == 404
