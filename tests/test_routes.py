from datetime import date, timedelta

import app as app_module
from ai_client import FALLBACK_REFLECTIONS
from conftest import TODAY, OWNER, real_resolve_today


def post_entry(client, text="Coffee with my sister", owner=OWNER, **extra):
    return client.post("/api/entries", json={"text": text, **extra}, headers=owner)


def import_entries(client, rows):
    response = client.post("/api/import", json={"entries": rows}, headers=OWNER)
    assert response.status_code == 200
    return response


def day_key(days_ago):
    return (TODAY - timedelta(days=days_ago)).isoformat()


# ==================== Auth & context ====================

def test_health_needs_no_owner(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "ai_configured": False}


def test_missing_owner_is_rejected(client):
    response = client.get("/api/entries")
    assert response.status_code == 401
    assert "error" in response.get_json()


def test_unknown_time_zone(client, monkeypatch):
    monkeypatch.setattr(app_module, "resolve_today", real_resolve_today)
    response = client.get("/api/stats", headers={**OWNER, "X-Timezone": "Mars/Olympus_Mons"})
    assert response.status_code == 400


def test_time_zone_from_header(client, monkeypatch):
    monkeypatch.setattr(app_module, "resolve_today", real_resolve_today)
    response = client.get("/api/stats", headers={**OWNER, "X-Timezone": "Asia/Tokyo"})
    assert response.status_code == 200


def test_unexpected_error_is_a_generic_500(client, monkeypatch):
    def broken():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(app_module, "get_store", broken)
    response = client.get("/api/entries", headers=OWNER)
    assert response.status_code == 500
    assert response.get_json() == {"error": "An unexpected error occurred"}


# ==================== Entries ====================

def test_create_entry_falls_back_without_ai(client):
    response = post_entry(client, moodScore=5, tags=["family", " family "])
    assert response.status_code == 201

    data = response.get_json()
    assert data["saved"] is True
    assert data["ai_generated"] is False
    assert data["streak"] == 1
    assert data["milestone"] is None
    assert data["entry"]["entry_date"] == TODAY.isoformat()
    assert data["entry"]["mood_score"] == 5
    assert data["entry"]["tags"] == ["family"]
    assert data["entry"]["ai_reflection"] == FALLBACK_REFLECTIONS[5]


def test_create_entry_infers_missing_mood(client):
    data = post_entry(client).get_json()
    assert data["entry"]["mood_score"] == 3


def test_create_entry_with_ai(client, ai_reply):
    ai_reply("That sounds wonderful.\nMOOD: 4")
    data = post_entry(client).get_json()
    assert data["ai_generated"] is True
    assert data["entry"]["mood_score"] == 4
    assert data["entry"]["ai_reflection"] == "That sounds wonderful."


def test_one_entry_per_day(client):
    assert post_entry(client).status_code == 201
    response = post_entry(client, text="Another thing")
    assert response.status_code == 409


def test_create_entry_validation(client):
    assert post_entry(client, text="   ").status_code == 400
    assert post_entry(client, text="x" * 241).status_code == 400
    assert post_entry(client, moodScore=9).status_code == 400
    assert client.post("/api/entries", data="not json", headers=OWNER).status_code == 400


def test_future_entries_are_rejected(client):
    response = post_entry(client, entryDate=(TODAY + timedelta(days=1)).isoformat())
    assert response.status_code == 400


def test_third_day_reaches_milestone(client):
    post_entry(client, entryDate=day_key(2), moodScore=4)
    post_entry(client, entryDate=day_key(1), moodScore=4)
    data = post_entry(client, moodScore=4).get_json()

    assert data["streak"] == 3
    assert data["milestone"] == {"days": 3, "label": "3 Day Streak!", "achieved": True}


def test_list_and_get_entries(client):
    post_entry(client, entryDate=day_key(5), moodScore=2)
    post_entry(client, entryDate=day_key(1), moodScore=4)

    data = client.get("/api/entries", headers=OWNER).get_json()
    assert data["count"] == 2
    assert [e["entry_date"] for e in data["entries"]] == [day_key(5), day_key(1)]

    ranged = client.get(f"/api/entries?start={day_key(3)}", headers=OWNER).get_json()
    assert [e["entry_date"] for e in ranged["entries"]] == [day_key(1)]

    single = client.get(f"/api/entries/{day_key(5)}", headers=OWNER)
    assert single.status_code == 200
    assert single.get_json()["mood_score"] == 2


def test_get_entry_errors(client):
    assert client.get(f"/api/entries/{day_key(0)}", headers=OWNER).status_code == 404
    assert client.get("/api/entries/last-tuesday", headers=OWNER).status_code == 400
    assert client.get("/api/entries?start=soon", headers=OWNER).status_code == 400


def test_entries_are_owner_scoped(client):
    post_entry(client)
    data = client.get("/api/entries", headers={"X-Owner-Id": "bob"}).get_json()
    assert data["count"] == 0


def test_update_entry(client):
    post_entry(client, moodScore=2)
    response = client.put(
        f"/api/entries/{day_key(0)}",
        json={"text": "Coffee with my sister", "moodScore": 4, "tags": ["family"]},
        headers=OWNER,
    )
    assert response.status_code == 200

    entry = response.get_json()["entry"]
    assert entry["mood_score"] == 4
    assert entry["tags"] == ["family"]
    assert entry["ai_reflection"] == FALLBACK_REFLECTIONS[2]


def test_update_with_new_text_refreshes_reflection(client):
    post_entry(client, moodScore=2)
    entry = client.put(
        f"/api/entries/{day_key(0)}", json={"text": "A long walk instead"}, headers=OWNER
    ).get_json()["entry"]

    assert entry["text"] == "A long walk instead"
    assert entry["mood_score"] == 2
    assert entry["ai_reflection"] == FALLBACK_REFLECTIONS[2]


def test_update_missing_entry(client):
    response = client.put(f"/api/entries/{day_key(0)}", json={"text": "hi"}, headers=OWNER)
    assert response.status_code == 404


def test_delete_entry(client):
    post_entry(client)
    assert client.delete(f"/api/entries/{day_key(0)}", headers=OWNER).get_json() == {"deleted": True}
    assert client.delete(f"/api/entries/{day_key(0)}", headers=OWNER).status_code == 404


# ==================== Timeline ====================

def test_years_and_month_timeline(client):
    import_entries(client, {
        "2023-12-31": {"text": "New year's eve"},
        "2024-02-10": {"text": "Snow day", "mood_score": 5},
        "2024-02-12": {"text": "Pancakes", "mood_score": 4},
    })

    assert client.get("/api/years", headers=OWNER).get_json() == [2024, 2023]

    data = client.get("/api/timeline/2024/2", headers=OWNER).get_json()
    assert data["month_name"] == "February 2024"
    assert len(data["calendar"]) == 29
    assert [e["entry_date"] for e in data["entries"]] == ["2024-02-12", "2024-02-10"]
    assert data["calendar"][9]["has_entry"] is True
    assert data["calendar"][9]["mood_score"] == 5


def test_timeline_rejects_invalid_month(client):
    assert client.get("/api/timeline/2024/13", headers=OWNER).status_code == 400


# ==================== Stats & insights ====================

def test_stats(client):
    import_entries(client, {
        day_key(0): {"text": "today", "mood_score": 4},
        day_key(1): {"text": "yesterday", "mood_score": 5},
        day_key(10): {"text": "earlier"},
    })

    data = client.get("/api/stats", headers=OWNER).get_json()
    assert data["today"] == TODAY.isoformat()
    assert data["streak"]["current_streak"] == 2
    assert data["streak"]["longest_streak"] == 2
    assert data["streak"]["total_entries"] == 3
    assert data["streak"]["last_entry_date"] == TODAY.isoformat()
    assert data["journaled_today"] is True

    assert len(data["week_chain"]) == 7
    assert data["week_chain"][-1]["is_today"] is True
    assert data["week_chain"][-1]["has_entry"] is True

    # January through March 2024
    assert len(data["heatmap"]) == 91
    assert data["heatmap"][0]["date"] == "2024-01-01"

    assert [p["mood_score"] for p in data["mood_sparkline"]] == [5, 4]
    assert data["next_milestone"] == {"days": 3, "remaining": 1, "progress": 67}


def test_stats_for_new_user(client):
    data = client.get("/api/stats", headers=OWNER).get_json()
    assert data["streak"]["current_streak"] == 0
    assert data["streak"]["last_entry_date"] is None
    assert data["journaled_today"] is False
    assert data["mood_sparkline"] == []
    assert len(data["week_chain"]) == 7


def test_insights_window_must_be_bounded(client):
    import_entries(client, {day_key(i): {"text": "seeded", "mood_score": 4} for i in range(3)})

    for days in (0, -5, 3651, 1000000):
        response = client.get(f"/api/insights?days={days}", headers=OWNER)
        assert response.status_code == 400, days
        assert "days" in response.get_json()["error"]

    assert client.get("/api/insights?days=3650", headers=OWNER).status_code == 200


def test_insights_need_three_entries(client):
    post_entry(client)
    data = client.get("/api/insights", headers=OWNER).get_json()
    assert data["has_data"] is False


def test_insights(client):
    import_entries(client, {
        "2024-03-11": {"text": "a", "mood_score": 5, "tags": ["family"]},
        "2024-03-12": {"text": "b", "mood_score": 3, "tags": ["work", "family"]},
        "2024-03-13": {"text": "c", "mood_score": 4},
        "2023-01-01": {"text": "outside the window", "mood_score": 1, "tags": ["old"]},
    })

    data = client.get("/api/insights?days=30", headers=OWNER).get_json()
    assert data["has_data"] is True
    assert data["entries_count"] == 3
    assert data["average_mood"] == 4.0
    assert data["positivity"] == "High"
    assert data["happiest_day"] == {"day": "Monday", "average": 5.0, "entry_count": 1}
    assert data["top_themes"] == [{"tag": "family", "count": 2}, {"tag": "work", "count": 1}]
    assert len(data["mood_chart"]) == 3


def test_insights_without_tracked_moods(client):
    import_entries(client, {day_key(i): {"text": "untracked"} for i in range(3)})

    data = client.get("/api/insights", headers=OWNER).get_json()
    assert data["average_mood"] is None
    assert data["positivity"] == "Not tracked"
    assert data["happiest_day"] is None
    assert data["mood_trend"] == "stable"


def test_memories(client):
    import_entries(client, {
        "2023-03-14": {"text": "a year ago", "mood_score": 3},
        "2024-02-14": {"text": "a month ago", "mood_score": 5},
    })

    memories = client.get("/api/memories", headers=OWNER).get_json()["memories"]
    assert [(m["entry_date"], m["reason"]) for m in memories] == [
        ("2023-03-14", "One year ago today"),
        ("2024-02-14", "30 days ago"),
    ]


# ==================== AI features ====================

def test_reflection_without_ai_is_unavailable(client):
    response = client.post("/api/reflection", json={"entryText": "A sunny walk"}, headers=OWNER)
    assert response.status_code == 503


def test_reflection(client, ai_reply):
    ai_reply("Sunshine suits you.\nMOOD: 5")
    response = client.post("/api/reflection", json={"entryText": "A sunny walk"}, headers=OWNER)
    assert response.get_json() == {"reflection": "Sunshine suits you.", "mood_score": 5}


def test_reflection_validation(client, ai_reply):
    ai_reply("unused")
    for body in ({}, {"entryText": ""}, {"entryText": "x" * 501},
                 {"entryText": 42}, {"entryText": "ok", "moodScore": "5"},
                 {"entryText": "ok", "moodScore": 0}):
        response = client.post("/api/reflection", json=body, headers=OWNER)
        assert response.status_code == 400, body


def test_quote(client, ai_reply):
    ai_reply('Quote: "I found joy in a slow morning"')
    response = client.post("/api/quote", json={"entryText": "Slow breakfast"}, headers=OWNER)
    assert response.get_json() == {"quote": "I found joy in a slow morning"}


def test_life_insight_without_entries(client):
    data = client.get("/api/insights/life", headers=OWNER).get_json()
    assert data == {"insight": None}


def test_life_insight(client, ai_reply):
    ai_reply("You keep finding joy in people.")
    import_entries(client, {
        day_key(0): {"text": "lunch with Sam", "mood_score": 4},
        day_key(45): {"text": "too old"},
    })

    data = client.get("/api/insights/life", headers=OWNER).get_json()
    assert data["insight"] == "You keep finding joy in people."
    assert data["entries_analyzed"] == 1
    assert data["average_mood"] == 4.0


def test_monthly_reflection(client, ai_reply):
    ai_reply("SUMMARY: A bright February.\nHIGHLIGHTS:\n- Snow day\n- Pancakes")
    import_entries(client, {
        "2024-02-10": {"text": "Snow day", "mood_score": 5, "tags": ["outdoors"]},
        "2024-02-12": {"text": "Pancakes", "mood_score": 4, "tags": ["food", "outdoors"]},
        "2024-02-20": {"text": "Movie night", "mood_score": 3},
    })

    response = client.post(
        "/api/insights/monthly",
        json={"monthStart": "2024-02-01", "monthEnd": "2024-02-29"},
        headers=OWNER,
    )
    reflection = response.get_json()["reflection"]
    assert reflection["summary"] == "A bright February."
    assert reflection["highlights"] == ["Snow day", "Pancakes"]
    assert reflection["themes"] == {"outdoors": 2, "food": 1}
    assert reflection["joy_stats"] == {"days_tracked": 3, "avg_mood": 4.0, "positivity": "High"}


def test_monthly_reflection_needs_entries(client):
    post_entry(client)
    response = client.post(
        "/api/insights/monthly",
        json={"monthStart": "2024-03-01", "monthEnd": "2024-03-31"},
        headers=OWNER,
    )
    assert response.status_code == 400


def test_monthly_reflection_validation(client):
    for body in ({}, {"monthStart": "2024-03-01"},
                 {"monthStart": "March", "monthEnd": "2024-03-31"},
                 {"monthStart": "2024-03-31", "monthEnd": "2024-03-01"}):
        response = client.post("/api/insights/monthly", json=body, headers=OWNER)
        assert response.status_code == 400, body


# ==================== Data management ====================

def test_export_import_and_clear(client):
    post_entry(client, moodScore=5)
    exported = client.get("/api/export", headers=OWNER).get_json()
    assert list(exported["entries"]) == [TODAY.isoformat()]

    response = client.post("/api/import", json=exported, headers={"X-Owner-Id": "bob"})
    assert response.get_json() == {"imported": True, "entries_count": 1}

    assert client.delete("/api/clear", headers=OWNER).get_json() == {"cleared": True}
    assert client.get("/api/entries", headers=OWNER).get_json()["count"] == 0
    assert client.get("/api/entries", headers={"X-Owner-Id": "bob"}).get_json()["count"] == 1


def test_import_validation(client):
    assert client.post("/api/import", json={}, headers=OWNER).status_code == 400
    assert client.post("/api/import", json={"data": {}}, headers=OWNER).status_code == 400
    response = client.post("/api/import", json={"entries": {"2024-01-01": {"text": "x", "mood_score": 8}}},
                           headers=OWNER)
    assert response.status_code == 400
