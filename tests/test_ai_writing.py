import json

from app.flock.db import session_scope
from app.flock.modules.ai.models import AiUsageEvent
from app.flock.modules.sermon_helper import writing


def _usage(app, tenant_id):
    with session_scope(app, tenant_id=tenant_id) as s:
        return [(e.feature, e.tokens_in, e.tokens_out, e.meta) for e in s.query(AiUsageEvent).all()]


def _bulletin(api, *, sermon=True):
    b = api.post("/api/bulletins", json={"service_date": "2026-03-01"}).json
    if sermon:
        r = api.post(
            f"/api/bulletins/{b['id']}/items",
            json={
                "item_type": "sermon",
                "title": "Living Hope",
                "leader_name": "Pastor Ann",
                "scripture_reference": "1 Peter 1:3-9",
            },
        )
        assert r.status_code == 201, r.json
    return b


def test_config_disabled_without_key(viewer_api):
    r = viewer_api.get("/api/ai/config")
    assert r.status_code == 200
    assert r.json == {"enabled": False}


def test_config_follows_key_and_environment(app, ai_ready, viewer_api):
    assert viewer_api.get("/api/ai/config").json == {"enabled": True}
    app.config["DEPLOY_ENV"] = "production"
    assert viewer_api.get("/api/ai/config").json == {"enabled": False}


def test_writing_helpers_need_configuration_and_permission(api, viewer_api):
    r = api.post("/api/ai/big-idea", json={"passage": "John 3:16"})
    assert r.status_code == 412
    assert viewer_api.post("/api/ai/shorten", json={"text": "x"}).status_code == 403


def test_big_idea(app, ai_ready, tenant_id, fake_ai):
    calls = fake_ai(json.dumps({"bigIdea": "God's love gives life.", "alternatives": ["Love that saves"]}))
    r = ai_ready.post(
        "/api/ai/big-idea", json={"passage": "John 3:16", "title": "So Loved", "audience_focus": "students"}
    )
    assert r.status_code == 200, r.json
    assert r.json == {"big_idea": "God's love gives life.", "alternatives": ["Love that saves"]}
    user_prompt = calls[0]["messages"][1]["content"]
    assert "Bible Passage: John 3:16\nWorking Title: So Loved\nAudience: students" in user_prompt
    assert calls[0]["kwargs"]["json_response"] is True
    assert _usage(app, tenant_id) == [("sermon.suggestBigIdea", 120, 80, {"passage": "John 3:16"})]


def test_big_idea_rejects_bad_replies(ai_ready, fake_ai):
    fake_ai("not json at all")
    r = ai_ready.post("/api/ai/big-idea", json={"passage": "John 3:16"})
    assert r.status_code == 500
    assert r.json["error"]["message"] == "AI service returned invalid response. Please try again."

    fake_ai(json.dumps({"bigIdea": "x", "alternatives": ["a", "b", "c", "d"]}))
    r = ai_ready.post("/api/ai/big-idea", json={"passage": "John 3:16"})
    assert r.status_code == 500
    assert r.json["error"]["message"] == writing.UNEXPECTED_FORMAT


def test_big_idea_input_limits(ai_ready, fake_ai):
    calls = fake_ai("{}")
    assert ai_ready.post("/api/ai/big-idea", json={"passage": ""}).status_code == 400
    assert ai_ready.post("/api/ai/big-idea", json={"passage": "x" * 201}).status_code == 400
    assert calls == []


def test_outline(app, ai_ready, tenant_id, fake_ai):
    reply = {
        "mainPoints": [
            {"label": "Dead in sin", "scriptureRef": "Eph 2:1-3", "summary": "We were lost."},
            {"label": "Alive in Christ", "scriptureRef": "Eph 2:4-7", "summary": "God made us alive."},
        ]
    }
    calls = fake_ai(json.dumps(reply))
    r = ai_ready.post("/api/ai/outline", json={"passage": "Ephesians 2:1-10", "desired_points": 2})
    assert r.status_code == 200, r.json
    assert r.json["main_points"][1] == {
        "label": "Alive in Christ",
        "scripture_ref": "Eph 2:4-7",
        "summary": "God made us alive.",
    }
    assert "propose a 2-point outline" in calls[0]["messages"][0]["content"]
    (row,) = _usage(app, tenant_id)
    assert row[0] == "sermon.suggestOutline"
    assert row[3] == {"passage": "Ephesians 2:1-10", "desired_points": 2}

    assert ai_ready.post("/api/ai/outline", json={"passage": "Eph 2", "desired_points": 6}).status_code == 400
    fake_ai(json.dumps({"mainPoints": [{"label": "x"}]}))
    assert ai_ready.post("/api/ai/outline", json={"passage": "Eph 2"}).status_code == 500


def test_shorten_text(app, ai_ready, tenant_id, fake_ai):
    calls = fake_ai(json.dumps({"shortened": "Grace is enough."}))
    r = ai_ready.post("/api/ai/shorten", json={"text": "Grace is sufficient. " * 10})
    assert r.status_code == 200, r.json
    assert r.json == {"shortened": "Grace is enough."}
    assert "no more than 3 sentences" in calls[0]["messages"][0]["content"]
    assert _usage(app, tenant_id)[0][3]["max_sentences"] == 3
    assert ai_ready.post("/api/ai/shorten", json={"text": "x", "max_sentences": 11}).status_code == 400
    assert ai_ready.post("/api/ai/shorten", json={"text": "x" * 5001}).status_code == 400


def test_bulletin_welcome_text(app, api, ai_ready, tenant_id, fake_ai):
    assert api.put("/api/org/branding", json={"legal_name": "Grace Church"}).status_code == 200
    b = _bulletin(api)
    calls = fake_ai("  Welcome, friends!  ")
    r = ai_ready.post(f"/api/ai/bulletins/{b['id']}/text", json={"mode": "welcome", "guidance": "Mention coffee"})
    assert r.status_code == 200, r.json
    assert r.json == {"text": "Welcome, friends!"}

    system, user = (m["content"] for m in calls[0]["messages"])
    assert system.endswith("Maximum 150 words.")
    assert calls[0]["kwargs"]["max_tokens"] == 300
    assert user.startswith(
        "Write a warm welcome paragraph for Grace Church's bulletin for Sunday, March 1, 2026. "
        'Today\'s message: "Living Hope" by Pastor Ann.'
    )
    assert user.endswith("\n\nAdditional guidance: Mention coffee")
    assert _usage(app, tenant_id)[0][0::3] == ("bulletin.generateText", {"bulletin_id": b["id"], "mode": "welcome"})


def test_bulletin_announcements_text_uses_active_items(api, ai_ready, fake_ai):
    api.post("/api/announcements", json={"title": "Choir", "body": "Practice Thursday"})
    api.post("/api/announcements", json={"title": "Snow", "body": "Service moved online", "priority": "Urgent"})
    b = _bulletin(api, sermon=False)
    calls = fake_ai("Here is what is happening.")
    r = ai_ready.post(f"/api/ai/bulletins/{b['id']}/text", json={"mode": "announcements"})
    assert r.status_code == 200, r.json
    user = calls[0]["messages"][1]["content"]
    assert user.startswith("Write a brief announcements summary for Our Church for Sunday, March 1, 2026.")
    assert "Key items: Snow; Choir." in user
    assert "Upcoming events" not in user


def test_bulletin_text_rules(api, ai_ready, fake_ai):
    calls = fake_ai("text")
    b = _bulletin(api, sermon=False)
    r = ai_ready.post(f"/api/ai/bulletins/{b['id']}/text", json={"mode": "poem"})
    assert r.status_code == 400
    assert ai_ready.post("/api/ai/bulletins/9999/text", json={"mode": "welcome"}).status_code == 404

    assert api.post(f"/api/bulletins/{b['id']}/lock").status_code == 200
    r = ai_ready.post(f"/api/ai/bulletins/{b['id']}/text", json={"mode": "welcome"})
    assert r.status_code == 403
    assert r.json["error"]["message"] == "Cannot generate content for locked bulletin"
    assert calls == []


def test_build_bulletin_prompt_modes():
    context = {"org_name": "Grace", "service_date": "Sunday, March 1, 2026", "sermon_title": None}
    assert writing.build_bulletin_prompt("sermon_summary", context) == (
        "Write a brief sermon summary for Sunday, March 1, 2026 at Grace."
    )
    context.update(sermon_title="Hope", scripture="Ps 23")
    assert writing.build_bulletin_prompt("social_blurb", context).startswith(
        'Write a short social media post for Grace about Sunday, March 1, 2026. Feature the sermon: "Hope" (Ps 23).'
    )
