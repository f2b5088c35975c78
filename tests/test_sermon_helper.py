import json

import pytest

from app.flock.db import session_scope
from app.flock.modules.ai.client import AiClientError
from app.flock.modules.ai.models import AiUsageEvent
from app.flock.modules.sermon_helper import guardrails, service as helper
from app.flock.modules.sermon_helper.prompts import build_system_prompt

SUGGESTIONS = {
    "scripture_suggestions": [{"reference": "1 Peter 1:3-9", "reason": "Living hope"}],
    "outline": [{"type": "section", "title": "Hope Born"}, {"type": "point", "text": "Hope is living"}],
    "application_ideas": [{"audience": "all", "idea": "Write down one fear and one promise."}],
    "hymn_themes": [{"theme": "resurrection", "reason": "Easter focus"}],
    "illustration_suggestions": [
        {"id": "illus-1", "title": "Seed in winter", "summary": "A seed waits.", "for_section": None},
        {"id": "illus-2", "title": "Vote for hope", "summary": "A campaign rally story.", "for_section": None},
    ],
}


@pytest.fixture()
def sermon(api):
    return api.post("/api/sermons", json={"title": "Living Hope", "sermon_date": "2026-04-05"}).json


def _usage(app, tenant_id):
    with session_scope(app, tenant_id=tenant_id) as s:
        return [(e.feature, e.model, e.tokens_in, e.tokens_out) for e in s.query(AiUsageEvent).all()]


def test_parse_ai_response():
    parsed, fallback = helper.parse_ai_response("```json\n" + json.dumps(SUGGESTIONS) + "\n```")
    assert fallback is False
    assert parsed["outline"][1] == {"type": "point", "text": "Hope is living"}

    assert helper.parse_ai_response("not json") == (helper.empty_suggestions(), True)
    bad = dict(SUGGESTIONS, outline=[{"type": "chapter", "title": "x"}])
    assert helper.parse_ai_response(json.dumps(bad))[1] is True


def test_guardrails():
    assert guardrails.find_restricted_topic("Sermon on Divorce and grace", ["divorce"]) == "divorce"
    assert guardrails.find_restricted_topic("grace", ["  "]) is None
    text, detected = guardrails.filter_political_markdown("Do not Vote For anyone here.")
    assert detected is True
    assert text == "Do not [content filtered] anyone here."


def test_system_prompt_carries_profile():
    prompt = build_system_prompt(
        "Grace Church",
        {"tradition": "Reformed", "bible_translation": "ESV", "sensitivity": "conservative", "restricted_topics": []},
    )
    assert 'for the church "Grace Church"' in prompt
    assert "Restricted topics: none specified" in prompt
    assert "be very cautious" in prompt


def test_suggestions_require_configuration(api, sermon):
    r = api.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "hope"})
    assert r.status_code == 412
    assert r.json["error"]["message"] == "AI features are not configured. Please configure AI in Settings."


def test_suggestions_blocked_in_production(app, ai_ready, sermon):
    app.config["DEPLOY_ENV"] = "production"
    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "hope"})
    assert r.status_code == 412
    assert r.json["error"]["message"] == "AI features are disabled in production."


def test_suggestions_success_filters_politics_and_logs_usage(app, ai_ready, sermon, tenant_id, fake_ai):
    calls = fake_ai(json.dumps(SUGGESTIONS))
    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "Resurrection hope"})
    assert r.status_code == 200, r.json
    body = r.json
    assert [i["id"] for i in body["suggestions"]["illustration_suggestions"]] == ["illus-1"]
    assert body["meta"] == {
        "fallback": False,
        "tokens_used": 200,
        "model": "gpt-4o-mini",
        "political_content_detected": True,
    }
    assert calls[0]["api_key"] == "sk-test-abcd"
    assert calls[0]["kwargs"]["json_response"] is True
    assert _usage(app, tenant_id) == [("sermon.helperSuggestions", "gpt-4o-mini", 120, 80)]


def test_restricted_topic_skips_the_model(app, api, ai_ready, sermon, tenant_id, fake_ai):
    assert api.put("/api/org/branding", json={"legal_name": "Grace Church"}).status_code == 200
    r = api.put("/api/sermon-helper/theology-profile", json={"restricted_topics": ["divorce"]})
    assert r.status_code == 200, r.json
    calls = fake_ai("{}")

    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "Divorce and grace"})
    assert r.status_code == 200
    assert r.json["meta"] == {"fallback": False, "restricted_topic_triggered": True}
    assert r.json["suggestions"] == helper.empty_suggestions()
    assert calls == []
    assert _usage(app, tenant_id) == [("sermon.helperSuggestions", "none", 0, 0)]


def test_quota_exhausted_is_forbidden(app, ai_ready, sermon, tenant_id, fake_ai):
    fake_ai(json.dumps(SUGGESTIONS))
    with session_scope(app, tenant_id=tenant_id) as s:
        s.add(AiUsageEvent(tenant_id=tenant_id, feature="x", model="gpt-4o-mini", tokens_in=50_000, tokens_out=0))
    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "hope"})
    assert r.status_code == 403
    assert r.json["error"]["message"] == "Monthly AI usage limit reached."


def test_provider_failure_is_a_500(ai_ready, sermon, fake_ai):
    fake_ai("", error=AiClientError("boom"))
    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": "hope"})
    assert r.status_code == 500
    assert r.json["error"]["message"] == "AI service temporarily unavailable. Please try again."


def test_theme_is_validated(ai_ready, sermon):
    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/suggestions", json={"theme": ""})
    assert r.status_code == 400


def test_import_manuscript(ai_ready, sermon, fake_ai):
    reply = {
        "title": "Hope Alive",
        "big_idea": "Hope lives because Jesus lives.",
        "primary_text": "1 Peter 1:3-9",
        "supporting_texts": ["Romans 5:1-5"],
        "elements": [{"id": "el-1", "type": "point", "text": "Hope is alive"}],
    }
    fake_ai(json.dumps(reply))
    url = f"/api/sermon-helper/sermons/{sermon['id']}/import-manuscript"

    assert ai_ready.post(url, json={"manuscript_text": "too short"}).status_code == 400
    r = ai_ready.post(url, json={"manuscript_text": "Brothers and sisters, " * 10})
    assert r.status_code == 200, r.json
    assert r.json["draft"]["title"] == "Hope Alive"
    assert r.json["draft"]["tags"] == ["imported"]
    assert r.json["meta"]["extracted_elements_count"] == 1


def test_generate_draft(ai_ready, sermon, fake_ai):
    url = f"/api/sermon-helper/sermons/{sermon['id']}/draft"
    r = ai_ready.post(url)
    assert r.status_code == 404

    ai_ready.put(
        f"/api/sermons/{sermon['id']}/plan",
        json={"title": "Living Hope", "elements": [{"id": "a", "type": "point", "text": "Hope is living"}]},
    )
    fake_ai("short")
    assert ai_ready.post(url).status_code == 500

    fake_ai("```markdown\n## Introduction\n" + "Hope is a living thing. " * 20 + "\n```")
    r = ai_ready.post(url)
    assert r.status_code == 200, r.json
    assert r.json["draft"]["content_markdown"].startswith("## Introduction")
    assert r.json["meta"]["political_content_detected"] is False


def test_draft_refused_for_restricted_plan_topic(app, api, ai_ready, sermon, tenant_id, fake_ai):
    assert api.put("/api/org/branding", json={"legal_name": "Grace Church"}).status_code == 200
    assert api.put("/api/sermon-helper/theology-profile", json={"restricted_topics": ["divorce"]}).status_code == 200
    ai_ready.put(
        f"/api/sermons/{sermon['id']}/plan",
        json={"title": "Living Hope", "elements": [{"id": "a", "type": "point", "text": "Grace after divorce"}]},
    )
    calls = fake_ai("## Introduction\n" + "Hope is a living thing. " * 20)

    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/draft")
    assert r.status_code == 403
    assert r.json["error"]["message"].startswith("Draft generation is disabled for sermons containing restricted topics.")
    assert calls == []
    assert _usage(app, tenant_id) == [("sermon.generateDraft", "none", 0, 0)]
    with session_scope(app, tenant_id=tenant_id) as s:
        assert s.query(AiUsageEvent).one().meta == {"sermon_id": sermon["id"], "restricted_topic_triggered": True}


def test_draft_masks_political_phrases(app, ai_ready, sermon, tenant_id, fake_ai):
    ai_ready.put(
        f"/api/sermons/{sermon['id']}/plan",
        json={"title": "Living Hope", "elements": [{"id": "a", "type": "point", "text": "Hope is living"}]},
    )
    fake_ai("## Introduction\n" + "Hope is a living thing. " * 20 + "\nDo not Vote For fear this week.")

    r = ai_ready.post(f"/api/sermon-helper/sermons/{sermon['id']}/draft")
    assert r.status_code == 200, r.json
    markdown = r.json["draft"]["content_markdown"]
    assert "Do not [content filtered] fear this week." in markdown
    assert "vote for" not in markdown.lower()
    assert r.json["meta"]["political_content_detected"] is True
    with session_scope(app, tenant_id=tenant_id) as s:
        event = s.query(AiUsageEvent).one()
        assert event.feature == "sermon.generateDraft"
        assert event.meta["political_content_detected"] is True


def test_hymn_search(api):
    r = api.get("/api/sermon-helper/hymns?q=grace")
    assert r.status_code == 200
    assert isinstance(r.json["hymns"], list)
