"""
Short-form AI writing helpers: sermon big idea, outline, tightening a
paragraph, and bulletin copy. Configuration, quota and usage logging are
shared with the sermon helper in `service.py`.
"""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from app.flock.errors import ApiError, forbidden, raise_if_errors
from app.flock.modules.ai.settings import get_api_key
from app.flock.modules.announcements import service as announcements_service
from app.flock.modules.bulletins import service_items as items_service
from app.flock.modules.events import service as events_service
from app.flock.modules.org.service import get_branding
from app.flock.modules.sermon_helper import service as helper
from app.flock.utils import check_length, clean_str, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

FEATURE_BIG_IDEA = "sermon.suggestBigIdea"
FEATURE_OUTLINE = "sermon.suggestOutline"
FEATURE_SHORTEN = "sermon.shortenText"
FEATURE_BULLETIN_TEXT = "bulletin.generateText"

# mode -> (min words, max words)
MODE_WORD_LIMITS: dict[str, tuple[int, int]] = {
    "welcome": (80, 150),
    "sermon_summary": (120, 250),
    "reflection": (80, 180),
    "announcements": (80, 200),
    "social_blurb": (30, 80),
}

DEFAULT_ORG_NAME = "Our Church"
UNEXPECTED_FORMAT = "AI service returned unexpected response format. Please try again."


def ai_config(s: "Session", tenant_id: str) -> dict:
    return {"enabled": helper.is_ai_allowed_in_environment() and bool(get_api_key(s, tenant_id))}


def _bounded_int(errors: list[str], label: str, value: Any, default: int, low: int, high: int) -> int:
    if value is None:
        return default
    n = parse_int(value)
    if n is None or not low <= n <= high:
        errors.append(f"{label} must be an integer between {low} and {high}.")
        return default
    return n


def _text(errors: list[str], label: str, value: Any, *, min_len: int = 0, max_len: int) -> str | None:
    if value is not None and not isinstance(value, str):
        errors.append(f"{label} must be a string.")
        return None
    text = clean_str(value)
    check_length(errors, label, text, min_len=min_len, max_len=max_len)
    return text


def _chat_json(api_key: str, system_prompt: str, user_prompt: str) -> tuple[dict, Any]:
    result = helper._chat(
        api_key,
        system_prompt,
        user_prompt,
        failure_message="Failed to generate content. Please try again.",
        temperature=0.7,
        max_tokens=1500,
        json_response=True,
    )
    try:
        parsed = json.loads(helper.strip_fences(result.content))
    except ValueError as e:
        logger.error("AI reply was not JSON: %.200s", result.content)
        raise ApiError("AI service returned invalid response. Please try again.") from e
    if not isinstance(parsed, dict):
        raise ApiError(UNEXPECTED_FORMAT)
    return parsed, result


def _string_list(value: Any, limit: int) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value) or len(value) > limit:
        raise ApiError(UNEXPECTED_FORMAT)
    return value


def suggest_big_idea(s: "Session", tenant_id: str, payload: dict) -> dict:
    """One-sentence big idea plus up to three alternative wordings."""
    errors: list[str] = []
    passage = _text(errors, "Passage", payload.get("passage"), min_len=1, max_len=200)
    title = _text(errors, "Title", payload.get("title"), max_len=200)
    audience = _text(errors, "Audience focus", payload.get("audience_focus"), max_len=500)
    raise_if_errors(errors)

    api_key = helper.assert_ai_configured(s, tenant_id)
    helper.ensure_quota_available(s, tenant_id)

    system_prompt = (
        "You are helping a pastor write a sermon. Given the sermon text, working title, and audience, "
        "write ONE clear 'big idea' sentence and up to 3 alternative wordings. The big idea must be faithful "
        "to the text, short (one sentence), and in everyday language that a congregation can understand. "
        'Return ONLY valid JSON with keys "bigIdea" (string) and "alternatives" (string array, max 3 items).'
    )
    user_prompt = f"Bible Passage: {passage}"
    if title:
        user_prompt += f"\nWorking Title: {title}"
    if audience:
        user_prompt += f"\nAudience: {audience}"
    user_prompt += '\n\nGenerate a clear, memorable "big idea" for this sermon and provide a few alternative wordings.'

    parsed, result = _chat_json(api_key, system_prompt, user_prompt)
    big_idea = parsed.get("bigIdea")
    if not isinstance(big_idea, str) or not big_idea.strip():
        raise ApiError(UNEXPECTED_FORMAT)
    alternatives = _string_list(parsed.get("alternatives"), 3)

    helper.log_usage(tenant_id, FEATURE_BIG_IDEA, result.model, result.tokens_in, result.tokens_out, {"passage": passage})
    logger.info("Generated big idea tenant=%s passage=%s", tenant_id, passage)
    return {"big_idea": big_idea.strip(), "alternatives": alternatives}


def _outline_point(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise ApiError(UNEXPECTED_FORMAT)
    label, ref, summary = raw.get("label"), raw.get("scriptureRef"), raw.get("summary")
    if not all(isinstance(v, str) for v in (label, ref, summary)):
        raise ApiError(UNEXPECTED_FORMAT)
    return {"label": label, "scripture_ref": ref, "summary": summary}


def suggest_outline(s: "Session", tenant_id: str, payload: dict) -> dict:
    errors: list[str] = []
    passage = _text(errors, "Passage", payload.get("passage"), min_len=1, max_len=200)
    title = _text(errors, "Title", payload.get("title"), max_len=200)
    big_idea = _text(errors, "Big idea", payload.get("big_idea"), max_len=500)
    points = _bounded_int(errors, "desired_points", payload.get("desired_points"), 3, 2, 5)
    raise_if_errors(errors)

    api_key = helper.assert_ai_configured(s, tenant_id)
    helper.ensure_quota_available(s, tenant_id)

    system_prompt = (
        f"You are helping a pastor build a simple sermon outline. Given the passage, title, and big idea, "
        f"propose a {points}-point outline. Each point must include:\n"
        '- "label": a short, memorable phrase (5-8 words max)\n'
        '- "scriptureRef": the specific verses for this point (e.g., "Eph 2:1-3")\n'
        '- "summary": 1-3 sentences explaining the point\n\n'
        "Do NOT write a full manuscript. Focus on clear, biblical exposition that follows the text's flow.\n\n"
        'Return ONLY valid JSON with the structure: { "mainPoints": '
        '[{ "label": string, "scriptureRef": string, "summary": string }] }'
    )
    user_prompt = f"Bible Passage: {passage}"
    if title:
        user_prompt += f"\nSermon Title: {title}"
    if big_idea:
        user_prompt += f"\nBig Idea: {big_idea}"
    user_prompt += f"\n\nCreate a {points}-point sermon outline that faithfully expounds this passage."

    parsed, result = _chat_json(api_key, system_prompt, user_prompt)
    raw_points = parsed.get("mainPoints")
    if not isinstance(raw_points, list):
        raise ApiError(UNEXPECTED_FORMAT)
    main_points = [_outline_point(p) for p in raw_points]

    helper.log_usage(
        tenant_id,
        FEATURE_OUTLINE,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"passage": passage, "desired_points": points},
    )
    logger.info("Generated outline tenant=%s points=%d", tenant_id, len(main_points))
    return {"main_points": main_points}


def shorten_text(s: "Session", tenant_id: str, payload: dict) -> dict:
    errors: list[str] = []
    text = _text(errors, "Text", payload.get("text"), min_len=1, max_len=5000)
    max_sentences = _bounded_int(errors, "max_sentences", payload.get("max_sentences"), 3, 1, 10)
    raise_if_errors(errors)

    api_key = helper.assert_ai_configured(s, tenant_id)
    helper.ensure_quota_available(s, tenant_id)

    system_prompt = (
        f"You are editing a pastor's sermon notes. Tighten the following text to no more than {max_sentences} "
        "sentences in a clear, conversational tone. Preserve the core meaning and any theological points. "
        'Do not add new ideas. Return ONLY valid JSON with the structure: { "shortened": string }'
    )
    parsed, result = _chat_json(api_key, system_prompt, f"Please tighten this text:\n\n{text}")
    shortened = parsed.get("shortened")
    if not isinstance(shortened, str):
        raise ApiError(UNEXPECTED_FORMAT)

    helper.log_usage(
        tenant_id,
        FEATURE_SHORTEN,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"original_length": len(text), "max_sentences": max_sentences},
    )
    return {"shortened": shortened}


def build_bulletin_prompt(mode: str, context: dict, guidance: str | None = None) -> str:
    org, date_label = context["org_name"], context["service_date"]
    title, preacher, scripture = context.get("sermon_title"), context.get("preacher"), context.get("scripture")

    if mode == "welcome":
        prompt = f"Write a warm welcome paragraph for {org}'s bulletin for {date_label}."
        if title:
            prompt += f' Today\'s message: "{title}"'
            if preacher:
                prompt += f" by {preacher}"
        prompt += ". Focus on inviting newcomers and expressing gratitude."
    elif mode == "sermon_summary":
        if not title:
            prompt = f"Write a brief sermon summary for {date_label} at {org}."
        else:
            prompt = f'Write a compelling summary for the sermon titled "{title}"'
            if preacher:
                prompt += f" by {preacher}"
            if scripture:
                prompt += f" based on {scripture}"
            prompt += ". Make it engaging and faith-building."
    elif mode == "reflection":
        prompt = f"Write a reflective devotional paragraph for {org}'s bulletin for {date_label}."
        if title:
            prompt += f' Connect it to today\'s sermon: "{title}"'
            if scripture:
                prompt += f" ({scripture})"
        prompt += ". Include a practical application or encouragement."
    elif mode == "announcements":
        prompt = f"Write a brief announcements summary for {org} for {date_label}."
        if context.get("announcements"):
            prompt += f" Key items: {'; '.join(context['announcements'][:3])}."
        if context.get("events"):
            prompt += f" Upcoming events: {'; '.join(context['events'][:2])}."
        prompt += " Keep it warm and inviting."
    else:
        prompt = f"Write a short social media post for {org} about {date_label}."
        if title:
            prompt += f' Feature the sermon: "{title}"'
            if scripture:
                prompt += f" ({scripture})"
        prompt += '. Make it engaging and shareable. Include a call to action like "Join us!"'

    if guidance:
        prompt += f"\n\nAdditional guidance: {guidance}"
    return prompt


def _org_name(s: "Session", tenant_id: str) -> str:
    branding = get_branding(s, tenant_id)
    if branding.get("brand_pack_id") is None:
        return DEFAULT_ORG_NAME
    return branding.get("church_name") or branding["legal_name"]


def _long_date(d) -> str:
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def generate_bulletin_text(s: "Session", tenant_id: str, bulletin_id: int, payload: dict) -> dict:
    """Draft one block of bulletin copy for `mode`; nothing is saved."""
    errors: list[str] = []
    mode = clean_str(payload.get("mode"))
    if mode not in MODE_WORD_LIMITS:
        errors.append(f"mode must be one of: {', '.join(MODE_WORD_LIMITS)}.")
    guidance = _text(errors, "Guidance", payload.get("guidance"), max_len=1000)
    raise_if_errors(errors)

    api_key = helper.assert_ai_configured(s, tenant_id)
    helper.ensure_quota_available(s, tenant_id)

    b = items_service.load_bulletin(s, tenant_id, bulletin_id)
    if b.status == "locked" or b.locked_at is not None:
        raise forbidden("generate content for", "locked bulletin")

    sermon_item = next(
        (i for i in items_service.active_items(s, tenant_id, b.id) if i.item_type == "sermon"),
        None,
    )
    context: dict[str, Any] = {
        "org_name": _org_name(s, tenant_id),
        "service_date": _long_date(b.service_date),
        "sermon_title": sermon_item.title if sermon_item else None,
        "preacher": sermon_item.leader_name if sermon_item else None,
        "scripture": sermon_item.scripture_reference if sermon_item else None,
    }
    if mode in ("announcements", "social_blurb"):
        context["announcements"] = [a.title for a in announcements_service.list_active(s, tenant_id)[:5]]
        context["events"] = [e.title for e in events_service.upcoming_events(s, tenant_id, days=365, limit=3)]

    max_words = MODE_WORD_LIMITS[mode][1]
    result = helper._chat(
        api_key,
        "You are a helpful assistant for a church bulletin editor. "
        f"Generate concise, warm, faith-filled content. Maximum {max_words} words.",
        build_bulletin_prompt(mode, context, guidance),
        failure_message="Failed to generate content. Please try again.",
        temperature=0.7,
        max_tokens=max_words * 2,
    )
    text = result.content.strip()

    helper.log_usage(
        tenant_id,
        FEATURE_BULLETIN_TEXT,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"bulletin_id": bulletin_id, "mode": mode},
    )
    logger.info("Generated bulletin text tenant=%s bulletin=%s mode=%s length=%d", tenant_id, bulletin_id, mode, len(text))
    return {"text": text}
