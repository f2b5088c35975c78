from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.flock.db import bind_tenant
from app.flock.errors import ApiError, BadRequest, Forbidden, NotFound, PreconditionFailed
from app.flock.modules.ai.client import AiClientError, ChatResult, OpenAIClient
from app.flock.modules.ai.quota import get_ai_quota_status
from app.flock.modules.ai.settings import get_api_key
from app.flock.modules.org.service import get_branding
from app.flock.modules.sermon_helper import guardrails, prompts
from app.flock.modules.sermons import service as sermons_service
from app.flock.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

AI_ALLOWED_ENVS = ("development", "dev", "staging", "test")

FEATURE_SUGGESTIONS = "sermon.helperSuggestions"
FEATURE_MANUSCRIPT = "sermon.manuscriptImport"
FEATURE_DRAFT = "sermon.generateDraft"

SUGGESTION_SECTIONS = (
    "scripture_suggestions",
    "outline",
    "application_ideas",
    "hymn_themes",
    "illustration_suggestions",
)
# section -> (required string fields, optional string fields)
_SECTION_FIELDS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "scripture_suggestions": (("reference",), ("reason",)),
    "outline": (("type",), ("title", "text")),
    "application_ideas": (("audience", "idea"), ()),
    "hymn_themes": (("theme",), ("reason",)),
    "illustration_suggestions": (("id", "title", "summary"), ("for_section",)),
}

MANUSCRIPT_MIN = 100
MANUSCRIPT_MAX = 50_000
DRAFT_MIN_LENGTH = 200


def empty_suggestions() -> dict:
    return {k: [] for k in SUGGESTION_SECTIONS}


def is_ai_allowed_in_environment() -> bool:
    return (current_app.config.get("DEPLOY_ENV") or "development") in AI_ALLOWED_ENVS


def assert_ai_configured(s: "Session", tenant_id: str) -> str:
    if not is_ai_allowed_in_environment():
        raise PreconditionFailed("AI features are disabled in production.")
    api_key = get_api_key(s, tenant_id)
    if not api_key:
        raise PreconditionFailed("AI features are not configured. Please configure AI in Settings.")
    return api_key


def ensure_quota_available(s: "Session", tenant_id: str) -> None:
    quota = get_ai_quota_status(s, tenant_id)
    if not quota["enabled"]:
        raise Forbidden("AI features are disabled for this tenant.")
    if quota["over_limit"]:
        raise Forbidden("Monthly AI usage limit reached.")


def log_usage(
    tenant_id: str,
    feature: str,
    model: str,
    tokens_in: int,
    tokens_out: int,
    meta: dict[str, Any] | None = None,
) -> None:
    """Record one AI call in its own transaction. Failures are logged only."""
    from app.flock.modules.ai.models import AiUsageEvent

    sm = current_app.extensions["sqlalchemy_sessionmaker"]
    us = sm()
    try:
        bind_tenant(us, tenant_id)
        us.add(
            AiUsageEvent(
                tenant_id=tenant_id,
                feature=feature,
                model=model,
                tokens_in=tokens_in,
                tokens_out=tokens_out,
                meta=meta,
            )
        )
        us.commit()
    except SQLAlchemyError as e:
        us.rollback()
        logger.warning("Failed to log AI usage tenant=%s feature=%s: %s", tenant_id, feature, e)
    finally:
        us.close()


def call_ai(api_key: str, messages: list[dict[str, str]], **kwargs: Any) -> ChatResult:
    client = OpenAIClient(
        api_key=api_key,
        base_url=current_app.config.get("OPENAI_BASE_URL") or "https://api.openai.com/v1",
        model=current_app.config.get("AI_MODEL") or "gpt-4o-mini",
        timeout_seconds=int(current_app.config.get("AI_TIMEOUT_SECONDS") or 60),
    )
    return client.chat(messages, **kwargs)


def _chat(api_key: str, system_prompt: str, user_prompt: str, *, failure_message: str, **kwargs: Any) -> ChatResult:
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    try:
        result = call_ai(api_key, messages, **kwargs)
    except AiClientError as e:
        logger.error("AI provider call failed: %s", e)
        raise ApiError(failure_message) from e
    if not result.content.strip():
        raise ApiError("AI service returned empty response.")
    return result


def _church_context(s: "Session", tenant_id: str) -> tuple[str, dict]:
    branding = get_branding(s, tenant_id)
    return branding.get("church_name") or branding["legal_name"], branding["theology_profile"]


def strip_fences(raw: str, prefixes: tuple[str, ...] = ("```json", "```")) -> str:
    cleaned = (raw or "").strip()
    for prefix in prefixes:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix) :]
            break
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _coerce_section(section: str, items: Any) -> list[dict] | None:
    if items is None:
        return []
    if not isinstance(items, list):
        return None
    required, optional = _SECTION_FIELDS[section]
    out: list[dict] = []
    for item in items:
        if not isinstance(item, dict):
            return None
        row: dict[str, Any] = {}
        for key in required:
            if not isinstance(item.get(key), str):
                return None
            row[key] = item[key]
        for key in optional:
            value = item.get(key)
            if value is not None and not isinstance(value, str):
                return None
            if key in item:
                row[key] = value
        if section == "outline" and row["type"] not in ("section", "point"):
            return None
        out.append(row)
    return out


def parse_ai_response(raw: str) -> tuple[dict, bool]:
    """Suggestions parsed from a model reply, and whether the empty fallback was used."""
    try:
        parsed = json.loads(strip_fences(raw))
    except ValueError:
        logger.error("Sermon helper reply is not valid JSON: %.200s", raw)
        return empty_suggestions(), True
    if not isinstance(parsed, dict):
        return empty_suggestions(), True
    suggestions: dict[str, list] = {}
    for section in SUGGESTION_SECTIONS:
        items = _coerce_section(section, parsed.get(section))
        if items is None:
            logger.error("Sermon helper reply failed schema validation (section=%s)", section)
            return empty_suggestions(), True
        suggestions[section] = items
    return suggestions, False


def parse_draft_response(raw: str) -> tuple[str, bool]:
    cleaned = strip_fences(raw, ("```markdown", "```md", "```"))
    if len(cleaned) < DRAFT_MIN_LENGTH:
        return "", False
    return cleaned, True


def get_suggestions(s: "Session", tenant_id: str, sermon_id: int, theme: str, notes: str | None = None) -> dict:
    theme = (theme or "").strip()
    if not theme or len(theme) > 500:
        raise BadRequest("theme must be between 1 and 500 characters")
    if notes is not None and len(notes) > 2000:
        raise BadRequest("notes must be at most 2000 characters")

    api_key = assert_ai_configured(s, tenant_id)
    ensure_quota_available(s, tenant_id)

    sermon = sermons_service.serialize_sermon(sermons_service.get_sermon(s, tenant_id, sermon_id))
    plan = sermons_service.find_plan(s, tenant_id, sermon_id)
    style_profile = plan.style_profile if plan is not None else None
    church_name, profile = _church_context(s, tenant_id)

    matched = guardrails.find_restricted_topic(
        guardrails.topic_detection_text(theme, notes, sermon["title"]),
        profile["restricted_topics"],
    )
    if matched:
        logger.warning(
            "Restricted topic guardrail hit, AI skipped tenant=%s sermon=%s topics=%s",
            tenant_id,
            sermon_id,
            len(profile["restricted_topics"]),
        )
        log_usage(tenant_id, FEATURE_SUGGESTIONS, "none", 0, 0, {"sermon_id": sermon_id, "restricted_topic_triggered": True})
        return {
            "suggestions": empty_suggestions(),
            "meta": {"fallback": False, "restricted_topic_triggered": True},
        }

    result = _chat(
        api_key,
        prompts.build_system_prompt(church_name, profile),
        prompts.build_suggestions_prompt(theme, sermon, notes, style_profile),
        failure_message="AI service temporarily unavailable. Please try again.",
        temperature=0.7,
        max_tokens=2000,
        json_response=True,
    )
    parsed, fallback = parse_ai_response(result.content)
    suggestions, political = guardrails.filter_political_suggestions(parsed)
    if political:
        logger.warning("Political content filtered from AI suggestions tenant=%s sermon=%s", tenant_id, sermon_id)

    log_usage(
        tenant_id,
        FEATURE_SUGGESTIONS,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"sermon_id": sermon_id, "theme": theme, "fallback": fallback, "political_content_detected": political},
    )
    return {
        "suggestions": suggestions,
        "meta": {
            "fallback": fallback,
            "tokens_used": result.tokens_in + result.tokens_out,
            "model": result.model,
            "political_content_detected": political,
        },
    }


def import_from_manuscript(s: "Session", tenant_id: str, sermon_id: int, manuscript: str) -> dict:
    """Extract a draft plan from manuscript text. The manuscript itself is not stored."""
    manuscript = manuscript or ""
    if len(manuscript) < MANUSCRIPT_MIN or len(manuscript) > MANUSCRIPT_MAX:
        raise BadRequest(f"Manuscript text must be between {MANUSCRIPT_MIN} and {MANUSCRIPT_MAX} characters")

    api_key = assert_ai_configured(s, tenant_id)
    ensure_quota_available(s, tenant_id)

    sermon = sermons_service.get_sermon(s, tenant_id, sermon_id)
    church_name, profile = _church_context(s, tenant_id)

    result = _chat(
        api_key,
        prompts.build_manuscript_system_prompt(church_name, profile),
        prompts.build_manuscript_prompt(manuscript),
        failure_message="Failed to process manuscript. Please try again.",
        temperature=0.5,
        max_tokens=3000,
        json_response=True,
    )
    try:
        parsed = json.loads(strip_fences(result.content))
    except ValueError as e:
        logger.error("Manuscript import reply is not valid JSON")
        raise ApiError("Failed to parse AI response. Please try again.") from e

    if not isinstance(parsed, dict):
        raise ApiError("AI returned invalid structure. Please try again.")
    elements = parsed.get("elements") or []
    supporting = parsed.get("supporting_texts") or []
    text_fields = {k: parsed.get(k) or "" for k in ("title", "big_idea", "primary_text")}
    if (
        sermons_service.validate_elements(elements)
        or not isinstance(supporting, list)
        or not all(isinstance(t, str) for t in supporting)
        or not all(isinstance(v, str) for v in text_fields.values())
    ):
        logger.error("Manuscript import reply failed validation")
        raise ApiError("AI returned invalid structure. Please try again.")

    log_usage(
        tenant_id,
        FEATURE_MANUSCRIPT,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"sermon_id": sermon_id, "elements_extracted": len(elements)},
    )
    return {
        "draft": {
            "sermon_id": sermon_id,
            "title": text_fields["title"][:200] or sermon.title,
            "big_idea": text_fields["big_idea"][:500],
            "primary_text": text_fields["primary_text"][:100],
            "supporting_texts": supporting,
            "elements": elements,
            "tags": ["imported"],
        },
        "meta": {
            "tokens_used": result.tokens_in + result.tokens_out,
            "model": result.model,
            "extracted_elements_count": len(elements),
        },
    }


def generate_draft(s: "Session", tenant_id: str, sermon_id: int) -> dict:
    """Generate an ephemeral preaching manuscript (markdown) from the sermon's saved plan."""
    api_key = assert_ai_configured(s, tenant_id)
    ensure_quota_available(s, tenant_id)

    sermons_service.get_sermon(s, tenant_id, sermon_id)
    plan_row = sermons_service.find_plan(s, tenant_id, sermon_id)
    if plan_row is None:
        raise NotFound("No sermon plan found. Please create a plan first before generating a draft.")
    plan = sermons_service.serialize_plan(plan_row)
    church_name, profile = _church_context(s, tenant_id)

    if guardrails.find_restricted_topic(guardrails.plan_topic_text(plan), profile["restricted_topics"]):
        logger.warning("Restricted topic in sermon plan, draft skipped tenant=%s sermon=%s", tenant_id, sermon_id)
        log_usage(tenant_id, FEATURE_DRAFT, "none", 0, 0, {"sermon_id": sermon_id, "restricted_topic_triggered": True})
        raise Forbidden(
            "Draft generation is disabled for sermons containing restricted topics. "
            "Please handle this content personally."
        )

    result = _chat(
        api_key,
        prompts.build_system_prompt(church_name, profile),
        prompts.build_draft_prompt(plan, profile),
        failure_message="Failed to generate draft. Please try again.",
        temperature=0.7,
        max_tokens=4000,
    )
    markdown, valid = parse_draft_response(result.content)
    if not valid:
        logger.error("Draft reply too short sermon=%s", sermon_id)
        raise ApiError("AI generated incomplete draft. Please try again.")
    markdown, political = guardrails.filter_political_markdown(markdown)
    if political:
        logger.warning("Political content filtered from draft tenant=%s sermon=%s", tenant_id, sermon_id)

    log_usage(
        tenant_id,
        FEATURE_DRAFT,
        result.model,
        result.tokens_in,
        result.tokens_out,
        {"sermon_id": sermon_id, "style_profile": plan["style_profile"], "political_content_detected": political},
    )
    return {
        "draft": {
            "sermon_id": sermon_id,
            "style_profile": plan["style_profile"],
            "theology_tradition": profile["tradition"],
            "created_at": iso(datetime.utcnow()),
            "content_markdown": markdown,
        },
        "meta": {
            "tokens_used": result.tokens_in + result.tokens_out,
            "model": result.model,
            "political_content_detected": political,
        },
    }
