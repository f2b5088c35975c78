"""
Content guardrails around AI sermon help.

Restricted topics (from the church's theology profile) block the AI call
entirely. Political keywords are filtered out of whatever comes back.
"""
from __future__ import annotations

import re

POLITICAL_KEYWORDS = (
    "republican",
    "democrat",
    "gop",
    "dnc",
    "trump",
    "biden",
    "harris",
    "obama",
    "maga",
    "liberal party",
    "conservative party",
    "vote for",
    "election campaign",
    "political party",
    "far-left",
    "far-right",
    "left-wing",
    "right-wing",
)

FILTERED_PLACEHOLDER = "[content filtered]"


def _norm(text: str | None) -> str:
    return (text or "").lower().strip()


def topic_detection_text(theme: str, notes: str | None, sermon_title: str | None) -> str:
    return _norm(" ".join(p for p in (theme, notes or "", sermon_title or "") if p))


def find_restricted_topic(content: str, restricted_topics: list[str]) -> str | None:
    """First restricted topic contained in `content` (original casing), else None."""
    haystack = _norm(content)
    for topic in restricted_topics or []:
        needle = _norm(topic)
        if needle and needle in haystack:
            return topic
    return None


def contains_political_content(text: str | None) -> bool:
    haystack = _norm(text)
    return any(k in haystack for k in POLITICAL_KEYWORDS)


def _item_texts(section: str, item: dict) -> list[str]:
    if section == "scripture_suggestions":
        return [item.get("reference"), item.get("reason")]
    if section == "outline":
        return [item.get("title") or item.get("text")]
    if section == "application_ideas":
        return [item.get("idea")]
    if section == "hymn_themes":
        return [item.get("theme"), item.get("reason")]
    if section == "illustration_suggestions":
        return [item.get("title"), item.get("summary")]
    return []


def filter_political_suggestions(suggestions: dict) -> tuple[dict, bool]:
    """Drop every suggestion that mentions a political keyword."""
    detected = False
    filtered: dict[str, list] = {}
    for section, items in suggestions.items():
        kept = []
        for item in items or []:
            if any(contains_political_content(t) for t in _item_texts(section, item)):
                detected = True
                continue
            kept.append(item)
        filtered[section] = kept
    return filtered, detected


def filter_political_markdown(markdown: str) -> tuple[str, bool]:
    detected = False
    for keyword in POLITICAL_KEYWORDS:
        pattern = re.compile(re.escape(keyword), re.IGNORECASE)
        if pattern.search(markdown):
            detected = True
            markdown = pattern.sub(FILTERED_PLACEHOLDER, markdown)
    return markdown, detected


def plan_topic_text(plan: dict) -> str:
    """Flatten a sermon plan into one string for restricted-topic detection."""
    parts = [plan.get("title"), plan.get("big_idea"), plan.get("primary_text")]
    parts.extend(plan.get("supporting_texts") or [])
    for el in plan.get("elements") or []:
        kind = el.get("type")
        if kind == "section":
            parts.append(el.get("title"))
        elif kind in ("point", "note"):
            parts.append(el.get("text"))
        elif kind == "scripture":
            parts.append(f"{el.get('reference') or ''} {el.get('note') or ''}")
        elif kind in ("hymn", "illustration"):
            parts.append(f"{el.get('title') or ''} {el.get('note') or ''}")
    return " ".join(p for p in parts if p)
