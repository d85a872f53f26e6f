"""SolveNote Suggestion Generator

Adapter over the external LLM. Asks for a JSON array of
{type, content} objects and normalises whatever comes back. When the LLM
is not configured or its output is unusable, a fixed set of general
suggestions is returned instead.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json
import logging
import re

from solvenote.models.suggestions import Suggestion, SuggestionType
from utils import llm_chat

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an assistant that generates 3 helpful suggestion objects for a user's problem. "
    "Respond ONLY with valid JSON: an array of objects with the fields: type (one of "
    "\"solution\", \"insight\", \"action\"), and content (a concise helpful suggestion). "
    "Example: [{\"type\":\"solution\",\"content\":\"...\"},{\"type\":\"insight\",\"content\":\"...\"},"
    "{\"type\":\"action\",\"content\":\"...\"}]"
)

FALLBACK_SUGGESTIONS = [
    {
        "type": "solution",
        "content": "Break the problem into smaller, manageable parts. Focus on what you can control and take one concrete action step, even if it's small.",
    },
    {
        "type": "insight",
        "content": "Every problem contains the seeds of its own solution. Sometimes the challenge is exactly what you need to grow and develop new capabilities.",
    },
    {
        "type": "action",
        "content": "Write down three possible approaches to this problem. Choose the simplest one and take the first step today.",
    },
]

_JSON_ARRAY = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")


def parse_suggestions(raw: str) -> Optional[List[Dict[str, str]]]:
    """Extract a list of {type, content} dicts from LLM output, or None."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        match = _JSON_ARRAY.search(raw)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return None

    if not isinstance(parsed, list):
        return None

    items = []
    for item in parsed:
        if isinstance(item, dict):
            content = str(item.get("content") or "").strip()
            kind = item.get("type")
        else:
            content = str(item).strip()
            kind = None
        if content:
            items.append({"type": kind, "content": content})
    return items or None


def _coerce_type(value: Any) -> SuggestionType:
    try:
        return SuggestionType(str(value).lower())
    except ValueError:
        return SuggestionType.SOLUTION


def format_suggestions(items: List[Dict[str, Any]]) -> List[Suggestion]:
    now = datetime.now(timezone.utc)
    stamp = int(now.timestamp() * 1000)
    return [
        Suggestion(
            id=f"suggestion-{stamp}-{index}",
            type=_coerce_type(item.get("type")),
            content=item["content"],
            timestamp=now,
        )
        for index, item in enumerate(items)
    ]


class SuggestionGenerator:
    """LLM-backed suggestion source with a static fallback."""

    async def generate(self, problem: str) -> List[Suggestion]:
        items = None
        if llm_chat.is_configured():
            try:
                raw = await llm_chat.chat(
                    SYSTEM_PROMPT,
                    f"Problem: {problem}\n\nGenerate 3 useful suggestions (solution, insight, action) tailored to the problem.",
                )
                items = parse_suggestions(raw)
                if not items:
                    logger.warning("LLM returned no usable suggestions - using fallback")
            except Exception as e:
                logger.error(f"Error calling LLM for suggestions: {e}")

        return format_suggestions(items or FALLBACK_SUGGESTIONS)


# Global generator instance
suggestion_generator = SuggestionGenerator()
