"""
Prompt templates for drafting, analysis, summarization and categorization.
"""

import json
from typing import Any, Dict, List, Optional

from .models import Tone


TONE_DESCRIPTIONS = {
    Tone.FORMAL: "formal and precise",
    Tone.CASUAL: "relaxed and casual",
    Tone.FRIENDLY: "warm and friendly",
    Tone.PROFESSIONAL: "professional and courteous",
}

EMAIL_CATEGORIES = [
    "work",
    "personal",
    "marketing",
    "support",
    "news",
    "social",
    "other",
]


def _pretty_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, sort_keys=False, default=str)


def _messages(system_content: str, user_content: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_content},
        {"role": "user", "content": user_content},
    ]


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


def build_draft_messages(
    instruction: str,
    tone: Tone,
    context: Optional[str] = None,
    recipients: Optional[List[str]] = None,
) -> List[Dict[str, str]]:
    """
    Build messages asking the model to write an email from an instruction.
    """
    system_content = (
        "You are an email writing assistant. Write the email the user asks for."
        f" The tone must be {TONE_DESCRIPTIONS.get(tone, 'professional')}.\n\n"
        "CRITICAL RULES:\n"
        "1. You MUST output a single JSON object, with no surrounding text.\n"
        '2. The JSON object MUST have exactly the keys "subject" and "content".\n'
        "3. Do not add explanations about the email.\n"
    )

    user_payload: Dict[str, Any] = {"instruction": instruction}
    if context:
        user_payload["background"] = context
    if recipients:
        user_payload["recipients"] = recipients

    user_content = (
        "Write an email for the following request.\n\n"
        "Input JSON:\n"
        + _pretty_json(user_payload)
        + "\n\nRemember: respond with ONLY the JSON object."
    )
    return _messages(system_content, user_content)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def build_analyze_messages(content: str) -> List[Dict[str, str]]:
    system_content = (
        "You are an email analysis assistant. Analyze the email and return a"
        " structured result covering priority, sentiment, category and action items.\n\n"
        "CRITICAL RULES:\n"
        "1. You MUST output a single JSON object, with no surrounding text.\n"
        "2. The JSON object MUST have this shape:\n"
        "{\n"
        '  "priority": {"level": "high|medium|low", "score": 0.0-1.0, "reasons": ["..."]},\n'
        '  "sentiment": {"overall": "positive|neutral|negative", "score": -1.0-1.0},\n'
        f'  "category": one of {", ".join(EMAIL_CATEGORIES)},\n'
        '  "actionItems": [{"action": "...", "deadline": "... or null"}]\n'
        "}\n"
    )
    user_content = "Analyze the following email:\n\n" + content
    return _messages(system_content, user_content)


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def build_summarize_messages(content: str, max_length: int) -> List[Dict[str, str]]:
    system_content = (
        "You are an email summarization assistant. Summarize the core of the"
        " email concisely."
    )
    user_content = (
        f"Summarize the following email in at most {max_length} characters.\n\n"
        f"{content}\n\n"
        "The summary must:\n"
        "1. capture the key points,\n"
        "2. be short and clear,\n"
        "3. keep names, dates and requested actions,\n"
        f"4. not exceed {max_length} characters.\n"
        "Reply with the summary text only."
    )
    return _messages(system_content, user_content)


# ---------------------------------------------------------------------------
# Categorization
# ---------------------------------------------------------------------------


def build_categorize_messages(content: str) -> List[Dict[str, str]]:
    system_content = (
        "You are an email classification assistant. Choose the best category"
        f" for the email from: {', '.join(EMAIL_CATEGORIES)}.\n\n"
        "CRITICAL RULES:\n"
        "1. You MUST output a single JSON object, with no surrounding text.\n"
        '2. The JSON object MUST have the keys "primaryCategory" (string),'
        ' "confidence" (0.0-1.0) and "suggestedTags" (array of strings).\n'
    )
    user_content = "Classify the following email:\n\n" + content
    return _messages(system_content, user_content)
