"""
Language-model collaborator: drafting, analysis, summarization and
categorization on top of the LLM client.

Model output is validated with pydantic. When the model answers without a
usable JSON object, analysis and categorization fall back to neutral
defaults; transport and quota errors always propagate as LLMError.
"""

import logging
import math
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .config import Config
from .llm_client import LLMError, LLMResponseFormatError, call_llm_json, call_llm_text
from .models import (
    Categorization,
    DraftResult,
    EmailAnalysis,
    PriorityVerdict,
    Tone,
)
from .prompts import (
    build_analyze_messages,
    build_categorize_messages,
    build_draft_messages,
    build_summarize_messages,
)

logger = logging.getLogger(__name__)

DEFAULT_DRAFT_CONFIDENCE = 0.85


def _normalize_baseline(raw_priority: Any) -> Dict[str, Any]:
    """
    Rebuild the model's priority as a verdict whose level is bucketed from
    its score; the model's own level label is not trusted.
    """
    if not isinstance(raw_priority, dict):
        return PriorityVerdict.neutral().model_dump()

    try:
        score = float(raw_priority.get("score", 0.5))
    except (TypeError, ValueError):
        score = 0.5
    if math.isnan(score):
        score = 0.5

    reasons = raw_priority.get("reasons") or []
    if not isinstance(reasons, list):
        reasons = [str(reasons)]

    return PriorityVerdict.from_score(score, [str(r) for r in reasons]).model_dump()


class LanguageModelService:
    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self.client = client

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    async def generate_draft(
        self,
        instruction: str,
        context: Optional[str] = None,
        tone: Tone = Tone.PROFESSIONAL,
        recipients: Optional[List[str]] = None,
    ) -> DraftResult:
        messages = build_draft_messages(instruction, tone, context=context, recipients=recipients)
        raw = await call_llm_json(
            self.config, messages, max_tokens=1000, temperature=0.7, client=self.client
        )

        raw.setdefault("confidence", DEFAULT_DRAFT_CONFIDENCE)
        try:
            draft = DraftResult.model_validate(raw)
        except ValidationError as ve:
            raise LLMError(f"Model returned an invalid draft: {ve}") from ve

        if not draft.content.strip():
            raise LLMError("Model returned an empty draft.")
        if not draft.subject.strip():
            draft.subject = "(no subject)"
        return draft

    async def analyze(self, content: str) -> EmailAnalysis:
        messages = build_analyze_messages(content)
        try:
            raw = await call_llm_json(
                self.config, messages, max_tokens=500, temperature=0.3, client=self.client
            )
        except LLMResponseFormatError as e:
            logger.warning("Could not parse email analysis, using defaults: %s", e)
            return EmailAnalysis(
                priority=PriorityVerdict.from_score(0.5, ["could not determine priority"])
            )

        raw["priority"] = _normalize_baseline(raw.get("priority"))
        try:
            return EmailAnalysis.model_validate(raw)
        except ValidationError as ve:
            logger.warning("Model analysis failed validation, keeping priority only: %s", ve)
            return EmailAnalysis(priority=PriorityVerdict.model_validate(raw["priority"]))

    async def summarize(self, content: str, max_length: int = 150) -> str:
        messages = build_summarize_messages(content, max_length)
        summary = await call_llm_text(
            self.config,
            messages,
            max_tokens=math.ceil(max_length * 1.5),
            temperature=0.3,
            client=self.client,
        )
        if not summary:
            raise LLMError("Model returned an empty summary.")
        return summary

    async def categorize(self, content: str) -> Categorization:
        messages = build_categorize_messages(content)
        try:
            raw = await call_llm_json(
                self.config, messages, max_tokens=200, temperature=0.2, client=self.client
            )
        except LLMResponseFormatError as e:
            logger.warning("Could not parse categorization, using defaults: %s", e)
            return Categorization()

        try:
            return Categorization.model_validate(raw)
        except ValidationError as ve:
            logger.warning("Model categorization failed validation, using defaults: %s", ve)
            return Categorization()
