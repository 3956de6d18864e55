"""
Task execution with per-sub-task failure isolation.

Every sub-task of a plan runs as its own asyncio task. A sub-task that
depends on another one's output awaits it first; everything else runs
concurrently. Any exception inside a sub-task is recorded as a
SubTaskFailure under that sub-task's key and never reaches its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .cache import ResultCache
from .errors import CacheUnavailable
from .models import (
    CacheEntry,
    CacheEntryUpdate,
    Categorization,
    DraftResult,
    EmailAnalysis,
    EmailDraft,
    EmailMetadata,
    PriorityVerdict,
    Request,
    Tone,
    UserPreferences,
)
from .planner import SubTask
from .rules import PriorityRuleEngine

logger = logging.getLogger(__name__)

DEFAULT_DRAFT_INSTRUCTION = "Write an email"

# sub-task -> sub-task whose result it needs
DEPENDENCIES: Dict[SubTask, SubTask] = {
    SubTask.PRIORITIZE: SubTask.ANALYZE,
}

MODEL_SUBTASKS = frozenset(
    {SubTask.DRAFT, SubTask.ANALYZE, SubTask.SUMMARIZE, SubTask.CATEGORIZE}
)


class LanguageModel(Protocol):
    async def generate_draft(
        self,
        instruction: str,
        context: Optional[str] = None,
        tone: Tone = Tone.PROFESSIONAL,
        recipients: Optional[List[str]] = None,
    ) -> DraftResult:
        ...

    async def analyze(self, content: str) -> EmailAnalysis:
        ...

    async def summarize(self, content: str, max_length: int = 150) -> str:
        ...

    async def categorize(self, content: str) -> Categorization:
        ...


class SubTaskFailure(BaseModel):
    """Recorded in place of a sub-task's value when it raised."""

    error: str

    model_config = ConfigDict(frozen=True)


@dataclass
class TaskContext:
    request: Request
    preferences: UserPreferences = field(default_factory=UserPreferences)
    metadata: EmailMetadata = field(default_factory=EmailMetadata)
    # sub-tasks answered from the result cache instead of the model
    cache_hits: List[SubTask] = field(default_factory=list)

    @property
    def content(self) -> str:
        return self.request.payload.content

    @property
    def email_id(self) -> Optional[str]:
        return self.request.payload.email_id

    def require_content(self) -> str:
        if not self.content.strip():
            raise ValueError("Missing email content.")
        return self.content


Handler = Callable[[TaskContext, Dict[SubTask, Any]], Awaitable[Any]]


class TaskExecutor:
    def __init__(
        self,
        model: LanguageModel,
        rule_engine: PriorityRuleEngine,
        cache: Optional[ResultCache] = None,
        summary_max_length: int = 150,
    ) -> None:
        self.model = model
        self.rule_engine = rule_engine
        self.cache = cache
        self.summary_max_length = summary_max_length
        self._handlers: Dict[SubTask, Handler] = {
            SubTask.DRAFT: self._draft,
            SubTask.ANALYZE: self._analyze,
            SubTask.PRIORITIZE: self._prioritize,
            SubTask.EXTRACT_ACTIONS: self._extract_actions,
            SubTask.SUMMARIZE: self._summarize,
            SubTask.CATEGORIZE: self._categorize,
        }

    async def execute(self, plan: List[SubTask], context: TaskContext) -> Dict[SubTask, Any]:
        """
        Run every sub-task of plan and return {sub-task: value | SubTaskFailure},
        keyed in plan order.
        """
        running: Dict[SubTask, "asyncio.Task[Any]"] = {}
        for subtask in plan:
            if subtask not in running:
                running[subtask] = asyncio.ensure_future(self._run(subtask, context, running))

        outcomes = await asyncio.gather(*running.values())
        return dict(zip(running.keys(), outcomes))

    async def _run(
        self,
        subtask: SubTask,
        context: TaskContext,
        running: Dict[SubTask, "asyncio.Task[Any]"],
    ) -> Any:
        resolved: Dict[SubTask, Any] = {}
        dependency = DEPENDENCIES.get(subtask)
        if dependency is not None and dependency in running:
            resolved[dependency] = await running[dependency]

        handler = self._handlers.get(subtask)
        try:
            if handler is None:
                raise ValueError(f"No handler for sub-task {subtask!r}")
            logger.debug("Executing sub-task %s (request %s)", subtask.value, context.request.correlation_id)
            return await handler(context, resolved)
        except Exception as e:
            logger.error(
                "Sub-task %s failed (request %s): %s",
                getattr(subtask, "value", subtask),
                context.request.correlation_id,
                e,
            )
            return SubTaskFailure(error=str(e) or e.__class__.__name__)

    # -- cache helpers (best effort) ----------------------------------------

    async def _cache_get(self, key: Optional[str]) -> Optional[CacheEntry]:
        if self.cache is None or not key:
            return None
        try:
            return await self.cache.get(key)
        except CacheUnavailable as e:
            logger.warning("Cache read skipped for %s: %s", key, e)
            return None

    async def _cache_put(self, key: Optional[str], update: CacheEntryUpdate) -> None:
        if self.cache is None or not key:
            return
        try:
            await self.cache.put(key, update)
        except CacheUnavailable as e:
            logger.warning("Cache write skipped for %s: %s", key, e)

    # -- sub-tasks -----------------------------------------------------------

    async def _draft(self, context: TaskContext, resolved: Dict[SubTask, Any]) -> EmailDraft:
        payload = context.request.payload
        tone = context.preferences.tone
        instruction = payload.instruction or payload.context or DEFAULT_DRAFT_INSTRUCTION

        result = await self.model.generate_draft(
            instruction,
            context=payload.context,
            tone=tone,
            recipients=context.metadata.recipients or None,
        )
        return EmailDraft(
            subject=result.subject,
            content=result.content,
            tone=tone,
            confidence=result.confidence,
            suggestions=[],
        )

    async def _analyze(self, context: TaskContext, resolved: Dict[SubTask, Any]) -> EmailAnalysis:
        content = context.require_content()

        cached = await self._cache_get(context.email_id)
        if cached is not None and cached.priority is not None:
            logger.info("Using cached analysis for %s", context.email_id)
            context.cache_hits.append(SubTask.ANALYZE)
            return EmailAnalysis(
                priority=cached.priority,
                category=cached.tags[0] if cached.tags else "uncategorized",
                summary=cached.summary,
            )

        return await self.model.analyze(content)

    async def _prioritize(
        self, context: TaskContext, resolved: Dict[SubTask, Any]
    ) -> PriorityVerdict:
        analysis = resolved.get(SubTask.ANALYZE)
        if SubTask.ANALYZE in context.cache_hits and isinstance(analysis, EmailAnalysis):
            # cached verdicts already carry the rule adjustment
            return analysis.priority
        if isinstance(analysis, EmailAnalysis):
            baseline = analysis.priority
        else:
            baseline = PriorityVerdict.neutral()

        verdict = self.rule_engine.score(baseline, context.content, context.metadata)

        tags = [analysis.category] if isinstance(analysis, EmailAnalysis) else None
        await self._cache_put(context.email_id, CacheEntryUpdate(priority=verdict, tags=tags))
        return verdict

    async def _extract_actions(self, context: TaskContext, resolved: Dict[SubTask, Any]) -> list:
        """
        Placeholder: dedicated action-item extraction is not implemented, so
        this always returns an empty list.
        """
        return []

    async def _summarize(self, context: TaskContext, resolved: Dict[SubTask, Any]) -> str:
        content = context.require_content()

        cached = await self._cache_get(context.email_id)
        if cached is not None and cached.summary:
            logger.info("Using cached summary for %s", context.email_id)
            context.cache_hits.append(SubTask.SUMMARIZE)
            return cached.summary

        max_length = context.request.payload.max_length or self.summary_max_length
        summary = await self.model.summarize(content, max_length)
        await self._cache_put(context.email_id, CacheEntryUpdate(summary=summary))
        return summary

    async def _categorize(self, context: TaskContext, resolved: Dict[SubTask, Any]) -> Categorization:
        result = await self.model.categorize(context.require_content())

        tags: List[str] = []
        for tag in [result.primary_category, *result.suggested_tags]:
            if tag and tag not in tags:
                tags.append(tag)
        await self._cache_put(context.email_id, CacheEntryUpdate(tags=tags))
        return result
