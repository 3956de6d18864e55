"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from mailmind.errors import StoreError
from mailmind.models import (
    ActionItem,
    Categorization,
    DraftResult,
    EmailAnalysis,
    PriorityLevel,
    PriorityRule,
    PriorityVerdict,
    RuleConditions,
    Sentiment,
    SentimentLabel,
    Tone,
)
from mailmind.storage import MemoryStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeModel:
    """
    Language model stand-in. Set `<method>_error` to make a call raise and
    `delay` to make every call yield to the event loop first.
    """

    def __init__(self, analysis: Optional[EmailAnalysis] = None) -> None:
        self.analysis = analysis or EmailAnalysis(
            priority=PriorityVerdict(level=PriorityLevel.MEDIUM, score=0.5, reasons=["model"]),
            sentiment=Sentiment(overall=SentimentLabel.NEUTRAL, score=0.0),
            category="work",
            action_items=[ActionItem(action="Reply to Alice")],
        )
        self.summary = "Alice needs a reply by tomorrow."
        self.categorization = Categorization(
            primary_category="work",
            confidence=0.9,
            suggested_tags=["deadline", "work"],
        )
        self.delay = 0.0
        self.draft_error: Optional[Exception] = None
        self.analyze_error: Optional[Exception] = None
        self.summarize_error: Optional[Exception] = None
        self.categorize_error: Optional[Exception] = None
        self.calls: List[str] = []
        self.draft_args: Dict[str, Any] = {}

    async def _enter(self, name: str, error: Optional[Exception]) -> None:
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if error is not None:
            raise error

    async def generate_draft(
        self,
        instruction: str,
        context: Optional[str] = None,
        tone: Tone = Tone.PROFESSIONAL,
        recipients: Optional[List[str]] = None,
    ) -> DraftResult:
        await self._enter("generate_draft", self.draft_error)
        self.draft_args = {
            "instruction": instruction,
            "context": context,
            "tone": tone,
            "recipients": recipients,
        }
        return DraftResult(subject="Hello", content="Dear team,\n\nHello.", confidence=0.85)

    async def analyze(self, content: str) -> EmailAnalysis:
        await self._enter("analyze", self.analyze_error)
        return self.analysis

    async def summarize(self, content: str, max_length: int = 150) -> str:
        await self._enter("summarize", self.summarize_error)
        return self.summary

    async def categorize(self, content: str) -> Categorization:
        await self._enter("categorize", self.categorize_error)
        return self.categorization


class FailingStore:
    """Key-value store whose every operation fails."""

    async def get(self, namespace, key):
        raise StoreError("store offline")

    async def set(self, namespace, key, value):
        raise StoreError("store offline")

    async def delete(self, namespace, key):
        raise StoreError("store offline")

    async def keys(self, namespace):
        raise StoreError("store offline")


class QuotaExceededStore(MemoryStore):
    """MemoryStore that reads fine but rejects every write."""

    async def set(self, namespace, key, value):
        raise RuntimeError("quota exceeded")


class InterleavingStore(MemoryStore):
    """MemoryStore that yields to the event loop on every call."""

    async def get(self, namespace, key):
        await asyncio.sleep(0)
        value = await super().get(namespace, key)
        await asyncio.sleep(0)
        return value

    async def set(self, namespace, key, value):
        await asyncio.sleep(0)
        await super().set(namespace, key, value)


def make_rule(
    rule_id: str = "rule_urgent",
    name: str = "Urgent",
    keywords: Optional[List[str]] = None,
    level: PriorityLevel = PriorityLevel.HIGH,
    weight: float = 0.9,
    enabled: bool = True,
    **conditions: Any,
) -> PriorityRule:
    return PriorityRule(
        id=rule_id,
        name=name,
        conditions=RuleConditions(keywords=keywords, **conditions),
        level=level,
        weight=weight,
        enabled=enabled,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()
