"""
Pydantic models for requests, priority rules and verdicts, model results,
cache entries and responses.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RequestKind(str, Enum):
    DRAFT = "draft"
    ANALYZE = "analyze"
    SUMMARIZE = "summarize"
    CATEGORIZE = "categorize"


class PriorityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Tone(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"


class Language(str, Enum):
    ZH_CN = "zh-CN"
    EN_US = "en-US"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


# ---------------------------------------------------------------------------
# Priority
# ---------------------------------------------------------------------------

HIGH_PRIORITY_THRESHOLD = 0.7
LOW_PRIORITY_THRESHOLD = 0.3


def clamp_score(score: float) -> float:
    return max(0.0, min(1.0, score))


def level_for_score(score: float) -> PriorityLevel:
    """
    Bucket a numeric priority score into a level.

    This is the only place where score thresholds live.
    """
    if score > HIGH_PRIORITY_THRESHOLD:
        return PriorityLevel.HIGH
    if score < LOW_PRIORITY_THRESHOLD:
        return PriorityLevel.LOW
    return PriorityLevel.MEDIUM


class PriorityVerdict(BaseModel):
    """
    Final (or baseline) priority of a message. Immutable once built.
    """

    level: PriorityLevel
    score: float
    reasons: List[str] = Field(default_factory=list)

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("score must be between 0 and 1")
        return v

    @classmethod
    def from_score(cls, score: float, reasons: Optional[List[str]] = None) -> "PriorityVerdict":
        score = clamp_score(score)
        return cls(level=level_for_score(score), score=score, reasons=list(reasons or []))

    @classmethod
    def neutral(cls) -> "PriorityVerdict":
        return cls(level=PriorityLevel.MEDIUM, score=0.5, reasons=[])

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
    )


class RuleConditions(BaseModel):
    """
    Match conditions of a priority rule. Absent lists are not evaluated.
    """

    keywords: Optional[List[str]] = None
    subject_keywords: Optional[List[str]] = Field(default=None, alias="subjectKeywords")
    sender_domains: Optional[List[str]] = Field(default=None, alias="senderDomains")
    # not used in match strength
    sender_roles: Optional[List[str]] = Field(default=None, alias="senderRoles")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class PriorityRule(BaseModel):
    """
    A user-defined rule that can raise a message's priority above the model baseline.
    """

    id: str
    name: str
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    level: PriorityLevel = PriorityLevel.MEDIUM
    weight: float = 0.5
    enabled: bool = True

    @field_validator("weight")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("weight must be between 0 and 1")
        return v

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class EmailMetadata(BaseModel):
    subject: Optional[str] = None
    sender_address: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)

    @property
    def sender_domain(self) -> str:
        if not self.sender_address or "@" not in self.sender_address:
            return ""
        return self.sender_address.split("@", 1)[1].strip().lower()

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# User preferences
# ---------------------------------------------------------------------------


class UserPreferences(BaseModel):
    tone: Tone = Tone.PROFESSIONAL
    language: Language = Language.EN_US
    enabled: bool = True

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class UserPreferencesUpdate(BaseModel):
    """
    Partial set of fields that may be updated on UserPreferences.
    """

    tone: Optional[Tone] = None
    language: Optional[Language] = None
    enabled: Optional[bool] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


# ---------------------------------------------------------------------------
# Language model results
# ---------------------------------------------------------------------------


class DraftResult(BaseModel):
    subject: str = ""
    content: str = ""
    confidence: float = 0.0

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class EmailDraft(BaseModel):
    """
    Draft returned to the caller: the model's text plus the tone it was written in.
    """

    subject: str
    content: str
    tone: Tone = Tone.PROFESSIONAL
    confidence: float = 0.0
    suggestions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class Sentiment(BaseModel):
    overall: SentimentLabel = SentimentLabel.NEUTRAL
    score: float = 0.0

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class ActionItem(BaseModel):
    action: str
    deadline: Optional[str] = None
    assignee: Optional[str] = None
    priority: PriorityLevel = PriorityLevel.MEDIUM

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class EmailAnalysis(BaseModel):
    """
    Structured analysis of one message as produced by the language model.
    """

    priority: PriorityVerdict = Field(default_factory=PriorityVerdict.neutral)
    sentiment: Sentiment = Field(default_factory=Sentiment)
    category: str = "uncategorized"
    action_items: List[ActionItem] = Field(default_factory=list, alias="actionItems")
    summary: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class Categorization(BaseModel):
    primary_category: str = Field(default="uncategorized", alias="primaryCategory")
    confidence: float = 0.5
    suggested_tags: List[str] = Field(default_factory=list, alias="suggestedTags")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """
    Cached analysis summary for one message, keyed by the caller's message id.
    """

    key: str
    summary: Optional[str] = None
    priority: Optional[PriorityVerdict] = None
    tags: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


class CacheEntryUpdate(BaseModel):
    """
    Partial write to a cache entry; unset fields keep their stored values.
    """

    summary: Optional[str] = None
    priority: Optional[PriorityVerdict] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=False,
    )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ConversationAction(BaseModel):
    """
    One request the assistant ran on behalf of a chat message.
    """

    type: str
    status: str
    result: Any = None
    error: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class ConversationReply(BaseModel):
    session_id: str = Field(alias="sessionId")
    intent: str = "unknown"
    response: str
    actions_taken: List[ConversationAction] = Field(default_factory=list, alias="actionsTaken")
    suggestions: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list, alias="nextSteps")

    model_config = ConfigDict(
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Requests and responses
# ---------------------------------------------------------------------------


class RequestPayload(BaseModel):
    """
    Everything a caller may send along with a request. Each kind reads the
    fields it needs.
    """

    content: str = ""
    email_id: Optional[str] = Field(default=None, alias="emailId")
    subject: Optional[str] = None
    sender: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    instruction: Optional[str] = None
    context: Optional[str] = None
    max_length: Optional[int] = Field(default=None, alias="maxLength")

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class Request(BaseModel):
    kind: RequestKind
    payload: RequestPayload = Field(default_factory=RequestPayload)
    correlation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
    )


class Response(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


__all__ = [
    "RequestKind",
    "PriorityLevel",
    "Tone",
    "Language",
    "SentimentLabel",
    "HIGH_PRIORITY_THRESHOLD",
    "LOW_PRIORITY_THRESHOLD",
    "clamp_score",
    "level_for_score",
    "PriorityVerdict",
    "RuleConditions",
    "PriorityRule",
    "EmailMetadata",
    "UserPreferences",
    "UserPreferencesUpdate",
    "DraftResult",
    "EmailDraft",
    "Sentiment",
    "ActionItem",
    "EmailAnalysis",
    "Categorization",
    "CacheEntry",
    "CacheEntryUpdate",
    "ConversationAction",
    "ConversationReply",
    "RequestPayload",
    "Request",
    "Response",
]
