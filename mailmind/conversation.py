"""
Chat-style requests: keyword intent detection and the canned replies that
go with each intent.

The orchestrator turns a detected intent into an ordinary request (see
Orchestrator.handle_conversation); this module only decides what the user
asked for and how to word the answer.
"""

import logging
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from .models import Language, RequestKind

logger = logging.getLogger(__name__)


class ConversationIntent(str, Enum):
    DRAFT_EMAIL = "draft_email"
    ANALYZE_EMAIL = "analyze_email"
    ORGANIZE_EMAILS = "organize_emails"
    SETTINGS = "settings"
    UNKNOWN = "unknown"


# Checked in order; the first intent with a matching keyword wins.
INTENT_KEYWORDS: List[Tuple[ConversationIntent, Tuple[str, ...]]] = [
    (ConversationIntent.DRAFT_EMAIL, ("draft", "write", "写", "起草")),
    (ConversationIntent.ANALYZE_EMAIL, ("analyze", "analyse", "分析")),
    (ConversationIntent.ORGANIZE_EMAILS, ("organize", "organise", "sort", "整理", "筛选")),
    (ConversationIntent.SETTINGS, ("settings", "preferences", "设置", "配置")),
]

INTENT_REQUEST_KINDS: Dict[ConversationIntent, RequestKind] = {
    ConversationIntent.DRAFT_EMAIL: RequestKind.DRAFT,
    ConversationIntent.ANALYZE_EMAIL: RequestKind.ANALYZE,
    ConversationIntent.ORGANIZE_EMAILS: RequestKind.CATEGORIZE,
}

ACTION_TYPES: Dict[RequestKind, str] = {
    RequestKind.DRAFT: "email_draft",
    RequestKind.ANALYZE: "email_analysis",
    RequestKind.CATEGORIZE: "email_organization",
}


class DetectedIntent(NamedTuple):
    intent: ConversationIntent
    confidence: float


class ReplyTemplate(NamedTuple):
    message: str
    suggestions: List[str]
    next_steps: List[str]


def detect_intent(message: str) -> DetectedIntent:
    text = (message or "").lower()
    for intent, keywords in INTENT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            confidence = 0.7 if intent == ConversationIntent.SETTINGS else 0.8
            logger.debug("Detected intent %s (confidence %.1f)", intent.value, confidence)
            return DetectedIntent(intent, confidence)
    return DetectedIntent(ConversationIntent.UNKNOWN, 0.5)


def request_kind_for(intent: ConversationIntent) -> Optional[RequestKind]:
    """The request an intent runs, or None for intents that only reply."""
    return INTENT_REQUEST_KINDS.get(intent)


_REPLIES: Dict[Language, Dict[ConversationIntent, ReplyTemplate]] = {
    Language.EN_US: {
        ConversationIntent.DRAFT_EMAIL: ReplyTemplate(
            "I've drafted the email for you. Have a look and edit it as needed.",
            ["Adjust the tone", "Add more detail", "Check spelling and grammar"],
            ["Review the draft", "Send the email"],
        ),
        ConversationIntent.ANALYZE_EMAIL: ReplyTemplate(
            "I've analyzed the email: priority, sentiment and action items are ready.",
            ["Review the priority", "Handle high-priority mail first", "Set a reminder"],
            ["Deal with urgent mail", "Schedule time to reply"],
        ),
        ConversationIntent.ORGANIZE_EMAILS: ReplyTemplate(
            "I've sorted the email into a category with suggested tags.",
            ["Review the category", "Adjust your priority rules", "Set up automation"],
            ["Handle high-priority mail", "Archive processed mail"],
        ),
        ConversationIntent.SETTINGS: ReplyTemplate(
            "You can change your tone, language and priority rules in the settings.",
            ["Change the default tone", "Edit priority rules"],
            ["Open the settings"],
        ),
        ConversationIntent.UNKNOWN: ReplyTemplate(
            "I'm not sure what you need yet. Could you tell me a bit more?",
            ["Describe what you need", "Pick a feature from the menu", "Read the help"],
            ["Clarify the goal"],
        ),
    },
    Language.ZH_CN: {
        ConversationIntent.DRAFT_EMAIL: ReplyTemplate(
            "我已经为您生成了邮件草稿，您可以查看并进行修改。",
            ["调整邮件语气", "添加更多细节", "检查拼写语法"],
            ["查看草稿内容", "发送邮件"],
        ),
        ConversationIntent.ANALYZE_EMAIL: ReplyTemplate(
            "我已经完成了邮件分析，为您提供了优先级、情感分析和行动项建议。",
            ["查看优先级排序", "处理高优先级邮件", "设置提醒"],
            ["处理紧急邮件", "安排回复时间"],
        ),
        ConversationIntent.ORGANIZE_EMAILS: ReplyTemplate(
            "我已经为您整理了邮件，按照优先级和类别进行了分类。",
            ["查看分类结果", "调整分类规则", "设置自动化"],
            ["处理高优先级邮件", "归档已处理邮件"],
        ),
        ConversationIntent.SETTINGS: ReplyTemplate(
            "您可以在设置中调整语气、语言和优先级规则。",
            ["修改默认语气", "编辑优先级规则"],
            ["打开设置"],
        ),
        ConversationIntent.UNKNOWN: ReplyTemplate(
            "我正在学习理解您的需求，请提供更多具体信息。",
            ["描述具体需求", "选择功能菜单", "查看帮助文档"],
            ["明确任务目标"],
        ),
    },
}

_FAILURE_REPLIES: Dict[Language, ReplyTemplate] = {
    Language.EN_US: ReplyTemplate(
        "Sorry, something went wrong while handling your request. Please try again later.",
        ["Check your network connection", "Send the message again"],
        [],
    ),
    Language.ZH_CN: ReplyTemplate(
        "抱歉，处理您的请求时出现了问题。请稍后重试。",
        ["检查网络连接", "重新发送消息"],
        [],
    ),
}


def reply_for(intent: ConversationIntent, language: Language = Language.EN_US) -> ReplyTemplate:
    return _REPLIES.get(language, _REPLIES[Language.EN_US])[intent]


def failure_reply(language: Language = Language.EN_US) -> ReplyTemplate:
    return _FAILURE_REPLIES.get(language, _FAILURE_REPLIES[Language.EN_US])
