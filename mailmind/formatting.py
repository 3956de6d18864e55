"""
Markdown rendering of responses and cache entries for terminal output.
"""

from pathlib import Path
from typing import Any, List

from .models import (
    CacheEntry,
    Categorization,
    ConversationReply,
    EmailAnalysis,
    EmailDraft,
    PriorityVerdict,
    Response,
)


def _verdict_line(verdict: PriorityVerdict) -> str:
    line = f"**{verdict.level.value.upper()}** (score {verdict.score:.2f})"
    if verdict.reasons:
        line += ": " + "; ".join(verdict.reasons)
    return line


def _analysis_lines(analysis: EmailAnalysis) -> List[str]:
    lines = ["# Email Analysis", ""]
    lines.append(f"- **Priority:** {_verdict_line(analysis.priority)}")
    lines.append(
        f"- **Sentiment:** {analysis.sentiment.overall.value} ({analysis.sentiment.score:+.2f})"
    )
    lines.append(f"- **Category:** {analysis.category}")
    if analysis.summary:
        lines.append(f"- **Summary:** {analysis.summary}")
    lines.append("")

    lines.append("## Action Items")
    lines.append("")
    if not analysis.action_items:
        lines.append("_No action items identified._")
    else:
        for idx, item in enumerate(analysis.action_items, start=1):
            line = f"{idx}. {item.action}"
            if item.deadline:
                line += f" (due {item.deadline})"
            lines.append(line)
    return lines


def _draft_lines(draft: EmailDraft) -> List[str]:
    return [
        f"# Draft: {draft.subject}",
        "",
        f"_Tone: {draft.tone.value}, confidence {draft.confidence:.2f}_",
        "",
        draft.content.strip(),
    ]


def _categorization_lines(result: Categorization) -> List[str]:
    lines = ["# Category", ""]
    lines.append(f"- **Primary:** {result.primary_category} (confidence {result.confidence:.2f})")
    if result.suggested_tags:
        lines.append(f"- **Tags:** {', '.join(result.suggested_tags)}")
    return lines


def generate_response_text(response: Response) -> str:
    """Convert a Response into a human-readable markdown string."""
    if not response.success:
        lines = ["# Request failed", "", response.error or "Unknown error."]
    else:
        data: Any = response.data
        if isinstance(data, EmailAnalysis):
            lines = _analysis_lines(data)
        elif isinstance(data, EmailDraft):
            lines = _draft_lines(data)
        elif isinstance(data, Categorization):
            lines = _categorization_lines(data)
        elif isinstance(data, str):
            lines = ["# Summary", "", data]
        else:
            lines = ["# Result", "", f"```\n{data!r}\n```"]

    lines.append("")  # final newline
    return "\n".join(lines)


def generate_conversation_text(reply: ConversationReply) -> str:
    lines = [reply.response, ""]

    for action in reply.actions_taken:
        if action.status == "completed":
            lines.append(generate_response_text(Response(success=True, data=action.result)))
        else:
            lines.append(f"_{action.type} failed: {action.error or 'unknown error'}_")
            lines.append("")

    if reply.suggestions:
        lines.append("## Suggestions")
        lines.append("")
        lines.extend(f"- {s}" for s in reply.suggestions)
        lines.append("")
    if reply.next_steps:
        lines.append("## Next Steps")
        lines.append("")
        lines.extend(f"- {s}" for s in reply.next_steps)
        lines.append("")
    return "\n".join(lines)


def generate_cache_entry_text(entry: CacheEntry) -> str:
    lines = [f"# Cache entry `{entry.key}`", ""]
    lines.append(f"- **Updated:** {entry.updated_at.isoformat()}")
    lines.append(f"- **Summary:** {entry.summary or '_none_'}")
    if entry.priority is not None:
        lines.append(f"- **Priority:** {_verdict_line(entry.priority)}")
    else:
        lines.append("- **Priority:** _none_")
    lines.append(f"- **Tags:** {', '.join(entry.tags) if entry.tags else '_none_'}")
    lines.append("")
    return "\n".join(lines)


def write_response_to_file(path: Path, text: str) -> Path:
    """Write rendered response text to path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
