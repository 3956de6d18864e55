"""
Tests for markdown rendering of responses.
"""

from datetime import datetime, timezone

from mailmind.formatting import (
    generate_cache_entry_text,
    generate_conversation_text,
    generate_response_text,
    write_response_to_file,
)
from mailmind.models import (
    ActionItem,
    CacheEntry,
    Categorization,
    ConversationAction,
    ConversationReply,
    EmailAnalysis,
    EmailDraft,
    PriorityLevel,
    PriorityVerdict,
    Response,
    Tone,
)


class TestGenerateResponseText:
    """Tests for generate_response_text()."""

    def test_analysis(self):
        analysis = EmailAnalysis(
            priority=PriorityVerdict(level=PriorityLevel.HIGH, score=0.54, reasons=["matched rule: Urgent"]),
            category="work",
            action_items=[ActionItem(action="Send the report", deadline="Friday")],
        )

        text = generate_response_text(Response(success=True, data=analysis))

        assert "**HIGH** (score 0.54): matched rule: Urgent" in text
        assert "1. Send the report (due Friday)" in text
        assert text.endswith("\n")

    def test_analysis_without_action_items(self):
        text = generate_response_text(Response(success=True, data=EmailAnalysis()))

        assert "_No action items identified._" in text

    def test_draft(self):
        draft = EmailDraft(subject="Re: lunch", content="Sounds good!\n", tone=Tone.CASUAL, confidence=0.85)

        text = generate_response_text(Response(success=True, data=draft))

        assert text.startswith("# Draft: Re: lunch")
        assert "_Tone: casual, confidence 0.85_" in text

    def test_categorization(self):
        result = Categorization(primary_category="news", confidence=0.7, suggested_tags=["weekly", "tech"])

        text = generate_response_text(Response(success=True, data=result))

        assert "**Primary:** news (confidence 0.70)" in text
        assert "**Tags:** weekly, tech" in text

    def test_summary(self):
        assert "Short." in generate_response_text(Response(success=True, data="Short."))

    def test_failure(self):
        text = generate_response_text(Response(success=False, error="Sub-task 'draft' failed: boom"))

        assert text.startswith("# Request failed")
        assert "Sub-task 'draft' failed: boom" in text


class TestCacheEntryText:
    """Tests for generate_cache_entry_text()."""

    def test_empty_fields(self):
        entry = CacheEntry(key="m1", updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc))

        text = generate_cache_entry_text(entry)

        assert "- **Summary:** _none_" in text
        assert "- **Priority:** _none_" in text
        assert "2025-01-01T00:00:00+00:00" in text


class TestConversationText:
    """Tests for generate_conversation_text()."""

    def test_completed_and_failed_actions(self):
        reply = ConversationReply(
            session_id="s1",
            intent="organize_emails",
            response="Done.",
            actions_taken=[
                ConversationAction(
                    type="email_organization",
                    status="completed",
                    result=Categorization(primary_category="news"),
                ),
                ConversationAction(type="email_draft", status="failed", error="boom"),
            ],
            suggestions=["Review the category"],
        )

        text = generate_conversation_text(reply)

        assert text.startswith("Done.\n")
        assert "**Primary:** news" in text
        assert "_email_draft failed: boom_" in text
        assert "- Review the category" in text
        assert "## Next Steps" not in text


def test_write_response_to_file(tmp_path):
    path = write_response_to_file(tmp_path / "a" / "b.md", "# Hi\n")

    assert path.read_text(encoding="utf-8") == "# Hi\n"
