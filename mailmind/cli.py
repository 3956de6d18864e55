import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .cache import ResultCache
from .config import Config, load_config
from .formatting import (
    generate_cache_entry_text,
    generate_conversation_text,
    generate_response_text,
    write_response_to_file,
)
from .logging_config import setup_logging
from .models import (
    PriorityLevel,
    PriorityRule,
    RequestKind,
    Response,
    Tone,
    Language,
    UserPreferencesUpdate,
    ConversationReply,
)
from .orchestrator import build_orchestrator
from .storage import build_cache_store, build_config_store, ensure_data_dir_exists


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render_rules_table(rules: List[PriorityRule]) -> None:
    console = Console()
    table = Table(title="Priority Rules")

    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Level")
    table.add_column("Weight")
    table.add_column("Enabled")
    table.add_column("Conditions")

    for rule in rules:
        conditions = rule.conditions.model_dump(exclude_none=True)
        cond_text = "; ".join(f"{k}={', '.join(v)}" for k, v in conditions.items())
        table.add_row(
            rule.id,
            rule.name,
            rule.level.value,
            f"{rule.weight:.2f}",
            "yes" if rule.enabled else "no",
            cond_text,
        )

    console.print(table)


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    items = [v.strip() for v in value.split(",") if v.strip()]
    return items or None


def _read_content(args: argparse.Namespace) -> str:
    if getattr(args, "file", None):
        return Path(args.file).read_text(encoding="utf-8")
    if getattr(args, "content", None):
        return args.content
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


def _prepare(config: Config) -> None:
    setup_logging(config.log_level)
    ensure_data_dir_exists(config)


async def _run_request(config: Config, kind: RequestKind, payload: Dict[str, Any]) -> Response:
    orchestrator = build_orchestrator(config)
    try:
        await orchestrator.initialize()
        return await orchestrator.handle(kind, payload)
    finally:
        await orchestrator.aclose()


def _print_response(args: argparse.Namespace, response: Response) -> None:
    text = generate_response_text(response)
    print(text)
    if getattr(args, "output", None):
        path = write_response_to_file(Path(args.output), text)
        logging.info("Response written to %s", path)
    if not response.success:
        sys.exit(1)


# ---------------------------------------------------------------------------
# Commands: requests
# ---------------------------------------------------------------------------


def cmd_content_request(args: argparse.Namespace, kind: RequestKind) -> None:
    config = load_config()
    _prepare(config)

    content = _read_content(args)
    payload: Dict[str, Any] = {
        "content": content,
        "email_id": args.email_id,
        "subject": args.subject,
        "sender": args.sender,
    }
    if kind == RequestKind.SUMMARIZE and args.max_length:
        payload["max_length"] = args.max_length

    response = asyncio.run(_run_request(config, kind, payload))
    _print_response(args, response)


def cmd_draft(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)

    payload = {
        "instruction": args.instruction,
        "context": args.context,
        "recipients": args.recipient or [],
    }
    response = asyncio.run(_run_request(config, RequestKind.DRAFT, payload))
    _print_response(args, response)


async def _run_conversation(
    config: Config,
    session_id: str,
    message: str,
    context: Dict[str, Any],
) -> ConversationReply:
    orchestrator = build_orchestrator(config)
    try:
        await orchestrator.initialize()
        return await orchestrator.handle_conversation(session_id, message, context)
    finally:
        await orchestrator.aclose()


def cmd_chat(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)

    context: Dict[str, Any] = {}
    if args.file:
        context["content"] = Path(args.file).read_text(encoding="utf-8")
    if args.email_id:
        context["email_id"] = args.email_id

    reply = asyncio.run(_run_conversation(config, args.session_id, args.message, context))
    print(generate_conversation_text(reply))
    if any(action.status == "failed" for action in reply.actions_taken):
        sys.exit(1)


# ---------------------------------------------------------------------------
# Commands: rules & preferences
# ---------------------------------------------------------------------------


def cmd_list_rules() -> None:
    config = load_config()
    _prepare(config)

    store = build_config_store(config)
    rules = asyncio.run(store.get_priority_rules())
    _render_rules_table(rules)


def cmd_set_rule(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)
    store = build_config_store(config)

    async def _update() -> PriorityRule:
        existing = {r.id: r for r in await store.get_priority_rules()}
        rule = existing.get(args.id) or PriorityRule(id=args.id, name=args.name or args.id)

        conditions_update: Dict[str, List[str]] = {}
        for field_name in ("keywords", "subject_keywords", "sender_domains", "sender_roles"):
            value = _split_list(getattr(args, field_name))
            if value is not None:
                conditions_update[field_name] = value
        conditions = rule.conditions.model_copy(update=conditions_update)

        fields: Dict[str, Any] = {"conditions": conditions}
        if args.name:
            fields["name"] = args.name
        if args.level:
            fields["level"] = PriorityLevel(args.level)
        if args.weight is not None:
            fields["weight"] = args.weight

        # re-validate so an out-of-range weight is rejected
        updated = PriorityRule.model_validate(rule.model_copy(update=fields).model_dump())
        await store.update_priority_rule(updated)
        return updated

    rule = asyncio.run(_update())
    print(
        f"Updated rule {rule.id!r}: "
        f"level={rule.level.value}, "
        f"weight={rule.weight:.2f}, "
        f"enabled={rule.enabled}"
    )


def cmd_toggle_rule(args: argparse.Namespace, enabled: bool) -> None:
    config = load_config()
    _prepare(config)

    store = build_config_store(config)
    try:
        rule = asyncio.run(store.set_rule_enabled(args.id, enabled))
    except KeyError as e:
        print(str(e))
        sys.exit(1)
    print(f"Rule {rule.id!r} is now {'enabled' if rule.enabled else 'disabled'}.")


def cmd_show_preferences() -> None:
    config = load_config()
    _prepare(config)

    store = build_config_store(config)
    prefs = asyncio.run(store.get_user_preferences())
    print(f"tone={prefs.tone.value} language={prefs.language.value} enabled={prefs.enabled}")


def cmd_set_preferences(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)

    update = UserPreferencesUpdate(
        tone=Tone(args.tone) if args.tone else None,
        language=Language(args.language) if args.language else None,
        enabled=True if args.enable else False if args.disable else None,
    )
    store = build_config_store(config)
    prefs = asyncio.run(store.update_user_preferences(update))
    print(f"tone={prefs.tone.value} language={prefs.language.value} enabled={prefs.enabled}")


# ---------------------------------------------------------------------------
# Commands: cache
# ---------------------------------------------------------------------------


def _build_cache(config: Config) -> ResultCache:
    return ResultCache(
        build_cache_store(config),
        soft_ceiling=config.cache_soft_ceiling,
        max_age=config.cache_max_age,
    )


def cmd_show_cache(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)

    entry = asyncio.run(_build_cache(config).get(args.key))
    if entry is None:
        print(f"No cache entry for {args.key!r}.")
        return
    print(generate_cache_entry_text(entry))


def cmd_sweep_cache(args: argparse.Namespace) -> None:
    config = load_config()
    _prepare(config)

    cache = _build_cache(config)
    max_age = None
    if args.max_age_days is not None:
        max_age = timedelta(days=args.max_age_days)
    removed = asyncio.run(cache.sweep(max_age))
    print(f"Removed {removed} cache entries.")


def cmd_maintain_cache() -> None:
    config = load_config()
    _prepare(config)

    cache = _build_cache(config)
    logging.info(
        "Sweeping the cache every %s (max age %s). Press Ctrl+C to stop.",
        config.cache_sweep_interval,
        config.cache_max_age,
    )
    try:
        asyncio.run(cache.sweep_periodically(config.cache_sweep_interval, config.cache_max_age))
    except KeyboardInterrupt:
        print("Cache maintenance stopped.")


# ---------------------------------------------------------------------------
# Main CLI entrypoint
# ---------------------------------------------------------------------------


def _add_content_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "content",
        nargs="?",
        default=None,
        help="Email text. Read from --file or stdin when omitted.",
    )
    parser.add_argument("-f", "--file", type=str, default=None, help="Read email text from a file.")
    parser.add_argument("--email-id", type=str, default=None, help="Message id used as cache key.")
    parser.add_argument("--subject", type=str, default=None, help="Email subject.")
    parser.add_argument("--sender", type=str, default=None, help="Sender email address.")
    parser.add_argument("-o", "--output", type=str, default=None, help="Also write the result to a file.")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="mailmind",
        description="LLM-assisted email drafting, analysis and prioritization.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # analyze / summarize / categorize
    p_analyze = subparsers.add_parser("analyze", help="Analyze and prioritize an email.")
    _add_content_arguments(p_analyze)

    p_summarize = subparsers.add_parser("summarize", help="Summarize an email.")
    _add_content_arguments(p_summarize)
    p_summarize.add_argument(
        "--max-length",
        type=int,
        default=None,
        help="Maximum summary length in characters (default from config).",
    )

    p_categorize = subparsers.add_parser("categorize", help="Categorize an email.")
    _add_content_arguments(p_categorize)

    # draft
    p_draft = subparsers.add_parser("draft", help="Draft an email from an instruction.")
    p_draft.add_argument("instruction", type=str, help="What the email should say.")
    p_draft.add_argument("--context", type=str, default=None, help="Background for the draft.")
    p_draft.add_argument(
        "--recipient",
        action="append",
        default=None,
        help="Recipient address (repeatable).",
    )
    p_draft.add_argument("-o", "--output", type=str, default=None, help="Also write the draft to a file.")

    # chat
    p_chat = subparsers.add_parser("chat", help="Send a chat message to the assistant.")
    p_chat.add_argument("message", type=str, help="What you want done, e.g. 'analyze this email'.")
    p_chat.add_argument("-f", "--file", type=str, default=None, help="Email the message refers to.")
    p_chat.add_argument("--email-id", type=str, default=None, help="Message id used as cache key.")
    p_chat.add_argument("--session-id", type=str, default="cli", help="Conversation session id.")

    # rules
    subparsers.add_parser("list-rules", help="List priority rules.")

    p_set_rule = subparsers.add_parser("set-rule", help="Create or update a priority rule.")
    p_set_rule.add_argument("id", type=str, help="Rule id.")
    p_set_rule.add_argument("--name", type=str, default=None, help="Rule name.")
    p_set_rule.add_argument(
        "--level",
        type=str,
        choices=["high", "medium", "low"],
        default=None,
        help="Priority level assigned when the rule wins.",
    )
    p_set_rule.add_argument("--weight", type=float, default=None, help="Rule weight between 0 and 1.")
    p_set_rule.add_argument("--keywords", type=str, default=None, help="Comma-separated content keywords.")
    p_set_rule.add_argument(
        "--subject-keywords",
        dest="subject_keywords",
        type=str,
        default=None,
        help="Comma-separated subject keywords.",
    )
    p_set_rule.add_argument(
        "--sender-domains",
        dest="sender_domains",
        type=str,
        default=None,
        help="Comma-separated sender domain fragments.",
    )
    p_set_rule.add_argument(
        "--sender-roles",
        dest="sender_roles",
        type=str,
        default=None,
        help="Comma-separated sender roles.",
    )

    p_enable = subparsers.add_parser("enable-rule", help="Enable a priority rule.")
    p_enable.add_argument("id", type=str, help="Rule id.")
    p_disable = subparsers.add_parser("disable-rule", help="Disable a priority rule.")
    p_disable.add_argument("id", type=str, help="Rule id.")

    # preferences
    subparsers.add_parser("show-preferences", help="Show user preferences.")
    p_prefs = subparsers.add_parser("set-preferences", help="Update user preferences.")
    p_prefs.add_argument(
        "--tone",
        type=str,
        choices=[t.value for t in Tone],
        default=None,
        help="Default drafting tone.",
    )
    p_prefs.add_argument(
        "--language",
        type=str,
        choices=[lang.value for lang in Language],
        default=None,
        help="Preferred language.",
    )
    p_prefs.add_argument("--enable", action="store_true", help="Enable the assistant.")
    p_prefs.add_argument("--disable", action="store_true", help="Disable the assistant.")

    # cache
    p_show_cache = subparsers.add_parser("show-cache", help="Show the cache entry for a message id.")
    p_show_cache.add_argument("key", type=str, help="Message id.")
    p_sweep = subparsers.add_parser("sweep-cache", help="Evict old cache entries.")
    p_sweep.add_argument(
        "--max-age-days",
        type=float,
        default=None,
        help="Evict entries older than this many days (default from config).",
    )
    subparsers.add_parser(
        "maintain-cache",
        help="Keep sweeping old cache entries at the configured interval.",
    )

    args = parser.parse_args(argv)

    if args.command == "analyze":
        cmd_content_request(args, RequestKind.ANALYZE)
    elif args.command == "summarize":
        cmd_content_request(args, RequestKind.SUMMARIZE)
    elif args.command == "categorize":
        cmd_content_request(args, RequestKind.CATEGORIZE)
    elif args.command == "draft":
        cmd_draft(args)
    elif args.command == "chat":
        cmd_chat(args)
    elif args.command == "list-rules":
        cmd_list_rules()
    elif args.command == "set-rule":
        cmd_set_rule(args)
    elif args.command == "enable-rule":
        cmd_toggle_rule(args, True)
    elif args.command == "disable-rule":
        cmd_toggle_rule(args, False)
    elif args.command == "show-preferences":
        cmd_show_preferences()
    elif args.command == "set-preferences":
        cmd_set_preferences(args)
    elif args.command == "show-cache":
        cmd_show_cache(args)
    elif args.command == "sweep-cache":
        cmd_sweep_cache(args)
    elif args.command == "maintain-cache":
        cmd_maintain_cache()
    else:
        parser.error(f"Unknown command: {args.command!r}")


if __name__ == "__main__":
    main()
