"""
Orchestrator: plans, executes and aggregates assistant requests.

Core pieces:
- handle(kind, payload): the transport-agnostic entry point
- context preparation (user preferences, rule snapshot, email metadata)
- handle_conversation(session_id, message): chat messages routed to handle()
- rule / preference updates
- periodic cache maintenance
"""

import asyncio
import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from .aggregator import ResultAggregator
from .cache import DEFAULT_SWEEP_INTERVAL, ResultCache
from .config import Config
from .conversation import ACTION_TYPES, detect_intent, failure_reply, reply_for, request_kind_for
from .errors import CollaboratorError, MailMindError
from .executor import MODEL_SUBTASKS, LanguageModel, TaskContext, TaskExecutor
from .model_service import LanguageModelService
from .models import (
    ConversationAction,
    ConversationReply,
    EmailMetadata,
    PriorityRule,
    Request,
    RequestKind,
    RequestPayload,
    Response,
    UserPreferences,
    UserPreferencesUpdate,
)
from .planner import TaskPlanner, parse_request_kind
from .rules import PriorityRuleEngine
from .storage import ConfigStore, build_cache_store, build_config_store

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
        self,
        config_store: ConfigStore,
        model: LanguageModel,
        rule_engine: Optional[PriorityRuleEngine] = None,
        cache: Optional[ResultCache] = None,
        planner: Optional[TaskPlanner] = None,
        aggregator: Optional[ResultAggregator] = None,
        summary_max_length: int = 150,
        model_name: str = "",
        maintenance_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        maintenance_max_age: Optional[timedelta] = None,
    ) -> None:
        self.config_store = config_store
        self.model = model
        self.rule_engine = rule_engine or PriorityRuleEngine()
        self.cache = cache
        self.planner = planner or TaskPlanner()
        self.aggregator = aggregator or ResultAggregator()
        self.executor = TaskExecutor(
            model,
            self.rule_engine,
            cache=cache,
            summary_max_length=summary_max_length,
        )
        self.model_name = model_name
        self.maintenance_interval = maintenance_interval
        self.maintenance_max_age = maintenance_max_age
        self._maintenance_task: Optional["asyncio.Task[None]"] = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def initialize(self) -> None:
        """Seed default settings and load the current rule snapshot."""
        await self.config_store.initialize()
        self.rule_engine.load_rules(await self.config_store.get_priority_rules())
        logger.info("Orchestrator initialized with %d priority rules.", len(self.rule_engine.rules))

    def start_maintenance(
        self,
        interval: Optional[timedelta] = None,
        max_age: Optional[timedelta] = None,
    ) -> None:
        """Start the periodic cache sweep. Must be called from a running event loop."""
        if self.cache is None or self._maintenance_task is not None:
            return
        interval = interval or self.maintenance_interval
        max_age = max_age or self.maintenance_max_age
        self._maintenance_task = self.cache.start_periodic_sweep(interval, max_age)
        logger.info("Cache maintenance started (every %s).", interval)

    async def aclose(self) -> None:
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

        close = getattr(self.model, "aclose", None)
        if close is not None:
            await close()

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    async def handle(
        self,
        kind: Union[RequestKind, str],
        payload: Union[RequestPayload, Dict[str, Any], None] = None,
    ) -> Response:
        """
        Run one request end to end. Never raises: failures come back as
        Response(success=False, error=...).
        """
        correlation_id = uuid.uuid4().hex
        started = time.perf_counter()
        model_used = self.model_name

        def _metadata() -> Dict[str, Any]:
            return {
                "processing_time_ms": round((time.perf_counter() - started) * 1000, 1),
                "model_used": model_used,
            }

        try:
            plan = self.planner.plan(kind)
            if payload is None:
                payload = RequestPayload()
            elif isinstance(payload, dict):
                payload = RequestPayload.model_validate(payload)

            request = Request(
                kind=parse_request_kind(kind),
                payload=payload,
                correlation_id=correlation_id,
            )
            logger.info(
                "Handling %s request %s (plan=%s)",
                request.kind.value,
                correlation_id,
                [t.value for t in plan],
            )

            context = await self.prepare_context(request)
            results = await self.executor.execute(plan, context)
            data = self.aggregator.aggregate(results)

            model_tasks = MODEL_SUBTASKS.intersection(plan)
            if model_tasks and model_tasks.issubset(context.cache_hits):
                model_used = "cache"
        except (MailMindError, ValidationError) as e:
            logger.error("Request %s failed: %s", correlation_id, e)
            return Response(
                success=False,
                error=str(e),
                correlation_id=correlation_id,
                metadata=_metadata(),
            )
        except Exception as e:
            logger.exception("Unexpected error handling request %s: %s", correlation_id, e)
            return Response(
                success=False,
                error=str(e) or e.__class__.__name__,
                correlation_id=correlation_id,
                metadata=_metadata(),
            )

        metadata = _metadata()
        logger.info(
            "Request %s completed in %.1f ms",
            correlation_id,
            metadata["processing_time_ms"],
        )
        return Response(
            success=True,
            data=data,
            correlation_id=correlation_id,
            metadata=metadata,
        )

    async def prepare_context(self, request: Request) -> TaskContext:
        """
        Gather what the sub-tasks need: user preferences (required), a fresh
        priority rule snapshot (best effort) and the email metadata.
        """
        preferences = await self.config_store.get_user_preferences()

        try:
            self.rule_engine.load_rules(await self.config_store.get_priority_rules())
        except CollaboratorError as e:
            logger.warning("Could not refresh priority rules, keeping current snapshot: %s", e)

        payload = request.payload
        metadata = EmailMetadata(
            subject=payload.subject,
            sender_address=payload.sender,
            recipients=list(payload.recipients),
        )
        return TaskContext(request=request, preferences=preferences, metadata=metadata)

    # -----------------------------------------------------------------------
    # Conversation
    # -----------------------------------------------------------------------

    async def handle_conversation(
        self,
        session_id: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> ConversationReply:
        """
        Answer one chat message. Recognised intents run the matching request
        through handle(); context carries the email the message refers to
        (content, emailId, ...). Never raises.
        """
        logger.info("Conversation message for session %s", session_id)

        try:
            preferences = await self.config_store.get_user_preferences()
        except CollaboratorError as e:
            logger.error("Conversation %s failed: %s", session_id, e)
            template = failure_reply()
            return ConversationReply(
                session_id=session_id,
                response=template.message,
                suggestions=template.suggestions,
                next_steps=template.next_steps,
            )

        detected = detect_intent(message)
        kind = request_kind_for(detected.intent)
        template = reply_for(detected.intent, preferences.language)

        actions: List[ConversationAction] = []
        if kind is not None:
            payload: Dict[str, Any] = dict(context or {})
            if kind == RequestKind.DRAFT:
                payload["instruction"] = message
                payload.setdefault("context", payload.get("content") or None)

            response = await self.handle(kind, payload)
            actions.append(
                ConversationAction(
                    type=ACTION_TYPES[kind],
                    status="completed" if response.success else "failed",
                    result=response.data,
                    error=response.error,
                )
            )
            if not response.success:
                template = failure_reply(preferences.language)

        return ConversationReply(
            session_id=session_id,
            intent=detected.intent.value,
            response=template.message,
            actions_taken=actions,
            suggestions=template.suggestions,
            next_steps=template.next_steps,
        )

    # -----------------------------------------------------------------------
    # Settings
    # -----------------------------------------------------------------------

    async def get_user_preferences(self) -> UserPreferences:
        return await self.config_store.get_user_preferences()

    async def update_user_preferences(
        self,
        update: Union[UserPreferencesUpdate, Dict[str, Any]],
    ) -> UserPreferences:
        logger.info("Updating user preferences.")
        return await self.config_store.update_user_preferences(update)

    async def get_priority_rules(self) -> List[PriorityRule]:
        return await self.config_store.get_priority_rules()

    async def update_priority_rules(self, rules: List[PriorityRule]) -> None:
        logger.info("Updating priority rules (%d rules).", len(rules))
        await self.config_store.set_priority_rules(rules)
        self.rule_engine.load_rules(rules)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_orchestrator(config: Config) -> Orchestrator:
    """
    Wire up one orchestrator with file-backed stores and an httpx-based
    language model client.
    """
    cache = ResultCache(
        build_cache_store(config),
        soft_ceiling=config.cache_soft_ceiling,
        max_age=config.cache_max_age,
    )
    model = LanguageModelService(
        config,
        client=httpx.AsyncClient(timeout=config.llm_timeout_seconds),
    )
    return Orchestrator(
        config_store=build_config_store(config),
        model=model,
        cache=cache,
        summary_max_length=config.summary_max_length,
        model_name=config.model_name,
        maintenance_interval=config.cache_sweep_interval,
        maintenance_max_age=config.cache_max_age,
    )
