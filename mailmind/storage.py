"""
Storage helpers: async key-value stores and the configuration store for
priority rules and user preferences.
"""

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import ValidationError

from .config import Config
from .errors import StoreError
from .models import (
    PriorityLevel,
    PriorityRule,
    RuleConditions,
    UserPreferences,
    UserPreferencesUpdate,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Async namespaced map. Values must be JSON-compatible.
    """

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        ...

    async def set(self, namespace: str, key: str, value: Any) -> None:
        ...

    async def delete(self, namespace: str, key: str) -> None:
        ...

    async def keys(self, namespace: str) -> List[str]:
        ...


class MemoryStore:
    """In-process store; values are copied on the way in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        value = self._data.get(namespace, {}).get(key)
        return copy.deepcopy(value)

    async def set(self, namespace: str, key: str, value: Any) -> None:
        self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> None:
        self._data.get(namespace, {}).pop(key, None)

    async def keys(self, namespace: str) -> List[str]:
        return list(self._data.get(namespace, {}).keys())


class JsonFileStore:
    """
    Store backed by a single JSON document of the form
    {namespace: {key: value}}.

    File I/O runs in a worker thread; an asyncio lock serializes access so
    that read-modify-write of the document is never interleaved.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def _write_all(self, data: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def _load(self) -> Dict[str, Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._read_all)
        except (OSError, ValueError) as e:
            logger.error("Failed to read store %s: %s", self.path, e)
            raise StoreError(f"Failed to read {self.path}: {e}") from e

    async def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        try:
            await asyncio.to_thread(self._write_all, data)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write store %s: %s", self.path, e)
            raise StoreError(f"Failed to write {self.path}: {e}") from e

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        async with self._lock:
            data = await self._load()
        return data.get(namespace, {}).get(key)

    async def set(self, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._load()
            data.setdefault(namespace, {})[key] = value
            await self._save(data)

    async def delete(self, namespace: str, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if key in data.get(namespace, {}):
                del data[namespace][key]
                await self._save(data)

    async def keys(self, namespace: str) -> List[str]:
        async with self._lock:
            data = await self._load()
        return list(data.get(namespace, {}).keys())


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


DEFAULT_USER_PREFERENCES = UserPreferences()

DEFAULT_PRIORITY_RULES: List[PriorityRule] = [
    PriorityRule(
        id="rule_urgent",
        name="Urgent requests",
        conditions=RuleConditions(
            keywords=["urgent", "asap", "immediately"],
        ),
        level=PriorityLevel.HIGH,
        weight=0.9,
        enabled=True,
    ),
    PriorityRule(
        id="rule_deadline",
        name="Deadline reminder",
        conditions=RuleConditions(
            keywords=["deadline", "due", "by tomorrow", "by end of day"],
        ),
        level=PriorityLevel.HIGH,
        weight=0.8,
        enabled=True,
    ),
    PriorityRule(
        id="rule_newsletter",
        name="Newsletters",
        conditions=RuleConditions(
            sender_domains=["newsletter", "marketing", "noreply"],
            keywords=["newsletter", "subscribe", "unsubscribe", "update"],
        ),
        level=PriorityLevel.LOW,
        weight=0.7,
        enabled=True,
    ),
]


# ---------------------------------------------------------------------------
# Configuration store
# ---------------------------------------------------------------------------


SETTINGS_NAMESPACE = "sync"
PRIORITY_RULES_KEY = "priorityRules"
USER_PREFERENCES_KEY = "userPreferences"


class ConfigStore:
    """
    Priority rules and user preferences on top of a KeyValueStore.

    Reads return defaults for anything that was never written. Store errors
    propagate as StoreError.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def initialize(self) -> None:
        """Seed default rules and preferences if none are stored yet."""
        seeded = []

        if await self.store.get(SETTINGS_NAMESPACE, USER_PREFERENCES_KEY) is None:
            await self.store.set(
                SETTINGS_NAMESPACE,
                USER_PREFERENCES_KEY,
                DEFAULT_USER_PREFERENCES.model_dump(mode="json"),
            )
            seeded.append(USER_PREFERENCES_KEY)

        if not await self.store.get(SETTINGS_NAMESPACE, PRIORITY_RULES_KEY):
            await self.set_priority_rules(DEFAULT_PRIORITY_RULES)
            seeded.append(PRIORITY_RULES_KEY)

        if seeded:
            logger.info("Initialized settings store with defaults: %s", ", ".join(seeded))
        else:
            logger.info("Settings store already initialized.")

    # -- priority rules ------------------------------------------------------

    async def get_priority_rules(self) -> List[PriorityRule]:
        raw = await self.store.get(SETTINGS_NAMESPACE, PRIORITY_RULES_KEY)
        if not raw:
            return [rule.model_copy(deep=True) for rule in DEFAULT_PRIORITY_RULES]

        rules: List[PriorityRule] = []
        for rule_dict in raw:
            try:
                rules.append(PriorityRule.model_validate(rule_dict))
            except ValidationError as ve:
                logger.warning("Skipping invalid stored PriorityRule %r: %s", rule_dict, ve)
        return rules

    async def set_priority_rules(self, rules: List[PriorityRule]) -> None:
        await self.store.set(
            SETTINGS_NAMESPACE,
            PRIORITY_RULES_KEY,
            [rule.model_dump(mode="json") for rule in rules],
        )
        logger.debug("Priority rules updated (%d rules).", len(rules))

    async def update_priority_rule(self, rule: PriorityRule) -> List[PriorityRule]:
        """
        Insert or replace one rule by id. Configuration order is preserved
        for existing rules; new rules are appended.
        """
        rules = await self.get_priority_rules()
        for idx, existing in enumerate(rules):
            if existing.id == rule.id:
                rules[idx] = rule
                break
        else:
            rules.append(rule)

        await self.set_priority_rules(rules)
        return rules

    async def set_rule_enabled(self, rule_id: str, enabled: bool) -> PriorityRule:
        rules = await self.get_priority_rules()
        for idx, existing in enumerate(rules):
            if existing.id == rule_id:
                rules[idx] = existing.model_copy(update={"enabled": enabled})
                await self.set_priority_rules(rules)
                return rules[idx]
        raise KeyError(f"Unknown priority rule id: {rule_id!r}")

    # -- user preferences ----------------------------------------------------

    async def get_user_preferences(self) -> UserPreferences:
        raw = await self.store.get(SETTINGS_NAMESPACE, USER_PREFERENCES_KEY)
        if raw is None:
            return DEFAULT_USER_PREFERENCES.model_copy()
        try:
            return UserPreferences.model_validate(raw)
        except ValidationError as ve:
            logger.warning("Stored user preferences are invalid; using defaults: %s", ve)
            return DEFAULT_USER_PREFERENCES.model_copy()

    async def update_user_preferences(
        self,
        update: Union[UserPreferencesUpdate, Dict[str, Any]],
    ) -> UserPreferences:
        if isinstance(update, dict):
            update = UserPreferencesUpdate.model_validate(update)

        current = await self.get_user_preferences()
        fields_dict = update.model_dump(exclude_unset=True, exclude_none=True)
        updated = current.model_copy(update=fields_dict)

        await self.store.set(
            SETTINGS_NAMESPACE,
            USER_PREFERENCES_KEY,
            updated.model_dump(mode="json"),
        )
        logger.debug("User preferences updated: %s", sorted(fields_dict))
        return updated


# ---------------------------------------------------------------------------
# Construction from Config
# ---------------------------------------------------------------------------


def ensure_data_dir_exists(config: Config) -> None:
    config.data_dir.mkdir(parents=True, exist_ok=True)


def build_cache_store(config: Config) -> JsonFileStore:
    return JsonFileStore(config.cache_store_path)


def build_config_store(config: Config) -> ConfigStore:
    return ConfigStore(JsonFileStore(config.settings_store_path))
