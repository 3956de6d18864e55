"""
Tests for the key-value stores and the configuration store.
"""

import asyncio
import json

import pytest

from mailmind.config import Config
from mailmind.errors import StoreError
from mailmind.models import PriorityLevel, Tone, UserPreferencesUpdate
from mailmind.storage import (
    PRIORITY_RULES_KEY,
    SETTINGS_NAMESPACE,
    USER_PREFERENCES_KEY,
    ConfigStore,
    JsonFileStore,
    KeyValueStore,
    build_cache_store,
    build_config_store,
)

from .conftest import FailingStore, make_rule


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_basic_operations(self, memory_store):
        async def scenario():
            await memory_store.set("ns", "a", {"x": 1})
            await memory_store.set("ns", "b", [1, 2])
            await memory_store.set("other", "c", "z")
            value = await memory_store.get("ns", "a")
            await memory_store.delete("ns", "b")
            await memory_store.delete("ns", "missing")
            return value, await memory_store.keys("ns"), await memory_store.get("ns", "b")

        value, keys, deleted = asyncio.run(scenario())

        assert value == {"x": 1}
        assert keys == ["a"]
        assert deleted is None

    def test_values_are_copied(self, memory_store):
        original = {"tags": ["a"]}

        async def scenario():
            await memory_store.set("ns", "k", original)
            original["tags"].append("b")
            fetched = await memory_store.get("ns", "k")
            fetched["tags"].append("c")
            return await memory_store.get("ns", "k")

        assert asyncio.run(scenario()) == {"tags": ["a"]}

    def test_satisfies_protocol(self, memory_store, tmp_path):
        assert isinstance(memory_store, KeyValueStore)
        assert isinstance(JsonFileStore(tmp_path / "s.json"), KeyValueStore)


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"

        asyncio.run(JsonFileStore(path).set("ns", "k", {"summary": "hi"}))
        value = asyncio.run(JsonFileStore(path).get("ns", "k"))

        assert value == {"summary": "hi"}
        assert json.loads(path.read_text(encoding="utf-8")) == {"ns": {"k": {"summary": "hi"}}}

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "none.json")

        assert asyncio.run(store.get("ns", "k")) is None
        assert asyncio.run(store.keys("ns")) == []

    def test_delete_and_keys(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")

        async def scenario():
            await store.set("ns", "a", 1)
            await store.set("ns", "b", 2)
            await store.delete("ns", "a")
            return await store.keys("ns")

        assert asyncio.run(scenario()) == ["b"]

    def test_concurrent_writes_all_land(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")

        async def scenario():
            await asyncio.gather(*(store.set("ns", f"k{i}", i) for i in range(10)))
            return sorted(await store.keys("ns"))

        assert asyncio.run(scenario()) == sorted(f"k{i}" for i in range(10))

    def test_corrupt_file_raises_store_error(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreError):
            asyncio.run(JsonFileStore(path).get("ns", "k"))

    def test_non_object_document_raises_store_error(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(StoreError):
            asyncio.run(JsonFileStore(path).keys("ns"))

    def test_builders_use_config_paths(self, tmp_path):
        config = Config(
            data_dir=tmp_path,
            cache_store_path=tmp_path / "cache.json",
            settings_store_path=tmp_path / "settings.json",
        )

        assert build_cache_store(config).path == tmp_path / "cache.json"
        assert build_config_store(config).store.path == tmp_path / "settings.json"


class TestConfigStore:
    """Tests for ConfigStore."""

    def test_defaults_when_empty(self, memory_store):
        store = ConfigStore(memory_store)

        rules = asyncio.run(store.get_priority_rules())
        preferences = asyncio.run(store.get_user_preferences())

        assert [r.id for r in rules] == ["rule_urgent", "rule_deadline", "rule_newsletter"]
        assert rules[0].conditions.sender_roles is None
        assert rules[2].level == PriorityLevel.LOW
        assert preferences.tone == Tone.PROFESSIONAL
        assert preferences.language.value == "en-US"

    def test_initialize_seeds_once(self, memory_store):
        store = ConfigStore(memory_store)

        async def scenario():
            await store.initialize()
            await store.set_priority_rules([make_rule(rule_id="custom")])
            await store.initialize()
            return await store.get_priority_rules()

        rules = asyncio.run(scenario())

        assert [r.id for r in rules] == ["custom"]
        assert asyncio.run(memory_store.get(SETTINGS_NAMESPACE, USER_PREFERENCES_KEY)) is not None

    def test_rules_round_trip_camel_case_conditions(self, memory_store):
        raw = [
            {
                "id": "r1",
                "name": "Billing",
                "conditions": {"subjectKeywords": ["invoice"], "senderDomains": ["billing"]},
                "level": "high",
                "weight": 0.8,
                "enabled": True,
            }
        ]
        asyncio.run(memory_store.set(SETTINGS_NAMESPACE, PRIORITY_RULES_KEY, raw))

        rules = asyncio.run(ConfigStore(memory_store).get_priority_rules())

        assert rules[0].conditions.subject_keywords == ["invoice"]
        assert rules[0].conditions.sender_domains == ["billing"]

    def test_invalid_stored_rule_is_skipped(self, memory_store):
        raw = [
            {"id": "bad", "name": "Bad", "weight": 3.0},
            {"id": "good", "name": "Good", "weight": 0.4},
        ]
        asyncio.run(memory_store.set(SETTINGS_NAMESPACE, PRIORITY_RULES_KEY, raw))

        rules = asyncio.run(ConfigStore(memory_store).get_priority_rules())

        assert [r.id for r in rules] == ["good"]

    def test_update_priority_rule_upserts_in_place(self, memory_store):
        store = ConfigStore(memory_store)

        async def scenario():
            await store.set_priority_rules([make_rule(rule_id="a"), make_rule(rule_id="b")])
            await store.update_priority_rule(make_rule(rule_id="a", weight=0.1))
            return await store.update_priority_rule(make_rule(rule_id="c"))

        rules = asyncio.run(scenario())

        assert [r.id for r in rules] == ["a", "b", "c"]
        assert rules[0].weight == 0.1

    def test_set_rule_enabled(self, memory_store):
        store = ConfigStore(memory_store)

        async def scenario():
            await store.set_priority_rules([make_rule(rule_id="a")])
            await store.set_rule_enabled("a", False)
            return await store.get_priority_rules()

        assert asyncio.run(scenario())[0].enabled is False

    def test_set_rule_enabled_unknown_id(self, memory_store):
        store = ConfigStore(memory_store)

        with pytest.raises(KeyError):
            asyncio.run(store.set_rule_enabled("nope", True))

    def test_update_user_preferences_merges(self, memory_store):
        store = ConfigStore(memory_store)

        async def scenario():
            await store.update_user_preferences(UserPreferencesUpdate(tone=Tone.CASUAL))
            await store.update_user_preferences({"enabled": False})
            return await store.get_user_preferences()

        preferences = asyncio.run(scenario())

        assert preferences.tone == Tone.CASUAL
        assert preferences.enabled is False

    def test_invalid_preferences_update_raises(self, memory_store):
        store = ConfigStore(memory_store)

        with pytest.raises(ValueError):
            asyncio.run(store.update_user_preferences({"tone": "sarcastic"}))

    def test_store_errors_propagate(self):
        store = ConfigStore(FailingStore())

        with pytest.raises(StoreError):
            asyncio.run(store.get_user_preferences())
