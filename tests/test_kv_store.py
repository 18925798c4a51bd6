"""Tests for key-value stores and best-effort session persistence."""

import pytest

from docrefine.core.config import get_settings
from docrefine.core.presets import PromptSettings
from docrefine.core.schemas import AnalysisMode, ClarificationQuestion, ProviderKind, ResultNode, Stage
from docrefine.core.session import DocumentSession
from docrefine.db.kv_store import InMemoryStore, JsonFileStore, KeyValueStoreError
from docrefine.db.session_store import Credentials, Preferences, SessionStore


class TestInMemoryStore:
    def test_set_get_delete(self):
        store = InMemoryStore()
        store.set("k", {"a": [1, 2]})

        assert store.get("k") == {"a": [1, 2]}
        store.delete("k")
        assert store.get("k") is None

    def test_values_are_copied(self):
        store = InMemoryStore()
        value = {"items": [1]}
        store.set("k", value)
        value["items"].append(2)

        assert store.get("k") == {"items": [1]}


class TestJsonFileStore:
    def test_round_trip(self, tmp_path):
        store = JsonFileStore(tmp_path / "state")
        store.set("session", {"history": [], "title": "Überblick"})

        assert (tmp_path / "state" / "session.json").exists()
        assert JsonFileStore(tmp_path / "state").get("session") == {
            "history": [],
            "title": "Überblick",
        }

    def test_missing_key(self, tmp_path):
        assert JsonFileStore(tmp_path).get("nothing") is None

    def test_delete_missing_key(self, tmp_path):
        JsonFileStore(tmp_path).delete("nothing")

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "sp ace"])
    def test_invalid_keys(self, tmp_path, key):
        with pytest.raises(KeyValueStoreError):
            JsonFileStore(tmp_path).get(key)

    def test_corrupted_file(self, tmp_path):
        (tmp_path / "session.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(KeyValueStoreError):
            JsonFileStore(tmp_path).get("session")

    def test_unserialisable_value(self, tmp_path):
        with pytest.raises(KeyValueStoreError):
            JsonFileStore(tmp_path).set("bad", {"value": object()})


class TestSessionStore:
    def test_session_round_trip(self):
        store = SessionStore(InMemoryStore())
        session = DocumentSession()
        baseline = ResultNode(content="# Baseline")
        session.commit_analysis(baseline)
        session.set_questions(baseline.id, [ClarificationQuestion(question="Scope?")])

        assert store.save_session(session) is True
        restored = store.load_session()

        assert restored.history.ids == [baseline.id]
        assert restored.node_artifacts(baseline.id).questions[0].question == "Scope?"
        assert restored.document is None

    def test_corrupted_session_falls_back(self, tmp_path):
        (tmp_path / "session.json").write_text("{broken", encoding="utf-8")
        store = SessionStore(JsonFileStore(tmp_path))

        session = store.load_session()

        assert len(session.history) == 0

    def test_invalid_session_shape_falls_back(self):
        backend = InMemoryStore()
        backend.set("session", {"history": [{"no_content": True}]})

        session = SessionStore(backend).load_session()

        assert len(session.history) == 0

    def test_prompt_settings_round_trip(self):
        store = SessionStore(InMemoryStore())
        prompt_settings = PromptSettings.defaults(get_settings())
        prompt_settings.update_stage(Stage.ANALYZE, user_prompt="Keep tables")
        prompt_settings.save_preset(Stage.ANALYZE, "Tables")

        store.save_prompt_settings(prompt_settings)
        restored = store.load_prompt_settings(get_settings())

        analyze = restored.stage(Stage.ANALYZE)
        assert analyze.user_prompt == "Keep tables"
        assert analyze.presets[0].name == "Tables"

    def test_prompt_settings_default_when_unreadable(self):
        backend = InMemoryStore()
        backend.set("prompt_settings", {"stages": "nope"})

        restored = SessionStore(backend).load_prompt_settings(get_settings())

        assert set(restored.stages) == set(Stage)

    def test_credentials_and_preferences(self):
        store = SessionStore(InMemoryStore())
        store.save_credentials(
            Credentials(provider=ProviderKind.OPENROUTER, openrouter_api_key="sk-or", credentials_invalid=True)
        )
        store.save_preferences(Preferences(analysis_mode=AnalysisMode.RAW_DOCUMENT, thinking_enabled=True))

        credentials = store.load_credentials()
        preferences = store.load_preferences()

        assert credentials.provider == ProviderKind.OPENROUTER
        assert credentials.openrouter_api_key == "sk-or"
        assert credentials.credentials_invalid is True
        assert preferences.analysis_mode == AnalysisMode.RAW_DOCUMENT
        assert preferences.thinking_enabled is True

    def test_empty_store_defaults(self):
        store = SessionStore(InMemoryStore())

        assert store.load_credentials() == Credentials()
        assert store.load_preferences() == Preferences()

    def test_write_failure_is_reported_not_raised(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = SessionStore(JsonFileStore(blocker))

        assert store.save_credentials(Credentials()) is False
