"""Tests for the persisted selection and .env.local sync."""

import json
from datetime import datetime, timedelta, timezone

from dotenv import dotenv_values

from maria_autostart.providers.models import PriorityMode, ProviderStatus
from maria_autostart.state import SelectionStore, is_fresh, sync_env_file
from maria_autostart.system.provider_selector import CandidateAttempt, SelectionResult


def make_result(chosen: str | None = "ollama", **kwargs) -> SelectionResult:
    attempts = {
        "lmstudio": CandidateAttempt("lmstudio", ProviderStatus.failed("connection refused"), started=True,
                                     start_error="No models found in LM Studio"),
    }
    attempted = ["lmstudio"]
    if chosen:
        attempts[chosen] = CandidateAttempt(
            chosen, ProviderStatus(running=True, healthy=True, models_available=["qwen2.5-vl:7b"])
        )
        attempted.append(chosen)
    return SelectionResult(
        chosen_provider_id=chosen,
        mode=PriorityMode.PRIVACY_FIRST,
        attempted_ids=attempted,
        attempts=attempts,
        **kwargs,
    )


class TestSelectionStore:
    """Tests for SelectionStore."""

    def test_save_and_load(self, tmp_path):
        store = SelectionStore(tmp_path / "state" / "selection.json")
        store.save(make_result())

        data = store.load()
        assert data["version"] == "1.0.0"
        assert data["chosen_provider_id"] == "ollama"
        assert data["selected_model"] == "qwen2.5-vl:7b"
        assert data["mode"] == "privacy-first"

        result = store.load_result()
        assert result.chosen_provider_id == "ollama"
        assert result.chosen_model == "qwen2.5-vl:7b"
        assert result.attempted_ids == ["lmstudio", "ollama"]
        assert result.attempts["lmstudio"].started
        assert result.errors() == {"lmstudio": "No models found in LM Studio"}

    def test_no_temp_files_left(self, tmp_path):
        store = SelectionStore(tmp_path / "selection.json")
        store.save(make_result())
        store.save(make_result(chosen="groq"))

        assert [p.name for p in tmp_path.iterdir()] == ["selection.json"]

    def test_missing_file(self, tmp_path):
        store = SelectionStore(tmp_path / "selection.json")
        assert store.load() is None
        assert store.load_result() is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "selection.json"
        path.write_text("{truncated")
        assert SelectionStore(path).load() is None

    def test_missing_required_keys(self, tmp_path):
        path = tmp_path / "selection.json"
        path.write_text(json.dumps({"chosen_provider_id": "ollama"}))
        assert SelectionStore(path).load() is None

    def test_unknown_mode_is_ignored(self, tmp_path):
        path = tmp_path / "selection.json"
        path.write_text(json.dumps({"mode": "fastest", "timestamp": "2026-01-01T00:00:00+00:00"}))
        assert SelectionStore(path).load_result() is None

    def test_clear(self, tmp_path):
        store = SelectionStore(tmp_path / "selection.json")
        store.save(make_result())
        store.clear()
        store.clear()
        assert not store.path.exists()


class TestIsFresh:
    """Tests for is_fresh."""

    def test_recent_success(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = make_result(timestamp=now - timedelta(seconds=60))
        assert is_fresh(result, max_age=300, now=now)

    def test_stale(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = make_result(timestamp=now - timedelta(minutes=10))
        assert not is_fresh(result, max_age=300, now=now)

    def test_failed_selection_never_fresh(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = make_result(chosen=None, timestamp=now)
        assert not is_fresh(result, max_age=300, now=now)

    def test_caching_disabled(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert not is_fresh(make_result(timestamp=now), max_age=0, now=now)

    def test_naive_timestamp_treated_as_utc(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = make_result(timestamp=datetime(2026, 5, 1, 11, 59))
        assert is_fresh(result, max_age=300, now=now)

    def test_future_timestamp(self):
        now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
        result = make_result(timestamp=now + timedelta(hours=1))
        assert not is_fresh(result, max_age=300, now=now)


class TestSyncEnvFile:
    """Tests for sync_env_file."""

    def test_missing_file_is_left_alone(self, tmp_path):
        env_file = tmp_path / ".env.local"
        assert not sync_env_file(env_file, "ollama")
        assert not env_file.exists()

    def test_local_provider(self, tmp_path):
        env_file = tmp_path / ".env.local"
        env_file.write_text("OTHER=1\n")

        assert sync_env_file(env_file, "ollama")

        values = dotenv_values(env_file)
        assert values["AI_PROVIDER"] == "ollama"
        assert values["OLLAMA_ENABLED"] == "true"
        assert values["OTHER"] == "1"

    def test_gemini_is_written_as_google(self, tmp_path):
        env_file = tmp_path / ".env.local"
        env_file.write_text("")

        sync_env_file(env_file, "gemini")

        values = dotenv_values(env_file)
        assert values["AI_PROVIDER"] == "google"
        assert "GEMINI_ENABLED" not in values

    def test_replaces_existing_value(self, tmp_path):
        env_file = tmp_path / ".env.local"
        env_file.write_text("AI_PROVIDER=openai\nGROQ_API_KEY=gsk_live\n")

        sync_env_file(env_file, "lmstudio")

        text = env_file.read_text()
        assert text.count("AI_PROVIDER=") == 1
        values = dotenv_values(env_file)
        assert values["AI_PROVIDER"] == "lmstudio"
        assert values["LMSTUDIO_ENABLED"] == "true"
        assert values["GROQ_API_KEY"] == "gsk_live"
