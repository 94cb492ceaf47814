"""Tests for provider models and the provider catalog."""

import pytest

from maria_autostart.providers.catalog import (
    LOCAL_PROVIDER_IDS,
    PROVIDERS,
    get_provider_spec,
)
from maria_autostart.providers.models import (
    PriorityMode,
    ProviderDescriptor,
    ProviderKind,
    ProviderStatus,
)


def _healthy() -> ProviderStatus:
    return ProviderStatus(running=True, healthy=True, models_available=["m"])


class TestPriorityMode:
    """Tests for PriorityMode enum."""

    def test_values(self):
        assert PriorityMode.PRIVACY_FIRST.value == "privacy-first"
        assert PriorityMode.PERFORMANCE.value == "performance"
        assert PriorityMode.COST_EFFECTIVE.value == "cost-effective"
        assert PriorityMode.AUTO.value == "auto"

    def test_parse_string(self):
        assert PriorityMode.parse("performance") is PriorityMode.PERFORMANCE
        assert PriorityMode.parse(" Cost-Effective ") is PriorityMode.COST_EFFECTIVE

    def test_parse_enum_passthrough(self):
        assert PriorityMode.parse(PriorityMode.AUTO) is PriorityMode.AUTO

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown priority mode"):
            PriorityMode.parse("fastest")


class TestProviderStatus:
    """Tests for ProviderStatus dataclass."""

    def test_defaults(self):
        status = ProviderStatus()
        assert status.running is False
        assert status.healthy is False
        assert status.models_available == []
        assert status.response_time_ms is None
        assert status.error is None
        assert status.configured is True

    def test_healthy_requires_running(self):
        with pytest.raises(ValueError):
            ProviderStatus(running=False, healthy=True)

    def test_running_without_healthy_is_allowed(self):
        status = ProviderStatus(running=True, healthy=False, error="HTTP 500")
        assert status.running
        assert not status.healthy

    def test_not_configured(self):
        status = ProviderStatus.not_configured("groq: API key not set")
        assert status.configured is False
        assert status.healthy is False
        assert "not configured" in str(status)

    def test_failed(self):
        status = ProviderStatus.failed("timeout after 3.0s")
        assert not status.running
        assert status.error == "timeout after 3.0s"
        assert "down" in str(status)

    def test_str_healthy(self):
        status = ProviderStatus(
            running=True,
            healthy=True,
            models_available=["a", "b"],
            response_time_ms=12.3,
        )
        assert str(status) == "healthy (2 models, 12ms)"


class TestProviderDescriptor:
    """Tests for ProviderDescriptor dataclass."""

    def test_cloud_cannot_have_start(self):
        with pytest.raises(ValueError, match="cannot have a start"):
            ProviderDescriptor(
                id="gemini",
                kind=ProviderKind.CLOUD_API,
                probe=_healthy,
                start=lambda timeout: None,
            )

    def test_can_start(self):
        local = ProviderDescriptor(
            id="ollama",
            kind=ProviderKind.LOCAL_PROCESS,
            probe=_healthy,
            start=lambda timeout: None,
        )
        no_start = ProviderDescriptor(id="vllm", kind=ProviderKind.LOCAL_SERVER, probe=_healthy)
        assert local.can_start
        assert not no_start.can_start

    def test_weight_for_falls_back_to_privacy_first(self):
        descriptor = ProviderDescriptor(
            id="ollama",
            kind=ProviderKind.LOCAL_PROCESS,
            probe=_healthy,
            priority_weights={PriorityMode.PRIVACY_FIRST: 2, PriorityMode.PERFORMANCE: 0},
        )
        assert descriptor.weight_for(PriorityMode.PERFORMANCE) == 0
        assert descriptor.weight_for(PriorityMode.AUTO) == 2
        assert descriptor.weight_for(PriorityMode.COST_EFFECTIVE) == 2

    def test_weight_default_without_hints(self):
        descriptor = ProviderDescriptor(id="x", kind=ProviderKind.LOCAL_SERVER, probe=_healthy)
        assert descriptor.weight_for(PriorityMode.PERFORMANCE) == 100


class TestCatalog:
    """Tests for the provider catalog."""

    def test_known_providers(self):
        assert set(PROVIDERS) == {"lmstudio", "vllm", "ollama", "gemini", "groq", "grok"}

    def test_local_providers_have_ports(self):
        for provider_id in LOCAL_PROVIDER_IDS:
            assert PROVIDERS[provider_id].port is not None

    def test_local_provider_ids(self):
        assert LOCAL_PROVIDER_IDS == ["lmstudio", "vllm", "ollama"]

    def test_cloud_providers_have_credentials(self):
        for spec in PROVIDERS.values():
            if not spec.kind.is_local:
                assert spec.api_key_envs
                assert spec.placeholder_key

    def test_models_url(self):
        assert PROVIDERS["ollama"].models_url == "http://localhost:11434/api/tags"
        assert PROVIDERS["lmstudio"].models_url == "http://localhost:1234/v1/models"

    def test_free_tier(self):
        assert PROVIDERS["gemini"].free_tier
        assert PROVIDERS["groq"].free_tier
        assert not PROVIDERS["grok"].free_tier

    def test_get_by_alias(self):
        spec = get_provider_spec("google")
        assert spec is not None
        assert spec.provider_id == "gemini"

    def test_get_unknown(self):
        assert get_provider_spec("openrouter") is None

    def test_env_name(self):
        assert PROVIDERS["gemini"].env_name == "google"
        assert PROVIDERS["ollama"].env_name == "ollama"
