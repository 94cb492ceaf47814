"""Tests for provider probes."""

import socket

import httpx
import pytest

from maria_autostart.providers.models import ProviderStatus
from maria_autostart.providers.probes import (
    CloudApiProbe,
    LocalServerProbe,
    NotConfiguredError,
    ProbeError,
    extract_model_ids,
    is_placeholder_key,
    port_is_open,
    probe_models_endpoint,
    require_api_key,
    run_probe,
)


def make_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestExtractModelIds:
    """Tests for extract_model_ids."""

    def test_openai_style(self):
        payload = {"object": "list", "data": [{"id": "gpt-oss-20b"}, {"id": "qwen3"}]}
        assert extract_model_ids(payload) == ["gpt-oss-20b", "qwen3"]

    def test_ollama_style(self):
        payload = {"models": [{"name": "qwen2.5-vl:7b", "size": 123}]}
        assert extract_model_ids(payload) == ["qwen2.5-vl:7b"]

    def test_gemini_style(self):
        payload = {"models": [{"name": "models/gemini-2.5-flash"}]}
        assert extract_model_ids(payload) == ["models/gemini-2.5-flash"]

    def test_plain_strings(self):
        assert extract_model_ids({"data": ["a", "b"]}) == ["a", "b"]

    def test_skips_entries_without_id(self):
        assert extract_model_ids({"data": [{"object": "model"}, {"id": "x"}]}) == ["x"]

    def test_missing_list(self):
        with pytest.raises(ProbeError):
            extract_model_ids({"status": "ok"})

    def test_not_an_object(self):
        with pytest.raises(ProbeError):
            extract_model_ids(["a"])


class TestProbeModelsEndpoint:
    """Tests for probe_models_endpoint."""

    def test_healthy(self):
        client = make_client(lambda request: httpx.Response(200, json={"data": [{"id": "m1"}]}))

        status = probe_models_endpoint("http://localhost:1234/v1/models", client=client)

        assert status.running
        assert status.healthy
        assert status.models_available == ["m1"]
        assert status.response_time_ms is not None
        assert status.error is None

    def test_non_2xx_is_running_but_unhealthy(self):
        client = make_client(lambda request: httpx.Response(503, text="loading"))

        status = probe_models_endpoint("http://localhost:8000/v1/models", client=client)

        assert status.running
        assert not status.healthy
        assert status.error == "HTTP 503"

    def test_empty_model_list_unhealthy_when_required(self):
        client = make_client(lambda request: httpx.Response(200, json={"data": []}))

        status = probe_models_endpoint("http://localhost:1234/v1/models", client=client)

        assert status.running
        assert not status.healthy
        assert status.error == "no models available"

    def test_empty_model_list_healthy_when_not_required(self):
        client = make_client(lambda request: httpx.Response(200, json={"data": []}))

        status = probe_models_endpoint("https://api.x.ai/v1/models", require_models=False, client=client)

        assert status.healthy
        assert status.models_available == []

    def test_malformed_json(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>not json</html>"))

        status = probe_models_endpoint("http://localhost:1234/v1/models", client=client)

        assert status.running
        assert not status.healthy
        assert status.error == "malformed JSON response"

    def test_unexpected_shape(self):
        client = make_client(lambda request: httpx.Response(200, json={"ok": True}))

        status = probe_models_endpoint("http://localhost:1234/v1/models", client=client)

        assert status.running
        assert not status.healthy
        assert "no 'data' or 'models'" in status.error

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        status = probe_models_endpoint("http://localhost:1234/v1/models", client=make_client(handler))

        assert not status.running
        assert not status.healthy
        assert "connection refused" in status.error

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        status = probe_models_endpoint("http://localhost:1234/v1/models", timeout=2.0, client=make_client(handler))

        assert not status.running
        assert status.error == "timeout after 2.0s"


class TestLocalServerProbe:
    """Tests for LocalServerProbe."""

    def test_probes_configured_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"models": [{"name": "qwen2.5-vl:7b"}]})

        probe = LocalServerProbe("http://localhost:11434/api/tags", client=make_client(handler))
        status = probe()

        assert status.healthy
        assert seen == ["http://localhost:11434/api/tags"]


class TestCloudApiProbe:
    """Tests for CloudApiProbe."""

    def test_missing_key_raises_without_network(self):
        calls = []
        probe = CloudApiProbe(
            "groq",
            "https://api.groq.com/openai/v1/models",
            api_key=None,
            client=make_client(lambda request: calls.append(request) or httpx.Response(200, json={"data": []})),
        )

        with pytest.raises(NotConfiguredError, match="not set"):
            probe()
        assert calls == []
        assert probe.configured is False

    def test_placeholder_key_raises(self):
        probe = CloudApiProbe(
            "groq",
            "https://api.groq.com/openai/v1/models",
            api_key="gsk_your-groq-api-key-here",
            placeholder="gsk_your-groq-api-key-here",
        )

        with pytest.raises(NotConfiguredError, match="placeholder"):
            probe()

    def test_bearer_auth(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": [{"id": "llama-3.3-70b"}]})

        probe = CloudApiProbe(
            "groq",
            "https://api.groq.com/openai/v1/models",
            api_key="gsk_live_123",
            client=make_client(handler),
        )
        status = probe()

        assert status.healthy
        assert seen["auth"] == "Bearer gsk_live_123"
        assert probe.configured

    def test_key_header_auth_keeps_key_out_of_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"models": [{"name": "models/gemini-2.5-flash"}]})

        probe = CloudApiProbe(
            "gemini",
            "https://generativelanguage.googleapis.com/v1beta/models",
            api_key="AIza-real",
            auth_style="x-goog-api-key",
            client=make_client(handler),
        )
        status = probe()

        assert status.healthy
        assert seen["key"] == "AIza-real"
        assert seen["auth"] is None
        assert "AIza-real" not in seen["url"]

    def test_rejected_key_is_running_but_unhealthy(self):
        probe = CloudApiProbe(
            "grok",
            "https://api.x.ai/v1/models",
            api_key="xai-revoked",
            client=make_client(lambda request: httpx.Response(401, json={"error": "invalid key"})),
        )
        status = probe()

        assert status.running
        assert not status.healthy
        assert status.error == "HTTP 401"
        assert status.configured


class TestCredentials:
    """Tests for credential helpers."""

    def test_placeholder_detection(self):
        assert is_placeholder_key("your-gemini-api-key-here")
        assert is_placeholder_key("xai-your-grok-api-key-here")
        assert is_placeholder_key("custom", placeholder="custom")
        assert not is_placeholder_key("gsk_abc123")

    def test_require_api_key_strips(self):
        assert require_api_key("groq", "  gsk_abc  ") == "gsk_abc"

    def test_require_api_key_blank(self):
        with pytest.raises(NotConfiguredError):
            require_api_key("groq", "   ")


class TestPortIsOpen:
    """Tests for port_is_open."""

    def test_open_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert port_is_open("127.0.0.1", port)

    def test_closed_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe_socket:
            probe_socket.bind(("127.0.0.1", 0))
            port = probe_socket.getsockname()[1]
        assert not port_is_open("127.0.0.1", port, timeout=0.5)


class TestRunProbe:
    """Tests for run_probe."""

    def test_passes_status_through(self):
        status = run_probe(lambda: ProviderStatus(running=True, healthy=True, models_available=["m"]))
        assert status.healthy

    def test_not_configured(self):
        def probe():
            raise NotConfiguredError("grok: API key not set")

        status = run_probe(probe, "grok")
        assert not status.configured
        assert status.error == "grok: API key not set"

    def test_unexpected_error(self):
        def probe():
            raise RuntimeError("boom")

        status = run_probe(probe, "vllm")
        assert status.configured
        assert not status.running
        assert status.error == "boom"

    def test_error_without_message(self):
        def probe():
            raise KeyError()

        assert run_probe(probe).error == "KeyError"
