"""Side-effect-free provider probes."""

import logging
import shutil
import socket
import time
from typing import Any

import httpx

from maria_autostart.providers.models import ProbeFn, ProviderStatus

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """A provider could not be probed (network error, timeout, bad response)."""


class NotConfiguredError(ProbeError):
    """A cloud provider has no usable credential."""


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


def port_is_open(host: str, port: int, timeout: float = 1.0) -> bool:
    """Check whether something accepts TCP connections on host:port."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def is_placeholder_key(value: str, placeholder: str = "") -> bool:
    """Detect template values such as 'your-groq-api-key-here'."""
    value = value.strip()
    if placeholder and value == placeholder:
        return True
    return "your-" in value and value.endswith("-here")


def require_api_key(provider_id: str, api_key: str | None, placeholder: str = "") -> str:
    """Return a usable API key or raise NotConfiguredError."""
    if not api_key or not api_key.strip():
        raise NotConfiguredError(f"{provider_id}: API key not set")
    if is_placeholder_key(api_key, placeholder):
        raise NotConfiguredError(f"{provider_id}: API key is a placeholder")
    return api_key.strip()


def extract_model_ids(payload: Any) -> list[str]:
    """
    Pull model identifiers out of a models-endpoint response.

    Understands OpenAI-style ``{"data": [{"id": ...}]}`` and
    Ollama/Gemini-style ``{"models": [{"name": ...}]}`` bodies.

    Raises:
        ProbeError: If the body has neither list
    """
    if not isinstance(payload, dict):
        raise ProbeError(f"Unexpected response type: {type(payload).__name__}")

    entries = payload.get("data")
    if entries is None:
        entries = payload.get("models")
    if not isinstance(entries, list):
        raise ProbeError("Response has no 'data' or 'models' list")

    model_ids: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            model_ids.append(entry)
        elif isinstance(entry, dict):
            model_id = entry.get("id") or entry.get("name") or entry.get("model")
            if model_id:
                model_ids.append(str(model_id))
    return model_ids


def probe_models_endpoint(
    url: str,
    timeout: float = 3.0,
    headers: dict[str, str] | None = None,
    require_models: bool = True,
    client: httpx.Client | None = None,
) -> ProviderStatus:
    """
    GET a models endpoint and turn the outcome into a ProviderStatus.

    Args:
        url: Full URL of the models endpoint
        timeout: Request timeout in seconds
        headers: Extra request headers (e.g. Authorization)
        require_models: Treat an empty model list as unhealthy
        client: Optional httpx client (tests pass one with a mock transport)

    Returns:
        ProviderStatus; this function does not raise
    """
    started = time.perf_counter()
    try:
        if client is not None:
            response = client.get(url, headers=headers, timeout=timeout)
        else:
            with httpx.Client(timeout=timeout) as owned:
                response = owned.get(url, headers=headers)
    except httpx.ConnectError as e:
        logger.debug(f"Probe {url}: connection failed: {e}")
        return ProviderStatus.failed(f"connection refused: {url}")
    except httpx.TimeoutException:
        logger.debug(f"Probe {url}: timeout after {timeout}s")
        return ProviderStatus.failed(f"timeout after {timeout}s")
    except httpx.HTTPError as e:
        logger.debug(f"Probe {url}: {e}")
        return ProviderStatus.failed(f"request failed: {e}")

    elapsed_ms = (time.perf_counter() - started) * 1000

    if not response.is_success:
        return ProviderStatus(
            running=True,
            healthy=False,
            response_time_ms=elapsed_ms,
            error=f"HTTP {response.status_code}",
        )

    try:
        model_ids = extract_model_ids(response.json())
    except ValueError:
        return ProviderStatus(
            running=True,
            healthy=False,
            response_time_ms=elapsed_ms,
            error="malformed JSON response",
        )
    except ProbeError as e:
        return ProviderStatus(running=True, healthy=False, response_time_ms=elapsed_ms, error=str(e))

    if require_models and not model_ids:
        return ProviderStatus(
            running=True,
            healthy=False,
            response_time_ms=elapsed_ms,
            error="no models available",
        )

    return ProviderStatus(
        running=True,
        healthy=True,
        models_available=model_ids,
        response_time_ms=elapsed_ms,
    )


class LocalServerProbe:
    """Probe for a local model server's models endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 3.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.client = client

    def __call__(self) -> ProviderStatus:
        return probe_models_endpoint(
            self.url,
            timeout=self.timeout,
            require_models=True,
            client=self.client,
        )


class CloudApiProbe:
    """
    Probe for a cloud API's list-models endpoint.

    Raises NotConfiguredError before any network call when the credential
    is missing or still a template value.
    """

    def __init__(
        self,
        provider_id: str,
        url: str,
        api_key: str | None,
        placeholder: str = "",
        auth_style: str = "bearer",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.url = url
        self.api_key = api_key
        self.placeholder = placeholder
        self.auth_style = auth_style
        self.timeout = timeout
        self.client = client

    @property
    def configured(self) -> bool:
        try:
            require_api_key(self.provider_id, self.api_key, self.placeholder)
        except NotConfiguredError:
            return False
        return True

    def __call__(self) -> ProviderStatus:
        key = require_api_key(self.provider_id, self.api_key, self.placeholder)

        if self.auth_style == "bearer":
            headers = {"Authorization": f"Bearer {key}"}
        else:
            # The key travels in a header, never in the (logged) URL
            headers = {self.auth_style: key}

        return probe_models_endpoint(
            self.url,
            timeout=self.timeout,
            headers=headers,
            require_models=False,
            client=self.client,
        )


def run_probe(probe: ProbeFn, provider_id: str = "") -> ProviderStatus:
    """Run a probe, converting every failure into a status."""
    label = provider_id or "provider"
    try:
        return probe()
    except NotConfiguredError as e:
        logger.debug(f"{label} not configured: {e}")
        return ProviderStatus.not_configured(str(e))
    except Exception as e:
        logger.warning(f"Probe for {label} failed: {e}")
        return ProviderStatus.failed(str(e) or type(e).__name__)
