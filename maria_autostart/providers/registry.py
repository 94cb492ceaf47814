"""Build the provider registry from configuration."""

import logging
from dataclasses import replace

import httpx

from maria_autostart.config import Config
from maria_autostart.providers.catalog import PROVIDERS, ProviderSpec
from maria_autostart.providers.launchers import get_launcher
from maria_autostart.providers.models import ProviderDescriptor
from maria_autostart.providers.probes import CloudApiProbe, LocalServerProbe
from maria_autostart.system.processes import ProcessManager

logger = logging.getLogger(__name__)


def resolve_api_key(spec: ProviderSpec, config: Config) -> str | None:
    """Config override first, then each of the provider's env variables in order."""
    settings = config.get_provider_settings(spec.provider_id)
    if settings.api_key:
        return settings.api_key
    for env_var in spec.api_key_envs:
        value = config.secret(env_var)
        if value:
            return value
    return None


def build_descriptor(
    spec: ProviderSpec,
    config: Config,
    processes: ProcessManager,
    client: httpx.Client | None = None,
) -> ProviderDescriptor:
    """Create the descriptor for one catalog entry."""
    settings = config.get_provider_settings(spec.provider_id)
    if settings.base_url:
        spec = replace(spec, base_url=settings.base_url)
    url = spec.models_url

    if spec.kind.is_local:
        probe = LocalServerProbe(url, timeout=config.timeouts.probe_timeout, client=client)
        start = None
        if settings.auto_start:
            start = get_launcher(
                spec.provider_id,
                processes,
                model=settings.model,
                port_timeout=config.timeouts.start_timeout,
                poll_interval=config.timeouts.poll_interval,
                model_load_timeout=config.timeouts.model_load_timeout,
            )
    else:
        probe = CloudApiProbe(
            spec.provider_id,
            url,
            api_key=resolve_api_key(spec, config),
            placeholder=spec.placeholder_key,
            auth_style=spec.auth_style,
            timeout=config.timeouts.cloud_probe_timeout,
            client=client,
        )
        start = None

    return ProviderDescriptor(
        id=spec.provider_id,
        kind=spec.kind,
        probe=probe,
        start=start,
        priority_weights=dict(spec.weights),
        free_tier=spec.free_tier,
        display_name=spec.display_name,
        description=spec.description,
    )


def build_registry(config: Config, client: httpx.Client | None = None) -> list[ProviderDescriptor]:
    """Build descriptors for every enabled provider."""
    processes = ProcessManager(config.state_dir)
    registry: list[ProviderDescriptor] = []

    for provider_id, spec in PROVIDERS.items():
        if not config.get_provider_settings(provider_id).enabled:
            logger.debug(f"Provider {provider_id} disabled in config")
            continue
        registry.append(build_descriptor(spec, config, processes, client=client))

    return registry
