"""Provider model, catalog, probes and launchers."""

from maria_autostart.providers.catalog import PROVIDERS, ProviderSpec, get_provider_spec
from maria_autostart.providers.models import (
    PriorityMode,
    ProviderDescriptor,
    ProviderKind,
    ProviderStatus,
)

__all__ = [
    "PROVIDERS",
    "ProviderSpec",
    "get_provider_spec",
    "PriorityMode",
    "ProviderDescriptor",
    "ProviderKind",
    "ProviderStatus",
]
