"""maria-autostart: detect, start and select a local or cloud LLM provider."""

__version__ = "0.1.0"

from maria_autostart.config import Config
from maria_autostart.providers.models import (
    PriorityMode,
    ProviderDescriptor,
    ProviderKind,
    ProviderStatus,
)
from maria_autostart.system.provider_selector import (
    ProviderSelector,
    SelectionResult,
    select_provider,
)

__all__ = [
    "__version__",
    "Config",
    "PriorityMode",
    "ProviderDescriptor",
    "ProviderKind",
    "ProviderStatus",
    "ProviderSelector",
    "SelectionResult",
    "select_provider",
]
