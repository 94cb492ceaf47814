"""Provider data model: kinds, priority modes, statuses and descriptors."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class ProviderKind(Enum):
    """How a provider is reached."""

    LOCAL_PROCESS = "local-process"  # Managed through a vendor CLI (lms, ollama)
    LOCAL_SERVER = "local-server"  # Plain HTTP server we launch ourselves
    CLOUD_API = "cloud-api"

    @property
    def is_local(self) -> bool:
        return self is not ProviderKind.CLOUD_API


class PriorityMode(Enum):
    """Named policies that decide the candidate evaluation order."""

    PRIVACY_FIRST = "privacy-first"
    PERFORMANCE = "performance"
    COST_EFFECTIVE = "cost-effective"
    AUTO = "auto"

    @classmethod
    def parse(cls, value: "PriorityMode | str") -> "PriorityMode":
        """Accept either a mode or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unknown priority mode '{value}' (expected one of: {valid})") from None


@dataclass
class ProviderStatus:
    """Result of probing a provider once."""

    running: bool = False
    healthy: bool = False
    models_available: list[str] = field(default_factory=list)
    response_time_ms: float | None = None
    error: str | None = None
    configured: bool = True

    def __post_init__(self) -> None:
        if self.healthy and not self.running:
            raise ValueError("A provider cannot be healthy without running")

    @classmethod
    def not_configured(cls, reason: str) -> "ProviderStatus":
        return cls(running=False, healthy=False, error=reason, configured=False)

    @classmethod
    def failed(cls, error: str, running: bool = False) -> "ProviderStatus":
        return cls(running=running, healthy=False, error=error)

    def __str__(self) -> str:
        if not self.configured:
            return f"not configured ({self.error})"
        if self.healthy:
            latency = f", {self.response_time_ms:.0f}ms" if self.response_time_ms is not None else ""
            return f"healthy ({len(self.models_available)} models{latency})"
        state = "running but unhealthy" if self.running else "down"
        return f"{state} ({self.error})" if self.error else state


ProbeFn = Callable[[], ProviderStatus]
# Called with the seconds the launch may take
StartFn = Callable[[float], None]


@dataclass(frozen=True)
class ProviderDescriptor:
    """A candidate inference backend and its capabilities."""

    id: str
    kind: ProviderKind
    probe: ProbeFn
    start: StartFn | None = None
    priority_weights: dict[PriorityMode, int] = field(default_factory=dict)
    free_tier: bool = False
    display_name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if self.kind is ProviderKind.CLOUD_API and self.start is not None:
            raise ValueError(f"Cloud provider '{self.id}' cannot have a start capability")

    @property
    def is_local(self) -> bool:
        return self.kind.is_local

    @property
    def can_start(self) -> bool:
        return self.is_local and self.start is not None

    def weight_for(self, mode: PriorityMode) -> int:
        """Ranking weight for a mode; lower ranks earlier."""
        if mode in self.priority_weights:
            return self.priority_weights[mode]
        # Modes without their own weight tie-break on the privacy-first ladder
        return self.priority_weights.get(PriorityMode.PRIVACY_FIRST, 100)
