"""Priority-ordered provider discovery and failover selection."""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from maria_autostart.providers.launchers import StartError
from maria_autostart.providers.models import (
    PriorityMode,
    ProviderDescriptor,
    ProviderStatus,
    StartFn,
)
from maria_autostart.providers.probes import run_probe
from maria_autostart.system.polling import wait_until

logger = logging.getLogger(__name__)

# Default bounds for confirming a freshly started provider
DEFAULT_START_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0


@dataclass(frozen=True)
class LadderStep:
    """One rung of a priority ladder."""

    descriptor: ProviderDescriptor
    allow_start: bool


@dataclass
class CandidateAttempt:
    """What happened to one candidate during a selection run."""

    provider_id: str
    status: ProviderStatus
    started: bool = False
    start_error: str | None = None

    @property
    def error(self) -> str | None:
        return self.start_error or self.status.error


@dataclass
class SelectionResult:
    """Result of provider selection."""

    chosen_provider_id: str | None
    mode: PriorityMode
    attempted_ids: list[str] = field(default_factory=list)
    attempts: dict[str, CandidateAttempt] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.chosen_provider_id is not None

    @property
    def chosen_status(self) -> ProviderStatus | None:
        if self.chosen_provider_id is None:
            return None
        return self.attempts[self.chosen_provider_id].status

    @property
    def chosen_model(self) -> str | None:
        status = self.chosen_status
        if status and status.models_available:
            return status.models_available[0]
        return None

    def errors(self) -> dict[str, str]:
        """Map each failed candidate to its error text."""
        return {
            provider_id: attempt.error
            for provider_id, attempt in self.attempts.items()
            if attempt.error and provider_id != self.chosen_provider_id
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "chosen_provider_id": self.chosen_provider_id,
            "selected_model": self.chosen_model,
            "mode": self.mode.value,
            "attempted_ids": list(self.attempted_ids),
            "timestamp": self.timestamp.isoformat(),
            "attempts": [
                {
                    "id": provider_id,
                    "running": attempt.status.running,
                    "healthy": attempt.status.healthy,
                    "configured": attempt.status.configured,
                    "started": attempt.started,
                    "error": attempt.error,
                }
                for provider_id, attempt in self.attempts.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectionResult":
        """Rebuild a result from its persisted form."""
        chosen = data.get("chosen_provider_id")
        attempts: dict[str, CandidateAttempt] = {}
        for entry in data.get("attempts", []):
            healthy = bool(entry.get("healthy", False))
            models = []
            if entry["id"] == chosen and data.get("selected_model"):
                models = [data["selected_model"]]
            status = ProviderStatus(
                running=bool(entry.get("running", False)) or healthy,
                healthy=healthy,
                models_available=models,
                error=entry.get("error"),
                configured=entry.get("configured", True),
            )
            attempts[entry["id"]] = CandidateAttempt(
                provider_id=entry["id"],
                status=status,
                started=bool(entry.get("started", False)),
            )

        return cls(
            chosen_provider_id=chosen,
            mode=PriorityMode.parse(data["mode"]),
            attempted_ids=list(data.get("attempted_ids", [])),
            attempts=attempts,
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )

    def __str__(self) -> str:
        if self.chosen_provider_id is None:
            return f"No provider available ({self.mode.value}, tried {', '.join(self.attempted_ids)})"
        return f"Selected {self.chosen_provider_id} ({self.mode.value})"


def _sorted_for(mode: PriorityMode, registry: Sequence[ProviderDescriptor]) -> list[ProviderDescriptor]:
    # The id tie-break keeps ranking independent of registry order
    return sorted(registry, key=lambda d: (d.weight_for(mode), d.id))


def build_ladder(mode: PriorityMode, registry: Sequence[ProviderDescriptor]) -> list[LadderStep]:
    """
    Build the ordered ladder of steps for a priority mode.

    A provider may appear twice (first probe-only, later with start
    allowed) so that already-running services are tried before anything
    new is launched.
    """
    if mode is PriorityMode.PRIVACY_FIRST:
        ranked = _sorted_for(mode, registry)
        locals_ = [d for d in ranked if d.is_local]
        clouds = [d for d in ranked if not d.is_local]
        return [LadderStep(d, True) for d in locals_] + [LadderStep(d, False) for d in clouds]

    if mode is PriorityMode.PERFORMANCE:
        return [LadderStep(d, d.is_local) for d in _sorted_for(mode, registry)]

    if mode is PriorityMode.COST_EFFECTIVE:
        ranked = _sorted_for(mode, registry)
        free_clouds = [d for d in ranked if not d.is_local and d.free_tier]
        paid_clouds = [d for d in ranked if not d.is_local and not d.free_tier]
        locals_ = [d for d in ranked if d.is_local]
        return (
            [LadderStep(d, False) for d in free_clouds]
            + [LadderStep(d, False) for d in locals_]
            + [LadderStep(d, True) for d in locals_ if d.can_start]
            + [LadderStep(d, False) for d in paid_clouds]
        )

    if mode is PriorityMode.AUTO:
        base = build_ladder(PriorityMode.PRIVACY_FIRST, registry)
        running_pass = [LadderStep(step.descriptor, False) for step in base]
        start_pass = [step for step in base if step.allow_start and step.descriptor.can_start]
        return running_pass + start_pass

    raise ValueError(f"Unsupported priority mode: {mode}")


def ranked_ids(mode: PriorityMode | str, registry: Sequence[ProviderDescriptor]) -> list[str]:
    """The order in which candidates are first tried for a mode."""
    seen: list[str] = []
    for step in build_ladder(PriorityMode.parse(mode), registry):
        if step.descriptor.id not in seen:
            seen.append(step.descriptor.id)
    return seen


class ProviderSelector:
    """
    Selects exactly one inference provider for the session.

    Candidates are evaluated strictly one at a time in ladder order. The
    first healthy candidate wins. A local candidate that is down may be
    started once, within the run's start budget, and is then polled until
    it is healthy or ``start_timeout`` elapses.
    """

    def __init__(
        self,
        start_timeout: float = DEFAULT_START_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_starts: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.start_timeout = start_timeout
        self.poll_interval = poll_interval
        self.max_starts = max_starts
        self._sleep = sleep
        self._clock = clock

    def select(
        self,
        mode: PriorityMode | str,
        registry: Sequence[ProviderDescriptor],
    ) -> SelectionResult:
        """
        Select the provider to use.

        Args:
            mode: Priority mode (enum or its string value)
            registry: Every candidate; order is irrelevant

        Returns:
            SelectionResult; chosen_provider_id is None when nothing is healthy

        Raises:
            ValueError: Unknown mode, empty registry or duplicate provider ids
        """
        mode = PriorityMode.parse(mode)
        self._check_registry(registry)

        result = SelectionResult(chosen_provider_id=None, mode=mode)
        started_ids: set[str] = set()

        logger.info(f"Priority mode: {mode.value}")

        for step in build_ladder(mode, registry):
            descriptor = step.descriptor
            if descriptor.id not in result.attempted_ids:
                result.attempted_ids.append(descriptor.id)

            status = self._probe(descriptor)
            attempt = result.attempts.get(descriptor.id)
            if attempt is None:
                attempt = CandidateAttempt(provider_id=descriptor.id, status=status)
                result.attempts[descriptor.id] = attempt
            else:
                attempt.status = status

            if status.healthy:
                logger.info(f"Selected provider: {descriptor.id} (already running)")
                result.chosen_provider_id = descriptor.id
                return self._finish(result)

            if not self._should_start(step, status, started_ids):
                logger.debug(f"{descriptor.id}: {status}")
                continue

            started_ids.add(descriptor.id)
            if self._start_and_confirm(descriptor, attempt):
                logger.info(f"Selected provider: {descriptor.id} (started)")
                result.chosen_provider_id = descriptor.id
                return self._finish(result)

        logger.warning(f"No provider available after trying: {', '.join(result.attempted_ids)}")
        return self._finish(result)

    def _finish(self, result: SelectionResult) -> SelectionResult:
        # Stamp on return so a slow start does not age the cached result
        result.timestamp = datetime.now(timezone.utc)
        return result

    def _check_registry(self, registry: Sequence[ProviderDescriptor]) -> None:
        if not registry:
            raise ValueError("Provider registry is empty")
        ids = [descriptor.id for descriptor in registry]
        duplicates = sorted({pid for pid in ids if ids.count(pid) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider ids in registry: {', '.join(duplicates)}")

    def _probe(self, descriptor: ProviderDescriptor) -> ProviderStatus:
        return run_probe(descriptor.probe, descriptor.id)

    def _should_start(
        self,
        step: LadderStep,
        status: ProviderStatus,
        started_ids: set[str],
    ) -> bool:
        return (
            step.allow_start
            and step.descriptor.can_start
            and status.configured
            and step.descriptor.id not in started_ids
            and len(started_ids) < self.max_starts
        )

    def _start_and_confirm(self, descriptor: ProviderDescriptor, attempt: CandidateAttempt) -> bool:
        """
        Start a provider once and poll until healthy.

        Launching and polling share one ``start_timeout`` budget, so a
        candidate never holds up the ladder for longer than that.
        """
        assert descriptor.start is not None
        attempt.started = True
        logger.info(f"Starting {descriptor.display_name or descriptor.id}")
        deadline = self._clock() + self.start_timeout

        try:
            finished = self._run_start(descriptor.id, descriptor.start)
        except StartError as e:
            logger.warning(f"Failed to start {descriptor.id}: {e}")
            attempt.start_error = str(e)
            return False
        except Exception as e:
            logger.warning(f"Unexpected error starting {descriptor.id}: {e}")
            attempt.start_error = str(e) or type(e).__name__
            return False

        if not finished:
            attempt.start_error = f"start did not finish within {self.start_timeout:g}s"
            logger.warning(f"{descriptor.id}: {attempt.start_error}")
            return False

        def became_healthy() -> bool:
            attempt.status = self._probe(descriptor)
            return attempt.status.healthy

        if wait_until(
            became_healthy,
            timeout=max(0.0, deadline - self._clock()),
            interval=self.poll_interval,
            sleep=self._sleep,
            clock=self._clock,
        ):
            return True

        attempt.start_error = f"not healthy within {self.start_timeout:g}s of starting"
        logger.warning(f"{descriptor.id}: {attempt.start_error}")
        return False

    def _run_start(self, provider_id: str, start: StartFn) -> bool:
        """
        Run a start capability on a worker thread for at most ``start_timeout``.

        The capability receives the same budget so it can size its own
        timeouts. If it is still running when the budget is spent, it is
        left to finish in the background and False is returned. Errors it
        raises are re-raised here.
        """
        errors: list[Exception] = []

        def target() -> None:
            try:
                start(self.start_timeout)
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=target, name=f"start-{provider_id}", daemon=True)
        worker.start()
        worker.join(self.start_timeout)

        if worker.is_alive():
            return False
        if errors:
            raise errors[0]
        return True


def select_provider(
    mode: PriorityMode | str,
    registry: Sequence[ProviderDescriptor],
    **selector_options: Any,
) -> SelectionResult:
    """Convenience function to run a selection with a fresh selector."""
    return ProviderSelector(**selector_options).select(mode, registry)
