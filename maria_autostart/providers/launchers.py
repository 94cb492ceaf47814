"""Start capabilities for local providers."""

import logging
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from maria_autostart.providers.catalog import PROVIDERS
from maria_autostart.providers.probes import command_exists, port_is_open
from maria_autostart.system.polling import wait_until
from maria_autostart.system.processes import ProcessManager, find_processes, terminate_process

logger = logging.getLogger(__name__)

# Timeout for quick vendor CLI calls (lms ls, ollama list, ...)
CLI_TIMEOUT_SECONDS = 30.0

# Loading a large model into memory can take a while
MODEL_LOAD_TIMEOUT_SECONDS = 300.0

# Load arguments for the LM Studio models we know about, best first
LMSTUDIO_PRESETS: dict[str, list[str]] = {
    "gpt-oss-20b": ["--gpu", "0.3", "--context-length", "8192"],
    "gpt-oss-120b": ["--gpu", "max", "--context-length", "128000"],
}


class StartError(Exception):
    """A local provider failed to launch."""


def _run(args: list[str], timeout: float = CLI_TIMEOUT_SECONDS) -> subprocess.CompletedProcess:
    """Run a vendor CLI command, translating failures into StartError."""
    try:
        return subprocess.run(args, capture_output=True, text=True, check=True, timeout=timeout)
    except FileNotFoundError as e:
        raise StartError(f"{args[0]} not found") from e
    except subprocess.TimeoutExpired as e:
        raise StartError(f"'{' '.join(args)}' timed out after {timeout:.0f}s") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or e.stdout or "").strip()
        raise StartError(f"'{' '.join(args)}' exited with {e.returncode}: {detail}") from e


class Launcher(ABC):
    """
    Abstract base class for local provider launchers.

    ``start()`` is side-effecting and either returns once the provider has
    been launched or raises StartError. Readiness is confirmed by the caller
    through the provider's probe.

    Calling a launcher with a timeout caps every wait and vendor CLI call
    made during that start by the time left of the budget.
    """

    def __init__(
        self,
        processes: ProcessManager,
        model: str | None = None,
        port_timeout: float = 30.0,
        poll_interval: float = 1.0,
        model_load_timeout: float = MODEL_LOAD_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.processes = processes
        self.model = model
        self.port_timeout = port_timeout
        self.poll_interval = poll_interval
        self.model_load_timeout = model_load_timeout
        self._sleep = sleep
        self._clock = clock
        self._deadline: float | None = None

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """The provider this launcher starts."""
        ...

    @abstractmethod
    def start(self) -> None:
        """Launch the provider or raise StartError."""
        ...

    def __call__(self, timeout: float | None = None) -> None:
        self._deadline = None if timeout is None else self._clock() + timeout
        try:
            self.start()
        finally:
            self._deadline = None

    @property
    def port(self) -> int:
        port = PROVIDERS[self.provider_id].port
        assert port is not None
        return port

    def _wait_for_port(self) -> bool:
        return wait_until(
            lambda: port_is_open("localhost", self.port),
            timeout=self._budget(self.port_timeout),
            interval=self.poll_interval,
            sleep=self._sleep,
            clock=self._clock,
        )

    def _budget(self, seconds: float) -> float:
        """Cap a timeout by what is left of the current start budget."""
        if self._deadline is None:
            return seconds
        remaining = self._deadline - self._clock()
        if remaining <= 0:
            raise StartError(f"{self.provider_id}: start budget exhausted")
        return min(seconds, remaining)

    def _run(self, args: list[str], timeout: float = CLI_TIMEOUT_SECONDS) -> subprocess.CompletedProcess:
        return _run(args, timeout=self._budget(timeout))

    def _spawn(self, name: str, args: list[str], record_pid: bool = True) -> int:
        try:
            return self.processes.spawn(name, args, record_pid=record_pid)
        except OSError as e:
            raise StartError(f"Failed to launch {args[0]}: {e}") from e


class LMStudioLauncher(Launcher):
    """Starts the LM Studio server through the ``lms`` CLI and loads a model."""

    provider_id = "lmstudio"

    def start(self) -> None:
        if not command_exists("lms"):
            raise StartError("LM Studio CLI (lms) not found")

        logger.info("Starting LM Studio server")
        self._spawn("lmstudio", ["lms", "server", "start"], record_pid=False)

        if not self._wait_for_port():
            raise StartError(f"LM Studio server did not open port {self.port}")

        model, load_args = self._choose_model()
        logger.info(f"Loading {model} into LM Studio")
        self._run(["lms", "load", model, *load_args], timeout=self.model_load_timeout)

    def _choose_model(self) -> tuple[str, list[str]]:
        """Pick the configured model, else the best known preset that is downloaded."""
        listing = self._run(["lms", "ls"]).stdout

        candidates = [self.model] if self.model else []
        candidates += [name for name in LMSTUDIO_PRESETS if name not in candidates]

        for name in candidates:
            if name in listing:
                return name, LMSTUDIO_PRESETS.get(name, [])

        raise StartError("No models found in LM Studio")


class VLLMLauncher(Launcher):
    """Launches vLLM's OpenAI-compatible server from its virtualenv."""

    provider_id = "vllm"

    @property
    def venv_dir(self) -> Path:
        return self.processes.state_dir / "vllm" / "venv"

    @property
    def download_dir(self) -> Path:
        return self.processes.state_dir / "vllm" / "models"

    def start(self) -> None:
        python = self.venv_dir / "bin" / "python"
        if not python.exists():
            raise StartError(f"vLLM environment not found at {self.venv_dir}")

        model = self.model or PROVIDERS["vllm"].default_model
        self.download_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Starting vLLM with {model}")
        self._spawn(
            "vllm",
            [
                str(python), "-m", "vllm.entrypoints.openai.api_server",
                "--model", model,
                "--host", "0.0.0.0",
                "--port", str(self.port),
                "--download-dir", str(self.download_dir),
                "--gpu-memory-utilization", "0.5",
                "--max-model-len", "4096",
                "--trust-remote-code",
            ],
        )


class OllamaLauncher(Launcher):
    """Starts the Ollama daemon and pulls the preferred model if missing."""

    provider_id = "ollama"

    def start(self) -> None:
        if not command_exists("ollama"):
            raise StartError("Ollama not found")

        if find_processes("ollama serve"):
            logger.debug("Ollama daemon already running")
        else:
            logger.info("Starting Ollama daemon")
            self._spawn("ollama", ["ollama", "serve"])

        if not self._wait_for_port():
            raise StartError(f"Ollama server did not open port {self.port}")

        model = self.model or PROVIDERS["ollama"].default_model
        if not self._has_model(model):
            # Pulling can take minutes; the probe reports healthy once it lands
            logger.info(f"Pulling {model} in the background")
            self._spawn("ollama-pull", ["ollama", "pull", model], record_pid=False)

    def _has_model(self, model: str) -> bool:
        listing = self._run(["ollama", "list"]).stdout
        family = model.split(":")[0]
        return family in listing


LAUNCHERS: dict[str, type[Launcher]] = {
    "lmstudio": LMStudioLauncher,
    "vllm": VLLMLauncher,
    "ollama": OllamaLauncher,
}


def get_launcher(
    provider_id: str,
    processes: ProcessManager,
    model: str | None = None,
    port_timeout: float = 30.0,
    poll_interval: float = 1.0,
    model_load_timeout: float = MODEL_LOAD_TIMEOUT_SECONDS,
) -> Launcher:
    """Get the launcher for a local provider."""
    launcher_class = LAUNCHERS.get(provider_id)
    if launcher_class is None:
        raise ValueError(f"No launcher for provider: {provider_id}")

    return launcher_class(
        processes,
        model=model,
        port_timeout=port_timeout,
        poll_interval=poll_interval,
        model_load_timeout=model_load_timeout,
    )


def stop_all(processes: ProcessManager) -> list[str]:
    """Stop every local provider this tool may have started."""
    stopped: list[str] = []

    for name in ("vllm", "ollama"):
        if processes.stop(name):
            stopped.append(name)

    if command_exists("lms"):
        try:
            _run(["lms", "server", "stop"])
            stopped.append("lmstudio")
        except StartError as e:
            logger.debug(f"lms server stop: {e}")

    for proc in find_processes("ollama serve"):
        if terminate_process(proc) and "ollama" not in stopped:
            stopped.append("ollama")

    if stopped:
        logger.info(f"Stopped: {', '.join(stopped)}")
    return stopped
