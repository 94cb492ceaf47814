"""Process management for locally launched providers."""

import logging
import subprocess
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

# Seconds to wait for a terminated process before killing it
TERMINATE_GRACE_SECONDS = 5.0


def find_processes(pattern: str) -> list[psutil.Process]:
    """Find running processes whose command line contains ``pattern``."""
    matches: list[psutil.Process] = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            cmdline = " ".join(proc.info.get("cmdline") or [])
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if pattern in cmdline:
            matches.append(proc)
    return matches


def terminate_process(proc: psutil.Process, grace: float = TERMINATE_GRACE_SECONDS) -> bool:
    """Terminate a process, escalating to kill after ``grace`` seconds."""
    try:
        proc.terminate()
        try:
            proc.wait(timeout=grace)
        except psutil.TimeoutExpired:
            logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
            proc.kill()
        return True
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied as e:
        logger.warning(f"Not allowed to stop process {proc.pid}: {e}")
        return False


class ProcessManager:
    """
    Spawns detached provider processes and tracks them with pid files.

    Logs and pid files live under ``state_dir`` as ``<name>.log`` and
    ``<name>.pid``.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    def log_path(self, name: str) -> Path:
        return self.state_dir / f"{name}.log"

    def pid_path(self, name: str) -> Path:
        return self.state_dir / f"{name}.pid"

    def spawn(self, name: str, args: list[str], record_pid: bool = True) -> int:
        """
        Launch a detached process with output going to its log file.

        Returns:
            The pid of the new process

        Raises:
            OSError: If the executable cannot be launched
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.log_path(name)
        logger.debug(f"Spawning {name}: {' '.join(args)} (log: {log_path})")

        with open(log_path, "ab") as log_file:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )

        if record_pid:
            self.pid_path(name).write_text(str(proc.pid))
        return proc.pid

    def read_pid(self, name: str) -> int | None:
        path = self.pid_path(name)
        if not path.exists():
            return None
        try:
            return int(path.read_text().strip())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable pid file {path}: {e}")
            return None

    def is_running(self, name: str) -> bool:
        """Check whether the process recorded for ``name`` is alive."""
        pid = self.read_pid(name)
        return pid is not None and psutil.pid_exists(pid)

    def stop(self, name: str) -> bool:
        """Stop the process recorded in ``name``'s pid file and remove the file."""
        pid = self.read_pid(name)
        stopped = False
        if pid is not None:
            try:
                stopped = terminate_process(psutil.Process(pid))
            except psutil.NoSuchProcess:
                logger.debug(f"{name}: pid {pid} already gone")
        self.pid_path(name).unlink(missing_ok=True)
        return stopped
