"""System resource snapshot for the status and monitor commands."""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)

# Usage levels (percent) above which a resource is reported as strained
CPU_WARN_PERCENT = 80.0
MEMORY_WARN_PERCENT = 90.0
DISK_WARN_PERCENT = 85.0


@dataclass
class SystemInfo:
    """System resource information."""

    cpu_percent: float
    cpu_count: int
    total_memory_gb: float
    available_memory_gb: float
    memory_percent: float
    disk_total_gb: float
    disk_free_gb: float
    disk_percent: float
    gpu_percent: float | None = None  # None when no NVIDIA GPU is visible

    def warnings(self) -> list[str]:
        """Resource pressure worth mentioning next to provider status."""
        warnings: list[str] = []
        if self.cpu_percent > CPU_WARN_PERCENT:
            warnings.append(
                f"High CPU usage ({self.cpu_percent:.0f}%). "
                "Local models will be slow; consider a cloud provider."
            )
        if self.memory_percent > MEMORY_WARN_PERCENT:
            warnings.append(
                f"High memory usage ({self.memory_percent:.0f}%). "
                "Consider smaller models or freeing RAM."
            )
        if self.disk_percent > DISK_WARN_PERCENT:
            warnings.append(
                f"Low disk space ({self.disk_percent:.0f}% used). "
                "Consider removing old model files or logs."
            )
        return warnings

    def to_dict(self) -> dict[str, float | int | None]:
        return {
            "cpu_percent": round(self.cpu_percent, 1),
            "cpu_count": self.cpu_count,
            "total_memory_gb": round(self.total_memory_gb, 2),
            "available_memory_gb": round(self.available_memory_gb, 2),
            "memory_percent": round(self.memory_percent, 1),
            "disk_total_gb": round(self.disk_total_gb, 2),
            "disk_free_gb": round(self.disk_free_gb, 2),
            "disk_percent": round(self.disk_percent, 1),
            "gpu_percent": self.gpu_percent,
        }

    def __str__(self) -> str:
        gpu = f"{self.gpu_percent:.0f}%" if self.gpu_percent is not None else "n/a"
        return (
            f"CPU: {self.cpu_percent:.0f}% of {self.cpu_count} cores, "
            f"Memory: {self.available_memory_gb:.1f}GB available / "
            f"{self.total_memory_gb:.1f}GB total, "
            f"Disk: {self.disk_free_gb:.1f}GB free, "
            f"GPU: {gpu}"
        )


class SystemDetector:
    """Takes a snapshot of CPU, memory, disk and GPU usage."""

    def __init__(self, disk_path: Path | None = None, cpu_sample_seconds: float = 0.1) -> None:
        self.disk_path = disk_path or Path.home()
        self.cpu_sample_seconds = cpu_sample_seconds

    def detect(self) -> SystemInfo:
        """Detect current system resources."""
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(str(self.disk_path))
        return SystemInfo(
            cpu_percent=psutil.cpu_percent(interval=self.cpu_sample_seconds),
            cpu_count=psutil.cpu_count() or 1,
            total_memory_gb=memory.total / (1024**3),
            available_memory_gb=memory.available / (1024**3),
            memory_percent=memory.percent,
            disk_total_gb=disk.total / (1024**3),
            disk_free_gb=disk.free / (1024**3),
            disk_percent=disk.percent,
            gpu_percent=self._get_gpu_utilization(),
        )

    def _get_gpu_utilization(self) -> float | None:
        """Get NVIDIA GPU utilization via nvidia-smi, if present."""
        if shutil.which("nvidia-smi") is None:
            return None
        try:
            result = subprocess.run(
                ["nvidia-smi", "--query-gpu=utilization.gpu", "--format=csv,noheader,nounits"],
                capture_output=True,
                text=True,
                check=True,
                timeout=5,
            )
            return float(result.stdout.splitlines()[0].strip())
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, IndexError, ValueError) as e:
            logger.warning(f"Failed to read GPU utilization: {e}")
            return None
