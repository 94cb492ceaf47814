"""Persisted provider selection and .env.local synchronization."""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dotenv import set_key

from maria_autostart.providers.catalog import get_provider_spec
from maria_autostart.system.provider_selector import SelectionResult

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0.0"


class SelectionStore:
    """
    Last selection result, stored as JSON at ~/.maria/selection.json.

    Writes go to a temp file in the same directory and are moved into
    place, so readers never see a half-written file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def save(self, result: SelectionResult) -> None:
        data = {"version": STATE_VERSION, **result.to_dict()}
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=".selection-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Saved selection to {self.path}")

    def load(self) -> dict[str, Any] | None:
        """Read the persisted selection, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable selection file {self.path}: {e}")
            return None

        if not isinstance(data, dict) or "timestamp" not in data or "mode" not in data:
            logger.warning(f"Ignoring malformed selection file {self.path}")
            return None
        return data

    def load_result(self) -> SelectionResult | None:
        data = self.load()
        if data is None:
            return None
        try:
            return SelectionResult.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring malformed selection file {self.path}: {e}")
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def is_fresh(result: SelectionResult, max_age: float, now: datetime | None = None) -> bool:
    """Check whether a successful selection is recent enough to reuse."""
    if not result.succeeded or max_age <= 0:
        return False
    now = now or datetime.now(timezone.utc)
    timestamp = result.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    age = (now - timestamp).total_seconds()
    return 0 <= age <= max_age


def sync_env_file(env_file: Path, provider_id: str) -> bool:
    """
    Record the chosen provider in the project's .env.local.

    Sets AI_PROVIDER and, for local providers, <PROVIDER>_ENABLED=true.
    Does nothing when the file does not exist.

    Returns:
        True if the file was updated
    """
    if not env_file.exists():
        logger.debug(f"{env_file} not found, skipping env sync")
        return False

    spec = get_provider_spec(provider_id)
    provider_name = spec.env_name if spec else provider_id

    set_key(env_file, "AI_PROVIDER", provider_name, quote_mode="never")
    if spec and spec.kind.is_local:
        set_key(env_file, f"{provider_id.upper()}_ENABLED", "true", quote_mode="never")

    logger.info(f"Updated {env_file}: AI_PROVIDER={provider_name}")
    return True
