"""Polling, process management and provider selection."""

from maria_autostart.system.polling import wait_until
from maria_autostart.system.provider_selector import ProviderSelector, SelectionResult

__all__ = ["wait_until", "ProviderSelector", "SelectionResult"]
