"""Shared utilities."""

from scriptbar.utils.config import load_config
from scriptbar.utils.logging import setup_logging
from scriptbar.utils.preferences import PreferencesStore

__all__ = ["load_config", "setup_logging", "PreferencesStore"]
