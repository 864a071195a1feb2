"""Persistence collaborators: local settings file and remote results table."""

from stores.results import ResultsClient, ResultsSink, build_rows
from stores.settings import SettingsStore

__all__ = ["ResultsClient", "ResultsSink", "SettingsStore", "build_rows"]
