"""Persistence for the recording inventory and node settings."""

from homenvr.state.inventory import (
    Base,
    RecordingRow,
    SettingsRow,
    SQLAlchemyInventoryStore,
    SQLAlchemySettingsStore,
)

__all__ = [
    "Base",
    "RecordingRow",
    "SQLAlchemyInventoryStore",
    "SQLAlchemySettingsStore",
    "SettingsRow",
]
