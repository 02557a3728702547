from __future__ import annotations


class TrackerError(Exception):
    """Base class for scene tracker errors."""


class StoreError(TrackerError):
    """An operation would leave the event store inconsistent."""


class MigrationError(TrackerError):
    """A persisted document could not be migrated to the current version."""


class SessionBusyError(TrackerError):
    """A turn was requested while another extraction holds the session."""
