"""Exception taxonomy shared by the core and adapters."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for topic monitor errors."""


class ConfigurationError(MonitorError):
    """Invalid configuration or unresolvable startup target. Fatal at startup."""


class TransientOperationalError(MonitorError):
    """A per-call failure that the current cycle can recover from."""


class WorkspaceError(TransientOperationalError):
    """The workspace API failed (transport, timeout, or HTTP status)."""


class ClassificationBackendError(TransientOperationalError):
    """The classification backend failed or timed out."""


class ResponseParseError(MonitorError):
    """The classification backend replied with nothing we could use."""
