"""
errors.py — Failure taxonomy for the aggregation and fan-out pipeline.

None of these are fatal to the process. Each one is raised at the point of
failure and caught at an isolation boundary (aggregator cycle, hub delivery,
change relay), where it is logged and the owning loop carries on.
"""


class HubError(Exception):
    """Base class for recoverable pipeline failures."""


class SourceError(HubError):
    """An adapter could not produce its batch this cycle."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class SourceUnavailable(SourceError):
    """The backing source could not be reached or returned garbage."""


class SourceTimeout(SourceError):
    """The adapter exceeded its time bound."""

    def __init__(self, source: str, timeout: float) -> None:
        super().__init__(source, f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class PersistenceFailure(HubError):
    """Writing to the external cache failed; in-memory state is unaffected."""


class DeliveryFailure(HubError):
    """A single connection's send failed."""

    def __init__(self, conn_id: str, message: str) -> None:
        super().__init__(f"connection {conn_id}: {message}")
        self.conn_id = conn_id


class SubscriptionResolutionFailure(HubError):
    """A change event carried no disaster id, so no topic can be derived."""
