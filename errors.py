"""Error taxonomy for the routing engine.

Everything here is handled and logged where it is raised from; only a
SubscriptionError during daemon startup ends the process.
"""

from __future__ import annotations


class RoutingError(RuntimeError):
    """Base class for routing engine failures."""


class DeviceNotReady(RoutingError):
    """The target device is not in the graph (yet)."""


class TargetPortsUnavailable(RoutingError):
    """The device is present but its active profile lacks the main ports."""


class LinkMutationFailed(RoutingError):
    """PipeWire rejected a link create/destroy request."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SubscriptionError(RoutingError):
    """Stream or server event subscription could not be established."""


class GraphQueryFailed(RoutingError):
    """pw-dump failed or returned something that is not a graph."""


class GraphTimeout(RoutingError):
    """A graph query or mutation did not finish within the command timeout."""


class ConfigError(RoutingError):
    """The configuration file holds an invalid value."""
