from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from errors import GraphQueryFailed, GraphTimeout, SubscriptionError
from models import RoutingConfig, StreamDescriptor
from pw_graph import describe_stream, resolve_roles
from pw_types import PwGraph
from reconciler import ReconcileResult, Reconciler
from routing import RouteDecision, decide

logger = logging.getLogger(__name__)


class WatcherState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class SnapshotSource(Protocol):
    def capture(self) -> PwGraph: ...


class StreamEvents(Protocol):
    def subscribe_streams(self, callback: Callable[[StreamDescriptor], None]) -> int: ...

    def unsubscribe(self, handle: int) -> bool: ...


class EventWatcher:
    """
    Idle/Armed state machine around the target device.

    While Armed, every new stereo stream that nobody has linked yet gets one
    reconciliation pass (capture, resolve, decide, apply). Streams that show
    up while the device is away are not revisited once it comes back.
    """

    def __init__(
        self,
        graph: SnapshotSource,
        events: StreamEvents,
        config: RoutingConfig,
        reconciler: Reconciler,
        policy: Callable[..., RouteDecision] = decide,
    ) -> None:
        self._graph = graph
        self._events = events
        self._config = config
        self._reconciler = reconciler
        self._policy = policy
        self._state = WatcherState.IDLE
        self._subscription: Optional[int] = None
        self.passes = 0
        self.last_result: Optional[ReconcileResult] = None

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def armed(self) -> bool:
        return self._state is WatcherState.ARMED

    def _ours(self, name: str) -> bool:
        return name == self._config.target_device_name

    def on_device_ready(self, name: str) -> None:
        if not self._ours(name):
            return
        if self._subscription is None:
            try:
                self._subscription = self._events.subscribe_streams(self.on_stream_appeared)
            except SubscriptionError as e:
                logger.error("cannot subscribe to stream events: %s; staying idle", e, extra={"device": name})
                self._state = WatcherState.IDLE
                return
        if not self.armed:
            logger.info("device %s ready; watching for new streams", name, extra={"device": name})
        self._state = WatcherState.ARMED

    def on_device_removed(self, name: str) -> None:
        if not self._ours(name):
            return
        if self._subscription is not None:
            self._events.unsubscribe(self._subscription)
            self._subscription = None
        if self.armed:
            logger.info("device %s removed; idle", name, extra={"device": name})
        self._state = WatcherState.IDLE

    def on_device_profile_changed(self, name: str) -> None:
        if not self._ours(name) or not self.armed:
            return
        try:
            ports = resolve_roles(self._graph.capture(), self._config)
        except (GraphTimeout, GraphQueryFailed) as e:
            logger.warning("re-resolving %s after profile change failed: %s", name, e, extra={"device": name})
            return
        missing = ports.missing()
        if missing:
            logger.warning(
                "device %s profile changed; roles now unavailable: %s", name, ", ".join(missing),
                extra={"device": name, "missing": missing},
            )
        else:
            logger.info("device %s profile changed; all port roles resolve", name, extra={"device": name})

    def on_stream_appeared(self, stream: StreamDescriptor) -> None:
        if not self.armed:
            return
        if stream.channel_count != 2 or stream.linked:
            logger.debug(
                "ignoring %s (%d ch, linked=%s)", stream.name, stream.channel_count, stream.linked,
                extra={"stream": stream.name},
            )
            return
        self.run_pass(stream)

    def run_pass(self, stream: StreamDescriptor) -> Optional[ReconcileResult]:
        """One reconciliation pass for ``stream``; failures are logged, never raised."""
        try:
            graph = self._graph.capture()
            node = graph.nodes.get(stream.node_id)
            if node is not None:
                # ports and links come from this pass; "linked" stays as observed at appearance,
                # so links the session manager made in between can still be undone
                stream = dataclasses.replace(describe_stream(graph, node), linked=stream.linked)
            ports = resolve_roles(graph, self._config)
            decision = self._policy(stream, ports, self._config)
            result = self._reconciler.apply(decision)
        except (GraphTimeout, GraphQueryFailed) as e:
            logger.error("pass for %s abandoned: %s", stream.name, e, extra={"stream": stream.name})
            return None

        self.passes += 1
        self.last_result = result
        return result
