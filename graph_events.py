"""Turns successive graph snapshots into lifecycle and stream notifications.

PipeWire only tells us *that* something changed; the hub compares the new
snapshot with the previous one and works out what:

- the target device appeared, disappeared, or changed its port set
  (which is how an active profile change shows up)
- new application streams appeared

Streams are reported once they have their output ports, and only to
callbacks registered through ``subscribe_streams``.
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Protocol, Set

from errors import SubscriptionError
from models import StreamDescriptor
from pw_graph import find_device, list_streams, select_ports
from pw_types import PwGraph

logger = logging.getLogger(__name__)

StreamCallback = Callable[[StreamDescriptor], None]


class LifecycleListener(Protocol):
    def on_device_ready(self, name: str) -> None: ...

    def on_device_removed(self, name: str) -> None: ...

    def on_device_profile_changed(self, name: str) -> None: ...


def _settled(stream: StreamDescriptor) -> bool:
    return bool(stream.ports) and len(stream.ports) >= stream.channel_count


class GraphEventHub:
    def __init__(self, device_name: str) -> None:
        self._device_name = device_name
        self._subs: Dict[int, StreamCallback] = {}
        self._handles = itertools.count(1)
        self._listeners: List[LifecycleListener] = []
        self._known_streams: Optional[Set[int]] = None
        # input port names of the device in the last snapshot; None while absent
        self._device_ports: Optional[FrozenSet[str]] = None
        self._closed = False

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    @property
    def device_present(self) -> bool:
        return self._device_ports is not None

    def add_listener(self, listener: LifecycleListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def subscribe_streams(self, callback: StreamCallback) -> int:
        if self._closed:
            raise SubscriptionError("event hub is closed")
        handle = next(self._handles)
        self._subs[handle] = callback
        logger.debug("stream subscription %d registered", handle)
        return handle

    def unsubscribe(self, handle: int) -> bool:
        removed = self._subs.pop(handle, None) is not None
        if removed:
            logger.debug("stream subscription %d dropped", handle)
        return removed

    def close(self) -> None:
        self._closed = True
        self._subs.clear()

    def reset(self) -> None:
        """
        Forget the device and every known stream, as if no snapshot had been
        seen. Listeners get ``on_device_removed`` if the device was present;
        the next snapshot seeds streams again instead of reporting them.
        """
        was_present = self._device_ports is not None
        self._device_ports = None
        self._known_streams = None
        if was_present:
            logger.info("device %s state dropped", self._device_name, extra={"device": self._device_name})
            self._notify("on_device_removed")

    def process(self, graph: PwGraph) -> None:
        """Compare ``graph`` with the previous snapshot and dispatch what changed."""
        self._process_device(graph)
        self._process_streams(graph)

    def _process_device(self, graph: PwGraph) -> None:
        name = self._device_name
        device = find_device(graph, name)
        before = self._device_ports

        if device is None:
            self._device_ports = None
            if before is not None:
                logger.info("device %s removed", name, extra={"device": name})
                self._notify("on_device_removed")
            return

        now = frozenset(p.port_name for p in select_ports(graph, device.id, "in"))
        self._device_ports = now
        if before is None:
            logger.info("device %s ready (%d input ports)", name, len(now), extra={"device": name})
            self._notify("on_device_ready")
        elif before != now:
            logger.info(
                "device %s port set changed", name,
                extra={"device": name, "added": sorted(now - before), "gone": sorted(before - now)},
            )
            self._notify("on_device_profile_changed")

    def _process_streams(self, graph: PwGraph) -> None:
        streams = list_streams(graph)
        current = {s.node_id for s in streams}

        if self._known_streams is None:
            # first snapshot: whatever is already playing is not "new"
            self._known_streams = current
            logger.debug("seeded %d existing stream(s)", len(current))
            return

        self._known_streams &= current
        for s in streams:
            if s.node_id in self._known_streams or not _settled(s):
                continue
            self._known_streams.add(s.node_id)
            logger.debug("stream appeared: %s", s.name, extra={"stream": s.name})
            for handle, cb in list(self._subs.items()):
                try:
                    cb(s)
                except Exception:
                    logger.exception("stream subscriber %d failed on %s", handle, s.name)

    def _notify(self, method: str) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(self._device_name)
            except Exception:
                logger.exception("%s listener failed for %s", method, self._device_name)
