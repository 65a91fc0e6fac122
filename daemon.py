from __future__ import annotations

import logging
from typing import List, Optional

import pulsectl
from PySide6.QtCore import QObject, QTimer

from backend import PipeWireGraphBackend
from errors import GraphQueryFailed, GraphTimeout, SubscriptionError
from graph_events import GraphEventHub
from reconciler import Reconciler
from store_config import Settings
from watcher import EventWatcher

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 50
LISTEN_TIMEOUT = 0.01

EVENT_STREAM_NEW = "stream-new"
EVENT_CHANGE = "change"


class PulseEventSource:
    """
    Server change notifications via pipewire-pulse.

    Events only say that a sink, stream or card changed; what changed is
    worked out from the next graph snapshot.
    """

    FACILITIES = ("sink", "sink_input", "card")

    def __init__(self, client_name: str = "sinkroute") -> None:
        self._client_name = client_name
        self._pulse: Optional[pulsectl.Pulse] = None
        self._queue: List[str] = []

    @property
    def connected(self) -> bool:
        return self._pulse is not None

    def connect(self) -> None:
        if self._pulse is not None:
            return
        try:
            pulse = pulsectl.Pulse(self._client_name)
            pulse.event_mask_set(*self.FACILITIES)
            pulse.event_callback_set(self._on_event)
        except pulsectl.PulseError as e:
            raise SubscriptionError(f"cannot subscribe to server events: {e}") from e
        self._pulse = pulse
        logger.info("subscribed to %s events", ", ".join(self.FACILITIES))

    def _on_event(self, ev) -> None:
        is_stream = ev.facility == pulsectl.PulseEventFacilityEnum.sink_input
        # volume and metadata updates on streams do not change the graph
        if is_stream and ev.t == pulsectl.PulseEventTypeEnum.change:
            return
        if is_stream and ev.t == pulsectl.PulseEventTypeEnum.new:
            self._queue.append(EVENT_STREAM_NEW)
        else:
            self._queue.append(EVENT_CHANGE)

    def poll(self, timeout: float = LISTEN_TIMEOUT) -> List[str]:
        """Wait up to ``timeout`` seconds for events; returns the kinds of the relevant ones."""
        if self._pulse is None:
            raise SubscriptionError("not connected")
        try:
            self._pulse.event_listen(timeout=timeout)
        except pulsectl.PulseError as e:
            self.close()
            raise SubscriptionError(f"event subscription lost: {e}") from e
        events, self._queue = self._queue, []
        return events

    def close(self) -> None:
        if self._pulse is not None:
            try:
                self._pulse.close()
            except pulsectl.PulseError as e:
                logger.debug("closing pulse connection: %s", e)
        self._pulse = None
        self._queue.clear()


class RoutingDaemon(QObject):
    """
    Steady-state loop: poll server events, debounce them, re-dump the graph,
    and let the event hub drive the watcher.
    """

    def __init__(
        self,
        settings: Settings,
        backend: Optional[PipeWireGraphBackend] = None,
        source: Optional[PulseEventSource] = None,
        dry_run: bool = False,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._backend = backend or PipeWireGraphBackend(timeout=settings.daemon.command_timeout)
        self._source = source or PulseEventSource()

        self.hub = GraphEventHub(settings.routing.target_device_name)
        self.watcher = EventWatcher(
            self._backend,
            self.hub,
            settings.routing,
            Reconciler(self._backend, dry_run=dry_run),
        )
        self.hub.add_listener(self.watcher)

        self._poll = QTimer(self)
        self._poll.setInterval(POLL_INTERVAL_MS)
        self._poll.timeout.connect(self._poll_events)

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(settings.daemon.debounce_ms)
        self._debounce.timeout.connect(self.rediscover)

        self._rescan = QTimer(self)
        self._rescan.setInterval(int(settings.daemon.rescan_interval * 1000))
        self._rescan.timeout.connect(self._periodic)

    @property
    def rediscovery_pending(self) -> bool:
        return self._debounce.isActive()

    def start(self) -> None:
        """Raises SubscriptionError when the event subscription cannot be set up."""
        self._source.connect()
        self.rediscover()
        self._poll.start()
        if self._settings.daemon.rescan_interval > 0:
            self._rescan.start()
        logger.info(
            "watching for %s via %s", self._settings.routing.target_device_name, self._backend.server_label(),
            extra={"device": self._settings.routing.target_device_name},
        )

    def stop(self) -> None:
        self._poll.stop()
        self._debounce.stop()
        self._rescan.stop()
        self.hub.close()
        self._source.close()

    def schedule_rediscovery(self) -> None:
        # restarting the single-shot timer collapses bursts into one dump
        self._debounce.start()

    def rediscover(self) -> None:
        try:
            graph = self._backend.capture()
        except (GraphTimeout, GraphQueryFailed) as e:
            logger.warning("graph rediscovery failed: %s", e)
            return
        self.hub.process(graph)

    def _poll_events(self) -> None:
        try:
            events = self._source.poll()
        except SubscriptionError as e:
            logger.error("%s; will reconnect on next rescan", e)
            self._poll.stop()
            self._subscription_lost()
            return
        if not events:
            return
        if EVENT_STREAM_NEW in events:
            # read the stream before the session manager links it; ports may
            # still be missing, so the debounced dump follows anyway
            self.rediscover()
        self.schedule_rediscovery()

    def _subscription_lost(self) -> None:
        # without events nothing is "new" any more; re-arm from a fresh seed
        self._debounce.stop()
        self.hub.reset()

    def _periodic(self) -> None:
        if not self._source.connected:
            try:
                self._source.connect()
            except SubscriptionError as e:
                logger.warning("%s", e)
                return
            self._poll.start()
        self.rediscover()
