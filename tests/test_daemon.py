"""Tests for the event-driven daemon loop, with fake event source and graph."""

from __future__ import annotations

import pytest

try:
    from PySide6.QtCore import QCoreApplication

    from daemon import EVENT_CHANGE, EVENT_STREAM_NEW, RoutingDaemon
except (ImportError, OSError) as e:  # libpulse or Qt missing on the host
    pytest.skip(f"daemon dependencies unavailable: {e}", allow_module_level=True)

from errors import SubscriptionError
from store_config import Settings
from watcher import WatcherState


class FakeSource:
    def __init__(self, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.pending: list = []
        self.fail_poll = False
        self.connects = 0
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self.connects += 1
        if self.fail_connect:
            raise SubscriptionError("cannot subscribe to server events: connection refused")
        self._connected = True

    def poll(self, timeout: float = 0.0) -> list:
        if self.fail_poll:
            self._connected = False
            raise SubscriptionError("event subscription lost")
        events, self.pending = self.pending, []
        return events

    def close(self) -> None:
        self._connected = False


@pytest.fixture(scope="module")
def qapp():
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def daemon(qapp, profx, source):
    d = RoutingDaemon(Settings(), backend=profx, source=source)
    yield d
    d.stop()


def test_start_arms_watcher(daemon, profx) -> None:
    daemon.start()

    assert daemon.watcher.state is WatcherState.ARMED
    assert daemon.hub.device_present
    assert profx.captures == 1


def test_start_without_device_stays_idle(qapp, fake_graph, source) -> None:
    d = RoutingDaemon(Settings(), backend=fake_graph, source=source)
    try:
        d.start()
        assert d.watcher.state is WatcherState.IDLE
    finally:
        d.stop()


def test_start_fails_without_subscription(qapp, profx) -> None:
    d = RoutingDaemon(Settings(), backend=profx, source=FakeSource(fail_connect=True))

    with pytest.raises(SubscriptionError):
        d.start()
    assert profx.captures == 0
    d.stop()


def test_events_schedule_one_rediscovery(daemon, source) -> None:
    daemon.start()
    source.pending = [EVENT_CHANGE, EVENT_CHANGE, EVENT_CHANGE]

    daemon._poll_events()

    assert daemon.rediscovery_pending


def test_rediscovery_routes_new_stream(daemon, profx) -> None:
    daemon.start()
    profx.add_stream(100)

    daemon.rediscover()

    assert daemon.watcher.passes == 1
    targets = {profx.ports[d].port_name for _, d in profx.pairs()}
    assert targets == {"Playback_1", "Playback_2", "Playback_3", "Playback_4"}


def test_rediscovery_survives_timeout(daemon, profx) -> None:
    daemon.start()
    profx.timeout_on_capture = True

    daemon.rediscover()

    assert daemon.watcher.state is WatcherState.ARMED


def test_lost_subscription_stops_polling(daemon, source) -> None:
    daemon.start()
    source.fail_poll = True

    daemon._poll_events()

    assert not daemon._poll.isActive()

    source.fail_poll = False
    daemon._periodic()

    assert source.connects == 2
    assert daemon._poll.isActive()


def test_events_without_change_do_nothing(daemon, profx) -> None:
    daemon.start()

    daemon._poll_events()

    assert not daemon.rediscovery_pending
    assert profx.captures == 1


def test_new_stream_event_rediscovers_at_once(daemon, source, profx) -> None:
    daemon.start()
    profx.add_stream(100)
    source.pending = [EVENT_STREAM_NEW]

    daemon._poll_events()

    assert daemon.watcher.passes == 1
    assert len(profx.pairs()) == 4
    # the debounced dump still follows for streams whose ports came late
    assert daemon.rediscovery_pending


def test_lost_subscription_drops_armed_state(daemon, source, profx) -> None:
    daemon.start()
    source.fail_poll = True

    daemon._poll_events()

    assert daemon.watcher.state is WatcherState.IDLE
    assert not daemon.hub.device_present
    assert daemon.hub.subscriber_count == 0

    # a stream that starts while events are lost is never routed late
    profx.add_stream(100)
    source.fail_poll = False
    daemon._periodic()

    assert daemon.watcher.state is WatcherState.ARMED
    assert daemon.watcher.passes == 0
    assert profx.pairs() == set()

    profx.add_stream(200)
    daemon.rediscover()

    assert daemon.watcher.passes == 1
    assert {profx.ports[s].node_id for s, _ in profx.pairs()} == {200}


def test_failed_reconnect_does_not_rearm(daemon, source, profx) -> None:
    daemon.start()
    source.fail_poll = True
    daemon._poll_events()
    source.fail_connect = True
    captures = profx.captures

    daemon._periodic()

    assert daemon.watcher.state is WatcherState.IDLE
    assert profx.captures == captures
