"""Routing policy: which links a freshly appeared stream should get.

``decide`` is pure. It looks only at the stream descriptor, the resolved
device ports and the config, and never touches the live graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List

from models import (
    ROLE_MAIN_LEFT,
    ROLE_MAIN_RIGHT,
    ROLE_MONITOR_LEFT,
    ROLE_MONITOR_RIGHT,
    LinkPair,
    RoutingConfig,
    StreamDescriptor,
)
from pw_graph import DevicePorts

logger = logging.getLogger(__name__)

# (stream channel index, device role) for each side of the stereo pair
MAIN_PAIRS = ((0, ROLE_MAIN_LEFT), (1, ROLE_MAIN_RIGHT))
MONITOR_PAIRS = ((0, ROLE_MONITOR_LEFT), (1, ROLE_MONITOR_RIGHT))


@dataclass(frozen=True)
class RouteDecision:
    device_name: str
    stream_name: str = ""
    create: FrozenSet[LinkPair] = field(default_factory=frozenset)
    remove: FrozenSet[LinkPair] = field(default_factory=frozenset)
    # set when the device is present but lacks the main ports
    ports_unavailable: bool = False

    @property
    def empty(self) -> bool:
        return not self.create and not self.remove


def _pairs(stream: StreamDescriptor, ports: DevicePorts, table) -> List[LinkPair]:
    out: List[LinkPair] = []
    for index, role in table:
        dst = ports.get(role)
        if dst is not None:
            out.append(LinkPair(stream.port(index), dst))
    return out


def decide(stream: StreamDescriptor, ports: DevicePorts, config: RoutingConfig) -> RouteDecision:
    empty = RouteDecision(device_name=ports.device_name, stream_name=stream.name)
    ctx = {"stream": stream.name, "device": ports.device_name}

    if stream.channel_count != 2 or len(stream.ports) < 2:
        logger.debug("skip %s: %d channel(s)", stream.name, stream.channel_count, extra=ctx)
        return empty

    if stream.linked:
        logger.debug("skip %s: already linked", stream.name, extra=ctx)
        return empty

    if not ports.present:
        logger.debug("defer %s: device %s not ready", stream.name, ports.device_name, extra=ctx)
        return empty

    main = _pairs(stream, ports, MAIN_PAIRS)
    if len(main) != 2:
        logger.warning(
            "target ports unavailable on %s (missing %s); %s left to default routing",
            ports.device_name,
            ", ".join(r for _, r in MAIN_PAIRS if ports.get(r) is None),
            stream.name,
            extra=ctx,
        )
        return RouteDecision(ports.device_name, stream.name, ports_unavailable=True)

    remove: List[LinkPair] = []
    create: List[LinkPair] = list(main)

    monitor = _pairs(stream, ports, MONITOR_PAIRS)
    if config.duplicate_to_monitor:
        if len(monitor) == 2:
            create.extend(monitor)
            logger.info("duplicating %s to monitor ports", stream.name, extra=ctx)
        else:
            logger.info("monitor ports unavailable on %s; main routing only", ports.device_name, extra=ctx)
    else:
        remove = [lp for lp in monitor if stream.has_link(lp.src, lp.dst)]
        if remove:
            logger.info(
                "removing %d default monitor link(s) from %s", len(remove), stream.name,
                extra=dict(ctx, links=[lp.label() for lp in remove]),
            )

    logger.info(
        "routing %s to %s", stream.name, ports.device_name,
        extra=dict(ctx, links=[lp.label() for lp in create]),
    )
    return RouteDecision(ports.device_name, stream.name, frozenset(create), frozenset(remove))
