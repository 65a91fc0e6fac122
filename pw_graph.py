from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from errors import DeviceNotReady, TargetPortsUnavailable
from models import AudioNode, RoutingConfig, StreamDescriptor
from pw_channels import channel_rank
from pw_types import PwGraph, PwPort

logger = logging.getLogger(__name__)


def is_stream_node(n: AudioNode) -> bool:
    mc = n.media_class
    return mc.startswith("Stream/") and "Output" in mc and mc.endswith("/Audio")


def is_sink_node(n: AudioNode) -> bool:
    return n.media_class == "Audio/Sink"


def is_internal_node(n: AudioNode) -> bool:
    app = (n.props.get("application.name") or "").strip()
    return app in ("PipeWire", "WirePlumber", "PulseAudio")


def select_ports(graph: PwGraph, node_id: int, direction: str) -> List[PwPort]:
    """Ports of one node and direction, in channel order (FL before FR, AUX0 before AUX1)."""
    ps = [p for p in graph.ports_of(node_id) if p.direction == direction]
    return sorted(ps, key=lambda p: (channel_rank(p.channel), p.id))


def find_device(graph: PwGraph, device_name: str) -> Optional[AudioNode]:
    named = graph.nodes_named(device_name)
    if not named:
        return None
    sinks = [n for n in named if is_sink_node(n)]
    return min(sinks or named, key=lambda n: n.id)


def resolve_port(graph: PwGraph, device_name: str, port_name: str) -> Optional[PwPort]:
    """
    Exact, case-sensitive lookup of one of the device's input ports.
    None when the device is absent or its active profile does not expose the port.
    """
    device = find_device(graph, device_name)
    if device is None:
        return None
    for p in select_ports(graph, device.id, "in"):
        if p.port_name == port_name:
            return p
    return None


@dataclass(frozen=True)
class DevicePorts:
    device_name: str
    present: bool
    roles: Mapping[str, Optional[PwPort]] = field(default_factory=dict)

    def get(self, role: str) -> Optional[PwPort]:
        return self.roles.get(role)

    def missing(self) -> List[str]:
        return [r for r, p in self.roles.items() if p is None]

    def require(self, *roles: str) -> List[PwPort]:
        """Ports for ``roles``, or DeviceNotReady / TargetPortsUnavailable."""
        if not self.present:
            raise DeviceNotReady(f"device {self.device_name} is not in the graph")
        absent = [r for r in roles if self.roles.get(r) is None]
        if absent:
            raise TargetPortsUnavailable(f"{self.device_name} does not expose {', '.join(absent)}")
        return [self.roles[r] for r in roles]


def resolve_roles(graph: PwGraph, config: RoutingConfig) -> DevicePorts:
    name = config.target_device_name
    if find_device(graph, name) is None:
        logger.debug("device %s not in graph", name, extra={"device": name})
        return DevicePorts(name, False, {role: None for role in config.port_roles()})

    roles: Dict[str, Optional[PwPort]] = {}
    for role, port_name in config.port_roles().items():
        port = resolve_port(graph, name, port_name)
        if port is None:
            logger.debug(
                "port %s (%s) not exposed by %s", port_name, role, name,
                extra={"device": name, "role": role, "port": port_name},
            )
        roles[role] = port
    return DevicePorts(name, True, roles)


def stream_channel_count(graph: PwGraph, node: AudioNode) -> int:
    try:
        declared = int(node.props.get("audio.channels", ""))
    except ValueError:
        declared = 0
    if declared > 0:
        return declared
    return len(select_ports(graph, node.id, "out"))


def stream_label(n: AudioNode) -> str:
    app = n.props.get("application.name") or n.props.get("application.process.binary") or "App"
    media = n.props.get("media.name") or n.props.get("node.nick") or n.description or n.name
    base = f"{app} - {media}" if media and media != app else app
    return f"{base} [id {n.id}]"


def describe_stream(graph: PwGraph, node: AudioNode) -> StreamDescriptor:
    ports = tuple(select_ports(graph, node.id, "out"))
    links = frozenset(lk.pair for lk in graph.links_from(p.id for p in ports))
    return StreamDescriptor(
        node_id=node.id,
        name=stream_label(node),
        channel_count=stream_channel_count(graph, node),
        linked=bool(links),
        ports=ports,
        links=links,
    )


def list_streams(graph: PwGraph) -> List[StreamDescriptor]:
    out: List[StreamDescriptor] = []
    for n in sorted(graph.nodes.values(), key=lambda n: n.id):
        if is_stream_node(n) and not is_internal_node(n):
            out.append(describe_stream(graph, n))
    return out
