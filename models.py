from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from pw_types import PwPort


ROLE_MAIN_LEFT = "main-left"
ROLE_MAIN_RIGHT = "main-right"
ROLE_MONITOR_LEFT = "monitor-left"
ROLE_MONITOR_RIGHT = "monitor-right"


@dataclass(frozen=True)
class AudioNode:
    id: int
    name: str
    description: str
    media_class: str
    props: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class StreamDescriptor:
    node_id: int
    name: str
    channel_count: int
    linked: bool
    ports: Tuple["PwPort", ...] = ()
    # (out_port_id, in_port_id) of every link currently leaving the stream
    links: FrozenSet[Tuple[int, int]] = frozenset()

    def port(self, index: int) -> "PwPort":
        return self.ports[index]

    def has_link(self, src: "PwPort", dst: "PwPort") -> bool:
        return (src.id, dst.id) in self.links


@dataclass(frozen=True)
class LinkPair:
    src: "PwPort"
    dst: "PwPort"

    def label(self) -> str:
        return f"{self.src.full_name} -> {self.dst.full_name}"


@dataclass(frozen=True)
class RoutingConfig:
    target_device_name: str = "ProFX"
    duplicate_to_monitor: bool = True
    main_port_names: Tuple[str, str] = ("Playback_3", "Playback_4")
    monitor_port_names: Tuple[str, str] = ("Playback_1", "Playback_2")

    def port_roles(self) -> Dict[str, str]:
        return {
            ROLE_MAIN_LEFT: self.main_port_names[0],
            ROLE_MAIN_RIGHT: self.main_port_names[1],
            ROLE_MONITOR_LEFT: self.monitor_port_names[0],
            ROLE_MONITOR_RIGHT: self.monitor_port_names[1],
        }
