from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

from models import AudioNode


@dataclass(frozen=True)
class PwPort:
    id: int
    node_id: int
    node_name: str
    port_name: str
    direction: str  # "in" | "out" | ""
    channel: str    # "FL","FR","AUX0"... or ""
    full_name: str  # "node.name:port.name" or ""


@dataclass(frozen=True)
class PwLink:
    id: int
    out_port_id: int
    in_port_id: int

    @property
    def pair(self) -> Tuple[int, int]:
        return (self.out_port_id, self.in_port_id)


@dataclass(frozen=True)
class PwGraph:
    """
    Read-only view of the graph at the moment it was dumped.
    Build a new one instead of mutating; every pass starts from a fresh capture.
    """
    nodes: Mapping[int, AudioNode] = field(default_factory=dict)
    ports: Mapping[int, PwPort] = field(default_factory=dict)
    links: Tuple[PwLink, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))
        object.__setattr__(self, "ports", MappingProxyType(dict(self.ports)))
        object.__setattr__(self, "links", tuple(self.links))

    @classmethod
    def build(cls, nodes: Iterable[AudioNode], ports: Iterable[PwPort], links: Iterable[PwLink]) -> "PwGraph":
        return cls(
            nodes={n.id: n for n in nodes},
            ports={p.id: p for p in ports},
            links=tuple(links),
        )

    def find_link(self, out_port_id: int, in_port_id: int) -> Optional[PwLink]:
        for lk in self.links:
            if lk.out_port_id == out_port_id and lk.in_port_id == in_port_id:
                return lk
        return None

    def links_from(self, port_ids: Iterable[int]) -> List[PwLink]:
        ids = set(port_ids)
        return [lk for lk in self.links if lk.out_port_id in ids]

    def ports_of(self, node_id: int) -> List[PwPort]:
        return [p for p in self.ports.values() if p.node_id == node_id]

    def nodes_named(self, name: str) -> List[AudioNode]:
        return [n for n in self.nodes.values() if n.name == name]
