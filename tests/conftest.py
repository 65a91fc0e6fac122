"""Shared fixtures: an in-memory graph collaborator and a ProFX-like device."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest

from errors import GraphTimeout, LinkMutationFailed
from models import AudioNode, RoutingConfig
from pw_types import PwGraph, PwLink, PwPort

PROFX_PORTS = ("Playback_1", "Playback_2", "Playback_3", "Playback_4")


class FakeGraph:
    """
    Mutable stand-in for PipeWire. ``capture`` hands out immutable snapshots,
    link calls mutate the fake the way pw-link would.
    """

    def __init__(self) -> None:
        self.nodes: Dict[int, AudioNode] = {}
        self.ports: Dict[int, PwPort] = {}
        self.links: Dict[int, PwLink] = {}
        self._next_link = 1000
        self.captures = 0
        self.create_calls: List[Tuple[int, int]] = []
        self.destroy_calls: List[int] = []
        self.fail_create: Set[Tuple[int, int]] = set()
        self.fail_destroy: Set[int] = set()
        self.timeout_on_capture = False

    # building

    def add_node(self, nid: int, name: str, media_class: str, **props: str) -> AudioNode:
        pr = {"node.name": name, "media.class": media_class}
        pr.update({k.replace("_", "."): v for k, v in props.items()})
        node = AudioNode(id=nid, name=name, description=name, media_class=media_class, props=pr)
        self.nodes[nid] = node
        return node

    def add_port(self, pid: int, node: AudioNode, name: str, direction: str, channel: str = "") -> PwPort:
        port = PwPort(
            id=pid,
            node_id=node.id,
            node_name=node.name,
            port_name=name,
            direction=direction,
            channel=channel,
            full_name=f"{node.name}:{name}",
        )
        self.ports[pid] = port
        return port

    def add_device(self, nid: int = 50, name: str = "ProFX", port_names: Iterable[str] = PROFX_PORTS) -> AudioNode:
        node = self.add_node(nid, name, "Audio/Sink")
        for i, pn in enumerate(port_names, start=1):
            self.add_port(nid + i, node, pn, "in")
        return node

    def add_stream(self, nid: int, channels: int = 2, app: str = "mpv") -> AudioNode:
        node = self.add_node(nid, f"{app}-{nid}", "Stream/Output/Audio", application_name=app)
        positions = ["FL", "FR"] if channels == 2 else ["MONO"] if channels == 1 else [f"AUX{i}" for i in range(channels)]
        for i, ch in enumerate(positions, start=1):
            self.add_port(nid + i, node, f"output_{ch}", "out", ch)
        return node

    def remove_node(self, nid: int) -> None:
        self.nodes.pop(nid, None)
        gone = {pid for pid, p in self.ports.items() if p.node_id == nid}
        for pid in gone:
            del self.ports[pid]
        for lid in [lid for lid, lk in self.links.items() if lk.out_port_id in gone or lk.in_port_id in gone]:
            del self.links[lid]

    def link(self, src_id: int, dst_id: int) -> PwLink:
        self._next_link += 1
        lk = PwLink(id=self._next_link, out_port_id=src_id, in_port_id=dst_id)
        self.links[lk.id] = lk
        return lk

    def port_id(self, node_id: int, name: str) -> int:
        for p in self.ports.values():
            if p.node_id == node_id and p.port_name == name:
                return p.id
        raise KeyError(name)

    def pairs(self) -> Set[Tuple[int, int]]:
        return {lk.pair for lk in self.links.values()}

    # graph collaborator surface

    def capture(self) -> PwGraph:
        self.captures += 1
        if self.timeout_on_capture:
            raise GraphTimeout("pw-dump did not finish within 5s")
        return PwGraph.build(self.nodes.values(), self.ports.values(), self.links.values())

    def find_link(self, src_port: PwPort, dst_port: PwPort) -> Optional[PwLink]:
        return self.capture().find_link(src_port.id, dst_port.id)

    def create_link(self, src_port: PwPort, dst_port: PwPort) -> bool:
        pair = (src_port.id, dst_port.id)
        self.create_calls.append(pair)
        if pair in self.fail_create:
            raise LinkMutationFailed("failed to link ports: No such file or directory")
        if pair in self.pairs():
            return False
        self.link(*pair)
        return True

    def destroy_link(self, link: PwLink) -> bool:
        self.destroy_calls.append(link.id)
        if link.id in self.fail_destroy:
            raise LinkMutationFailed("failed to unlink ports: Operation not permitted")
        return self.links.pop(link.id, None) is not None

    def server_label(self) -> str:
        return "fake graph"


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def profx(fake_graph: FakeGraph) -> FakeGraph:
    """Graph with the ProFX sink exposing Playback_1..4 (port ids 51..54)."""
    fake_graph.add_device()
    return fake_graph


@pytest.fixture
def config() -> RoutingConfig:
    return RoutingConfig(duplicate_to_monitor=False)


@pytest.fixture
def dup_config() -> RoutingConfig:
    return RoutingConfig(duplicate_to_monitor=True)


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
