from __future__ import annotations

import logging
from typing import Callable, List, Mapping, Optional

from models import AudioNode
from pw_cli import DEFAULT_TIMEOUT, pw_link_connect, pw_link_destroy
from pw_dump import capture
from pw_graph import select_ports
from pw_types import PwGraph, PwLink, PwPort

logger = logging.getLogger(__name__)


class PipeWireGraphBackend:
    """
    Graph collaborator backed by the PipeWire command line tools.

    Every query dumps the graph again; nothing is cached between calls, so a
    decision is never taken against a graph that predates the last mutation.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        dumper: Optional[Callable[[float], PwGraph]] = None,
    ) -> None:
        self._timeout = timeout
        self._dump = dumper or capture

    def server_label(self) -> str:
        return "PipeWire (native graph)"

    def capture(self) -> PwGraph:
        return self._dump(self._timeout)

    def get_objects(self, match: Mapping[str, str], graph: Optional[PwGraph] = None) -> List[AudioNode]:
        """Nodes whose properties contain every key/value in ``match``."""
        g = graph if graph is not None else self.capture()
        out: List[AudioNode] = []
        for n in sorted(g.nodes.values(), key=lambda x: x.id):
            if all(n.props.get(k) == v for k, v in match.items()):
                out.append(n)
        return out

    def port_by_name(self, node: AudioNode, name: str, graph: Optional[PwGraph] = None) -> Optional[PwPort]:
        g = graph if graph is not None else self.capture()
        for p in select_ports(g, node.id, "in") + select_ports(g, node.id, "out"):
            if p.port_name == name:
                return p
        return None

    def find_link(self, src_port: PwPort, dst_port: PwPort) -> Optional[PwLink]:
        return self.capture().find_link(src_port.id, dst_port.id)

    def create_link(self, src_port: PwPort, dst_port: PwPort) -> bool:
        made = pw_link_connect(str(src_port.id), str(dst_port.id), timeout=self._timeout)
        logger.debug(
            "pw-link %s -> %s: %s", src_port.full_name, dst_port.full_name,
            "created" if made else "exists",
        )
        return made

    def destroy_link(self, link: PwLink) -> bool:
        gone = pw_link_destroy(link.id, timeout=self._timeout)
        logger.debug("pw-link -d %d: %s", link.id, "removed" if gone else "not found")
        return gone
