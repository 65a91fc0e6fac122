from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from models import AudioNode
from pw_channels import channel_from_port_props
from pw_cli import DEFAULT_TIMEOUT, pw_dump_json
from pw_types import PwGraph, PwLink, PwPort

logger = logging.getLogger(__name__)

_DIRECTIONS = {"in": "in", "input": "in", "out": "out", "output": "out"}


def props_from_obj(obj: Mapping[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for src in (obj.get("props") or {}, (obj.get("info") or {}).get("props") or {}):
        if not isinstance(src, dict):
            continue
        for k, v in src.items():
            out[str(k)] = "" if v is None else str(v)
    return out


def node_desc(pr: Mapping[str, str]) -> str:
    return pr.get("node.description") or pr.get("node.nick") or pr.get("node.name") or ""


def port_direction(pr: Mapping[str, str], info: Any) -> str:
    d = _DIRECTIONS.get((pr.get("port.direction") or "").strip().lower())
    if d:
        return d
    raw = info.get("direction") if isinstance(info, dict) else None
    return _DIRECTIONS.get(str(raw or "").strip().lower(), "")


def _as_int(*candidates: Any) -> Optional[int]:
    for c in candidates:
        if c is None or c == "":
            continue
        try:
            return int(c)
        except (TypeError, ValueError):
            continue
    return None


def _objects(data: Iterable[Any], suffix: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for obj in data:
        if not isinstance(obj, dict):
            continue
        if not str(obj.get("type") or "").endswith(suffix):
            continue
        if _as_int(obj.get("id")) is None:
            continue
        out.append(obj)
    return out


def parse_graph(data: Iterable[Any]) -> PwGraph:
    """Turn pw-dump JSON into a PwGraph. Objects that cannot be parsed are skipped."""
    data = list(data)

    nodes: Dict[int, AudioNode] = {}
    for obj in _objects(data, ":Node"):
        oid = int(obj["id"])
        pr = props_from_obj(obj)
        nodes[oid] = AudioNode(
            id=oid,
            name=pr.get("node.name", ""),
            description=node_desc(pr),
            media_class=pr.get("media.class", ""),
            props=pr,
        )

    ports: List[PwPort] = []
    for obj in _objects(data, ":Port"):
        pr = props_from_obj(obj)
        nid = _as_int(pr.get("node.id"))
        if nid is None:
            continue

        node = nodes.get(nid)
        nname = node.name if node else ""
        pname = pr.get("port.name", "")

        ports.append(
            PwPort(
                id=int(obj["id"]),
                node_id=nid,
                node_name=nname,
                port_name=pname,
                direction=port_direction(pr, obj.get("info")),
                channel=channel_from_port_props(pr),
                full_name=f"{nname}:{pname}" if nname and pname else "",
            )
        )

    links: List[PwLink] = []
    for obj in _objects(data, ":Link"):
        pr = props_from_obj(obj)
        info = obj.get("info") or {}
        out_i = _as_int(pr.get("link.output.port"), pr.get("link.output.port.id"), info.get("output-port-id"))
        in_i = _as_int(pr.get("link.input.port"), pr.get("link.input.port.id"), info.get("input-port-id"))
        if out_i is None or in_i is None:
            continue
        links.append(PwLink(id=int(obj["id"]), out_port_id=out_i, in_port_id=in_i))

    return PwGraph.build(nodes.values(), ports, links)


def capture(timeout: float = DEFAULT_TIMEOUT) -> PwGraph:
    graph = parse_graph(pw_dump_json(timeout=timeout))
    logger.debug(
        "captured graph: %d nodes, %d ports, %d links",
        len(graph.nodes), len(graph.ports), len(graph.links),
    )
    return graph
