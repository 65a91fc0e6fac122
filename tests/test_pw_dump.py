"""Tests for parsing pw-dump output into snapshots."""

from __future__ import annotations

import pytest

import pw_dump
from pw_dump import parse_graph

DUMP = [
    {"id": 0, "type": "PipeWire:Interface:Core", "info": {"props": {}}},
    {
        "id": 50,
        "type": "PipeWire:Interface:Node",
        "info": {
            "props": {
                "node.name": "ProFX",
                "node.description": "ProFX USB Mixer",
                "media.class": "Audio/Sink",
            }
        },
    },
    {
        "id": 100,
        "type": "PipeWire:Interface:Node",
        "info": {
            "props": {
                "node.name": "Firefox",
                "media.class": "Stream/Output/Audio",
                "application.name": "Firefox",
                "media.name": "AudioStream",
                "audio.channels": 2,
            }
        },
    },
    {
        "id": 53,
        "type": "PipeWire:Interface:Port",
        "info": {"direction": "input", "props": {"node.id": 50, "port.name": "Playback_3"}},
    },
    {
        "id": 101,
        "type": "PipeWire:Interface:Port",
        "info": {
            "direction": "output",
            "props": {"node.id": 100, "port.name": "output_FL", "audio.channel": "FL"},
        },
    },
    {
        "id": 102,
        "type": "PipeWire:Interface:Port",
        "info": {"direction": "output", "props": {"node.id": 100, "port.name": "output_FR"}},
    },
    {
        "id": 900,
        "type": "PipeWire:Interface:Link",
        "info": {"output-port-id": 101, "input-port-id": 53, "props": {}},
    },
    {
        "id": 901,
        "type": "PipeWire:Interface:Link",
        "info": {"props": {"link.output.port": "102", "link.input.port": 53}},
    },
    {"id": 902, "type": "PipeWire:Interface:Link", "info": {"props": {}}},
    {"type": "PipeWire:Interface:Node", "info": {"props": {"node.name": "no id"}}},
    {"id": 77, "type": "PipeWire:Interface:Port", "info": None},
    "garbage",
]


@pytest.fixture
def graph():
    return parse_graph(DUMP)


def test_nodes_are_parsed(graph) -> None:
    assert set(graph.nodes) == {50, 100}
    profx = graph.nodes[50]
    assert profx.name == "ProFX"
    assert profx.description == "ProFX USB Mixer"
    assert profx.media_class == "Audio/Sink"
    assert graph.nodes[100].props["audio.channels"] == "2"


def test_ports_take_direction_and_channel(graph) -> None:
    assert graph.ports[53].direction == "in"
    assert graph.ports[53].full_name == "ProFX:Playback_3"
    assert graph.ports[53].channel == ""
    assert graph.ports[101].channel == "FL"
    # no audio.channel prop: taken from the port name suffix
    assert graph.ports[102].channel == "FR"
    assert 77 not in graph.ports


def test_links_from_info_or_props(graph) -> None:
    assert {lk.pair for lk in graph.links} == {(101, 53), (102, 53)}
    assert graph.find_link(101, 53).id == 900
    assert graph.find_link(53, 101) is None


def test_snapshot_is_read_only(graph) -> None:
    with pytest.raises(TypeError):
        graph.nodes[1] = graph.nodes[50]
    with pytest.raises(AttributeError):
        graph.links.append(None)


def test_capture_uses_timeout(monkeypatch) -> None:
    seen = {}

    def fake_dump(timeout):
        seen["timeout"] = timeout
        return DUMP

    monkeypatch.setattr(pw_dump, "pw_dump_json", fake_dump)

    snap = pw_dump.capture(timeout=1.5)

    assert seen["timeout"] == 1.5
    assert len(snap.links) == 2
