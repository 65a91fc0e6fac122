from __future__ import annotations

from typing import Mapping, Tuple

CANONICAL_ORDER: Tuple[str, ...] = (
    "MONO",
    "FL", "FR",
    "FC", "LFE",
    "SL", "SR",
    "RL", "RR",
) + tuple(f"AUX{i}" for i in range(64))

_ALIASES = {
    "fl": "FL", "front-left": "FL",
    "fr": "FR", "front-right": "FR",
    "fc": "FC", "front-center": "FC",
    "lfe": "LFE", "low-frequency": "LFE",
    "rl": "RL", "rear-left": "RL",
    "rr": "RR", "rear-right": "RR",
    "sl": "SL", "side-left": "SL",
    "sr": "SR", "side-right": "SR",
    "mono": "MONO",
}

_RANK = {ch: i for i, ch in enumerate(CANONICAL_ORDER)}


def normalize_channel(v: str) -> str:
    s = (v or "").strip().lower()
    if not s:
        return ""

    if s in _ALIASES:
        return _ALIASES[s]

    if s.startswith("aux") and s[3:].isdigit():
        return f"AUX{int(s[3:])}"

    return s.upper()


def is_known_channel(ch: str) -> bool:
    return ch in _RANK


def channel_rank(ch: str) -> int:
    """Sort key: canonical positions first, anything else after them."""
    return _RANK.get(ch, len(CANONICAL_ORDER))


def channel_from_port_props(props: Mapping[str, str]) -> str:
    v = (props.get("audio.channel") or props.get("audio.position") or "").strip()
    if v:
        return normalize_channel(v)

    # "output_FL", "monitor_FR", "playback_AUX3"; a bare number is not a position
    pn = (props.get("port.name") or "").strip()
    if "_" in pn:
        ch = normalize_channel(pn.rsplit("_", 1)[-1])
        if is_known_channel(ch):
            return ch

    return ""
