from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, List, Sequence

from errors import GraphQueryFailed, GraphTimeout, LinkMutationFailed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


def _run(cmd: Sequence[str], timeout: float) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(list(cmd), capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise GraphTimeout(f"{cmd[0]} did not finish within {timeout:g}s") from e
    except OSError as e:
        raise GraphQueryFailed(f"cannot run {cmd[0]}: {e}") from e


def _message(p: subprocess.CompletedProcess[str]) -> str:
    return (p.stderr or p.stdout or "").strip()


def pw_dump_json(timeout: float = DEFAULT_TIMEOUT) -> List[Any]:
    p = _run(["pw-dump"], timeout)
    if p.returncode != 0:
        raise GraphQueryFailed(f"pw-dump failed: {_message(p)}")

    try:
        data = json.loads(p.stdout)
    except ValueError as e:
        raise GraphQueryFailed(f"pw-dump output is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise GraphQueryFailed("pw-dump output JSON is not a list")

    return data


def pw_link_connect(out_port: str, in_port: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """
    Link two ports (ids or "node:port" names).
    Returns False when PipeWire reports the link already exists.
    """
    if not out_port or not in_port:
        raise LinkMutationFailed("Invalid ports for link creation.")
    p = _run(["pw-link", out_port, in_port], timeout)
    if p.returncode == 0:
        return True

    msg = _message(p)
    low = msg.lower()
    if "exist" in low or "already" in low:
        logger.debug("pw-link: %s -> %s already linked", out_port, in_port)
        return False

    raise LinkMutationFailed(f"pw-link connect failed ({out_port} -> {in_port}): {msg}")


def pw_link_destroy(link_id: int, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """
    Remove a link by its global id.
    Returns False when the link is already gone.
    """
    p = _run(["pw-link", "-d", str(link_id)], timeout)
    if p.returncode == 0:
        return True

    msg = _message(p)
    low = msg.lower()
    if "no such" in low or "not found" in low or "does not exist" in low:
        return False

    raise LinkMutationFailed(f"pw-link disconnect failed (link {link_id}): {msg}")
