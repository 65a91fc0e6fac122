from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from errors import GraphQueryFailed, GraphTimeout, LinkMutationFailed
from models import LinkPair
from pw_types import PwLink, PwPort
from routing import RouteDecision

logger = logging.getLogger(__name__)


class LinkGraph(Protocol):
    def find_link(self, src_port: PwPort, dst_port: PwPort) -> Optional[PwLink]: ...

    def create_link(self, src_port: PwPort, dst_port: PwPort) -> bool: ...

    def destroy_link(self, link: PwLink) -> bool: ...


class Outcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already-existed"
    CREATION_FAILED = "creation-failed"
    REMOVED = "removed"
    NOT_FOUND = "not-found"
    REMOVAL_FAILED = "removal-failed"
    PLANNED = "planned"


@dataclass(frozen=True)
class LinkResult:
    pair: LinkPair
    outcome: Outcome
    reason: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome in (Outcome.CREATION_FAILED, Outcome.REMOVAL_FAILED)


@dataclass
class ReconcileResult:
    device_name: str
    created: List[LinkResult] = field(default_factory=list)
    removed: List[LinkResult] = field(default_factory=list)

    @property
    def failures(self) -> List[LinkResult]:
        return [r for r in self.created + self.removed if r.failed]

    @property
    def ok(self) -> bool:
        return not self.failures

    def outcome_of(self, pair: LinkPair) -> Optional[Outcome]:
        for r in self.created + self.removed:
            if r.pair == pair:
                return r.outcome
        return None

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for r in self.created + self.removed:
            counts[r.outcome.value] = counts.get(r.outcome.value, 0) + 1
        return counts


_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def device_lock(device_name: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(device_name)
        if lock is None:
            lock = _locks[device_name] = threading.Lock()
        return lock


class Reconciler:
    """
    Applies a RouteDecision to the live graph.

    Removals run before creations. Creating a link that exists, or removing
    one that is gone, is a no-op, so applying the same decision twice is safe.
    Applies for the same device are serialized.
    """

    def __init__(self, graph: LinkGraph, dry_run: bool = False) -> None:
        self._graph = graph
        self._dry_run = dry_run

    def apply(self, decision: RouteDecision) -> ReconcileResult:
        result = ReconcileResult(decision.device_name)
        if decision.empty:
            return result

        with device_lock(decision.device_name):
            pending_remove = sorted(decision.remove, key=_pair_key)
            pending_create = sorted(decision.create, key=_pair_key)
            try:
                while pending_remove:
                    result.removed.append(self._remove(pending_remove[0]))
                    pending_remove.pop(0)
                while pending_create:
                    result.created.append(self._create(pending_create[0]))
                    pending_create.pop(0)
            except (GraphTimeout, GraphQueryFailed) as e:
                logger.error(
                    "pass for %s abandoned: %s", decision.stream_name or decision.device_name, e,
                    extra={"device": decision.device_name, "stream": decision.stream_name},
                )
                reason = "timeout" if isinstance(e, GraphTimeout) else str(e)
                result.removed.extend(LinkResult(p, Outcome.REMOVAL_FAILED, reason) for p in pending_remove)
                result.created.extend(LinkResult(p, Outcome.CREATION_FAILED, reason) for p in pending_create)

        logger.info(
            "reconciled %s", decision.stream_name or decision.device_name,
            extra={"device": decision.device_name, "stream": decision.stream_name, "outcome": result.summary()},
        )
        return result

    def _remove(self, pair: LinkPair) -> LinkResult:
        ctx = {"src": pair.src.full_name, "dst": pair.dst.full_name}
        link = self._graph.find_link(pair.src, pair.dst)
        if link is None:
            logger.debug("link %s already gone", pair.label(), extra=dict(ctx, outcome=Outcome.NOT_FOUND.value))
            return LinkResult(pair, Outcome.NOT_FOUND)
        if self._dry_run:
            logger.info("would remove %s", pair.label(), extra=dict(ctx, outcome=Outcome.PLANNED.value))
            return LinkResult(pair, Outcome.PLANNED)

        try:
            gone = self._graph.destroy_link(link)
        except LinkMutationFailed as e:
            logger.warning("removing %s failed: %s", pair.label(), e.reason, extra=dict(ctx, outcome="failed"))
            return LinkResult(pair, Outcome.REMOVAL_FAILED, e.reason)

        if gone:
            logger.info("removed %s", pair.label(), extra=dict(ctx, outcome=Outcome.REMOVED.value))
            return LinkResult(pair, Outcome.REMOVED)
        logger.info(
            "link %s vanished before removal", pair.label(), extra=dict(ctx, outcome=Outcome.NOT_FOUND.value)
        )
        return LinkResult(pair, Outcome.NOT_FOUND)

    def _create(self, pair: LinkPair) -> LinkResult:
        ctx = {"src": pair.src.full_name, "dst": pair.dst.full_name}
        if self._graph.find_link(pair.src, pair.dst) is not None:
            logger.debug("link %s exists", pair.label(), extra=dict(ctx, outcome=Outcome.ALREADY_EXISTED.value))
            return LinkResult(pair, Outcome.ALREADY_EXISTED)
        if self._dry_run:
            logger.info("would create %s", pair.label(), extra=dict(ctx, outcome=Outcome.PLANNED.value))
            return LinkResult(pair, Outcome.PLANNED)

        try:
            made = self._graph.create_link(pair.src, pair.dst)
        except LinkMutationFailed as e:
            logger.warning("creating %s failed: %s", pair.label(), e.reason, extra=dict(ctx, outcome="failed"))
            return LinkResult(pair, Outcome.CREATION_FAILED, e.reason)

        if made:
            logger.info("linked %s", pair.label(), extra=dict(ctx, outcome=Outcome.CREATED.value))
            return LinkResult(pair, Outcome.CREATED)
        logger.info(
            "link %s appeared before creation", pair.label(), extra=dict(ctx, outcome=Outcome.ALREADY_EXISTED.value)
        )
        return LinkResult(pair, Outcome.ALREADY_EXISTED)


def _pair_key(pair: LinkPair) -> Tuple[int, int]:
    return (pair.src.id, pair.dst.id)
