"""Strategies for allocating message queues among consumers of a group."""

from __future__ import annotations

import bisect
import logging
import zlib
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageQueue:
    """A single queue of a topic hosted on a broker."""

    topic: str = ""
    broker_name: str = ""
    queue_id: int = 0

    def __str__(self) -> str:
        return (
            f"MessageQueue [topic={self.topic}, brokerName={self.broker_name}, "
            f"queueId={self.queue_id}]"
        )


AllocateStrategy = Callable[
    [str, str, Sequence[MessageQueue], Sequence[str]], Optional[list]
]


class ConsistentHashRing:
    """A consistent hash ring with a fixed number of virtual nodes per member."""

    def __init__(self, replicas: int = 20) -> None:
        self.replicas = replicas
        self._circle: dict[int, str] = {}
        self._sorted: list[int] = []
        self._members: set[str] = set()

    @staticmethod
    def _hash(key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) & 0xFFFFFFFF

    def add(self, element: str) -> None:
        """Add a member and its virtual nodes to the ring."""
        for idx in range(self.replicas):
            self._circle[self._hash(f"{idx}{element}")] = element
        self._members.add(element)
        self._sorted = sorted(self._circle)

    def get(self, name: str) -> str:
        """Return the member owning ``name``; raise LookupError on an empty ring."""
        if not self._circle:
            raise LookupError("empty circle")
        position = bisect.bisect_right(self._sorted, self._hash(name))
        if position >= len(self._sorted):
            position = 0
        return self._circle[self._sorted[position]]


def _index_of_consumer(
    consumer_group: str, current_cid: str, cid_all: Sequence[str]
) -> int | None:
    try:
        return list(cid_all).index(current_cid)
    except ValueError:
        logger.warning(
            "[BUG] ConsumerId not in cidAll: group=%s consumerId=%s cidAll=%s",
            consumer_group,
            current_cid,
            list(cid_all),
        )
        return None


def _params_missing(current_cid, mq_all, cid_all) -> bool:
    return not current_cid or not mq_all or not cid_all


def allocate_by_averagely(
    consumer_group: str,
    current_cid: str,
    mq_all: Sequence[MessageQueue] | None,
    cid_all: Sequence[str] | None,
) -> list[MessageQueue] | None:
    """Give each consumer a contiguous, near-equal block of queues."""
    if _params_missing(current_cid, mq_all, cid_all):
        return None
    index = _index_of_consumer(consumer_group, current_cid, cid_all)
    if index is None:
        return None

    mq_size = len(mq_all)
    cid_size = len(cid_all)
    mod = mq_size % cid_size

    if mq_size <= cid_size:
        average_size = 1
    elif mod > 0 and index < mod:
        average_size = mq_size // cid_size + 1
    else:
        average_size = mq_size // cid_size

    if mod > 0 and index < mod:
        start_index = index * average_size
    else:
        start_index = index * average_size + mod

    num = min(average_size, mq_size - start_index)
    return [mq_all[(start_index + i) % mq_size] for i in range(num)]


def allocate_by_averagely_circle(
    consumer_group: str,
    current_cid: str,
    mq_all: Sequence[MessageQueue] | None,
    cid_all: Sequence[str] | None,
) -> list[MessageQueue] | None:
    """Deal queues out to consumers in round-robin order."""
    if _params_missing(current_cid, mq_all, cid_all):
        return None
    index = _index_of_consumer(consumer_group, current_cid, cid_all)
    if index is None:
        return None
    step = len(cid_all)
    return [mq for i, mq in enumerate(mq_all) if i >= index and i % step == index]


def allocate_by_machine_nearby(
    consumer_group: str,
    current_cid: str,
    mq_all: Sequence[MessageQueue] | None,
    cid_all: Sequence[str] | None,
) -> list[MessageQueue] | None:
    """Nearby-room allocation; currently the same as the average strategy."""
    return allocate_by_averagely(consumer_group, current_cid, mq_all, cid_all)


def allocate_by_config(queues: Sequence[MessageQueue]) -> AllocateStrategy:
    """Return a strategy that always yields the configured queues."""
    configured = list(queues)

    def strategy(consumer_group, current_cid, mq_all, cid_all):
        logger.debug(
            "allocating %d configured queues to %s in group %s",
            len(configured),
            current_cid,
            consumer_group,
        )
        return list(configured)

    return strategy


def allocate_by_machine_room(consumer_idcs: Sequence[str]) -> AllocateStrategy:
    """Return a strategy that shares queues of brokers in the given rooms."""
    idcs = list(consumer_idcs)

    def strategy(consumer_group, current_cid, mq_all, cid_all):
        if _params_missing(current_cid, mq_all, cid_all):
            return None
        index = _index_of_consumer(consumer_group, current_cid, cid_all)
        if index is None:
            return None

        premq_all: list[MessageQueue] = []
        for mq in mq_all:
            parts = mq.broker_name.split("@")
            if len(parts) == 2:
                premq_all.extend(mq for idc in idcs if idc == parts[0])

        mod, rem = divmod(len(premq_all), len(cid_all))
        start_index = mod * index
        result = [mq_all[i] for i in range(start_index, start_index + mod)]
        if rem > index:
            result.append(premq_all[index + mod * len(cid_all)])
        return result

    return strategy


def allocate_by_consistent_hash(virtual_node_count: int) -> AllocateStrategy:
    """Return a strategy that assigns queues via a consistent hash ring."""

    def strategy(consumer_group, current_cid, mq_all, cid_all):
        if _params_missing(current_cid, mq_all, cid_all):
            return None
        if _index_of_consumer(consumer_group, current_cid, cid_all) is None:
            return None

        ring = ConsistentHashRing(virtual_node_count)
        for cid in cid_all:
            ring.add(cid)

        result = []
        for mq in mq_all:
            try:
                node = ring.get(str(mq))
            except LookupError as err:
                logger.warning("[BUG] AllocateByConsistentHash err: %s", err)
                continue
            if node == current_cid:
                result.append(mq)
        return result

    return strategy