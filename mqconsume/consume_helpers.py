"""Message records and small rules used by the push consumer's consume loop."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Sequence

RETRY_GROUP_TOPIC_PREFIX = "%RETRY%"
PROPERTY_RETRY_TOPIC = "RETRY_TOPIC"
PROPERTY_CONSUME_START_TIME = "CONSUME_START_TIME"
PROPERTY_RECONSUME_TIME = "RECONSUME_TIME"

MAX_INT32 = 2**31 - 1
DEFAULT_MAX_RECONSUME_TIMES = 16
MIN_SUSPEND_MILLIS = 10
MAX_SUSPEND_MILLIS = 30000


@dataclass
class MessageExt:
    """A message as delivered by a broker, with its queue position and properties."""

    topic: str = ""
    body: bytes = b""
    msg_id: str = ""
    queue_id: int = 0
    queue_offset: int = 0
    commit_log_offset: int = 0
    store_host: str = ""
    born_timestamp: int = 0
    reconsume_times: int = 0
    properties: dict[str, str] = field(default_factory=dict)

    def get_property(self, name: str) -> str:
        """The property value, or an empty string when it is not set."""
        return self.properties.get(name, "")

    def with_property(self, name: str, value: str) -> "MessageExt":
        """Set a property and return the message."""
        self.properties[name] = value
        return self


def orderly_max_reconsume_times(max_reconsume_times: int) -> int:
    """Reconsume limit for orderly consumption; -1 means unlimited."""
    return MAX_INT32 if max_reconsume_times == -1 else max_reconsume_times


def max_reconsume_times(max_reconsume_times: int) -> int:
    """Reconsume limit sent to the broker; -1 means the default of 16."""
    if max_reconsume_times == -1:
        return DEFAULT_MAX_RECONSUME_TIMES
    return max_reconsume_times


def clamp_suspend_time(suspend_millis: int, default_millis: int) -> int:
    """Resolve -1 to the default and keep the delay within [10, 30000] ms."""
    if suspend_millis == -1:
        suspend_millis = default_millis
    return max(MIN_SUSPEND_MILLIS, min(MAX_SUSPEND_MILLIS, suspend_millis))


def split_batches(messages: Sequence, batch_size: int) -> Iterator[list]:
    """Yield consecutive batches of at most ``batch_size`` messages."""
    if batch_size < 1:
        raise ValueError("batch size must be at least 1")
    items = list(messages)
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


def divide_threshold(threshold: int, queue_count: int) -> int:
    """Share a topic-wide threshold between queues; -1 stays unlimited, never below 1."""
    if threshold == -1 or queue_count <= 0:
        return threshold
    return max(threshold // queue_count, 1)


def offset_diff_by_topic(entries: Iterable[tuple[str, int, int]]) -> dict[str, int]:
    """Sum the lag (max offset minus consumer offset) per topic.

    Entries are ``(topic, consumer_offset, max_offset)``; entries with a negative
    offset or a consumer offset past the maximum are skipped.
    """
    diffs: dict[str, int] = {}
    for topic, consumer_offset, max_offset in entries:
        if consumer_offset < 0 or max_offset < 0 or consumer_offset > max_offset:
            continue
        diffs[topic] = diffs.get(topic, 0) + (max_offset - consumer_offset)
    return diffs


def namespaced(namespace: str, name: str) -> str:
    """Prefix ``name`` with ``namespace%`` when a namespace is set."""
    return f"{namespace}%{name}" if namespace else name


def reset_retry_topics(
    messages: Iterable[MessageExt], consumer_group: str, now_millis: int | None = None
) -> None:
    """Restore the original topic of retried messages and stamp the consume start time."""
    group_topic = RETRY_GROUP_TOPIC_PREFIX + consumer_group
    if now_millis is None:
        now_millis = time.time_ns() // 1_000_000
    stamp = str(now_millis)
    for message in messages:
        retry_topic = message.get_property(PROPERTY_RETRY_TOPIC)
        if retry_topic and message.topic == group_topic:
            message.topic = retry_topic
        message.with_property(PROPERTY_CONSUME_START_TIME, stamp)