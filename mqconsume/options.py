"""Options of a push consumer and the enumerations they use."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable


class MessageModel(IntEnum):
    """How messages of a topic are spread over the consumers of a group."""

    BROADCASTING = 0
    CLUSTERING = 1

    def __str__(self) -> str:
        return "BroadCasting" if self is MessageModel.BROADCASTING else "Clustering"


class ConsumeFromWhere(IntEnum):
    """Where a new consumer group starts reading a queue."""

    LAST_OFFSET = 0
    FIRST_OFFSET = 1
    TIMESTAMP = 2


class ConsumeResult(Enum):
    """What a consume callback reports for a batch of messages."""

    CONSUME_SUCCESS = 0
    CONSUME_RETRY_LATER = 1
    COMMIT = 2
    ROLLBACK = 3
    SUSPEND_CURRENT_QUEUE_A_MOMENT = 4


_FROM_WHERE_NAMES = {
    ConsumeFromWhere.LAST_OFFSET: "CONSUME_FROM_LAST_OFFSET",
    ConsumeFromWhere.FIRST_OFFSET: "CONSUME_FROM_FIRST_OFFSET",
    ConsumeFromWhere.TIMESTAMP: "CONSUME_FROM_TIMESTAMP",
}


def consume_from_where_name(from_where: Any) -> str:
    """The wire name of a starting position, or ``UNKNOWN``."""
    try:
        return _FROM_WHERE_NAMES[ConsumeFromWhere(from_where)]
    except (ValueError, TypeError):
        return "UNKNOWN"


def _check_range(value: int, low: int, high: int, default: int, label: str) -> int:
    """Return ``value`` if in range, ``default`` if zero, else raise."""
    if low <= value <= high:
        return value
    if value == 0:
        return default
    raise ValueError(f"option.{label} out of range [{low}, {high}]")


@dataclass
class PushConsumerOptions:
    """Settings of a push consumer; zero numeric limits take their defaults on validation.

    Durations are in seconds.
    """

    namespace: str = ""
    instance_name: str = "DEFAULT"
    consumer_model: MessageModel = MessageModel.CLUSTERING
    consume_orderly: bool = False
    from_where: ConsumeFromWhere = ConsumeFromWhere.LAST_OFFSET
    consume_concurrently_max_span: int = 0
    pull_threshold_for_queue: int = 0
    pull_threshold_for_topic: int = 0
    pull_threshold_size_for_queue: int = 0
    pull_threshold_size_for_topic: int = 0
    pull_interval: float = 0.0
    consume_message_batch_max_size: int = 0
    pull_batch_size: int = 0
    consume_goroutine_nums: int = 0
    max_reconsume_times: int = -1
    post_subscription_when_pull: bool = False
    auto_commit: bool = True
    consume_timeout: float = 15 * 60.0
    suspend_current_queue_time: float = 1.0
    max_time_consume_continuously: float = 60.0
    rebalance_lock_interval: float = 20.0
    limiter: Callable[[str], None] | None = None
    interceptors: list = field(default_factory=list)

    def validate(self) -> "PushConsumerOptions":
        """Fill zero limits with defaults; raise ValueError on values out of range."""
        self.consume_concurrently_max_span = _check_range(
            self.consume_concurrently_max_span, 1, 65535, 1000,
            "ConsumeConcurrentlyMaxSpan",
        )
        self.pull_threshold_for_queue = _check_range(
            self.pull_threshold_for_queue, 1, 65535, 1024, "PullThresholdForQueue"
        )
        self.pull_threshold_for_topic = _check_range(
            self.pull_threshold_for_topic, 1, 6553500, 102400, "PullThresholdForTopic"
        )
        self.pull_threshold_size_for_queue = _check_range(
            self.pull_threshold_size_for_queue, 1, 1024, 512,
            "PullThresholdSizeForQueue",
        )
        self.pull_threshold_size_for_topic = _check_range(
            self.pull_threshold_size_for_topic, 1, 102400, 51200,
            "PullThresholdSizeForTopic",
        )
        if self.pull_interval < 0 or self.pull_interval > 65.535:
            raise ValueError("option.PullInterval out of range [0, 65535]")
        self.consume_message_batch_max_size = _check_range(
            self.consume_message_batch_max_size, 1, 1024, 1,
            "ConsumeMessageBatchMaxSize",
        )
        self.pull_batch_size = _check_range(
            self.pull_batch_size, 1, 1024, 32, "PullBatchSize"
        )
        self.consume_goroutine_nums = _check_range(
            self.consume_goroutine_nums, 1, 100000, 20, "ConsumeGoroutineNums"
        )
        return self