"""A push consumer: subscriptions, callback dispatch and retry bookkeeping."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from mqconsume.consume_helpers import (
    PROPERTY_RECONSUME_TIME,
    PROPERTY_RETRY_TOPIC,
    RETRY_GROUP_TOPIC_PREFIX,
    MessageExt,
    namespaced,
    orderly_max_reconsume_times,
    reset_retry_topics,
)
from mqconsume.errors import ErrorCode, MQError
from mqconsume.options import (
    ConsumeResult,
    PushConsumerOptions,
    consume_from_where_name,
)
from mqconsume.statistics import StatsManager
from mqconsume.strategy import MessageQueue

logger = logging.getLogger(__name__)

CTX_TYPE_PROPERTY = "ConsumeContextType"
RETURN_SUCCESS = "SUCCESS"
RETURN_TIMEOUT = "TIME_OUT"
RETURN_EXCEPTION = "EXCEPTION"
RETURN_FAILED = "FAILED"

DIRECT_CONSUME_SUCCESS = "CR_SUCCESS"
DIRECT_CONSUME_RETRY_LATER = "CR_LATER"
DIRECT_THROW_EXCEPTION = "CR_THROW_EXCEPTION"

ConsumeCallback = Callable[["ConsumeContext", list], ConsumeResult]
SendBack = Callable[[str, MessageExt, int], bool]


class _State(Enum):
    CREATE_JUST = "create_just"
    RUNNING = "running"
    START_FAILED = "start_failed"
    SHUTDOWN = "shutdown"


@dataclass
class ConsumeContext:
    """What a consume callback and the interceptors see about one batch."""

    consumer_group: str
    mq: MessageQueue
    messages: list
    properties: dict[str, str] = field(default_factory=dict)
    success: bool = False
    delay_level_when_next_consume: int = 0
    suspend_current_queue_time_millis: int = -1


@dataclass(frozen=True)
class PushConsumerCallback:
    """A consume callback registered for one topic."""

    topic: str
    func: ConsumeCallback

    @property
    def unique_id(self) -> str:
        return self.topic


@dataclass
class ConsumeResultHolder:
    """Carries the callback's result out through the interceptor chain."""

    consume_result: ConsumeResult | None = None


@dataclass
class DirectConsumeResult:
    """Outcome of consuming a single message on a broker's request."""

    consume_result: str = ""
    remark: str = ""
    spent_time_millis: int = 0
    order: bool = False
    auto_commit: bool = True


def _never_sent(broker_name: str, message: MessageExt, delay_level: int) -> bool:
    return False


class PushConsumer:
    """Dispatches pulled messages to the callbacks registered per topic."""

    def __init__(
        self,
        group_name: str,
        options: PushConsumerOptions | None = None,
        send_back: SendBack | None = None,
    ) -> None:
        self.options = (options or PushConsumerOptions()).validate()
        self.consumer_group = namespaced(self.options.namespace, group_name)
        self.send_back = send_back or _never_sent
        self.stats = StatsManager()
        self.paused = False
        self._state = _State.CREATE_JUST
        self._subscriptions: dict[str, str] = {}
        self._callbacks: dict[str, PushConsumerCallback] = {}
        self._lock = threading.Lock()

    @property
    def consume_orderly(self) -> bool:
        return self.options.consume_orderly

    @property
    def model(self):
        return self.options.consumer_model

    def subscribe(self, topic: str, callback: ConsumeCallback) -> None:
        """Register ``callback`` for ``topic``; fails once the consumer is shut down."""
        with self._lock:
            if self._state in (_State.START_FAILED, _State.SHUTDOWN):
                raise MQError(ErrorCode.START_TOPIC)
            full_topic = namespaced(self.options.namespace, topic)
            self._subscriptions[full_topic] = "*"
            self._callbacks[full_topic] = PushConsumerCallback(full_topic, callback)

    def unsubscribe(self, topic: str) -> None:
        """Drop the subscription to ``topic``."""
        with self._lock:
            self._subscriptions.pop(namespaced(self.options.namespace, topic), None)

    def is_subscribed(self, topic: str) -> bool:
        """Whether ``topic`` (without namespace) is currently subscribed."""
        with self._lock:
            return namespaced(self.options.namespace, topic) in self._subscriptions

    def suspend(self) -> None:
        self.paused = True
        logger.info("suspend consumer: %s", self.consumer_group)

    def resume(self) -> None:
        self.paused = False
        logger.info("resume consumer: %s", self.consumer_group)

    def shutdown(self) -> None:
        """Stop the consumer; later calls do nothing."""
        with self._lock:
            if self._state is _State.SHUTDOWN:
                return
            self._state = _State.SHUTDOWN
        self.stats.shutdown()

    def get_where(self) -> str:
        return consume_from_where_name(self.options.from_where)

    def _find_callback(self, messages: Sequence[MessageExt]) -> PushConsumerCallback:
        first = messages[0]
        with self._lock:
            callback = self._callbacks.get(first.topic)
            if callback is None and first.topic.startswith(RETRY_GROUP_TOPIC_PREFIX):
                callback = self._callbacks.get(
                    first.get_property(PROPERTY_RETRY_TOPIC)
                )
        if callback is None:
            raise LookupError(
                f"the consume callback missing for topic: {first.topic}"
            )
        return callback

    def _consume_with(self, ctx: ConsumeContext, messages: list) -> ConsumeResult:
        if not messages:
            raise ValueError("msg list empty")
        callback = self._find_callback(messages)
        interceptors = list(self.options.interceptors)
        if not interceptors:
            return callback.func(ctx, messages)

        def invoke_callback(call_ctx, msgs, holder):
            holder.consume_result = callback.func(call_ctx, msgs)
            call_ctx.success = holder.consume_result is ConsumeResult.CONSUME_SUCCESS
            call_ctx.properties[CTX_TYPE_PROPERTY] = (
                RETURN_SUCCESS if call_ctx.success else RETURN_FAILED
            )

        def chained(position: int):
            if position == len(interceptors):
                return invoke_callback

            def invoke(call_ctx, msgs, holder):
                interceptors[position](call_ctx, msgs, holder, chained(position + 1))

            return invoke

        holder = ConsumeResultHolder()
        chained(0)(ctx, messages, holder)
        return holder.consume_result

    def consume_inner(self, messages: Sequence[MessageExt]) -> ConsumeResult:
        """Hand a batch to its topic's callback, through the interceptors."""
        msgs = list(messages)
        topic = msgs[0].topic if msgs else ""
        ctx = ConsumeContext(
            consumer_group=self.consumer_group,
            mq=MessageQueue(topic=topic, queue_id=msgs[0].queue_id if msgs else 0),
            messages=msgs,
        )
        return self._consume_with(ctx, msgs)

    def consume_message_directly(
        self, message: MessageExt, broker_name: str
    ) -> DirectConsumeResult:
        """Consume one message immediately and report how it went."""
        msgs = [message]
        mq = MessageQueue(
            topic=message.topic, broker_name=broker_name, queue_id=message.queue_id
        )
        begin = time.monotonic()
        reset_retry_topics(msgs, self.consumer_group)
        ctx = ConsumeContext(consumer_group=self.consumer_group, mq=mq, messages=msgs)

        result = DirectConsumeResult()
        try:
            outcome = self._consume_with(ctx, msgs)
        except Exception as err:  # the callback's failure is reported, not raised
            ctx.properties[CTX_TYPE_PROPERTY] = RETURN_EXCEPTION
            result.consume_result = DIRECT_THROW_EXCEPTION
            result.remark = str(err)
        else:
            if outcome is ConsumeResult.CONSUME_SUCCESS:
                ctx.properties[CTX_TYPE_PROPERTY] = RETURN_SUCCESS
                result.consume_result = DIRECT_CONSUME_SUCCESS
            elif outcome is ConsumeResult.CONSUME_RETRY_LATER:
                ctx.properties[CTX_TYPE_PROPERTY] = RETURN_FAILED
                result.consume_result = DIRECT_CONSUME_RETRY_LATER

        spent = int((time.monotonic() - begin) * 1000)
        result.spent_time_millis = spent
        self.stats.increase_consume_rt(self.consumer_group, mq.topic, spent)
        return result

    def check_reconsume_times(self, messages: Sequence[MessageExt]) -> bool:
        """Send over-retried messages back; True if the queue should pause."""
        suspend = False
        limit = orderly_max_reconsume_times(self.options.max_reconsume_times)
        for message in messages:
            if message.reconsume_times > limit:
                logger.warning(
                    "msg will be send to retry topic due to ReconsumeTimes > %d", limit
                )
                message.with_property(
                    PROPERTY_RECONSUME_TIME, str(message.reconsume_times)
                )
                if not self.send_back("", message, -1):
                    suspend = True
                    message.reconsume_times += 1
            else:
                suspend = True
                message.reconsume_times += 1
        return suspend