import pytest

from mqconsume.consume_helpers import (
    PROPERTY_CONSUME_START_TIME,
    PROPERTY_RECONSUME_TIME,
    PROPERTY_RETRY_TOPIC,
    MessageExt,
)
from mqconsume.errors import ErrorCode, MQError
from mqconsume.options import (
    ConsumeFromWhere,
    ConsumeResult,
    MessageModel,
    PushConsumerOptions,
)
from mqconsume.push_consumer import (
    CTX_TYPE_PROPERTY,
    DIRECT_CONSUME_RETRY_LATER,
    DIRECT_CONSUME_SUCCESS,
    DIRECT_THROW_EXCEPTION,
    RETURN_FAILED,
    RETURN_SUCCESS,
    PushConsumer,
    PushConsumerCallback,
)


def _ok(ctx, msgs):
    return ConsumeResult.CONSUME_SUCCESS


def _broadcast_consumer(**kwargs):
    return PushConsumer(
        "testGroup",
        PushConsumerOptions(consumer_model=MessageModel.BROADCASTING),
        **kwargs,
    )


def test_subscribe_unsubscribe_resubscribe():
    c = _broadcast_consumer()
    c.subscribe("TopicTest", _ok)
    assert c.is_subscribed("TopicTest") is True
    c.unsubscribe("TopicTest")
    assert c.is_subscribed("TopicTest") is False
    c.subscribe("TopicTest", _ok)
    assert c.is_subscribed("TopicTest") is True


def test_subscribe_after_shutdown_raises():
    c = _broadcast_consumer()
    c.shutdown()
    with pytest.raises(MQError) as info:
        c.subscribe("TopicTest", _ok)
    assert info.value.code is ErrorCode.START_TOPIC


def test_namespace_prefixes_group_and_topic():
    c = PushConsumer("g", PushConsumerOptions(namespace="ns"))
    assert c.consumer_group == "ns%g"
    c.subscribe("t", _ok)
    assert c.is_subscribed("t")
    result = c.consume_inner([MessageExt(topic="ns%t")])
    assert result is ConsumeResult.CONSUME_SUCCESS


def test_invalid_options_raise():
    with pytest.raises(ValueError):
        PushConsumer("g", PushConsumerOptions(pull_batch_size=5000))


def test_consume_inner_empty_raises():
    c = _broadcast_consumer()
    with pytest.raises(ValueError):
        c.consume_inner([])


def test_consume_inner_missing_callback():
    c = _broadcast_consumer()
    with pytest.raises(LookupError):
        c.consume_inner([MessageExt(topic="unknown")])


def test_consume_inner_falls_back_to_retry_topic():
    c = _broadcast_consumer()
    c.subscribe("orig", lambda ctx, msgs: ConsumeResult.CONSUME_RETRY_LATER)
    msg = MessageExt(topic="%RETRY%testGroup").with_property(
        PROPERTY_RETRY_TOPIC, "orig"
    )
    assert c.consume_inner([msg]) is ConsumeResult.CONSUME_RETRY_LATER


def test_interceptors_run_in_order_and_record_result():
    calls = []
    seen = {}

    def first(ctx, msgs, holder, invoke):
        calls.append("first-before")
        invoke(ctx, msgs, holder)
        calls.append("first-after")
        seen["ctx"] = ctx

    def second(ctx, msgs, holder, invoke):
        calls.append("second-before")
        invoke(ctx, msgs, holder)
        calls.append("second-after")

    def callback(ctx, msgs):
        calls.append("callback")
        return ConsumeResult.CONSUME_SUCCESS

    c = PushConsumer("g", PushConsumerOptions(interceptors=[first, second]))
    c.subscribe("t", callback)
    assert c.consume_inner([MessageExt(topic="t")]) is ConsumeResult.CONSUME_SUCCESS
    assert calls == [
        "first-before",
        "second-before",
        "callback",
        "second-after",
        "first-after",
    ]
    assert seen["ctx"].success is True
    assert seen["ctx"].properties[CTX_TYPE_PROPERTY] == RETURN_SUCCESS


def test_interceptor_marks_failure():
    seen = {}

    def watcher(ctx, msgs, holder, invoke):
        invoke(ctx, msgs, holder)
        seen["ctx"] = ctx

    c = PushConsumer("g", PushConsumerOptions(interceptors=[watcher]))
    c.subscribe("t", lambda ctx, msgs: ConsumeResult.CONSUME_RETRY_LATER)
    assert c.consume_inner([MessageExt(topic="t")]) is ConsumeResult.CONSUME_RETRY_LATER
    assert seen["ctx"].success is False
    assert seen["ctx"].properties[CTX_TYPE_PROPERTY] == RETURN_FAILED


def test_consume_message_directly_success_and_stats():
    c = _broadcast_consumer()
    c.subscribe("t", _ok)
    msg = MessageExt(topic="t", queue_id=3)
    result = c.consume_message_directly(msg, "broker-a")
    assert result.consume_result == DIRECT_CONSUME_SUCCESS
    assert result.order is False
    assert result.auto_commit is True
    assert PROPERTY_CONSUME_START_TIME in msg.properties
    assert c.stats.consume_rt.get_or_create_item("t@testGroup").times == 1


def test_consume_message_directly_retry_later():
    c = _broadcast_consumer()
    c.subscribe("t", lambda ctx, msgs: ConsumeResult.CONSUME_RETRY_LATER)
    result = c.consume_message_directly(MessageExt(topic="t"), "b")
    assert result.consume_result == DIRECT_CONSUME_RETRY_LATER


def test_consume_message_directly_exception():
    c = _broadcast_consumer()

    def boom(ctx, msgs):
        raise RuntimeError("boom")

    c.subscribe("t", boom)
    result = c.consume_message_directly(MessageExt(topic="t"), "b")
    assert result.consume_result == DIRECT_THROW_EXCEPTION
    assert result.remark == "boom"


def test_check_reconsume_times_below_limit_suspends():
    c = PushConsumer("g", PushConsumerOptions(max_reconsume_times=5))
    msg = MessageExt(topic="t", reconsume_times=2)
    assert c.check_reconsume_times([msg]) is True
    assert msg.reconsume_times == 3


def test_check_reconsume_times_over_limit_sent_back():
    sent = []

    def send_back(broker, msg, level):
        sent.append((broker, level))
        return True

    c = PushConsumer("g", PushConsumerOptions(max_reconsume_times=5), send_back)
    msg = MessageExt(topic="t", reconsume_times=6)
    assert c.check_reconsume_times([msg]) is False
    assert sent == [("", -1)]
    assert msg.get_property(PROPERTY_RECONSUME_TIME) == "6"
    assert msg.reconsume_times == 6


def test_check_reconsume_times_send_back_fails():
    c = PushConsumer("g", PushConsumerOptions(max_reconsume_times=1))
    msg = MessageExt(topic="t", reconsume_times=4)
    assert c.check_reconsume_times([msg]) is True
    assert msg.reconsume_times == 5


def test_check_reconsume_times_empty():
    c = PushConsumer("g")
    assert c.check_reconsume_times([]) is False


def test_get_where_and_pause():
    c = PushConsumer(
        "g", PushConsumerOptions(from_where=ConsumeFromWhere.FIRST_OFFSET)
    )
    assert c.get_where() == "CONSUME_FROM_FIRST_OFFSET"
    c.suspend()
    assert c.paused is True
    c.resume()
    assert c.paused is False


def test_callback_unique_id_is_topic():
    cb = PushConsumerCallback("topic-a", _ok)
    assert cb.unique_id == "topic-a"