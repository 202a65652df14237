# mqconsume

The core of a push-style message queue consumer. It is plain Python with no
runtime dependencies.

| Module | What it holds |
| --- | --- |
| `mqconsume.errors` | `ErrorCode`, an enum of known failures whose values are their messages, and `MQError(code, detail=None)`. |
| `mqconsume.strategy` | `MessageQueue`, `ConsistentHashRing` and the queue allocation strategies. |
| `mqconsume.statistics` | `StatsManager`, `StatsItemSet` and `StatsItem`: sliding-window sums, TPS and average times. |
| `mqconsume.options` | `PushConsumerOptions` and its validation, plus `MessageModel`, `ConsumeFromWhere` and `ConsumeResult`. |
| `mqconsume.consume_helpers` | `MessageExt` and small rules of the consume loop: batching, threshold sharing, retry topics and reconsume limits. |
| `mqconsume.push_consumer` | `PushConsumer`: subscriptions, callback dispatch through interceptors, direct consumption and reconsume checks. |

## Installation

```
pip install .
```

## Allocating queues

Every strategy takes `(consumer_group, current_cid, mq_all, cid_all)`. It
returns the queues that belong to `current_cid`. It returns `None` when an
argument is empty or when `current_cid` is not in `cid_all`.

```python
from mqconsume.strategy import MessageQueue, allocate_by_averagely

queues = [MessageQueue(topic="orders", broker_name="broker-a", queue_id=i) for i in range(6)]
mine = allocate_by_averagely(
    "order-group",
    "10.0.0.1@default",
    queues,
    ["10.0.0.1@default", "10.0.0.2@default"],
)
# queues 0, 1 and 2
```

The module provides these strategies:

- `allocate_by_averagely` gives each consumer a contiguous block of queues.
- `allocate_by_averagely_circle` deals the queues out round robin.
- `allocate_by_machine_nearby` currently behaves the same as `allocate_by_averagely`.
- `allocate_by_config(queues)` builds a strategy that always returns the given list.
- `allocate_by_machine_room(idcs)` builds a strategy over queues whose broker name has the form `room@name`, where `room` is one of `idcs`.
- `allocate_by_consistent_hash(virtual_node_count)` builds a strategy that places consumers on a `ConsistentHashRing` and looks each queue up by `str(queue)`.

## Statistics

```python
from mqconsume.statistics import StatsManager

stats = StatsManager()
stats.increase_pull_tps("order-group", "orders", 32)
stats.pull_tps.sampling_in_seconds()
snapshot = stats.get_pull_tps("order-group", "orders")   # StatsSnapshot(sum, tps, avgpt)
status = stats.get_consume_status("order-group", "orders")  # ConsumeStatus
```

Sampling happens only when you ask for it. Use `sampling_in_seconds`,
`sampling_in_minutes` and `sampling_in_hour` on a `StatsItemSet` to do it by
hand. `stats.start()` starts background threads that sample and log
periodically, and `stats.shutdown()` stops them. The minute and hour windows
each keep the last 7 samples, and the day window keeps the last 25.

## Options

Validate a `PushConsumerOptions` with `validate()`. A numeric limit left at
zero takes its default, for example a pull batch size of 32 or 20 consume
workers. A value out of range raises `ValueError`. Durations are in seconds.

## Consuming

A callback receives a `ConsumeContext` and the list of messages. It returns
a `ConsumeResult`.

```python
from mqconsume.consume_helpers import MessageExt
from mqconsume.options import ConsumeResult, PushConsumerOptions
from mqconsume.push_consumer import PushConsumer

consumer = PushConsumer("order-group", PushConsumerOptions(), send_back=None)
consumer.subscribe("orders", lambda ctx, msgs: ConsumeResult.CONSUME_SUCCESS)

consumer.consume_inner([MessageExt(topic="orders")])          # ConsumeResult.CONSUME_SUCCESS
consumer.consume_message_directly(MessageExt(topic="orders"), "broker-a").consume_result  # "CR_SUCCESS"
```

Subscription:

- With a namespace set in the options, topics and the group name are prefixed with `namespace%`.
- `subscribe` raises `MQError` with `ErrorCode.START_TOPIC` after `shutdown()`.
- A message on the group's `%RETRY%` topic is sent to the callback of the topic named in its `RETRY_TOPIC` property.

Consuming a batch:

- `consume_inner` raises `ValueError` for an empty batch and `LookupError` when no callback is registered.
- Interceptors in `options.interceptors` are called as `interceptor(ctx, msgs, holder, next)`. They wrap the callback in order, and the result is carried out in a `ConsumeResultHolder`.
- `consume_message_directly` catches the callback's exception and reports it as `CR_THROW_EXCEPTION`, with the exception text as the remark.

Orderly consumption:

- `check_reconsume_times` handles messages retried more than `max_reconsume_times` by passing them to the `send_back(broker_name, message, delay_level)` callable. A `max_reconsume_times` of -1 means no limit.
- It returns `True` when the queue should pause.
- Without a `send_back` callable, sending back always fails.

## What this package does not do

This package has no network layer. It does not:

- connect to name servers or brokers
- pull messages
- run a rebalance loop
- store consumer offsets
- send heartbeats

`PushConsumer` has no `start()`. Messages reach it only when you call
`consume_inner` or `consume_message_directly` yourself. The allocation
strategies, statistics and helpers are building blocks for that machinery.

## Running the tests

```
pip install ".[test]"
pytest
```