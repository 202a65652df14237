import pytest

from mqconsume.strategy import (
    ConsistentHashRing,
    MessageQueue,
    allocate_by_averagely,
    allocate_by_averagely_circle,
    allocate_by_config,
    allocate_by_consistent_hash,
    allocate_by_machine_nearby,
    allocate_by_machine_room,
)

C1 = "192.168.24.1@default"
C2 = "192.168.24.2@default"
C3 = "192.168.24.3@default"
C4 = "192.168.24.4@default"
SEVEN = [f"192.168.24.{i}@default" for i in range(1, 8)]


def plain_queues():
    return [MessageQueue(queue_id=i) for i in range(6)]


def room_queues():
    names = ["192.168.24.1@defaultName"] * 3 + ["192.168.24.2@defaultName"] * 2
    names.append("192.168.24.3@defaultName")
    return [MessageQueue(queue_id=i, broker_name=n) for i, n in enumerate(names)]


def qids(*ids):
    return [MessageQueue(queue_id=i) for i in ids]


@pytest.mark.parametrize("fn", [allocate_by_averagely, allocate_by_averagely_circle])
def test_empty_params_return_none(fn):
    queues = plain_queues()
    assert fn("testGroup", "", queues, [C1]) is None
    assert fn("testGroup", C1, None, [C1]) is None
    assert fn("testGroup", C1, queues, None) is None


@pytest.mark.parametrize(
    "current, cids, expected",
    [
        (C1, [C1, C2], qids(0, 1, 2)),
        (C2, [C1, C2, C3], qids(2, 3)),
        (C2, [C1, C2, C3, C4], qids(2, 3)),
        (C4, [C1, C2, C3, C4], qids(5)),
        (SEVEN[6], SEVEN, []),
    ],
)
def test_allocate_by_averagely(current, cids, expected):
    assert allocate_by_averagely("testGroup", current, plain_queues(), cids) == expected


@pytest.mark.parametrize(
    "current, cids, expected",
    [
        (C1, [C1, C2], qids(0, 2, 4)),
        (C2, [C1, C2, C3], qids(1, 4)),
        (C2, [C1, C2, C3, C4], qids(1, 5)),
        (C4, [C1, C2, C3, C4], qids(3)),
        (SEVEN[6], SEVEN, []),
    ],
)
def test_allocate_by_averagely_circle(current, cids, expected):
    result = allocate_by_averagely_circle("testGroup", current, plain_queues(), cids)
    assert result == expected


def test_unknown_consumer_returns_none():
    assert allocate_by_averagely("testGroup", "other@x", plain_queues(), [C1]) is None
    assert allocate_by_averagely_circle("testGroup", "other@x", plain_queues(), [C1]) is None


def test_machine_nearby_matches_averagely():
    queues = plain_queues()
    assert allocate_by_machine_nearby("g", C2, queues, [C1, C2, C3]) == qids(2, 3)


def test_allocate_by_config():
    queues = plain_queues()
    strategy = allocate_by_config(queues)
    assert strategy("testGroup", C1, queues, [C1, C2]) == queues


def test_machine_room_empty_params():
    strategy = allocate_by_machine_room(["192.168.24.1", "192.168.24.2"])
    queues = room_queues()
    assert strategy("testGroup", "", queues, [C1]) is None
    assert strategy("testGroup", C1, None, [C1]) is None
    assert strategy("testGroup", C1, queues, None) is None


def _room(i):
    return room_queues()[i]


@pytest.mark.parametrize(
    "current, cids, expected_ids",
    [
        (C1, [C1, C2], [0, 1, 4]),
        (C2, [C1, C2, C3], [1, 4]),
        (C2, [C1, C2, C3, C4], [1]),
        (C4, [C1, C2, C3, C4], [3]),
        (SEVEN[6], SEVEN, []),
    ],
)
def test_allocate_by_machine_room(current, cids, expected_ids):
    strategy = allocate_by_machine_room(["192.168.24.1", "192.168.24.2"])
    result = strategy("testGroup", current, room_queues(), cids)
    assert result == [_room(i) for i in expected_ids]


def test_consistent_hash_empty_params():
    strategy = allocate_by_consistent_hash(10)
    queues = room_queues()
    assert strategy("testGroup", "", queues, [C1]) is None
    assert strategy("testGroup", C1, None, [C1]) is None
    assert strategy("testGroup", C1, queues, None) is None


@pytest.mark.parametrize("cids", [[C1, C2, C3], [C1, C2]])
def test_consistent_hash_partitions_queues(cids):
    strategy = allocate_by_consistent_hash(10)
    queues = room_queues()
    assigned = []
    for cid in cids:
        assigned.extend(strategy("testGroup", cid, queues, cids))
    assert sorted(assigned, key=lambda q: q.queue_id) == queues


def test_consistent_hash_is_deterministic():
    strategy = allocate_by_consistent_hash(10)
    first = strategy("testGroup", C1, room_queues(), [C1, C2, C3])
    second = strategy("testGroup", C1, room_queues(), [C1, C2, C3])
    assert first == second


def test_consistent_hash_single_consumer_gets_all():
    strategy = allocate_by_consistent_hash(10)
    assert strategy("testGroup", C1, room_queues(), [C1]) == room_queues()


def test_ring_empty_raises():
    with pytest.raises(LookupError):
        ConsistentHashRing(5).get("anything")


def test_ring_lookup_returns_member():
    ring = ConsistentHashRing(10)
    for cid in (C1, C2, C3):
        ring.add(cid)
    for i in range(20):
        assert ring.get(f"key-{i}") in {C1, C2, C3}


def test_message_queue_str_contains_fields():
    text = str(MessageQueue(topic="TopicTest", broker_name="broker-a", queue_id=3))
    assert "TopicTest" in text
    assert "broker-a" in text
    assert "3" in text