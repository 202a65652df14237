"""Rolling statistics for pull and consume activity of a consumer."""

from __future__ import annotations

import calendar
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

_MINUTE_WINDOW = 7
_HOUR_WINDOW = 7
_DAY_WINDOW = 25


@dataclass(frozen=True)
class CallSnapshot:
    """Cumulative counters captured at one sampling instant."""

    timestamp: int
    times: int
    value: int


@dataclass(frozen=True)
class StatsSnapshot:
    """Derived statistics over a window of call snapshots."""

    sum: int = 0
    tps: float = 0.0
    avgpt: float = 0.0


@dataclass
class ConsumeStatus:
    """Per group/topic summary of pull and consume rates."""

    pull_rt: float = 0.0
    pull_tps: float = 0.0
    consume_rt: float = 0.0
    consume_ok_tps: float = 0.0
    consume_failed_tps: float = 0.0
    consume_failed_msgs: int = 0


def _float_div(numerator: float, denominator: float) -> float:
    """Divide with IEEE semantics instead of raising on a zero denominator."""
    if denominator == 0:
        if numerator == 0:
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def compute_stats_data(snapshots: Iterable[CallSnapshot]) -> StatsSnapshot:
    """Compute sum, TPS and average per call between first and last snapshot."""
    items = list(snapshots)
    if not items:
        return StatsSnapshot()
    first, last = items[0], items[-1]
    total = last.value - first.value
    tps = _float_div(total * 1000.0, float(last.timestamp - first.timestamp))
    times_diff = last.times - first.times
    avgpt = total / times_diff if times_diff > 0 else 0.0
    return StatsSnapshot(sum=total, tps=tps, avgpt=avgpt)


def next_minute_time() -> datetime:
    """The local time one minute from now."""
    return datetime.now() + timedelta(minutes=1)


def next_hour_time() -> datetime:
    """The local time one hour from now."""
    return datetime.now() + timedelta(hours=1)


def next_month_time() -> datetime:
    """The local time one calendar month from now, overflowing short months."""
    now = datetime.now()
    year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
    first_of_month = now.replace(year=year, month=month, day=1)
    days_in_month = calendar.monthrange(year, month)[1]
    if now.day <= days_in_month:
        return now.replace(year=year, month=month, day=now.day)
    return first_of_month + timedelta(days=now.day - 1)


class StatsItem:
    """Counters for one key with minute, hour and day sampling windows."""

    def __init__(self, stats_name: str, stats_key: str) -> None:
        self.stats_name = stats_name
        self.stats_key = stats_key
        self.value = 0
        self.times = 0
        self._counter_lock = threading.Lock()
        self._minute: deque[CallSnapshot] = deque(maxlen=_MINUTE_WINDOW)
        self._hour: deque[CallSnapshot] = deque(maxlen=_HOUR_WINDOW)
        self._day: deque[CallSnapshot] = deque(maxlen=_DAY_WINDOW)
        self._minute_lock = threading.Lock()
        self._hour_lock = threading.Lock()
        self._day_lock = threading.Lock()

    def add(self, inc_value: int, inc_times: int) -> None:
        with self._counter_lock:
            self.value += inc_value
            self.times += inc_times

    def _snapshot(self) -> CallSnapshot:
        with self._counter_lock:
            return CallSnapshot(
                timestamp=int(time.time()) * 1000, times=self.times, value=self.value
            )

    def sampling_in_seconds(self) -> None:
        with self._minute_lock:
            self._minute.append(self._snapshot())

    def sampling_in_minutes(self) -> None:
        with self._hour_lock:
            self._hour.append(self._snapshot())

    def sampling_in_hour(self) -> None:
        with self._day_lock:
            self._day.append(self._snapshot())

    def stats_in_minute(self) -> StatsSnapshot:
        with self._minute_lock:
            return compute_stats_data(self._minute)

    def stats_in_hour(self) -> StatsSnapshot:
        with self._hour_lock:
            return compute_stats_data(self._hour)

    def stats_in_day(self) -> StatsSnapshot:
        with self._day_lock:
            return compute_stats_data(self._day)

    def _log(self, title: str, snapshot: StatsSnapshot) -> None:
        logger.info(
            "%s statsName=%s statsKey=%s SUM=%d TPS=%.2f AVGPT=%s",
            title,
            self.stats_name,
            self.stats_key,
            snapshot.sum,
            snapshot.tps,
            snapshot.avgpt,
        )

    def print_at_minutes(self) -> None:
        self._log("Stats In One Minute.", self.stats_in_minute())

    def print_at_hour(self) -> None:
        self._log("Stats In One Hour.", self.stats_in_hour())

    def print_at_day(self) -> None:
        self._log("Stats In One Day.", self.stats_in_day())


class StatsItemSet:
    """A named collection of stats items keyed by ``topic@group``."""

    def __init__(self, stats_name: str) -> None:
        self.stats_name = stats_name
        self._items: dict[str, StatsItem] = {}
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._threads: list[threading.Thread] = []
        self._started = False

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def _all_items(self) -> list[StatsItem]:
        with self._lock:
            return list(self._items.values())

    def add_value(self, key: str, inc_value: int, inc_times: int) -> None:
        self.get_or_create_item(key).add(inc_value, inc_times)

    def get_or_create_item(self, key: str) -> StatsItem:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                item = StatsItem(self.stats_name, key)
                self._items[key] = item
            return item

    def _lookup(self, key: str) -> StatsItem | None:
        with self._lock:
            return self._items.get(key)

    def stats_in_minute(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_minute() if item else StatsSnapshot()

    def stats_in_hour(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_hour() if item else StatsSnapshot()

    def stats_in_day(self, key: str) -> StatsSnapshot:
        item = self._lookup(key)
        return item.stats_in_day() if item else StatsSnapshot()

    def sampling_in_seconds(self) -> None:
        for item in self._all_items():
            item.sampling_in_seconds()

    def sampling_in_minutes(self) -> None:
        for item in self._all_items():
            item.sampling_in_minutes()

    def sampling_in_hour(self) -> None:
        for item in self._all_items():
            item.sampling_in_hour()

    def print_at_minutes(self) -> None:
        for item in self._all_items():
            item.print_at_minutes()

    def print_at_hour(self) -> None:
        for item in self._all_items():
            item.print_at_hour()

    def print_at_day(self) -> None:
        for item in self._all_items():
            item.print_at_day()

    def _run_periodic(
        self,
        action: Callable[[], None],
        interval: float,
        first_at: Callable[[], datetime] | None,
    ) -> None:
        if first_at is not None:
            delay = (first_at() - datetime.now()).total_seconds()
            if self._closed.wait(max(delay, 0.0)):
                return
        while not self._closed.wait(interval):
            try:
                action()
            except Exception:
                logger.exception("stats task of %s failed", self.stats_name)

    def start(self) -> None:
        """Start the background sampling and reporting threads."""
        with self._lock:
            if self._started or self._closed.is_set():
                return
            self._started = True
        schedule = [
            (self.sampling_in_seconds, 10.0, None),
            (self.sampling_in_minutes, 600.0, None),
            (self.sampling_in_hour, 3600.0, None),
            (self.print_at_minutes, 60.0, next_minute_time),
            (self.print_at_hour, 3600.0, next_hour_time),
            (self.print_at_day, 86400.0, next_month_time),
        ]
        for action, interval, first_at in schedule:
            thread = threading.Thread(
                target=self._run_periodic,
                args=(action, interval, first_at),
                name=f"stats-{self.stats_name}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def close(self) -> None:
        """Stop the background threads; safe to call more than once."""
        self._closed.set()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)


class StatsManager:
    """Pull and consume statistics for all groups and topics of a client."""

    def __init__(self) -> None:
        self.consume_ok_tps = StatsItemSet("CONSUME_OK_TPS")
        self.consume_rt = StatsItemSet("CONSUME_RT")
        self.consume_failed_tps = StatsItemSet("CONSUME_FAILED_TPS")
        self.pull_tps = StatsItemSet("PULL_TPS")
        self.pull_rt = StatsItemSet("PULL_RT")
        self._shutdown_once = threading.Lock()
        self._is_shutdown = False

    def _sets(self) -> tuple[StatsItemSet, ...]:
        return (
            self.consume_ok_tps,
            self.consume_rt,
            self.consume_failed_tps,
            self.pull_tps,
            self.pull_rt,
        )

    @staticmethod
    def _key(group: str, topic: str) -> str:
        return f"{topic}@{group}"

    def start(self) -> None:
        for item_set in self._sets():
            item_set.start()

    def shutdown(self) -> None:
        with self._shutdown_once:
            if self._is_shutdown:
                return
            self._is_shutdown = True
        for item_set in self._sets():
            item_set.close()

    def increase_pull_rt(self, group: str, topic: str, rt: int) -> None:
        self.pull_rt.add_value(self._key(group, topic), rt, 1)

    def increase_pull_tps(self, group: str, topic: str, msgs: int) -> None:
        self.pull_tps.add_value(self._key(group, topic), msgs, 1)

    def increase_consume_rt(self, group: str, topic: str, rt: int) -> None:
        self.consume_rt.add_value(self._key(group, topic), rt, 1)

    def increase_consume_ok_tps(self, group: str, topic: str, msgs: int) -> None:
        self.consume_ok_tps.add_value(self._key(group, topic), msgs, 1)

    def increase_consume_failed_tps(self, group: str, topic: str, msgs: int) -> None:
        self.consume_failed_tps.add_value(self._key(group, topic), msgs, 1)

    def get_pull_rt(self, group: str, topic: str) -> StatsSnapshot:
        return self.pull_rt.stats_in_minute(self._key(group, topic))

    def get_pull_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.pull_tps.stats_in_minute(self._key(group, topic))

    def get_consume_rt(self, group: str, topic: str) -> StatsSnapshot:
        key = self._key(group, topic)
        snapshot = self.pull_rt.stats_in_minute(key)
        if snapshot.sum == 0:
            return self.consume_rt.stats_in_hour(key)
        return snapshot

    def get_consume_ok_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.consume_ok_tps.stats_in_minute(self._key(group, topic))

    def get_consume_failed_tps(self, group: str, topic: str) -> StatsSnapshot:
        return self.consume_failed_tps.stats_in_minute(self._key(group, topic))

    def get_consume_status(self, group: str, topic: str) -> ConsumeStatus:
        return ConsumeStatus(
            pull_rt=self.get_pull_rt(group, topic).avgpt,
            pull_tps=self.get_pull_tps(group, topic).tps,
            consume_rt=self.get_consume_rt(group, topic).avgpt,
            consume_ok_tps=self.get_consume_ok_tps(group, topic).tps,
            consume_failed_tps=self.get_consume_failed_tps(group, topic).tps,
            consume_failed_msgs=self.consume_failed_tps.stats_in_hour(
                self._key(group, topic)
            ).sum,
        )