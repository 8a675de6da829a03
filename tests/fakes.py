"""Deterministic clock and timer fakes for tests."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from core.timers import Clock, TimerCallback, TimerRegistry


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment

    def advance(self, **delta) -> None:
        self.current = self.current + timedelta(**delta)


@dataclass
class _ManualTimer:
    due: datetime
    interval: Optional[float]
    callback: TimerCallback
    seq: int


class ManualScheduler:
    """Scheduler driven by ManualClock; timers fire only inside advance()."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._timers: Dict[Tuple[str, str], _ManualTimer] = {}
        self._seq = 0

    def registry(self, namespace: str) -> "ManualTimers":
        return ManualTimers(self, namespace)

    def schedule(self, namespace: str, key: str, delay: float, callback: TimerCallback,
                 interval: Optional[float] = None) -> None:
        self._seq += 1
        self._timers[(namespace, key)] = _ManualTimer(
            due=self.clock.now() + timedelta(seconds=delay),
            interval=interval,
            callback=callback,
            seq=self._seq,
        )

    def cancel(self, namespace: str, key: str) -> bool:
        return self._timers.pop((namespace, key), None) is not None

    def keys(self, namespace: str) -> List[str]:
        return [key for ns, key in self._timers if ns == namespace]

    def due_at(self, namespace: str, key: str) -> Optional[datetime]:
        timer = self._timers.get((namespace, key))
        return timer.due if timer else None

    def advance(self, seconds: float = 0, **delta) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.clock.now() + timedelta(seconds=seconds, **delta)

        while True:
            due = [
                (timer.due, timer.seq, timer_id)
                for timer_id, timer in self._timers.items()
                if timer.due <= target
            ]
            if not due:
                break

            moment, _, timer_id = min(due)
            timer = self._timers[timer_id]
            self.clock.set(max(moment, self.clock.now()))

            if timer.interval:
                self._seq += 1
                timer.due = timer.due + timedelta(seconds=timer.interval)
                timer.seq = self._seq
            else:
                del self._timers[timer_id]

            timer.callback()

        self.clock.set(max(target, self.clock.now()))


class ManualTimers(TimerRegistry):
    """Namespaced view over ManualScheduler."""

    def __init__(self, scheduler: ManualScheduler, namespace: str):
        self.scheduler = scheduler
        self.namespace = namespace

    def call_later(self, key: str, delay_seconds: float, callback: TimerCallback) -> None:
        self.scheduler.schedule(self.namespace, key, max(0.0, delay_seconds), callback)

    def call_every(self, key: str, interval_seconds: float, callback: TimerCallback) -> None:
        self.scheduler.schedule(self.namespace, key, interval_seconds, callback, interval=interval_seconds)

    def cancel(self, key: str) -> bool:
        return self.scheduler.cancel(self.namespace, key)

    def pending_keys(self) -> List[str]:
        return self.scheduler.keys(self.namespace)

    def due_at(self, key: str) -> Optional[datetime]:
        return self.scheduler.due_at(self.namespace, key)
