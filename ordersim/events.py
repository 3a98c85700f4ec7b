# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# events.py
# -----------------------------------------------------------------------------
# Purpose:
#   Discrete-event primitives: Event (a cancellable one-shot timer), Env (a
#   virtual clock with a Future Event List) and WallClockEnv (the same FEL
#   paced against the real clock for live playback).
#
# Design notes:
#   - Times are milliseconds since the env was created.
#   - Dispatch is delegated to env.router by event kind, one event at a
#     time, under env.lock. Worker threads never touch the FEL directly;
#     they hand callbacks to post() and the loop runs them in order.
#   - Cancelled events stay in the heap and are skipped when popped.
#
# Usage:
#   env = Env(router); env.schedule(500.0, "arrival", {}); env.run_until(60_000)
# -----------------------------------------------------------------------------

from __future__ import annotations
import heapq, itertools, logging, threading, time
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Event:
    """One-shot timer on the Future Event List (FEL)."""
    __slots__ = ("t", "seq", "kind", "data", "cancelled")

    def __init__(self, t: float, seq: int, kind: str, data: dict):
        self.t = t; self.seq = seq; self.kind = kind; self.data = data
        self.cancelled = False

    def __lt__(self, other: "Event"):
        # seq keeps same-time events in scheduling order
        return (self.t, self.seq) < (other.t, other.seq)

    def __repr__(self):
        state = " cancelled" if self.cancelled else ""
        return f"<Event {self.kind} t={self.t:.1f}{state}>"


class Env:
    """Virtual-time environment holding the clock, FEL, and a router hook.

    Attributes
    ----------
    t : float
        Current time in milliseconds.
    FEL : list[Event]
        Min-heap of scheduled events.
    router : object
        Object with on_arrival/on_transition handlers (the engine).
    lock : threading.RLock
        Held while an event or posted callback runs; the engine uses the
        same lock for its public API.
    """
    def __init__(self, router=None):
        self.t: float = 0.0
        self.FEL: List[Event] = []
        self.router = router
        self.lock = threading.RLock()
        self._seq = itertools.count()
        self._inbox: Deque[Tuple[Callable, tuple]] = deque()
        self._inbox_lock = threading.Lock()

    def now(self) -> float:
        return self.t

    def schedule(self, delay: float, kind: str, data: Optional[dict] = None) -> Event:
        ev = Event(self.now() + max(delay, 0.0), next(self._seq), kind, data or {})
        with self.lock:
            heapq.heappush(self.FEL, ev)
        self._notify()
        return ev

    def cancel(self, ev: Event):
        ev.cancelled = True

    def cancel_all(self) -> int:
        with self.lock:
            n = 0
            for ev in self.FEL:
                if not ev.cancelled:
                    ev.cancelled = True
                    n += 1
            self.FEL.clear()
        return n

    def pending(self) -> List[Event]:
        with self.lock:
            return sorted(ev for ev in self.FEL if not ev.cancelled)

    def post(self, fn: Callable, *args: Any):
        """Queue fn(*args) to run on the event loop. Safe from any thread."""
        with self._inbox_lock:
            self._inbox.append((fn, args))
        self._notify()

    def _notify(self):
        pass

    def drain(self) -> int:
        n = 0
        while True:
            with self._inbox_lock:
                if not self._inbox:
                    return n
                fn, args = self._inbox.popleft()
            with self.lock:
                fn(*args)
            n += 1

    def dispatch(self, ev: Event):
        if ev.cancelled:
            return
        kind, data = ev.kind, ev.data
        if kind == "arrival":
            self.router.on_arrival(self, **data)
        elif kind == "transition":
            self.router.on_transition(self, **data)
        else:
            logger.warning("Dropping event of unknown kind %r", kind)

    def _pop_due(self, horizon: float) -> Optional[Event]:
        with self.lock:
            while self.FEL and self.FEL[0].cancelled:
                heapq.heappop(self.FEL)
            if self.FEL and self.FEL[0].t <= horizon:
                return heapq.heappop(self.FEL)
        return None

    def step(self) -> bool:
        """Run posted callbacks, then the next live event. False if idle."""
        self.drain()
        ev = self._pop_due(float("inf"))
        if ev is None:
            return False
        with self.lock:
            self.t = ev.t
            self.dispatch(ev)
        return True

    def run_until(self, T_end: float):
        while True:
            self.drain()
            ev = self._pop_due(T_end)
            if ev is None:
                break
            with self.lock:
                self.t = ev.t
                self.dispatch(ev)
        self.t = max(self.t, T_end)
        self.drain()


class WallClockEnv(Env):
    """Env whose clock is real elapsed time; run() paces the FEL against it."""
    def __init__(self, router=None, clock: Callable[[], float] = time.monotonic, max_wait: float = 0.25):
        super().__init__(router)
        self._clock = clock
        self._origin = clock()
        self._wake = threading.Event()
        self.max_wait = max_wait

    def now(self) -> float:
        return (self._clock() - self._origin) * 1000.0

    def _notify(self):
        self._wake.set()

    def run(self, stop: threading.Event):
        """Block until `stop` is set, firing each event once it is due."""
        while not stop.is_set():
            self._wake.clear()
            self.drain()
            ev = self._pop_due(self.now())
            if ev is not None:
                with self.lock:
                    self.t = ev.t
                    self.dispatch(ev)
                continue
            with self.lock:
                due = self.FEL[0].t if self.FEL else None
            timeout = self.max_wait
            if due is not None:
                timeout = min(max((due - self.now()) / 1000.0, 0.0), self.max_wait)
            self._wake.wait(timeout)
        self.drain()
