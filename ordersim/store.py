# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# store.py
# -----------------------------------------------------------------------------
# Purpose:
#   Collaborators of the engine: the order store it mirrors into, the menu
#   catalog it samples items from, in-memory implementations of both, the
#   bounded MirrorQueue that carries best-effort writes, and the cleanup
#   routine that removes simulated orders from a store.
#
# Design notes:
#   - The engine never waits on the store. MirrorQueue runs writes on a
#     small thread pool (or inline when workers == 0), retries a bounded
#     number of times, and records what it gives up on as dead letters.
#   - When more than max_pending writes are outstanding new ones are
#     dropped, so a slow backend cannot pile up unbounded work.
#
# Usage:
#   mirror = MirrorQueue(workers=1); mirror.submit("create", store.create_order, meta)
# -----------------------------------------------------------------------------

from __future__ import annotations
import itertools, logging, threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    price: float


class MenuCatalog(Protocol):
    def list_available_items(self, limit: int) -> Sequence[MenuItem]: ...


class OrderStore(Protocol):
    def create_order(self, metadata: Dict[str, Any]) -> str: ...
    def create_order_items(self, order_id: str, items: List[Dict[str, Any]]) -> None: ...
    def update_order_status(self, order_id: str, status: str) -> None: ...
    def create_payment(self, order_id: str, method: str, amount: float, provider: Optional[str] = None) -> None: ...
    def find_simulated_orders(self) -> List[str]: ...
    def delete_order_items(self, order_ids: List[str]) -> None: ...
    def delete_payments(self, order_ids: List[str]) -> None: ...
    def delete_orders(self, order_ids: List[str]) -> None: ...


class StoreError(RuntimeError):
    pass


class InMemoryCatalog:
    def __init__(self, items: Iterable[MenuItem] = ()):
        self.items: List[MenuItem] = list(items)
        self.calls = 0

    @classmethod
    def from_config(cls, cfg: dict) -> "InMemoryCatalog":
        rows = cfg.get("catalog", {}).get("items", [])
        return cls(MenuItem(str(r["id"]), r["name"], float(r["price"])) for r in rows)

    def list_available_items(self, limit: int) -> List[MenuItem]:
        self.calls += 1
        return self.items[:limit]


class InMemoryOrderStore:
    """Thread-safe dict-backed store.

    Operation names listed in `fail` raise StoreError, which lets tests
    exercise the mirroring failure paths.
    """
    def __init__(self, fail: Iterable[str] = ()):
        self.fail = set(fail)
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.order_items: Dict[str, List[Dict[str, Any]]] = {}
        self.payments: Dict[str, List[Dict[str, Any]]] = {}
        self.status_history: Dict[str, List[str]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, op: str):
        if op in self.fail:
            raise StoreError(f"{op} unavailable")

    def create_order(self, metadata: Dict[str, Any]) -> str:
        self._check("create_order")
        with self._lock:
            oid = f"ord-{next(self._ids)}"
            self.orders[oid] = dict(metadata)
            self.status_history[oid] = [metadata.get("status", "pending")]
        return oid

    def create_order_items(self, order_id: str, items: List[Dict[str, Any]]) -> None:
        self._check("create_order_items")
        with self._lock:
            self.order_items.setdefault(order_id, []).extend(
                dict(it, order_id=order_id) for it in items
            )

    def update_order_status(self, order_id: str, status: str) -> None:
        self._check("update_order_status")
        with self._lock:
            if order_id not in self.orders:
                raise StoreError(f"unknown order {order_id}")
            self.orders[order_id]["status"] = status
            self.status_history[order_id].append(status)

    def create_payment(self, order_id: str, method: str, amount: float, provider: Optional[str] = None) -> None:
        self._check("create_payment")
        with self._lock:
            self.payments.setdefault(order_id, []).append({
                "order_id": order_id,
                "method": method,
                "amount": amount,
                "status": "completed",
                "provider": provider,
            })

    def find_simulated_orders(self) -> List[str]:
        self._check("find_simulated_orders")
        with self._lock:
            return [oid for oid, row in self.orders.items()
                    if (row.get("metadata") or {}).get("simulated")]

    def delete_order_items(self, order_ids: List[str]) -> None:
        self._check("delete_order_items")
        with self._lock:
            for oid in order_ids:
                self.order_items.pop(oid, None)

    def delete_payments(self, order_ids: List[str]) -> None:
        self._check("delete_payments")
        with self._lock:
            for oid in order_ids:
                self.payments.pop(oid, None)

    def delete_orders(self, order_ids: List[str]) -> None:
        self._check("delete_orders")
        with self._lock:
            for oid in order_ids:
                self.orders.pop(oid, None)
                self.status_history.pop(oid, None)


class MirrorQueue:
    """Best-effort, bounded work queue for store writes.

    Parameters
    ----------
    workers : int
        Pool size. 0 runs every job inline on the caller's thread. With 1
        worker, writes are applied in submission order.
    max_pending : int
        Outstanding jobs allowed before new submissions are dropped.
    max_attempts : int
        Tries per job before it becomes a dead letter.
    """
    def __init__(self, workers: int = 1, max_pending: int = 256, max_attempts: int = 2,
                 dead_letter_size: int = 100):
        self.workers = max(0, int(workers))
        self.max_attempts = max(1, int(max_attempts))
        self._slots = threading.BoundedSemaphore(max(1, int(max_pending)))
        self._executor = (
            ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="ordersim-mirror")
            if self.workers > 0 else None
        )
        self.dead_letters: Deque[Tuple[str, str]] = deque(maxlen=dead_letter_size)
        self.completed = 0
        self.failed = 0
        self.dropped = 0
        self._count_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: dict) -> "MirrorQueue":
        m = cfg.get("mirror", {})
        return cls(workers=m.get("workers", 1), max_pending=m.get("max_pending", 256),
                   max_attempts=m.get("max_attempts", 2))

    def submit(self, label: str, fn: Callable, *args: Any,
               on_success: Optional[Callable[[Any], None]] = None) -> bool:
        """Queue fn(*args). Returns False if the job was dropped."""
        if not self._slots.acquire(blocking=False):
            with self._count_lock:
                self.dropped += 1
            self.dead_letters.append((label, "backlog full"))
            logger.warning("Mirror backlog full, dropping %s", label)
            return False
        if self._executor is None:
            self._run(label, fn, args, on_success)
            return True
        try:
            self._executor.submit(self._run, label, fn, args, on_success)
        except RuntimeError:
            # executor already shut down
            self._slots.release()
            with self._count_lock:
                self.dropped += 1
            self.dead_letters.append((label, "mirror shut down"))
            return False
        return True

    def _run(self, label: str, fn: Callable, args: tuple, on_success):
        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    result = fn(*args)
                except Exception as exc:
                    if attempt < self.max_attempts:
                        logger.debug("Mirror %s failed (attempt %d): %s", label, attempt, exc)
                        continue
                    with self._count_lock:
                        self.failed += 1
                    self.dead_letters.append((label, repr(exc)))
                    logger.warning("Mirror %s gave up after %d attempts: %s", label, attempt, exc)
                    return
                with self._count_lock:
                    self.completed += 1
                if on_success is not None:
                    on_success(result)
                return
        finally:
            self._slots.release()

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


@dataclass
class CleanupResult:
    success: bool
    orders_deleted: int = 0
    error: Optional[str] = None


def clear_simulated_data(store: OrderStore) -> CleanupResult:
    """Delete every mirrored order flagged as simulated, children first."""
    try:
        order_ids = store.find_simulated_orders()
        if not order_ids:
            return CleanupResult(success=True, orders_deleted=0)
        store.delete_order_items(order_ids)
        store.delete_payments(order_ids)
        store.delete_orders(order_ids)
    except Exception as exc:
        logger.warning("Clearing simulated data failed: %s", exc)
        return CleanupResult(success=False, orders_deleted=0, error=str(exc))
    logger.info("Cleared %d simulated orders", len(order_ids))
    return CleanupResult(success=True, orders_deleted=len(order_ids))
