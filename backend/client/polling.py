"""
Background polling for the client
PollingTask runs a callback on a fixed interval in a daemon thread and can be
suspended (e.g. while a form is open) and cancelled on teardown.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from app.inventory.low_stock import LowStockItem, LowStockMonitor
from client.api import ApiError, InventoryApiClient

logger = logging.getLogger(__name__)

LOW_STOCK_INTERVAL_SECONDS = 10
REQUESTS_INTERVAL_SECONDS = 30


class PollingTask:
    def __init__(self, callback: Callable[[], Any], interval: float, name: str = "polling-task") -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._suspend_count = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_suspended(self) -> bool:
        with self._lock:
            return self._suspend_count > 0

    def run_once(self) -> bool:
        """Run the callback now unless suspended; returns whether it ran"""
        if self.is_suspended:
            return False
        try:
            self._callback()
        except ApiError as e:
            if e.status_code == 401:
                logger.warning(f"{self._name}: session expired, stopping")
                self._stop_event.set()
            else:
                logger.error(f"{self._name}: {e.message}")
        except Exception:
            logger.exception(f"{self._name}: poll failed")
        return True

    def start(self, immediate: bool = True) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(immediate,),
            name=self._name,
            daemon=True,
        )
        self._thread.start()
        logger.info(f"{self._name} started (every {self._interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        logger.info(f"{self._name} stopped")

    cancel = stop

    def suspend(self) -> None:
        with self._lock:
            self._suspend_count += 1

    def resume(self) -> None:
        with self._lock:
            self._suspend_count = max(0, self._suspend_count - 1)

    @contextmanager
    def suspended(self):
        self.suspend()
        try:
            yield self
        finally:
            self.resume()

    def _run_loop(self, immediate: bool) -> None:
        if not immediate:
            self._stop_event.wait(timeout=self._interval)
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(timeout=self._interval)


class LowStockNotifier:
    """Polls the item list and reports each item once per drop to or below its threshold."""

    ALLOWED_ROLES = ("superadmin", "issuer")

    def __init__(
        self,
        client: InventoryApiClient,
        on_low_stock: Callable[[List[LowStockItem]], Any],
        interval: float = LOW_STOCK_INTERVAL_SECONDS,
        monitor: Optional[LowStockMonitor] = None,
    ) -> None:
        self._client = client
        self._on_low_stock = on_low_stock
        self.monitor = monitor or LowStockMonitor()
        self.task = PollingTask(self.check, interval, name="low-stock-notifier")

    def is_enabled(self) -> bool:
        return self._client.session.role in self.ALLOWED_ROLES

    def check(self) -> List[LowStockItem]:
        if not self.is_enabled():
            return []
        fresh = self.monitor.check(self._client.get_items())
        if fresh:
            logger.info(f"{len(fresh)} item(s) newly low on stock")
            self._on_low_stock(fresh)
        return fresh

    def start(self) -> None:
        self.task.start()

    def stop(self) -> None:
        self.task.stop()


class RequestsWatcher:
    """Keeps a fresh copy of the request list; pause it while a modal is open."""

    def __init__(
        self,
        client: InventoryApiClient,
        on_update: Callable[[List[Dict[str, Any]]], Any],
        interval: float = REQUESTS_INTERVAL_SECONDS,
        status: Optional[str] = None,
    ) -> None:
        self._client = client
        self._on_update = on_update
        self._status = status
        self.requests: List[Dict[str, Any]] = []
        self.task = PollingTask(self.refresh, interval, name="requests-watcher")

    def refresh(self) -> List[Dict[str, Any]]:
        self.requests = self._client.get_requests(status=self._status)
        self._on_update(self.requests)
        return self.requests

    def editing(self):
        return self.task.suspended()

    def start(self) -> None:
        self.task.start()

    def stop(self) -> None:
        self.task.stop()
