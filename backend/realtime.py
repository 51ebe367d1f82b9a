"""Row-change notification fan-out.

Clients are told *which* table changed, never what changed; they re-fetch
``/api/state`` and re-run their checks. Changes reach the notifier either from
the request that made them or from Postgres NOTIFY via ``PgChangeListener``.
"""
import asyncio
import logging
import select
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import psycopg2
from fastapi import WebSocket

from constants import REALTIME_CHANNEL

logger = logging.getLogger(__name__)

WILDCARD = "*"

Callback = Callable[[str], None]


class ChangeNotifier:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callback) -> Callable[[], None]:
        """Register interest in ``table`` (or ``"*"``). Returns the unsubscribe function."""
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(table, None)

        return unsubscribe

    def publish(self, table: str) -> int:
        """Wake every subscriber of ``table``. Returns how many were called."""
        with self._lock:
            callbacks = list(self._subscribers.get(table, [])) + list(self._subscribers.get(WILDCARD, []))
        for callback in callbacks:
            try:
                callback(table)
            except Exception:
                logger.exception("Change subscriber failed", extra={"table": table})
        return len(callbacks)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return sum(len(callbacks) for callbacks in self._subscribers.values())


class PgChangeListener(threading.Thread):
    """LISTEN on the change channel and forward each payload to the notifier.

    A lost connection is logged and re-opened with exponential backoff until
    ``stop()`` is called.
    """

    def __init__(self, notifier: ChangeNotifier, connect: Callable, channel: str = REALTIME_CHANNEL,
                 poll_interval: float = 5.0, retry_delay: float = 1.0, max_retry_delay: float = 30.0) -> None:
        super().__init__(name="pg-change-listener", daemon=True)
        self.notifier = notifier
        self.connect = connect
        self.channel = channel
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._stop_event = threading.Event()
        self._delay = retry_delay

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit; with ``timeout`` also wait for the thread."""
        self._stop_event.set()
        if timeout is not None and self.is_alive():
            self.join(timeout)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._listen()
            except (psycopg2.Error, OSError):
                logger.exception(
                    "Change listener lost its connection",
                    extra={"channel": self.channel, "retry_in": self._delay},
                )
                if self._stop_event.wait(self._delay):
                    break
                self._delay = min(self._delay * 2, self.max_retry_delay)

    def _listen(self) -> None:
        conn = self.connect()
        try:
            conn.autocommit = True
            conn.cursor().execute(f"LISTEN {self.channel}")
            logger.info("Listening for table changes", extra={"channel": self.channel})
            self._delay = self.retry_delay
            while not self._stop_event.is_set():
                if select.select([conn], [], [], self.poll_interval) == ([], [], []):
                    continue
                conn.poll()
                while conn.notifies:
                    notify = conn.notifies.pop(0)
                    self.notifier.publish(notify.payload)
        finally:
            conn.close()


async def stream_changes(websocket: WebSocket, notifier: ChangeNotifier) -> None:
    """Forward notifications to one websocket until the client goes away."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_change(table: str) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, table)

    unsubscribe = notifier.subscribe(WILDCARD, on_change)
    try:
        while True:
            table = await queue.get()
            await websocket.send_json({"type": "change", "table": table})
    finally:
        unsubscribe()


notifier = ChangeNotifier()
