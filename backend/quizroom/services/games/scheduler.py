import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple


class TimerHandle:
    """A pending timer for one room. Cancelling it stops further ticks and expiry."""

    def __init__(self, room_code: str, name: str):
        self.room_code = room_code
        self.name = name
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def __repr__(self):
        state = 'cancelled' if self.cancelled else 'pending'
        return f"<TimerHandle room={self.room_code} name={self.name} {state}>"


class RoomTimers:
    """Per-room timers run as Socket.IO background tasks.

    - At most one timer per (room code, name); starting a new one cancels the old
    - ``cancel_room`` drops every timer of a room, used on teardown
    - With ``enabled=False`` (TESTING) handles are registered but never run
    """

    def __init__(self, socketio, logger: Optional[logging.Logger] = None,
                 enabled: bool = True, tick_interval: float = 1.0):
        self._socketio = socketio
        self._logger = logger or logging.getLogger(__name__)
        self.enabled = enabled
        self.tick_interval = tick_interval
        self._handles: Dict[str, Dict[str, TimerHandle]] = {}
        self._lock = threading.Lock()

    def countdown(self, room_code: str, name: str, ticks: Iterable[int],
                  on_tick: Callable[[int], None], on_expire: Callable[[], None]) -> TimerHandle:
        """Call ``on_tick`` once per interval for each value, then ``on_expire``."""
        steps = [(value, self.tick_interval) for value in ticks]
        return self._start(room_code, name, steps, on_tick, on_expire)

    def delay(self, room_code: str, name: str, seconds: float,
              on_expire: Callable[[], None]) -> TimerHandle:
        return self._start(room_code, name, [(None, seconds)], None, on_expire)

    def cancel(self, room_code: str, name: str) -> bool:
        with self._lock:
            handle = self._handles.get(room_code, {}).pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        self._logger.info(f"[timer-cancel] room={room_code} timer={name}")
        return True

    def cancel_room(self, room_code: str) -> int:
        with self._lock:
            handles = self._handles.pop(room_code, {})
        for handle in handles.values():
            handle.cancel()
        if handles:
            self._logger.info(f"[timer-cancel] room={room_code} timers={sorted(handles)}")
        return len(handles)

    def pending(self, room_code: str) -> List[str]:
        with self._lock:
            return sorted(n for n, h in self._handles.get(room_code, {}).items() if not h.cancelled)

    def get(self, room_code: str, name: str) -> Optional[TimerHandle]:
        with self._lock:
            return self._handles.get(room_code, {}).get(name)

    def _start(self, room_code, name, steps: List[Tuple[Optional[int], float]], on_tick, on_expire) -> TimerHandle:
        self.cancel(room_code, name)
        handle = TimerHandle(room_code, name)
        with self._lock:
            self._handles.setdefault(room_code, {})[name] = handle

        total = sum(wait for _, wait in steps)
        self._logger.info(f"[timer-set] room={room_code} timer={name} duration={total}s")
        if self.enabled:
            self._socketio.start_background_task(self._worker, handle, steps, on_tick, on_expire)
        return handle

    def _discard(self, handle: TimerHandle) -> None:
        with self._lock:
            handles = self._handles.get(handle.room_code)
            if handles and handles.get(handle.name) is handle:
                del handles[handle.name]
                if not handles:
                    del self._handles[handle.room_code]

    def _worker(self, handle: TimerHandle, steps, on_tick, on_expire) -> None:
        for value, wait in steps:
            self._socketio.sleep(wait)
            if handle.cancelled:
                self._logger.info(f"[timer-abort] room={handle.room_code} timer={handle.name} cancelled")
                return
            if on_tick is not None and value is not None:
                on_tick(value)

        if handle.cancelled:
            self._logger.info(f"[timer-abort] room={handle.room_code} timer={handle.name} cancelled")
            return
        self._discard(handle)
        self._logger.info(f"[timer-fire] room={handle.room_code} timer={handle.name}")
        on_expire()
