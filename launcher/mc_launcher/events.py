from __future__ import annotations
from typing import Any, Callable, Dict, List, Tuple
from .logging_setup import get_logger

log = get_logger("mc.launcher.events")

DATA = "data"
EXIT = "exit"
READY = "ready"
JOIN = "join"
LEAVE = "leave"
EULA_REQUIRED = "eula-required"
ERROR = "error"
STATE = "state"

EVENT_NAMES = (DATA, EXIT, READY, JOIN, LEAVE, EULA_REQUIRED, ERROR, STATE)

Listener = Callable[..., Any]


class EventBus:
    """
    Observer registry with one channel per event name.

    emit() calls listeners synchronously, in registration order, over a
    snapshot taken when emit() starts. Listeners added or removed during
    delivery only affect later emits.
    """

    def __init__(self):
        # (listener, once) pairs per event
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(event, []).append((listener, False))
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(event, []).append((listener, True))
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """Remove the first registration of listener; False if it was not registered."""
        entries = self._listeners.get(event, [])
        for i, (fn, _) in enumerate(entries):
            if fn == listener:
                del entries[i]
                return True
        return False

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def emit(self, event: str, *args: Any) -> bool:
        entries = list(self._listeners.get(event, []))
        if not entries:
            return False
        for fn, once in entries:
            if once and not self._remove_entry(event, fn, once):
                # already consumed by an earlier emit in this call chain
                continue
            try:
                fn(*args)
            except Exception as e:
                if event == ERROR:
                    log.exception("Error listener failed")
                else:
                    log.exception("Listener for %r failed", event)
                    self.emit(ERROR, e)
        return True

    def _remove_entry(self, event: str, fn: Listener, once: bool) -> bool:
        entries = self._listeners.get(event, [])
        for i, (f, o) in enumerate(entries):
            if f == fn and o == once:
                del entries[i]
                return True
        return False
