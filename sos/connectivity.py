"""
Connectivity Monitor - mirrors the host's online/offline signal.

The monitor makes no network calls itself. It reads whatever signal the
host gives it (a callable returning True/False/None) and emits
`went-online` / `went-offline` events when the value changes. A missing
signal is treated as online so that reports are not queued needlessly.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

log = logging.getLogger(__name__)

Signal = Callable[[], Optional[bool]]
Listener = Callable[["ConnectivityEvent"], None]


class ConnectivityEvent(str, Enum):
    WENT_ONLINE = "went-online"
    WENT_OFFLINE = "went-offline"


class ConnectivityMonitor:
    """
    Observer of the runtime connectivity signal.

    Usage:
        monitor = ConnectivityMonitor(signal=check)
        monitor.subscribe(ConnectivityEvent.WENT_ONLINE, on_online)
        monitor.poll()          # re-read the signal, emit on change
        monitor.is_online       # current state
    """

    def __init__(self, signal: Optional[Signal] = None):
        self._signal = signal
        self._online = self._read_signal()
        self._listeners: Dict[ConnectivityEvent, List[Listener]] = {
            ConnectivityEvent.WENT_ONLINE: [],
            ConnectivityEvent.WENT_OFFLINE: [],
        }

    def _read_signal(self) -> bool:
        if self._signal is None:
            return True
        try:
            value = self._signal()
        except Exception as e:
            log.warning(f"Connectivity signal failed, assuming online: {e}")
            value = None
        # No answer from the signal means we fail open
        return True if value is None else bool(value)

    @property
    def is_online(self) -> bool:
        """Current connectivity; refreshes from the signal when one is set."""
        if self._signal is not None:
            self._update(self._read_signal())
        return self._online

    def poll(self) -> bool:
        """Re-read the signal and emit a transition event if it changed."""
        return self.is_online

    def set_online(self, online: bool):
        """Push a connectivity value from the host (e.g. an OS network callback)."""
        self._update(bool(online))

    def subscribe(self, event: ConnectivityEvent, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners[event].append(listener)

        def unsubscribe():
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def _update(self, online: bool):
        if online == self._online:
            return
        self._online = online
        event = ConnectivityEvent.WENT_ONLINE if online else ConnectivityEvent.WENT_OFFLINE
        log.info(f"Connectivity changed: {event.value}")
        for listener in list(self._listeners[event]):
            try:
                listener(event)
            except Exception:
                log.exception(f"Connectivity listener failed for {event.value}")
