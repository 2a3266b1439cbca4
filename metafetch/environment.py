"""
Host environment signals: network connectivity and page visibility.

In a browser these come from ``navigator.onLine`` and ``document.hidden``.
Server-side code has no such globals, so an :class:`Environment` object plays
their part: whatever knows about connectivity or focus (a health check, a
desktop shell, a test) flips it, and every request bound to it reacts.
"""
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from metafetch.core import create_signal, report_error

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"
VISIBILITY_CHANGE = "visibilitychange"

EVENTS = (ONLINE, OFFLINE, VISIBILITY_CHANGE)


class Environment:
    def __init__(self, online: bool = True, visible: bool = True):
        self.online, self._set_online = create_signal(online)
        self.visible, self._set_visible = create_signal(visible)
        self._listeners: Dict[str, List[Callable[[], None]]] = defaultdict(list)

    @property
    def is_online(self) -> bool:
        return self.online.peek()

    @property
    def hidden(self) -> bool:
        return not self.visible.peek()

    def add_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown environment event '{event}', expected one of {EVENTS}")
        if handler not in self._listeners[event]:
            self._listeners[event].append(handler)

    def remove_event_listener(self, event: str, handler: Callable[[], None]) -> None:
        listeners = self._listeners.get(event)
        if listeners and handler in listeners:
            listeners.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def set_online(self, online: bool) -> None:
        if online == self.is_online:
            return
        self._set_online(online)
        logger.debug("Environment went %s", ONLINE if online else OFFLINE)
        self.dispatch(ONLINE if online else OFFLINE)

    def set_visible(self, visible: bool) -> None:
        if visible == (not self.hidden):
            return
        self._set_visible(visible)
        logger.debug("Environment visibility changed, visible=%s", visible)
        self.dispatch(VISIBILITY_CHANGE)

    def dispatch(self, event: str) -> None:
        for handler in list(self._listeners.get(event, ())):
            try:
                handler()
            except Exception as e:
                report_error(e, f"Error in '{event}' listener")


_environment = Environment()


def get_environment() -> Environment:
    return _environment


def set_environment(environment: Optional[Environment] = None) -> Environment:
    """Replace the process-wide environment; None installs a fresh default one."""
    global _environment
    _environment = environment or Environment()
    return _environment
