import logging
from typing import Any, Callable, Optional

from metafetch.environment import ONLINE, OFFLINE, VISIBILITY_CHANGE, Environment
from metafetch.hooks import get_current_scope, watch
from metafetch.utils.common import to_value
from metafetch.utils.async_task import run_async

logger = logging.getLogger(__name__)


class ReactivityBindings:
    """
    Watchers that call back into an :class:`ExecutionController`.

    * URL: with ``refetch`` (and ``immediate``), every distinct value of the
      URL source starts a new execution.
    * Network: with ``refetch_on_reconnect``, going offline cancels a
      cancellable request and going online again re-executes it.
    * Visibility: with ``cancel_on_blur``, hiding the page cancels the request
      and showing it again resumes it; with ``refetch_on_focus`` showing it
      always re-executes.
    * Lifecycle: listeners are registered on attach and removed on detach;
      attach also runs the initial execution when ``immediate`` is set.

    The bindings keep no request state of their own apart from the last
    visibility they saw.
    """

    def __init__(self, controller: Any, url_source: Any, config: Any, environment: Environment):
        self.controller = controller
        self.url_source = url_source
        self.config = config
        self.environment = environment

        self.attached = False
        self.detached = False
        self._visible = not environment.hidden
        self._stop_url_watch: Optional[Callable[[], None]] = None

    @property
    def state(self):
        return self.controller.state

    def bind(self) -> None:
        """
        Start the URL watcher and attach now, or when the enclosing scope
        mounts if there is one.
        """
        if self.config.refetch and callable(self.url_source):
            self._stop_url_watch = watch(lambda: to_value(self.url_source), self.handle_url_change)

        scope = get_current_scope()
        if scope is None:
            self.attach()
        else:
            scope.on_mount(self.attach)
            scope.on_unmount(self.detach)

    def attach(self) -> None:
        if self.attached or self.detached:
            return
        self.attached = True
        environment = self.environment

        if self.config.refetch_on_reconnect:
            environment.add_event_listener(ONLINE, self.handle_online)
            environment.add_event_listener(OFFLINE, self.handle_offline)

        if self.config.refetch_on_focus or self.config.cancel_on_blur:
            self._visible = not environment.hidden
            environment.add_event_listener(VISIBILITY_CHANGE, self.handle_visibility_change)

        if self.config.immediate:
            self.schedule_execute("initial execution")

    def detach(self) -> None:
        if self.detached:
            return
        self.detached = True
        environment = self.environment

        if self.attached:
            environment.remove_event_listener(ONLINE, self.handle_online)
            environment.remove_event_listener(OFFLINE, self.handle_offline)
            environment.remove_event_listener(VISIBILITY_CHANGE, self.handle_visibility_change)
            self.attached = False

        if self._stop_url_watch is not None:
            self._stop_url_watch()
            self._stop_url_watch = None

        self.controller.clear_retry_timer()
        if self.state.can_cancel.peek():
            self.controller.cancel("Request detached")

    def schedule_execute(self, reason: str):
        task = run_async(self.controller.execute)
        if task is None:
            logger.warning("No running event loop, skipping %s; call execute() from a coroutine instead", reason)
        return task

    def handle_url_change(self, url, previous_url) -> None:
        if self.detached or not self.config.immediate:
            return
        logger.debug("URL changed from %s to %s, re-executing", previous_url, url)
        self.schedule_execute("re-execution on URL change")

    def handle_online(self) -> None:
        controller = self.controller
        if self.config.refetch_on_reconnect and controller.was_offline and not self.state.loading.peek():
            controller.was_offline = False
            self.schedule_execute("re-execution on reconnect")

    def handle_offline(self) -> None:
        self.controller.was_offline = True
        if self.state.can_cancel.peek():
            self.controller.cancel("Network went offline")

    def handle_visibility_change(self) -> None:
        controller = self.controller
        was_visible = self._visible
        self._visible = not self.environment.hidden

        if was_visible and not self._visible and self.config.cancel_on_blur:
            if self.state.can_cancel.peek() and controller.cancel("Page hidden"):
                controller.cancelled_on_blur = True

        if not was_visible and self._visible:
            if (self.config.refetch_on_focus or controller.cancelled_on_blur) and not self.state.loading.peek():
                controller.cancelled_on_blur = False
                self.schedule_execute("re-execution on focus")
