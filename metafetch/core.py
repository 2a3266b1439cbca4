import asyncio
from typing import Callable, Any

from metafetch.exceptions import global_error_handler

# Global state for reactive system
_current_effect = None
_trackable = False
_batch_updates_active = False
_batch_updates_queue = []
_global_error_handler = global_error_handler

def set_global_error_handler(handler: Callable[[Exception, str], None]):
    """
    Sets a global error handler for uncaught exceptions.

    The handler is called as ``handler(error, description)``. Passing None
    restores the default, which logs the exception with its traceback.
    """
    global _global_error_handler
    _global_error_handler = handler or global_error_handler

def report_error(error: Exception, description: str = None):
    """Route an exception raised by user code to the global error handler."""
    _global_error_handler(error, description)

# Scheduler for batching effect re-runs
class Scheduler:
    def __init__(self):
        # dict keeps insertion order, so effects run in the order they were dirtied
        self.queue = {}
        self.scheduled = False
        self._loop = None

    def enqueue(self, task):
        self.queue[task] = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        # A flush scheduled on a loop that has since gone away never runs
        if self.scheduled and self._loop is loop:
            return
        self.scheduled = True
        self._loop = loop
        if loop is None:
            # No loop: nothing would ever flush, so drain right here
            self._drain()
            return
        loop.create_task(self.flush())

    async def flush(self):
        # Allow other tasks to run (yielding control)
        await asyncio.sleep(0)
        self._drain()

    def _drain(self):
        try:
            while self.queue:
                # Snapshot the current queue; tasks may re-enqueue while running
                tasks = list(self.queue)
                self.queue.clear()

                for task in tasks:
                    try:
                        task.run()
                    except Exception as e:
                        report_error(e, "Error executing scheduled task")
        finally:
            self.scheduled = False

_scheduler = Scheduler()

def batch_updates(fn):
    global _batch_updates_active, _batch_updates_queue
    prev_state = _batch_updates_active
    _batch_updates_active = True
    try:
        return fn()
    finally:
        _batch_updates_active = prev_state
        if not _batch_updates_active:
            queue_to_process = list(_batch_updates_queue)
            _batch_updates_queue.clear()
            for signal, new_value in queue_to_process:
                signal._set_value_internal(new_value)


def _same_value(old_value, new_value) -> bool:
    if old_value is new_value:
        return True
    try:
        return bool(old_value == new_value) and type(old_value) is type(new_value)
    except Exception:
        # Values whose equality is ambiguous (arrays, proxies) always count as changed
        return False


class Signal:
    __slots__ = ('_subscribers', '_value', '__weakref__')

    def __init__(self, initial_value: Any):
        self._subscribers = set()
        self._value = initial_value

    def __call__(self) -> Any:
        global _current_effect, _trackable
        if not _trackable:
            return self._value
        if _current_effect:
            self._subscribers.add(_current_effect)
            _current_effect.dependencies.add(self)
        return self._value

    get = __call__

    def peek(self):
        return self._value

    def set(self, new_value: Any) -> None:
        queue_update(self, new_value)

    def _set_value_internal(self, new_value):
        if _same_value(self._value, new_value):
            return

        self._value = new_value

        for subscriber in list(self._subscribers):
            subscriber.dirty = True
            _scheduler.enqueue(subscriber)

    def __repr__(self):
        return f"Signal({self._value!r})"

def create_signal(initial_value: Any):
    signal = Signal(initial_value)
    return signal, signal.set

def queue_update(signal, new_value):
    global _batch_updates_active, _batch_updates_queue
    if _batch_updates_active:
        _batch_updates_queue.append((signal, new_value))
    else:
        signal._set_value_internal(new_value)

class Effect:
    __slots__ = ('fn', 'dependencies', 'children', 'is_running', 'disposed', 'dirty', '__weakref__')

    def __init__(self, fn: Callable[[], Any]):
        self.fn = fn
        self.dependencies: set = set()
        self.children: set = set()
        self.is_running = False
        self.disposed = False
        self.dirty = False

    def run(self):
        if self.disposed or self.is_running:
            return

        self.is_running = True
        self.dirty = False
        global _current_effect, _trackable
        prev_effect = _current_effect
        prev_trackable = _trackable
        _current_effect = self

        self._cleanup()

        try:
            _trackable = True
            self.fn()
        except Exception as e:
            report_error(e, "Error running effect")
        finally:
            _trackable = prev_trackable
            _current_effect = prev_effect
            self.is_running = False

    def _cleanup(self):
        for signal in list(self.dependencies):
            signal._subscribers.discard(self)
        self.dependencies.clear()

    def dispose(self):
        if self.disposed:
            return
        self.disposed = True
        for child in list(self.children):
            child.dispose()
        self._cleanup()
        _scheduler.queue.pop(self, None)

def create_effect(fn: Callable[[], Any]) -> Effect:
    effect = Effect(fn)
    parent_effect = _current_effect

    if parent_effect:
        parent_effect.children.add(effect)

    effect.run()
    return effect

def untrack(fn: Callable[[], Any]) -> Any:
    global _current_effect, _trackable
    if not callable(fn):
        raise TypeError(f"untrack: expected callable, got {type(fn).__name__}")
    prev_effect = _current_effect
    prev_tracking = _trackable
    _trackable = False
    try:
        return fn()
    finally:
        _trackable = prev_tracking
        _current_effect = prev_effect
