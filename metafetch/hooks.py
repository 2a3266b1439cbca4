from inspect import isawaitable
from typing import Any, Callable, List, Optional

from metafetch.core import create_effect, untrack, report_error
from metafetch.utils.common import to_value
from metafetch.utils.async_task import run_async


def watch(source: Any, callback: Callable[[Any, Any], Any], immediate: bool = False) -> Callable[[], None]:
    """
    Call ``callback(new_value, old_value)`` whenever the value produced by
    ``source`` changes.

    Args:
        source: A Signal, or a zero-argument function reading one or more signals.
        callback: Called untracked; may be a coroutine function, in which case the
                  coroutine is scheduled on the running loop.
        immediate: Also invoke the callback once with the initial value.

    Returns:
        A function that stops watching.
    """
    state = {"initialised": False, "value": None}

    def invoke(new_value, old_value):
        result = untrack(lambda: callback(new_value, old_value))
        if isawaitable(result):
            async def _await_result():
                return await result
            run_async(_await_result)

    def runner():
        value = to_value(source)
        if not state["initialised"]:
            state["initialised"] = True
            state["value"] = value
            if immediate:
                invoke(value, None)
            return

        old_value = state["value"]
        if value == old_value:
            return
        state["value"] = value
        invoke(value, old_value)

    effect = create_effect(runner)
    return effect.dispose


class Scope:
    """
    Owner of mount and unmount callbacks for a group of hooks.

    Hooks created inside ``with scope:`` register their attach logic with
    :meth:`on_mount` and their teardown with :meth:`on_unmount`; the owner calls
    :meth:`mount` and :meth:`unmount` at the matching points of its own lifecycle.
    """

    def __init__(self):
        self._mounts: List[Callable[[], None]] = []
        self._disposals: List[Callable[[], None]] = []
        self._parent: Optional["Scope"] = None
        self.mounted = False
        self.disposed = False

    def __enter__(self):
        global _current_scope
        self._parent = _current_scope
        _current_scope = self
        return self

    def __exit__(self, exc_type, exc, tb):
        global _current_scope
        _current_scope = self._parent
        self._parent = None
        return False

    def on_mount(self, fn: Callable[[], None]) -> None:
        if self.mounted:
            self._call(fn, "Error in mount callback")
        else:
            self._mounts.append(fn)

    def on_unmount(self, fn: Callable[[], None]) -> None:
        self._disposals.append(fn)

    def mount(self) -> None:
        if self.mounted or self.disposed:
            return
        self.mounted = True
        mounts, self._mounts = self._mounts, []
        for fn in mounts:
            self._call(fn, "Error in mount callback")

    def unmount(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        disposals, self._disposals = self._disposals, []
        for fn in disposals:
            self._call(fn, "Error in unmount callback")

    @staticmethod
    def _call(fn, description):
        try:
            fn()
        except Exception as e:
            report_error(e, description)


_current_scope: Optional[Scope] = None


def create_scope() -> Scope:
    return Scope()


def get_current_scope() -> Optional[Scope]:
    return _current_scope


def on_mount(fn: Callable[[], None]) -> bool:
    """Register ``fn`` with the active scope. Returns False when there is none."""
    if _current_scope is None:
        return False
    _current_scope.on_mount(fn)
    return True


def on_unmount(fn: Callable[[], None]) -> bool:
    if _current_scope is None:
        return False
    _current_scope.on_unmount(fn)
    return True
