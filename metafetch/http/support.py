import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from metafetch.core import report_error
from .exceptions import RequestCancelledError, RequestTimeoutError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Token for cancelling HTTP requests.

    A token is cancelled at most once. Callbacks registered with
    :meth:`add_callback` run at that moment (or straight away if the token is
    already cancelled). Two tokens joined with :meth:`link` cancel each other,
    which is how a timeout token and the attempt's own token abort the same
    in-flight call exactly once.
    """

    def __init__(self):
        self.cancelled = False
        self.reason: Optional[str] = None
        self.timed_out = False
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._waiter: Optional[asyncio.Future] = None

    def cancel(self, reason: str = None, timed_out: bool = False) -> bool:
        """Cancel the request. Returns False if the token was already cancelled."""
        if self.cancelled:
            return False
        self.cancelled = True
        self.timed_out = timed_out
        self.reason = reason or ("Request timed out" if timed_out else "Request was cancelled")
        self.clear_timer()
        logger.debug("Cancellation token cancelled: %s", self.reason)

        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                report_error(e, "Error in cancellation callback")
        return True

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self.cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def link(self, other: "CancellationToken") -> "CancellationToken":
        """Cancel ``other`` whenever this token is cancelled, and vice versa."""
        self.add_callback(lambda: other.cancel(self.reason, self.timed_out))
        other.add_callback(lambda: self.cancel(other.reason, other.timed_out))
        return self

    def cancel_after(self, delay_ms: float) -> None:
        """Arm a timer that cancels this token as timed out after ``delay_ms``."""
        self.clear_timer()
        if self.cancelled:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(
            delay_ms / 1000,
            lambda: self.cancel(f"Request timed out after {delay_ms}ms", timed_out=True),
        )

    def clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self.cancelled:
            return
        if self._waiter is None:
            self._waiter = asyncio.get_running_loop().create_future()
        await asyncio.shield(self._waiter)

    def to_error(self, config: Any = None):
        error_data = {"message": self.reason, "config": config, "phase": "cancelled"}
        if self.timed_out:
            error_data["phase"] = "timeout"
            return RequestTimeoutError(error_data)
        return RequestCancelledError(error_data)

    def raise_if_cancelled(self, config: Any = None) -> None:
        if self.cancelled:
            raise self.to_error(config)


async def run_cancellable(awaitable: Awaitable, token: Optional[CancellationToken], config: Any = None) -> Any:
    """
    Await ``awaitable`` as a task that is cancelled together with ``token``.

    Raises RequestCancelledError, or RequestTimeoutError when the token was
    cancelled by its timeout, instead of a bare CancelledError.
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        token.raise_if_cancelled(config)

    task = asyncio.ensure_future(awaitable)
    token.add_callback(task.cancel)
    try:
        return await task
    except asyncio.CancelledError:
        if token.cancelled:
            raise token.to_error(config) from None
        raise
    finally:
        token.remove_callback(task.cancel)


class Blob:
    """Binary payload with a content type, the counterpart of a browser Blob."""

    def __init__(self, content: Union[bytes, str] = b"", content_type: str = "", filename: str = None):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.content = bytes(content)
        self.content_type = content_type or ""
        self.filename = filename

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def type(self) -> str:
        return self.content_type

    def text(self, encoding: str = "utf-8") -> str:
        return self.content.decode(encoding, errors="replace")

    def __eq__(self, other):
        if not isinstance(other, Blob):
            return NotImplemented
        return self.content == other.content and self.content_type == other.content_type

    def __repr__(self):
        return f"Blob(size={self.size}, type={self.content_type!r})"


class FormData:
    """
    Ordered multipart field set.

    Values are strings, or :class:`Blob` for file parts. A name may appear more
    than once, as with HTML forms.
    """

    def __init__(self, fields: Union[Dict[str, Any], List[Tuple[str, Any]]] = None):
        self._entries: List[Tuple[str, Any]] = []
        if isinstance(fields, dict):
            fields = fields.items()
        for name, value in fields or ():
            self.append(name, value)

    def append(self, name: str, value: Any, filename: str = None) -> None:
        if isinstance(value, (bytes, bytearray)):
            value = Blob(bytes(value), "application/octet-stream", filename)
        elif isinstance(value, Blob):
            if filename:
                value = Blob(value.content, value.content_type, filename)
        else:
            value = str(value)
        self._entries.append((name, value))

    def set(self, name: str, value: Any, filename: str = None) -> None:
        self.delete(name)
        self.append(name, value, filename)

    def delete(self, name: str) -> None:
        self._entries = [(key, value) for key, value in self._entries if key != name]

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in self._entries:
            if key == name:
                return value
        return default

    def get_all(self, name: str) -> List[Any]:
        return [value for key, value in self._entries if key == name]

    def keys(self) -> List[str]:
        seen = []
        for key, _ in self._entries:
            if key not in seen:
                seen.append(key)
        return seen

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        """Single-valued fields map to their value, repeated ones to a list."""
        result = {}
        for key in self.keys():
            values = self.get_all(key)
            result[key] = values[0] if len(values) == 1 else values
        return result

    def __contains__(self, name):
        return any(key == name for key, _ in self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def __eq__(self, other):
        if not isinstance(other, FormData):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self):
        return f"FormData({self._entries!r})"
