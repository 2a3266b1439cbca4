import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from metafetch.environment import get_environment
from metafetch.hooks import watch
from .bindings import ReactivityBindings
from .controller import ExecutionController, ExecutionResult, ExecutionState, RequestState
from .decoder import ResponseType
from .defaults import DefaultOptionsManager, fetch_defaults, httpx_defaults
from .fetch_transport import FetchTransport
from .httpx_transport import HttpxTransport

logger = logging.getLogger(__name__)


class RequestConfig:
    """
    Options of one request, after the global defaults were merged in.

    A None value counts as "not given" and falls back to the default below.
    Delays and timeouts are in milliseconds.
    """

    DEFAULTS: Dict[str, Any] = {
        "immediate": True,
        "refetch": False,
        "timeout": None,
        "before_fetch": None,
        "after_fetch": None,
        "on_fetch_error": None,
        "update_data_on_error": False,
        "initial_data": None,
        "method": "GET",
        "data": None,
        "params": None,
        "response_type": ResponseType.JSON.value,
        "headers": None,
        "retry": False,
        "retry_count": 3,
        "retry_delay": 0,
        "refetch_on_reconnect": False,
        "refetch_on_focus": False,
        "cancel_on_blur": False,
        "custom_options": None,
        "debug": False,
        "base_url": "",
        "transport": None,
        "environment": None,
    }

    def __init__(self, **options):
        unknown = set(options) - set(self.DEFAULTS)
        if unknown:
            raise TypeError(f"Unknown request option(s): {', '.join(sorted(unknown))}")
        for name, default in self.DEFAULTS.items():
            value = options.get(name)
            setattr(self, name, default if value is None else value)

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]], defaults: DefaultOptionsManager) -> "RequestConfig":
        return cls(**defaults.merge(options or {}))

    def __repr__(self):
        return f"RequestConfig(method={self.method!r}, response_type={self.response_type!r}, retry={self.retry})"


class UseFetch:
    """
    A reactive request.

    Status lives in signals (``data``, ``error``, ``loading``, ``finished``,
    ``status_code``, ``can_cancel``, ``cancelled``); the fluent methods change
    what the next execution sends and return the request itself::

        user = use_fetch("/api/user/info", immediate=False)
        result = await user.post({"name": "Ada"}).json().execute()
    """

    def __init__(self, url: Any, options: Optional[Dict[str, Any]] = None,
                 defaults: DefaultOptionsManager = fetch_defaults,
                 transport_factory: Callable[[], Any] = FetchTransport):
        self.config = config = RequestConfig.from_options(options, defaults)
        self.url = url
        self.transport = config.transport or transport_factory()
        self.environment = config.environment or get_environment()

        self.request = RequestState(config.method, config.data, config.params, config.response_type, config.headers)
        self.state = ExecutionState(config.initial_data)
        self.data = self.state.data
        self.error = self.state.error
        self.loading = self.state.loading
        self.finished = self.state.finished
        self.status_code = self.state.status_code
        self.can_cancel = self.state.can_cancel
        self.cancelled = self.state.cancelled

        self._controller = ExecutionController(url, config, self.request, self.state, self.transport, self.environment)
        self._bindings = ReactivityBindings(self._controller, url, config, self.environment)
        logger.debug("Created %s request for %r over %r", self.request.method, url, self.transport)
        self._bindings.bind()

    async def execute(self) -> ExecutionResult:
        """Run the request now. Returns ``(data, error)`` once it settles."""
        return await self._controller.execute()

    def cancel(self) -> None:
        self._controller.cancel()

    def on_fetch_response(self, callback: Callable[[Any], Any]) -> None:
        """
        Call ``callback(response)`` after every successful execution, in
        registration order. ``response.data`` is the final payload.
        """
        self._controller.response_callbacks.append(callback)

    def on_fetch_error(self, callback: Callable[[BaseException], Any]) -> None:
        self._controller.error_callbacks.append(callback)

    def dispose(self) -> None:
        """Stop every watcher, drop pending retries and cancel what is in flight."""
        self._bindings.detach()

    def _set_method(self, method: str, payload: Any = None) -> "UseFetch":
        self.request.method = method
        if payload is not None:
            self.request.data = payload
        return self

    def get(self) -> "UseFetch":
        return self._set_method("GET")

    def post(self, data: Any = None) -> "UseFetch":
        return self._set_method("POST", data)

    def put(self, data: Any = None) -> "UseFetch":
        return self._set_method("PUT", data)

    def delete(self) -> "UseFetch":
        return self._set_method("DELETE")

    def patch(self, data: Any = None) -> "UseFetch":
        return self._set_method("PATCH", data)

    def _set_response_type(self, response_type: ResponseType) -> "UseFetch":
        self.request.response_type = response_type
        return self

    def json(self) -> "UseFetch":
        return self._set_response_type(ResponseType.JSON)

    def text(self) -> "UseFetch":
        return self._set_response_type(ResponseType.TEXT)

    def blob(self) -> "UseFetch":
        return self._set_response_type(ResponseType.BLOB)

    def arraybuffer(self) -> "UseFetch":
        return self._set_response_type(ResponseType.ARRAYBUFFER)

    def document(self) -> "UseFetch":
        return self._set_response_type(ResponseType.DOCUMENT)

    def form(self) -> "UseFetch":
        return self._set_response_type(ResponseType.FORM)

    def __repr__(self):
        return f"UseFetch({self.request.method} {self.url!r}, state={self.state.snapshot()!r})"


def use_fetch(url: Any, **options) -> UseFetch:
    """Reactive request over the native (aiohttp) transport."""
    return UseFetch(url, options, fetch_defaults, FetchTransport)


def use_httpx_fetch(url: Any, **options) -> UseFetch:
    """Reactive request over the httpx transport."""
    return UseFetch(url, options, httpx_defaults, HttpxTransport)


def use_fetch_get(url: Any, params: Dict[str, Any] = None, custom_options: Any = None, **options) -> UseFetch:
    return use_fetch(url, **{**options, "method": "GET", "params": params, "custom_options": custom_options})


def use_fetch_post(url: Any, data: Any = None, custom_options: Any = None, **options) -> UseFetch:
    return use_fetch(url, **{**options, "method": "POST", "data": data, "custom_options": custom_options})


def use_httpx_get(url: Any, params: Dict[str, Any] = None, custom_options: Any = None, **options) -> UseFetch:
    return use_httpx_fetch(url, **{**options, "method": "GET", "params": params, "custom_options": custom_options})


def use_httpx_post(url: Any, data: Any = None, custom_options: Any = None, **options) -> UseFetch:
    return use_httpx_fetch(url, **{**options, "method": "POST", "data": data, "custom_options": custom_options})


async def _execute_once(request: UseFetch) -> ExecutionResult:
    try:
        result = await request.execute()
        if request.loading.peek():
            # A deferred retry is pending; wait for the terminal outcome
            settled = asyncio.get_running_loop().create_future()

            def on_finished(finished, _):
                if finished and not settled.done():
                    settled.set_result(None)

            stop = watch(request.finished, on_finished)
            try:
                await settled
            finally:
                stop()
            result = ExecutionResult(request.data.peek(), request.error.peek())
    finally:
        request.dispose()
    if result.error is not None:
        return ExecutionResult(None, result.error)
    return result


async def fetch_get(url: Any, params: Dict[str, Any] = None, custom_options: Any = None, **options) -> ExecutionResult:
    """Run a GET once, without the reactive bindings, and return ``(data, error)``."""
    return await _execute_once(use_fetch_get(url, params, custom_options, **{**options, "immediate": False}))


async def fetch_post(url: Any, data: Any = None, custom_options: Any = None, **options) -> ExecutionResult:
    return await _execute_once(use_fetch_post(url, data, custom_options, **{**options, "immediate": False}))


async def httpx_get(url: Any, params: Dict[str, Any] = None, custom_options: Any = None, **options) -> ExecutionResult:
    return await _execute_once(use_httpx_get(url, params, custom_options, **{**options, "immediate": False}))


async def httpx_post(url: Any, data: Any = None, custom_options: Any = None, **options) -> ExecutionResult:
    return await _execute_once(use_httpx_post(url, data, custom_options, **{**options, "immediate": False}))
