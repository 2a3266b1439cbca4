import asyncio
import json
import logging
from inspect import isawaitable
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from metafetch.core import batch_updates, create_signal, report_error
from metafetch.utils.common import to_value
from metafetch.utils.async_task import run_later, cancel_async
from .decoder import ResponseDecoder, ResponseType
from .exceptions import HttpError, RequestCancelledError, error_for_status
from .interceptors import InterceptorPipeline
from .retry import RetryConfig
from .support import CancellationToken, FormData
from .transport import Transport, TransportRequest
from .urls import build_url, merge_url_params, strip_query

logger = logging.getLogger(__name__)

# Params of these methods go into the URL before before_fetch sees it
READ_METHODS = ("GET", "HEAD", "DELETE")
BODYLESS_METHODS = ("GET", "HEAD")


class ExecutionResult(NamedTuple):
    data: Any
    error: Optional[BaseException]


class ExecutionState:
    """
    Live status of a request, one signal per field.

    ``loading`` and ``finished`` are never both true; ``cancelled`` implies
    ``finished`` and leaves ``error`` unset.
    """

    def __init__(self, initial_data: Any = None):
        self.data, _ = create_signal(initial_data)
        self.error, _ = create_signal(None)
        self.loading, _ = create_signal(False)
        self.finished, _ = create_signal(False)
        self.status_code, _ = create_signal(None)
        self.can_cancel, _ = create_signal(False)
        self.cancelled, _ = create_signal(False)

    def update(self, **values) -> None:
        def apply():
            for name, value in values.items():
                getattr(self, name).set(value)
        batch_updates(apply)

    def snapshot(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name).peek()
            for name in ("data", "error", "loading", "finished", "status_code", "can_cancel", "cancelled")
        }


class RequestState:
    """The fluent, mutable half of a request: read fresh on every attempt."""

    __slots__ = ("method", "data", "params", "response_type", "headers")

    def __init__(self, method: str = "GET", data: Any = None, params: Dict[str, Any] = None,
                 response_type: str = "json", headers: Dict[str, str] = None):
        self.method = (method or "GET").upper()
        self.data = data
        self.params = params
        self.response_type = ResponseType.coerce(response_type)
        self.headers = headers


def _drop_content_type(headers: Dict[str, str]) -> None:
    for key in [key for key in headers if key.lower() == "content-type"]:
        del headers[key]


def _has_content_type(headers: Dict[str, str]) -> bool:
    return any(key.lower() == "content-type" for key in headers)


def serialize_body(data: Any, method: str, response_type: ResponseType, headers: Dict[str, str]) -> Any:
    """
    Turn the payload into something a transport can send, adjusting
    ``headers`` in place.

    FormData goes out as is and without a Content-Type so the transport can add
    the multipart boundary. A form response type turns a mapping into FormData
    field by field. Strings and bytes go out verbatim, anything else as JSON.
    """
    if data is None or method in BODYLESS_METHODS:
        return None

    if isinstance(data, FormData):
        _drop_content_type(headers)
        return data

    if response_type is ResponseType.FORM:
        form = FormData()
        if isinstance(data, dict):
            for key, value in data.items():
                if value is not None:
                    form.append(key, value)
        _drop_content_type(headers)
        return form

    if isinstance(data, (str, bytes, bytearray)):
        return data

    try:
        body = json.dumps(data)
    except (TypeError, ValueError) as e:
        raise HttpError({
            "message": f"Could not serialize request body: {e}",
            "code": "ERR_BAD_REQUEST",
            "phase": "serialize",
            "original_error": e,
        }) from e

    if not _has_content_type(headers):
        headers["Content-Type"] = "application/json"
    return body


async def _call_observer(callback: Callable, value: Any, description: str) -> None:
    try:
        result = callback(value)
        if isawaitable(result):
            await result
    except Exception as e:
        report_error(e, description)


class ExecutionController:
    """
    Runs a request from start to a terminal outcome.

    One :meth:`execute` builds the outgoing call from the current request
    state, drives the transport, decodes, runs the interceptors and either
    settles the state or hands the failure to the retry policy. A fresh
    cancellation token is made for every attempt and only the newest attempt
    may write to the state.
    """

    def __init__(self, url_source: Any, config: Any, request: RequestState, state: ExecutionState,
                 transport: Transport, environment: Any):
        self.url_source = url_source
        self.config = config
        self.request = request
        self.state = state
        self.transport = transport
        self.environment = environment

        self.pipeline = InterceptorPipeline(
            before_fetch=config.before_fetch,
            after_fetch=config.after_fetch,
            on_fetch_error=config.on_fetch_error,
            custom_options=config.custom_options,
        )
        self.retry = RetryConfig(config.retry, config.retry_count, config.retry_delay)
        self.response_callbacks: List[Callable] = []
        self.error_callbacks: List[Callable] = []

        self.current_attempt = 0
        self.token: Optional[CancellationToken] = None
        self.retry_handle: Optional[asyncio.TimerHandle] = None

        # Resumption owed by the environment watchers
        self.was_offline = False
        self.cancelled_on_blur = False

    def _log(self, message: str, *args) -> None:
        logger.log(logging.INFO if self.config.debug else logging.DEBUG, message, *args)

    @property
    def retry_pending(self) -> bool:
        return self.retry_handle is not None

    async def execute(self, is_retry: bool = False) -> ExecutionResult:
        if not is_retry:
            self.current_attempt = 0
            self.clear_retry_timer()
            self.state.update(error=None, cancelled=False, loading=True, finished=False, can_cancel=True)
        else:
            self.state.update(can_cancel=True)

        token = CancellationToken()
        self.token = token
        self._log("%s %s (attempt %d)", self.request.method, to_value(self.url_source), self.current_attempt + 1)

        environment = self.environment
        if not environment.is_online:
            self.was_offline = True
            if self.config.refetch_on_reconnect:
                self._log("Offline, deferring request until the network is back")
                self.state.update(loading=False, finished=True, can_cancel=False)
                return ExecutionResult(self.state.data.peek(), None)
        elif not is_retry:
            self.was_offline = False

        if environment.hidden:
            if self.config.cancel_on_blur:
                token.cancel("Page is hidden")
                self.cancelled_on_blur = True
                self._log("Page hidden, request cancelled until it is visible again")
                self.state.update(cancelled=True, loading=False, finished=True, can_cancel=False)
                return ExecutionResult(self.state.data.peek(), None)
        elif not is_retry:
            self.cancelled_on_blur = False

        try:
            return await self._attempt(token)
        except asyncio.CancelledError:
            if self.token is token:
                self.state.update(cancelled=True, loading=False, finished=True, can_cancel=False)
            raise
        except Exception as error:
            return await self._handle_failure(error, token)

    async def _attempt(self, token: CancellationToken) -> ExecutionResult:
        config = self.config
        request = self.request

        url = to_value(self.url_source)
        method = request.method
        params = request.params
        headers = dict(request.headers or {})

        params_in_url = False
        if method in READ_METHODS and params:
            url = build_url(url, params)
            params_in_url = True

        overrides = await self.pipeline.run_before_fetch(
            url,
            {
                "method": method,
                "data": request.data,
                "params": None if params_in_url else params,
                "headers": headers,
                "timeout": config.timeout,
            },
            lambda: token.cancel("Cancelled by before_fetch"),
        )
        token.raise_if_cancelled()
        if self.token is not token:
            return self._superseded(self.state.data.peek())

        if overrides:
            url = overrides.get("url") or url
            options = overrides.get("options") or {}
            if options.get("method"):
                method = request.method = options["method"].upper()
            if options.get("data") is not None:
                request.data = options["data"]
            if options.get("params") is not None:
                params = request.params = options["params"]
                if method in READ_METHODS:
                    url = merge_url_params(strip_query(url) if params_in_url else url, params)
                    params_in_url = True
            if options.get("headers"):
                headers.update(options["headers"])

        if params and not params_in_url:
            url = build_url(url, params)

        body = serialize_body(request.data, method, request.response_type, headers)
        wire_type = ResponseDecoder.wire_type(request.response_type, self.transport.native_response_types)
        outgoing = TransportRequest(url, method, headers, body, wire_type, config.base_url, config.timeout)

        timeout_token = None
        if config.timeout:
            timeout_token = CancellationToken()
            token.link(timeout_token)
            timeout_token.cancel_after(config.timeout)
        try:
            response = await self.transport.send(outgoing, timeout_token or token)
        finally:
            if timeout_token is not None:
                timeout_token.clear_timer()

        if self.token is not token or token.cancelled:
            raise token.to_error(outgoing) if token.cancelled else RequestCancelledError({"config": outgoing})

        if not response.ok:
            raise error_for_status(response, outgoing)

        self.state.status_code.set(response.status)
        payload = ResponseDecoder.upcast(response.data, request.response_type, response.content_type)
        payload = await self.pipeline.run_after_fetch(payload, response)
        if self.token is not token:
            return self._superseded(payload)
        token.raise_if_cancelled(outgoing)

        self.state.data.set(payload)
        envelope = response.with_data(payload)
        for callback in list(self.response_callbacks):
            await _call_observer(callback, envelope, "Error in fetch response callback")
            if self.token is not token:
                return self._superseded(payload)
        if token.cancelled:
            return ExecutionResult(payload, None)

        self._log("%s %s finished with status %s", method, url, response.status)
        self.state.update(finished=True, loading=False, can_cancel=False)
        return ExecutionResult(payload, None)

    def _superseded(self, payload: Any) -> ExecutionResult:
        # A newer execute owns the state now
        self._log("Discarding the result of a superseded attempt")
        return ExecutionResult(payload, None)

    async def _handle_failure(self, error: Exception, token: CancellationToken) -> ExecutionResult:
        if self.token is not token:
            return self._superseded(self.state.data.peek())

        is_cancellation = isinstance(error, RequestCancelledError) or (token.cancelled and not token.timed_out)
        if is_cancellation:
            self._log("Request cancelled: %s", token.reason or error)
            self.state.update(cancelled=True, finished=True, loading=False, can_cancel=False)
            return ExecutionResult(self.state.data.peek(), None)

        if self.retry.should_retry(error, self.current_attempt, is_cancellation):
            self.current_attempt += 1
            delay = self.retry.get_delay(self.current_attempt)
            self._log(
                "Retrying after %s: attempt %d of %d in %sms",
                type(error).__name__, self.current_attempt, self.retry.count, delay,
            )
            if delay > 0:
                self.retry_handle = run_later(delay, self._run_retry)
                return ExecutionResult(self.state.data.peek(), None)
            return await self.execute(True)

        return await self._finish_with_error(error, token)

    async def _run_retry(self) -> None:
        self.retry_handle = None
        await self.execute(True)

    async def _finish_with_error(self, error: Exception, token: CancellationToken) -> ExecutionResult:
        response = getattr(error, "response", None)
        self._log("Request failed: %s: %s", type(error).__name__, error)
        self.state.update(error=error, status_code=getattr(response, "status", None))

        final_error = error
        try:
            result = await self.pipeline.run_on_fetch_error(error, getattr(response, "data", None), response)
        except Exception as e:
            report_error(e, "Error in on_fetch_error interceptor")
            result = None
        if self.token is not token:
            return self._superseded(self.state.data.peek())

        if result:
            replacement = result.get("error")
            if replacement is not None:
                if not isinstance(replacement, BaseException):
                    replacement = HttpError({"message": str(replacement), "response": response, "original_error": error})
                final_error = replacement
                self.state.error.set(final_error)
            if self.config.update_data_on_error and result.get("data") is not None:
                self.state.data.set(result["data"])

        for callback in list(self.error_callbacks):
            await _call_observer(callback, final_error, "Error in fetch error callback")
            if self.token is not token:
                return self._superseded(self.state.data.peek())

        self.state.update(finished=True, loading=False, can_cancel=False)
        return ExecutionResult(self.state.data.peek(), final_error)

    def cancel(self, reason: str = None) -> bool:
        """
        Abort the in-flight attempt or a pending retry. Returns False when
        nothing was running.
        """
        self.clear_retry_timer()
        self.current_attempt = 0
        if not self.state.loading.peek():
            return False

        if self.token is not None:
            self.token.cancel(reason or "Request was cancelled")
        self._log("Request cancelled: %s", reason or "by caller")
        self.state.update(cancelled=True, can_cancel=False, loading=False, finished=True)
        return True

    def clear_retry_timer(self) -> None:
        if self.retry_handle is not None:
            cancel_async(self.retry_handle)
            self.retry_handle = None
