import logging
from inspect import isawaitable
from typing import Any, Callable, Dict, Optional

from .exceptions import HttpError, InterceptorError

logger = logging.getLogger(__name__)


async def _run_interceptor(interceptor_func: Callable, context: Dict[str, Any]) -> Any:
    """Helper to run an interceptor, supporting both sync and async functions."""
    result = interceptor_func(context)
    if isawaitable(result):
        result = await result
    return result


def _interceptor_error(error: BaseException, phase: str, response=None, config=None) -> InterceptorError:
    wrapped = InterceptorError({
        "message": str(error) or f"{phase} interceptor failed",
        "phase": phase,
        "response": response,
        "config": config,
        "original_error": error,
    })
    wrapped.__cause__ = error
    return wrapped


class InterceptorPipeline:
    """
    The three extension points of a request, run in a fixed order:
    ``before_fetch`` ahead of the transport call, ``after_fetch`` once a
    response is decoded, ``on_fetch_error`` when an execution fails for good.

    Every context is a dict and every interceptor may be a plain function or
    a coroutine function. ``custom_options`` is handed to all three untouched.
    """

    def __init__(self, before_fetch: Callable = None, after_fetch: Callable = None,
                 on_fetch_error: Callable = None, custom_options: Any = None):
        self.before_fetch = before_fetch
        self.after_fetch = after_fetch
        self.on_fetch_error = on_fetch_error
        self.custom_options = custom_options

    async def run_before_fetch(self, url: str, options: Dict[str, Any], cancel: Callable[[], None]) -> Optional[Dict[str, Any]]:
        """
        Returns the interceptor's ``{"url": ..., "options": {...}}`` overrides,
        or None to send the request as built.
        """
        if self.before_fetch is None:
            return None

        try:
            result = await _run_interceptor(self.before_fetch, {
                "url": url,
                "options": options,
                "cancel": cancel,
                "custom_options": self.custom_options,
            })
        except HttpError:
            raise
        except Exception as e:
            raise _interceptor_error(e, "before_fetch", config=options)

        if result is not None and not isinstance(result, dict):
            raise InterceptorError({
                "message": "before_fetch must return a dictionary with 'url' and/or 'options' keys, or None.",
                "phase": "before_fetch",
                "config": options,
            })
        return result or None

    async def run_after_fetch(self, data: Any, response: Any) -> Any:
        """
        Returns the payload that stands after the interceptor: its ``data``
        when it returned ``{"data": ...}``, otherwise the decoded one. Raises
        when the interceptor raised or returned an exception.
        """
        if self.after_fetch is None:
            return data

        try:
            result = await _run_interceptor(self.after_fetch, {
                "data": data,
                "response": response,
                "custom_options": self.custom_options,
            })
        except HttpError:
            raise
        except Exception as e:
            raise _interceptor_error(e, "after_fetch", response=response)

        if isinstance(result, HttpError):
            raise result
        if isinstance(result, BaseException):
            raise _interceptor_error(result, "after_fetch", response=response)
        if isinstance(result, dict) and "data" in result:
            return result["data"]
        return data

    async def run_on_fetch_error(self, error: BaseException, data: Any, response: Any) -> Optional[Dict[str, Any]]:
        """Returns ``{"error": ..., "data": ...}`` overrides, or None."""
        if self.on_fetch_error is None:
            return None

        result = await _run_interceptor(self.on_fetch_error, {
            "error": error,
            "data": data,
            "response": response,
            "custom_options": self.custom_options,
        })
        if result is not None and not isinstance(result, dict):
            logger.warning("on_fetch_error returned %s, expected a dict or None; ignoring it", type(result).__name__)
            return None
        return result
