import logging
from typing import Any, Callable, Dict

from metafetch.core import create_signal
from metafetch.hooks import get_current_scope, watch
from metafetch.utils.common import get_prop_value
from metafetch.utils.async_task import run_async
from metafetch.http.controller import ExecutionResult
from .defaults import merge_table_request_options
from .table import Table, maybe_await

logger = logging.getLogger(__name__)


class RequestTable(Table):
    """
    A table whose rows come from a caller-supplied ``fetcher``.

    The fetcher receives the request params plus the page keys and returns
    any response; rows, total and optionally the page index are read out of
    it along dotted paths. A fetcher returning an ``ExecutionResult`` is
    unwrapped, and its error handled like a raised one.
    """

    def __init__(self, fetcher: Callable[[Dict[str, Any]], Any], params: Any = None, **options):
        options = merge_table_request_options(options)
        super().__init__(options.get("pagination"))

        self.fetcher = fetcher
        self.options = options
        self.request_keys = {
            "page_index_key": "page_index",
            "page_size_key": "page_size",
            **options["request_key_config"],
        }
        self.response_keys = {
            "data_key": "data",
            "total_key": "total",
            **options["response_key_config"],
        }
        self.params, self._set_params = create_signal(params)
        self._stop_params_watch = None

        if options.get("auto_fetch_on_params_change", True):
            self._stop_params_watch = watch(self.params, self._on_params_change)

        if options.get("auto_fetch", True):
            scope = get_current_scope()
            if scope is None:
                self._schedule_fetch()
            else:
                scope.on_mount(self._schedule_fetch)
                scope.on_unmount(self.dispose)

    def build_request_params(self) -> Dict[str, Any]:
        query = dict(self.params.peek() or {})
        if self.pagination_enabled:
            pagination = self.pagination.peek()
            query[self.request_keys["page_index_key"]] = pagination["current_page"]
            query[self.request_keys["page_size_key"]] = pagination["page_size"]
        return query

    async def fetch_data(self) -> None:
        before_fetch = self.options.get("before_fetch")
        after_fetch = self.options.get("after_fetch")
        self.loading.set(True)
        try:
            request_data = self.build_request_params()
            if before_fetch:
                request_data = await maybe_await(before_fetch(request_data))

            response = await maybe_await(self.fetcher(request_data))
            response = self._unwrap(response)

            rows = get_prop_value(response, self.response_keys["data_key"], None) or []
            total = get_prop_value(response, self.response_keys["total_key"], None) or 0

            page_index_key = self.response_keys.get("page_index_key")
            if page_index_key:
                page_index = get_prop_value(response, page_index_key, None)
                if isinstance(page_index, int) and not isinstance(page_index, bool) and page_index > 0:
                    self._update_pagination(current_page=page_index)

            if after_fetch:
                rows = await maybe_await(after_fetch(rows))

            self._set_result(rows, total)
        except Exception as e:
            logger.error("Table fetch error: %s", e, exc_info=True)
            on_error = self.options.get("on_error")
            if on_error:
                on_error(e)
            self._set_result([], 0)
        finally:
            self.loading.set(False)

    @staticmethod
    def _unwrap(response: Any) -> Any:
        if isinstance(response, ExecutionResult):
            if response.error is not None:
                raise response.error
            return response.data
        return response

    async def refresh(self) -> None:
        await self.fetch_data()

    def update_params(self, params: Any) -> None:
        self._set_params(params)

    def _on_params_change(self, params, previous) -> None:
        self._update_pagination(current_page=1)
        run_async(self.fetch_data)

    def _schedule_fetch(self) -> None:
        if run_async(self.fetch_data) is None:
            logger.warning("No running event loop, skipping the initial table fetch; call refresh() from a coroutine")

    def dispose(self) -> None:
        if self._stop_params_watch is not None:
            self._stop_params_watch()
            self._stop_params_watch = None


def use_table_request(fetcher: Callable[[Dict[str, Any]], Any], params: Any = None, **options) -> RequestTable:
    """
    Paged table backed by ``fetcher``.

    Options: ``auto_fetch``, ``auto_fetch_on_params_change``, ``pagination``
    (dict with ``current_page``, ``page_size``, ``page_sizes``, or False),
    ``request_key_config``, ``response_key_config``, ``before_fetch``,
    ``after_fetch`` and ``on_error``.
    """
    return RequestTable(fetcher, params, **options)
