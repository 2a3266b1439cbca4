import asyncio
import unittest
from unittest.mock import MagicMock

from metafetch.core import create_signal
from metafetch.hooks import create_scope
from metafetch.http.controller import ExecutionResult
from metafetch.table.defaults import (
    get_table_request_defaults,
    get_table_static_defaults,
    reset_table_request_defaults,
    reset_table_static_defaults,
    set_table_request_defaults,
    set_table_static_defaults,
)
from metafetch.table.request import use_table_request
from metafetch.table.static import use_table_static

ROWS = [{"id": i, "even": i % 2 == 0} for i in range(1, 26)]


async def flush():
    for _ in range(5):
        await asyncio.sleep(0)


async def wait_for(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def ids(rows):
    return [row["id"] for row in rows]


class TestStaticTable(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self):
        reset_table_static_defaults()

    async def test_first_page(self):
        table = use_table_static(ROWS)

        self.assertEqual(ids(table.data.peek()), list(range(1, 11)))
        self.assertEqual(table.total.peek(), 25)
        self.assertEqual(table.pagination.peek(), {
            "current_page": 1,
            "page_size": 10,
            "total": 25,
            "page_sizes": [10, 20, 50, 100],
        })

    async def test_change_page_and_size(self):
        table = use_table_static(ROWS)

        await table.change_page(3)
        self.assertEqual(ids(table.data.peek()), list(range(21, 26)))

        await table.change_page_size(20)
        self.assertEqual(table.current_page, 1)
        self.assertEqual(len(table.data.peek()), 20)

        await table.reset()
        self.assertEqual(table.current_page, 1)
        self.assertFalse(table.loading.peek())

    async def test_pagination_disabled_returns_every_row(self):
        table = use_table_static(ROWS, pagination=False)

        self.assertEqual(len(table.data.peek()), 25)
        self.assertEqual(table.total.peek(), 25)

    async def test_filter(self):
        table = use_table_static(ROWS, filter_fn=lambda row: row["even"])

        self.assertEqual(table.total.peek(), 12)
        self.assertEqual(ids(table.data.peek()), [2, 4, 6, 8, 10, 12, 14, 16, 18, 20])

    async def test_source_signal_changes(self):
        rows, set_rows = create_signal(ROWS)
        table = use_table_static(rows)
        await table.change_page(3)

        set_rows(ROWS[:12])
        await flush()

        self.assertEqual(table.current_page, 2)
        self.assertEqual(ids(table.data.peek()), [11, 12])
        self.assertEqual(table.total.peek(), 12)

    async def test_dispose_stops_tracking(self):
        rows, set_rows = create_signal(ROWS)
        table = use_table_static(rows)

        table.dispose()
        set_rows(ROWS[:3])
        await flush()

        self.assertEqual(table.total.peek(), 25)

    async def test_defaults(self):
        set_table_static_defaults({"pagination": {"page_size": 5}})

        table = use_table_static(ROWS)

        self.assertEqual(len(table.data.peek()), 5)
        self.assertEqual(table.pagination.peek()["page_sizes"], [10, 20, 50, 100])
        self.assertEqual(get_table_static_defaults()["pagination"]["page_size"], 5)

    async def test_unknown_default_option(self):
        with self.assertRaises(TypeError):
            set_table_static_defaults({"sort": "id"})


class TestRequestTable(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self):
        reset_table_request_defaults()

    def fetcher(self, total=42):
        calls = []

        async def fetch(params):
            calls.append(params)
            return {"data": [{"page": params.get("page_index")}], "total": total}

        fetch.calls = calls
        return fetch

    async def test_auto_fetch_with_page_keys(self):
        fetch = self.fetcher()
        table = use_table_request(fetch, {"q": "ada"})

        await wait_for(lambda: not table.loading.peek() and table.total.peek() == 42)

        self.assertEqual(fetch.calls, [{"q": "ada", "page_index": 1, "page_size": 10}])
        self.assertEqual(table.data.peek(), [{"page": 1}])
        self.assertEqual(table.pagination.peek()["total"], 42)

    async def test_change_page_refetches(self):
        fetch = self.fetcher()
        table = use_table_request(fetch, auto_fetch=False)

        await table.change_page(3)

        self.assertEqual(fetch.calls[-1]["page_index"], 3)
        self.assertEqual(table.data.peek(), [{"page": 3}])

    async def test_param_change_resets_page(self):
        fetch = self.fetcher()
        table = use_table_request(fetch, {"q": "a"}, auto_fetch=False)
        await table.change_page(2)

        table.update_params({"q": "b"})
        await wait_for(lambda: len(fetch.calls) == 2 and not table.loading.peek())

        self.assertEqual(fetch.calls[-1], {"q": "b", "page_index": 1, "page_size": 10})
        self.assertEqual(table.current_page, 1)

    async def test_param_change_without_auto_fetch(self):
        fetch = self.fetcher()
        table = use_table_request(fetch, {"q": "a"}, auto_fetch=False, auto_fetch_on_params_change=False)

        table.update_params({"q": "b"})
        await flush()

        self.assertEqual(fetch.calls, [])

    async def test_custom_keys(self):
        async def fetch(params):
            self.assertEqual(params, {"pageNum": 1, "pageSize": 20})
            return {"result": {"items": [1, 2], "count": 2, "page": 4}}

        table = use_table_request(
            fetch,
            auto_fetch=False,
            pagination={"page_size": 20},
            request_key_config={"page_index_key": "pageNum", "page_size_key": "pageSize"},
            response_key_config={"data_key": "result.items", "total_key": "result.count", "page_index_key": "result.page"},
        )
        await table.refresh()

        self.assertEqual(table.data.peek(), [1, 2])
        self.assertEqual(table.total.peek(), 2)
        self.assertEqual(table.current_page, 4)

    async def test_pagination_disabled_sends_no_page_keys(self):
        fetch = self.fetcher()
        table = use_table_request(fetch, {"q": "a"}, auto_fetch=False, pagination=False)

        await table.refresh()

        self.assertEqual(fetch.calls, [{"q": "a"}])

    async def test_before_and_after_fetch(self):
        fetch = self.fetcher()
        table = use_table_request(
            fetch,
            auto_fetch=False,
            before_fetch=lambda params: {**params, "page_index": params["page_index"] - 1},
            after_fetch=lambda rows: [{**row, "seen": True} for row in rows],
        )

        await table.refresh()

        self.assertEqual(fetch.calls[0]["page_index"], 0)
        self.assertEqual(table.data.peek(), [{"page": 0, "seen": True}])

    async def test_execution_result_is_unwrapped(self):
        table = use_table_request(lambda params: ExecutionResult({"data": ["x"], "total": 1}, None), auto_fetch=False)

        await table.refresh()

        self.assertEqual(table.data.peek(), ["x"])
        self.assertEqual(table.total.peek(), 1)

    async def test_errors_clear_rows_and_call_on_error(self):
        failure = ValueError("backend down")
        on_error = MagicMock()
        table = use_table_request(lambda params: ExecutionResult(None, failure), auto_fetch=False, on_error=on_error)
        table.data.set(["stale"])

        with self.assertLogs("metafetch.table", level="ERROR"):
            await table.refresh()

        on_error.assert_called_once_with(failure)
        self.assertEqual(table.data.peek(), [])
        self.assertEqual(table.total.peek(), 0)
        self.assertFalse(table.loading.peek())

    async def test_scope_defers_first_fetch(self):
        fetch = self.fetcher()
        with create_scope() as scope:
            use_table_request(fetch)

        await flush()
        self.assertEqual(fetch.calls, [])

        scope.mount()
        await wait_for(lambda: len(fetch.calls) == 1)

    async def test_defaults(self):
        set_table_request_defaults({
            "auto_fetch": False,
            "response_key_config": {"data_key": "rows"},
        })

        table = use_table_request(lambda params: {"rows": [1], "total": 1})
        await flush()
        self.assertEqual(table.data.peek(), [])

        await table.refresh()
        self.assertEqual(table.data.peek(), [1])
        self.assertEqual(get_table_request_defaults()["response_key_config"], {"data_key": "rows"})

    async def test_unknown_option(self):
        with self.assertRaises(TypeError):
            use_table_request(self.fetcher(), page=1)


if __name__ == '__main__':
    unittest.main()
