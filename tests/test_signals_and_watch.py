import asyncio
import unittest
from unittest.mock import MagicMock

from metafetch.core import (
    batch_updates,
    create_effect,
    create_signal,
    set_global_error_handler,
    untrack,
)
from metafetch.hooks import create_scope, get_current_scope, on_mount, watch


async def flush():
    for _ in range(5):
        await asyncio.sleep(0)


class TestSignals(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self):
        set_global_error_handler(None)

    async def test_effect_reruns_after_change(self):
        count, set_count = create_signal(0)
        seen = []
        create_effect(lambda: seen.append(count()))

        set_count(1)
        set_count(2)
        await flush()

        self.assertEqual(seen, [0, 2])

    async def test_equal_value_does_not_notify(self):
        items, set_items = create_signal({"a": 1})
        seen = []
        create_effect(lambda: seen.append(items()))

        set_items({"a": 1})
        await flush()

        self.assertEqual(len(seen), 1)

    async def test_batch_updates_apply_together(self):
        first, set_first = create_signal("a")
        second, set_second = create_signal("b")
        seen = []
        create_effect(lambda: seen.append(first() + second()))

        def update():
            set_first("x")
            set_second("y")
            self.assertEqual(first.peek(), "a")

        batch_updates(update)
        await flush()

        self.assertEqual(seen, ["ab", "xy"])

    async def test_untrack(self):
        tracked, set_tracked = create_signal(1)
        ignored, set_ignored = create_signal(1)
        seen = []
        create_effect(lambda: seen.append(tracked() + untrack(ignored)))

        set_ignored(5)
        await flush()
        self.assertEqual(seen, [2])

        set_tracked(2)
        await flush()
        self.assertEqual(seen, [2, 7])

    async def test_effect_errors_go_to_global_handler(self):
        handler = MagicMock()
        set_global_error_handler(handler)
        value, set_value = create_signal(0)

        def effect():
            if value() > 0:
                raise ValueError("boom")

        create_effect(effect)
        set_value(1)
        await flush()

        handler.assert_called_once()
        error, description = handler.call_args[0]
        self.assertIsInstance(error, ValueError)
        self.assertEqual(description, "Error running effect")


class TestWatch(unittest.IsolatedAsyncioTestCase):
    async def test_callback_gets_new_and_old_value(self):
        value, set_value = create_signal("a")
        calls = []
        watch(value, lambda new, old: calls.append((new, old)))

        set_value("b")
        await flush()

        self.assertEqual(calls, [("b", "a")])

    async def test_immediate(self):
        value, _ = create_signal(3)
        calls = []

        watch(value, lambda new, old: calls.append((new, old)), immediate=True)

        self.assertEqual(calls, [(3, None)])

    async def test_function_source_and_stop(self):
        first, set_first = create_signal(1)
        second, set_second = create_signal(2)
        calls = []
        stop = watch(lambda: first() + second(), lambda new, old: calls.append(new))

        set_second(5)
        await flush()
        stop()
        set_first(10)
        await flush()

        self.assertEqual(calls, [6])

    async def test_async_callback_is_scheduled(self):
        value, set_value = create_signal(0)
        done = asyncio.Event()

        async def callback(new, old):
            done.set()

        watch(value, callback)
        set_value(1)

        await asyncio.wait_for(done.wait(), 1)


class TestWithoutEventLoop(unittest.TestCase):
    def test_effects_run_synchronously(self):
        value, set_value = create_signal(1)
        seen = []
        create_effect(lambda: seen.append(value()))

        set_value(2)

        self.assertEqual(seen, [1, 2])


class TestScope(unittest.TestCase):
    def test_mount_and_unmount(self):
        events = []

        with create_scope() as scope:
            self.assertIs(get_current_scope(), scope)
            self.assertTrue(on_mount(lambda: events.append("mounted")))
            scope.on_unmount(lambda: events.append("unmounted"))
        self.assertIsNone(get_current_scope())

        scope.mount()
        scope.mount()
        scope.unmount()

        self.assertEqual(events, ["mounted", "unmounted"])

    def test_on_mount_after_mount_runs_at_once(self):
        scope = create_scope()
        scope.mount()
        callback = MagicMock()

        scope.on_mount(callback)

        callback.assert_called_once_with()

    def test_on_mount_without_scope(self):
        self.assertFalse(on_mount(lambda: None))


if __name__ == '__main__':
    unittest.main()
