import asyncio
from typing import Callable, Any, Optional, Tuple, Dict

from metafetch.core import report_error


class AsyncTask:
    """
    Helpers for starting coroutines from synchronous callbacks (signal
    watchers, environment listeners, timers) on the running event loop.
    """

    @staticmethod
    def run(
            coroutine_func: Callable,
            args: Tuple = (),
            kwargs: Dict = None,
            on_success: Optional[Callable] = None,
            on_error: Optional[Callable] = None,
    ) -> Optional[asyncio.Task]:
        """
        Run an asynchronous function as a task with callbacks for success and error.

        Args:
            coroutine_func: The async function to run
            args: Positional arguments to pass to the function
            kwargs: Keyword arguments to pass to the function
            on_success: Callback function that receives the result when successful
            on_error: Callback function that receives the exception when failed;
                      defaults to the global error handler

        Returns:
            The created asyncio.Task, or None when no event loop is running
        """
        if kwargs is None:
            kwargs = {}

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None

        async def _wrapped_coroutine():
            try:
                result = await coroutine_func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if on_error is not None:
                    on_error(e)
                else:
                    report_error(e, f"Error in background task {getattr(coroutine_func, '__name__', coroutine_func)}")
                return None

            if on_success is not None:
                on_success(result)
            return result

        return loop.create_task(_wrapped_coroutine())

    @staticmethod
    def call_later(
            delay_ms: float,
            coroutine_func: Callable,
            args: Tuple = (),
            kwargs: Dict = None,
    ) -> Optional[asyncio.TimerHandle]:
        """
        Start ``coroutine_func`` as a task after ``delay_ms`` milliseconds.

        Returns the timer handle so the caller can cancel it before it fires,
        or None when no event loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.call_later(delay_ms / 1000, AsyncTask.run, coroutine_func, args, kwargs)

    @staticmethod
    def cancel_task(task: Any) -> bool:
        """
        Cancel a pending task or timer handle.

        Returns:
            True if something was pending and is now cancelled, False otherwise
        """
        if task is None:
            return False
        if isinstance(task, asyncio.TimerHandle):
            if task.cancelled():
                return False
            task.cancel()
            return True
        if task.done():
            return False
        task.cancel()
        return True


run_async = AsyncTask.run
run_later = AsyncTask.call_later
cancel_async = AsyncTask.cancel_task
