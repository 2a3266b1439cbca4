from inspect import isawaitable
from typing import Any, Dict, List, Union

from metafetch.core import batch_updates, create_signal

DEFAULT_PAGE_SIZES = [10, 20, 50, 100]


def create_pagination_state(config: Union[Dict[str, Any], bool, None] = None) -> Dict[str, Any]:
    """
    Initial pagination state. ``False`` still yields a state (page 1, size 10)
    so that callers can read it; the table just never slices.
    """
    if not isinstance(config, dict):
        config = {}
    return {
        "current_page": config.get("current_page") or 1,
        "page_size": config.get("page_size") or 10,
        "total": 0,
        "page_sizes": list(config.get("page_sizes") or DEFAULT_PAGE_SIZES),
    }


async def maybe_await(value: Any) -> Any:
    if isawaitable(value):
        return await value
    return value


class Table:
    """
    Paged listing state shared by request and static tables.

    ``data``, ``loading``, ``total`` and ``pagination`` are signals; the
    pagination signal holds a dict with ``current_page``, ``page_size``,
    ``total`` and ``page_sizes`` and is replaced, never mutated, on change.
    """

    def __init__(self, pagination: Union[Dict[str, Any], bool, None] = None):
        self.pagination_enabled = pagination is not False
        self.data, _ = create_signal([])
        self.loading, _ = create_signal(False)
        self.total, _ = create_signal(0)
        self.pagination, _ = create_signal(create_pagination_state(pagination))

    @property
    def current_page(self) -> int:
        return self.pagination.peek()["current_page"]

    @property
    def page_size(self) -> int:
        return self.pagination.peek()["page_size"]

    def _update_pagination(self, **changes) -> None:
        self.pagination.set({**self.pagination.peek(), **changes})

    def _set_result(self, rows: List[Any], total: int) -> None:
        def apply():
            self.data.set(rows)
            self.total.set(total)
            self._update_pagination(total=total)
        batch_updates(apply)

    async def refresh(self) -> None:
        raise NotImplementedError

    async def reset(self) -> None:
        self._update_pagination(current_page=1)
        await self.refresh()

    async def change_page(self, page: int) -> None:
        self._update_pagination(current_page=page)
        await self.refresh()

    async def change_page_size(self, size: int) -> None:
        self._update_pagination(page_size=size, current_page=1)
        await self.refresh()

    def __repr__(self):
        return f"{type(self).__name__}(total={self.total.peek()}, pagination={self.pagination.peek()!r})"
