import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

from metafetch.core import create_effect, untrack
from metafetch.hooks import watch
from metafetch.utils.common import to_value
from .defaults import merge_table_static_options
from .table import Table


class StaticTable(Table):
    """
    A table over rows already in memory.

    ``source`` may be a list, a Signal or a provider function; filtering and
    page slicing are recomputed whenever it or the pagination changes.
    """

    def __init__(self, source: Any, filter_fn: Optional[Callable[[Any], bool]] = None,
                 pagination: Union[Dict[str, Any], bool, None] = None):
        options = merge_table_static_options({"filter_fn": filter_fn, "pagination": pagination})
        super().__init__(options["pagination"])
        self.source = source
        self.filter_fn = options.get("filter_fn")

        self._effect = create_effect(self._sync)
        self._stop_source_watch = watch(lambda: to_value(self.source), self._on_source_change)

    def filtered_rows(self) -> List[Any]:
        rows = list(to_value(self.source) or [])
        if self.filter_fn is None:
            return rows
        return [row for row in rows if self.filter_fn(row)]

    def page_rows(self) -> List[Any]:
        rows = self.filtered_rows()
        total = len(rows)
        self.total.set(total)
        self._update_pagination(total=total)

        if not self.pagination_enabled:
            return rows

        pagination = self.pagination()
        start = (pagination["current_page"] - 1) * pagination["page_size"]
        return rows[start:start + pagination["page_size"]]

    def _sync(self) -> None:
        self.data.set(self.page_rows())

    def _on_source_change(self, rows, previous) -> None:
        page_size = self.page_size
        max_page = -(-len(self.filtered_rows()) // page_size) if page_size else 0
        if max_page > 0 and self.current_page > max_page:
            self._update_pagination(current_page=max_page)

    async def refresh(self) -> None:
        self.loading.set(True)
        await asyncio.sleep(0)
        self.data.set(untrack(self.page_rows))
        self.loading.set(False)

    def dispose(self) -> None:
        self._effect.dispose()
        self._stop_source_watch()


def use_table_static(data: Any, filter_fn: Optional[Callable[[Any], bool]] = None,
                     pagination: Union[Dict[str, Any], bool, None] = None) -> StaticTable:
    """
    Paged, filtered view over in-memory rows. ``pagination=False`` returns
    every (filtered) row unsliced.
    """
    return StaticTable(data, filter_fn, pagination)
