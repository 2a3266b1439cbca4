from typing import Any, Dict

from metafetch.utils.common import copy_options, deep_merge


class DefaultOptionsManager:
    """
    Process-wide default request options for one transport family.

    ``set`` deep-merges into what is there (the new values win), ``get``
    hands out a copy that can be changed freely, ``reset`` empties the store.
    The defaults are merged under a request's own options when the request
    is created; requests that already exist keep what they were built with.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._options: Dict[str, Any] = {}

    def set(self, options: Dict[str, Any]) -> None:
        self._options = deep_merge(self._options, copy_options(options or {}))

    def get(self) -> Dict[str, Any]:
        return copy_options(self._options)

    def reset(self) -> None:
        self._options = {}

    def merge(self, options: Dict[str, Any]) -> Dict[str, Any]:
        """Defaults overlaid with ``options``."""
        return deep_merge(self.get(), options or {})

    def __repr__(self):
        return f"DefaultOptionsManager({self.name!r}, {self._options!r})"


fetch_defaults = DefaultOptionsManager("fetch")
httpx_defaults = DefaultOptionsManager("httpx")


def set_default_fetch_options(options: Dict[str, Any]) -> None:
    """
    Set defaults for every request created with ``use_fetch`` and friends.

    Example:
        set_default_fetch_options({"timeout": 5000, "retry": True, "headers": {"X-Client": "metafetch"}})
    """
    fetch_defaults.set(options)


def get_default_fetch_options() -> Dict[str, Any]:
    return fetch_defaults.get()


def reset_default_fetch_options() -> None:
    fetch_defaults.reset()


def set_default_httpx_fetch_options(options: Dict[str, Any]) -> None:
    """Set defaults for every request created with ``use_httpx_fetch`` and friends."""
    httpx_defaults.set(options)


def get_default_httpx_fetch_options() -> Dict[str, Any]:
    return httpx_defaults.get()


def reset_default_httpx_fetch_options() -> None:
    httpx_defaults.reset()
