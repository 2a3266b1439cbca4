from typing import Any, Dict, Union

from metafetch.utils.common import copy_options

Pagination = Union[Dict[str, Any], bool, None]

REQUEST_TABLE_OPTIONS = (
    "auto_fetch",
    "auto_fetch_on_params_change",
    "pagination",
    "request_key_config",
    "response_key_config",
    "before_fetch",
    "after_fetch",
    "on_error",
)
STATIC_TABLE_OPTIONS = ("filter_fn", "pagination")

_STATIC_BASELINE = {
    "pagination": {
        "page_size": 10,
        "page_sizes": [10, 20, 50, 100],
        "current_page": 1,
    },
}

_request_defaults: Dict[str, Any] = {}
_static_defaults: Dict[str, Any] = copy_options(_STATIC_BASELINE)


def _check_options(options: Dict[str, Any], allowed) -> None:
    unknown = set(options) - set(allowed)
    if unknown:
        raise TypeError(f"Unknown table option(s): {', '.join(sorted(unknown))}")


def merge_pagination(default: Pagination, override: Pagination) -> Pagination:
    """False switches pagination off; otherwise the two configs merge key by key."""
    if override is False:
        return False
    if not override and not default:
        return None
    return {
        **(default if isinstance(default, dict) else {}),
        **(override if isinstance(override, dict) else {}),
    }


def _given(options: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in options.items() if value is not None}


def set_table_request_defaults(options: Dict[str, Any]) -> None:
    """Set defaults for every table created with ``use_table_request``."""
    global _request_defaults
    _check_options(options, REQUEST_TABLE_OPTIONS)
    _request_defaults = {**_request_defaults, **_given(options)}


def get_table_request_defaults() -> Dict[str, Any]:
    return copy_options(_request_defaults)


def reset_table_request_defaults() -> None:
    global _request_defaults
    _request_defaults = {}


def merge_table_request_options(options: Dict[str, Any]) -> Dict[str, Any]:
    _check_options(options, REQUEST_TABLE_OPTIONS)
    defaults = _request_defaults
    merged = {**defaults, **_given(options)}
    merged["pagination"] = merge_pagination(defaults.get("pagination"), options.get("pagination"))
    merged["request_key_config"] = {
        **(defaults.get("request_key_config") or {}),
        **(options.get("request_key_config") or {}),
    }
    merged["response_key_config"] = {
        **(defaults.get("response_key_config") or {}),
        **(options.get("response_key_config") or {}),
    }
    return merged


def set_table_static_defaults(options: Dict[str, Any]) -> None:
    """Set defaults for every table created with ``use_table_static``."""
    global _static_defaults
    _check_options(options, STATIC_TABLE_OPTIONS)
    pagination = merge_pagination(_static_defaults.get("pagination"), options.get("pagination"))
    _static_defaults = {**_static_defaults, **_given(options), "pagination": pagination}


def get_table_static_defaults() -> Dict[str, Any]:
    return copy_options(_static_defaults)


def reset_table_static_defaults() -> None:
    global _static_defaults
    _static_defaults = copy_options(_STATIC_BASELINE)


def merge_table_static_options(options: Dict[str, Any]) -> Dict[str, Any]:
    _check_options(options, STATIC_TABLE_OPTIONS)
    pagination = merge_pagination(_static_defaults.get("pagination"), options.get("pagination"))
    return {**_static_defaults, **_given(options), "pagination": pagination}
