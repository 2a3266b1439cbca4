import re
from typing import Any, Dict


class _Missing:
    """Marker for a value that is absent, as opposed to present and None."""

    __slots__ = ()

    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING = _Missing()


def to_value(source: Any) -> Any:
    """
    Resolve a value that may be given directly, as a Signal, or as a
    zero-argument provider.
    """
    if callable(source):
        return source()
    return source


def is_plain_mapping(value: Any) -> bool:
    return isinstance(value, dict)


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``source`` into a copy of ``target``.

    Nested dicts are merged recursively, every other value (lists, objects,
    callables) replaces the target's. Keys whose value is None are skipped so
    that an option left unset never clears a default.
    """
    result = dict(target)

    for key, source_value in source.items():
        if source_value is None:
            continue

        target_value = result.get(key)
        if is_plain_mapping(source_value) and is_plain_mapping(target_value):
            result[key] = deep_merge(target_value, source_value)
        else:
            result[key] = source_value

    return result


def _copy_option_value(value: Any) -> Any:
    if is_plain_mapping(value):
        return copy_options(value)
    if isinstance(value, list):
        return [_copy_option_value(item) for item in value]
    return value


def copy_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Copy nested option dicts and lists, sharing callables and other leaf objects."""
    return {key: _copy_option_value(value) for key, value in options.items()}


_INDEX_PATTERN = re.compile(r"\[(\d+)\]")


def get_prop_value(obj: Any, path: str, default: Any = MISSING) -> Any:
    """
    Walk ``obj`` along a dotted path such as ``data.items[0].name``.

    Mappings are indexed by key, sequences by numeric segment and anything
    else by attribute. Returns ``default`` (``MISSING`` unless given) when any
    segment cannot be resolved.
    """
    if obj is None or not path:
        return default

    keys = [key for key in _INDEX_PATTERN.sub(r".\1", path).split(".") if key]

    result = obj
    for key in keys:
        if result is None:
            return default
        if isinstance(result, dict):
            if key not in result:
                return default
            result = result[key]
        elif isinstance(result, (list, tuple)):
            if not key.isdigit() or int(key) >= len(result):
                return default
            result = result[int(key)]
        elif hasattr(result, key):
            result = getattr(result, key)
        else:
            return default

    return result
