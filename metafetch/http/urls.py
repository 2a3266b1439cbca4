from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _param_pairs(params: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """Flatten params into (key, value) pairs; None is skipped, lists repeat the key."""
    pairs = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _stringify(item)) for item in value if item is not None)
        else:
            pairs.append((key, _stringify(value)))
    return pairs


def _split_fragment(url: str) -> Tuple[str, str]:
    base, sep, fragment = url.partition("#")
    return base, sep + fragment


def build_query_string(params: Optional[Dict[str, Any]]) -> str:
    return urlencode(_param_pairs(params))


def build_url(url: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Append ``params`` to the query string of ``url``.

    Existing parameters are kept as they are. A fragment stays at the end.
    """
    query = build_query_string(params)
    if not query:
        return url

    base, fragment = _split_fragment(url)
    if "?" not in base:
        separator = "?"
    elif base.endswith(("?", "&")):
        separator = ""
    else:
        separator = "&"
    return f"{base}{separator}{query}{fragment}"


def merge_url_params(url: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Merge ``params`` into the query string of ``url``, replacing any existing
    parameter of the same name.
    """
    pairs = _param_pairs(params)
    if not pairs:
        return url

    base, fragment = _split_fragment(url)
    path, _, query = base.partition("?")
    replaced = {key for key, _ in pairs}
    kept = [(key, value) for key, value in parse_qsl(query, keep_blank_values=True) if key not in replaced]
    return f"{path}?{urlencode(kept + pairs)}{fragment}"


def strip_query(url: str) -> str:
    """Drop the query string of ``url``, keeping any fragment."""
    base, fragment = _split_fragment(url)
    return base.partition("?")[0] + fragment


def get_full_url(base_url: Optional[str], url: str) -> str:
    """Combine base URL with the provided endpoint URL"""
    if not base_url or url.startswith(("http://", "https://")):
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"
