"""
URL helpers shared by the SSO flows, the payload mapper and the Ghost client.
"""
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def set_query_params(url: str, updates: dict[str, str]) -> str:
    """
    Set query parameters on url. An existing key keeps the position of its first
    occurrence and loses any duplicates; new keys are appended in order.
    """
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    result = []
    seen = set()
    for key, value in pairs:
        if key in updates:
            if key in seen:
                continue
            seen.add(key)
            result.append((key, updates[key]))
        else:
            result.append((key, value))
    for key, value in updates.items():
        if key not in seen:
            result.append((key, value))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(result), parts.fragment))


def resolve_path(base_url: str, path: str, fragment: str = "", query: dict[str, str] | None = None) -> str:
    """
    Append path to base_url's own path (so a site under /blog/ keeps its prefix),
    replacing fragment and merging query.
    """
    parts = urlsplit(base_url)
    joined = parts.path.rstrip("/") + "/" + path.lstrip("/")
    url = urlunsplit((parts.scheme, parts.netloc, joined, parts.query, fragment))
    if query:
        url = set_query_params(url, query)
    return url


def is_absolute(url: str) -> bool:
    parts = urlsplit(url)
    return bool(parts.scheme and parts.netloc)
