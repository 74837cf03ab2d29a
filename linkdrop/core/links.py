"""
Link parsing and normalization.

Webhook senders are heterogeneous: some send ``?link=a.com,b.com``,
some ``?links[]=...`` and some a JSON body. Everything funnels through
``extract_links`` which returns canonical, de-duplicated http(s) URLs in
first-seen order. Invalid entries are dropped silently.
"""

import ipaddress
from typing import Any, Iterable, Optional
from urllib.parse import quote, urlsplit, urlunsplit

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

# Characters left untouched when percent-encoding paths and queries
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = _PATH_SAFE + "?"

# Never valid in a host name
_FORBIDDEN_HOST_CHARS = set("<>^|%\"{}\\")


def _dedupe(urls: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(urls))


def _canonical_host(host: str) -> Optional[str]:
    """
    Canonical form of a URL host, or None if browsers would reject it.

    IPv6 literals are bracketed, numeric hosts must be valid IPv4
    addresses and internationalized names are converted to punycode.
    """
    if ":" in host:
        try:
            return f"[{ipaddress.IPv6Address(host).compressed}]"
        except ValueError:
            return None

    if any(c in _FORBIDDEN_HOST_CHARS or c.isspace() for c in host):
        return None

    last_label = host.rstrip(".").rpartition(".")[2]
    if last_label.isdigit():
        try:
            return str(ipaddress.IPv4Address(host))
        except ValueError:
            return None

    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        return None


def _split_before_query(url: str) -> tuple[str, str]:
    cut = min((i for i in (url.find("?"), url.find("#")) if i != -1), default=len(url))
    return url[:cut], url[cut:]


def normalize_url(raw: str) -> Optional[str]:
    """
    Normalize a single URL string.

    - Trims whitespace
    - Adds https:// if no scheme is present
    - Accepts only http and https URLs with a host

    Args:
        raw: User-supplied URL, possibly without scheme

    Returns:
        The canonical URL, or None if the input is not a usable link
    """
    trimmed = raw.strip()
    if not trimmed:
        return None

    # Browsers read backslashes before the query as path separators
    head, tail = _split_before_query(trimmed)
    trimmed = head.replace("\\", "/") + tail

    if "://" not in trimmed:
        trimmed = "https://" + trimmed

    try:
        parts = urlsplit(trimmed)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return None

    if not parts.hostname or any(c.isspace() for c in parts.netloc):
        return None
    host = _canonical_host(parts.hostname)
    if host is None:
        return None

    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    netloc = parts.netloc.rpartition("@")
    userinfo = netloc[0] + "@" if netloc[1] else ""

    path = quote(parts.path, safe=_PATH_SAFE) or "/"
    query = quote(parts.query, safe=_QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_QUERY_SAFE)

    return urlunsplit((scheme, userinfo + host, path, query, fragment))


def parse_links(value: Any) -> list[str]:
    """
    Parse links from a single request value.

    Supports a single string, a comma-separated string, or a list of
    strings. Anything else yields no links.
    """
    if isinstance(value, str):
        candidates = value.split(",")
    elif isinstance(value, (list, tuple)):
        candidates = [item for item in value if isinstance(item, str)]
    else:
        return []

    normalized = (normalize_url(candidate) for candidate in candidates)
    return _dedupe(url for url in normalized if url)


def flatten_query(pairs: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Collapse query string pairs into a dictionary.

    ``key[]`` entries are collected into a list under ``key``; repeated
    plain keys also become a list; a single plain key stays a string.
    """
    query: dict[str, Any] = {}
    for key, value in pairs:
        if key.endswith("[]"):
            base_key = key[:-2]
            existing = query.get(base_key)
            if existing is None:
                query[base_key] = [value]
            elif isinstance(existing, list):
                existing.append(value)
            else:
                query[base_key] = [existing, value]
        elif key in query:
            existing = query[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                query[key] = [existing, value]
        else:
            query[key] = value
    return query


def extract_links(
    query: dict[str, Any],
    body: Optional[dict[str, Any]] = None
) -> list[str]:
    """
    Extract links from a request's query parameters and JSON body.

    Sources are merged in this order: query ``link``, query ``links``,
    body ``link``, body ``links``. The merged list is de-duplicated.

    Args:
        query: Flattened query parameters (see ``flatten_query``)
        body: Parsed JSON object body, if any

    Returns:
        Normalized, de-duplicated URLs in first-seen order
    """
    collected: list[str] = []

    query_link = query.get("link") or query.get("link[]")
    query_links = query.get("links") or query.get("links[]")
    if query_link:
        collected.extend(parse_links(query_link))
    if query_links:
        collected.extend(parse_links(query_links))

    if isinstance(body, dict):
        if body.get("link"):
            collected.extend(parse_links(body["link"]))
        if body.get("links"):
            collected.extend(parse_links(body["links"]))

    return _dedupe(collected)
