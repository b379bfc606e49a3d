"""URL canonicalization and origin checks used for frontier dedup."""

from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(raw: str) -> str:
    """Return the canonical form of ``raw`` used as the frontier dedup key.

    - only http/https URLs are normalized; anything else (or anything that
      fails to parse) comes back trimmed but otherwise untouched
    - the fragment is dropped
    - scheme and host are lower-cased and the scheme's default port removed
    - an empty path becomes ``/``
    - query parameters are sorted by key (stable for repeated keys)

    normalize_url(normalize_url(u)) == normalize_url(u) for every input.
    """
    text = (raw or "").strip()
    try:
        parts = urlsplit(text)
        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS or not parts.hostname:
            return text
        port = parts.port
    except ValueError:
        return text

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = parts.path or "/"
    query = ""
    if parts.query:
        params = parse_qsl(parts.query, keep_blank_values=True)
        query = urlencode(sorted(params, key=lambda kv: kv[0]))

    return urlunsplit((scheme, netloc, path, query, ""))


def origin_of(url: str) -> Optional[Tuple[str, str, int]]:
    """(scheme, host, port) for an http(s) URL, or None if it has no usable origin."""
    try:
        parts = urlsplit((url or "").strip())
        scheme = parts.scheme.lower()
        host = parts.hostname
        if scheme not in _DEFAULT_PORTS or not host:
            return None
        port = parts.port or _DEFAULT_PORTS[scheme]
    except ValueError:
        return None
    return scheme, host.lower(), port


def same_origin(a: str, b: str) -> bool:
    """True when both URLs share scheme, host and effective port.

    Anything that fails to parse is treated as a different origin.
    """
    origin_a = origin_of(a)
    if origin_a is None:
        return False
    return origin_a == origin_of(b)


def site_root(url: str) -> str:
    """``scheme://host[:port]`` for a URL, used to locate robots.txt."""
    parts = urlsplit(normalize_url(url))
    return f"{parts.scheme}://{parts.netloc}"


def url_path(url: str) -> str:
    """Path component used for robots matching; never empty."""
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return "/"
