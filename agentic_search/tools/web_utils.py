from __future__ import annotations

from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except (TypeError, ValueError, AttributeError):
        return False


def extract_domain(url: str) -> str:
    """Hostname for display, without a leading ``www.``; the input itself if unparseable."""
    try:
        host = urlparse(url).hostname
    except (TypeError, ValueError, AttributeError):
        return url
    if not host:
        return url
    return host[4:] if host.startswith("www.") else host
