"""URL redaction for log lines.

Frontends navigate to arbitrary URLs, some of which carry credentials in the
query string, the fragment, or the userinfo part. Log lines only ever carry
scheme, host and path.
"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit


def redact_url_brief(url: str) -> str:
    """Low-noise form: scheme, host and path only."""
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc.rsplit("@", 1)[1] if "@" in parts.netloc else parts.netloc
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))
