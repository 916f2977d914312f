"""
Page-resolution collaborator.

The bridge never loads pages itself. A resolver is asked for the title of a
URL once per Navigate/Refresh; a real rendering backend can be plugged in by
implementing ``PageResolver`` and passing it to ``CommandProcessor``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

from .registry import NEW_TAB_TITLE


class PageResolutionError(Exception):
    """The collaborator could not resolve a page (load failed, backend gone, ...)."""


@dataclass(slots=True, frozen=True)
class PageInfo:
    title: str


class PageResolver(Protocol):
    async def resolve(self, url: str) -> PageInfo: ...


def title_from_url(url: str) -> str:
    """Host component of ``url``, or the new-tab title when it has none.

    IPv6 hosts keep their brackets, internationalized names come back in their
    ASCII (punycode) form, and a URL with an invalid port has no usable host.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
        _ = parts.port  # Raises ValueError for a malformed port.
    except ValueError:
        return NEW_TAB_TITLE
    if not host:
        return NEW_TAB_TITLE
    if ":" in host:
        return f"[{host}]"
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        return NEW_TAB_TITLE


class HostTitleResolver:
    """Default resolver: titles a page after its host, without fetching it."""

    async def resolve(self, url: str) -> PageInfo:
        return PageInfo(title=title_from_url(url))
