"""
Session registry: tab id -> tab state with per-tab exclusive access.

Each tab record carries its own ``asyncio.Lock``; mutating one tab never waits
on another. Re-creating a tab swaps in a fresh record (and a fresh lock), so a
mutator that was queued on the old record sees it as gone and is skipped.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger("servo.bridge.registry")

NEW_TAB_TITLE = "New Tab"

T = TypeVar("T")


@dataclass
class TabState:
    tab_id: str
    current_url: str = ""
    title: str = NEW_TAB_TITLE
    history: list[str] = field(default_factory=list)
    cursor: int | None = None

    def snapshot(self) -> TabSnapshot:
        return TabSnapshot(
            tab_id=self.tab_id,
            current_url=self.current_url,
            title=self.title,
            history=tuple(self.history),
            cursor=self.cursor,
        )


@dataclass(slots=True, frozen=True)
class TabSnapshot:
    """Read-only copy of a tab, safe to hand out of the registry."""

    tab_id: str
    current_url: str
    title: str
    history: tuple[str, ...]
    cursor: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tabId": self.tab_id,
            "url": self.current_url,
            "title": self.title,
            "history": list(self.history),
            "cursor": self.cursor,
        }


class _TabEntry:
    __slots__ = ("state", "lock", "generation")

    def __init__(self, tab_id: str, generation: int) -> None:
        self.state = TabState(tab_id=tab_id)
        self.lock = asyncio.Lock()
        self.generation = generation


class SessionRegistry:
    """Concurrent store of tab records for the lifetime of the server."""

    def __init__(self) -> None:
        self._entries: dict[str, _TabEntry] = {}
        self._generations = itertools.count(1)

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def tab_ids(self) -> list[str]:
        return list(self._entries)

    def create(self, tab_id: str) -> None:
        """Insert a fresh tab, resetting any existing tab with the same id."""
        replaced = tab_id in self._entries
        self._entries[tab_id] = _TabEntry(tab_id, next(self._generations))
        logger.debug("tab_created tab=%s reset=%s", tab_id, replaced)

    def remove(self, tab_id: str) -> bool:
        entry = self._entries.pop(tab_id, None)
        if entry is None:
            return False
        logger.debug("tab_removed tab=%s", tab_id)
        return True

    def generation(self, tab_id: str) -> int | None:
        """Identity of the tab's current record; changes every time the tab is (re)created."""
        entry = self._entries.get(tab_id)
        return entry.generation if entry is not None else None

    async def with_tab(
        self,
        tab_id: str,
        mutator: Callable[[TabState], Any],
        default: T = None,
        *,
        generation: int | None = None,
    ) -> Any | T:
        """Run ``mutator`` with exclusive access to one tab.

        The mutator may be a plain function or return an awaitable; an awaitable
        is awaited while access is still held. Returns ``default`` without calling
        the mutator when the tab is absent, including when it was removed or
        re-created while this call waited for access. With ``generation`` set,
        only the record of that generation is accepted.
        """
        entry = self._entries.get(tab_id)
        if entry is None or (generation is not None and entry.generation != generation):
            return default
        async with entry.lock:
            if self._entries.get(tab_id) is not entry:
                return default
            result = mutator(entry.state)
            if inspect.isawaitable(result):
                result = await result
            return result

    async def snapshot(self, tab_id: str) -> TabSnapshot | None:
        return await self.with_tab(tab_id, TabState.snapshot)
