"""
Command processor: turns one command into tab mutations plus an ordered event list.

Navigation policy when the resolver is slow:
- Navigate resolves the title first, then appends to history, moves the cursor
  and sets the title in a single registry mutation. Concurrent Navigates on one
  tab all land, in the order their mutations acquire the tab.
- Refresh reads the current URL, resolves it, then re-acquires the tab. If the
  URL changed in between (another command navigated the tab), the refresh is
  superseded and emits nothing.
- A tab shut down (or shut down and re-initialized) while its resolution is in
  flight makes the command a no-op; it never lands on the fresh record.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .protocol import (
    COMMAND_TYPES,
    Back,
    Command,
    Event,
    Forward,
    Initialize,
    LoadComplete,
    LoadStart,
    Navigate,
    ProcessCrash,
    Refresh,
    Shutdown,
    TitleChange,
    UrlChange,
)
from .redaction import redact_url_brief
from .registry import NEW_TAB_TITLE, SessionRegistry, TabState
from .resolver import HostTitleResolver, PageResolutionError, PageResolver

logger = logging.getLogger("servo.bridge.processor")

HandlerFunc = Callable[[Any], Awaitable[list[Event]]]


def _load_sequence(tab_id: str, url: str, title: str) -> list[Event]:
    # Frontend relies on LoadStart first and LoadComplete last.
    return [
        LoadStart(tab_id=tab_id, url=url),
        TitleChange(tab_id=tab_id, title=title),
        UrlChange(tab_id=tab_id, url=url),
        LoadComplete(tab_id=tab_id, url=url),
    ]


def apply_navigation(tab: TabState, url: str, title: str) -> list[Event]:
    if tab.cursor is not None and tab.cursor < len(tab.history) - 1:
        del tab.history[tab.cursor + 1 :]
    tab.history.append(url)
    tab.cursor = len(tab.history) - 1
    tab.current_url = url
    tab.title = title
    return _load_sequence(tab.tab_id, url, title)


def apply_reload(tab: TabState, url: str, title: str) -> list[Event]:
    if not tab.current_url or tab.current_url != url:
        return []
    tab.title = title
    return _load_sequence(tab.tab_id, url, title)


def apply_step(tab: TabState, delta: int) -> list[Event]:
    """Move the cursor by ``delta``; zero events at either end of history."""
    if tab.cursor is None:
        return []
    target = tab.cursor + delta
    if target < 0 or target >= len(tab.history):
        return []
    tab.cursor = target
    url = tab.history[target]
    tab.current_url = url
    return [
        UrlChange(tab_id=tab.tab_id, url=url),
        LoadStart(tab_id=tab.tab_id, url=url),
        LoadComplete(tab_id=tab.tab_id, url=url),
    ]


class CommandProcessor:
    """Applies commands to the shared registry.

    Args:
        registry: Tab store shared by every connection.
        resolver: Page-resolution collaborator (defaults to host-derived titles).
        resolve_timeout: Seconds to wait for the resolver; ``<= 0`` waits forever.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        resolver: PageResolver | None = None,
        *,
        resolve_timeout: float = 10.0,
    ) -> None:
        self.registry = registry
        self.resolver: PageResolver = resolver if resolver is not None else HostTitleResolver()
        self.resolve_timeout = resolve_timeout

        self._handlers: dict[type, HandlerFunc] = {
            Initialize: self._initialize,
            Navigate: self._navigate,
            Back: self._back,
            Forward: self._forward,
            Refresh: self._refresh,
            Shutdown: self._shutdown,
        }
        missing = set(COMMAND_TYPES.values()) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for commands: {sorted(c.__name__ for c in missing)}")

    async def handle(self, command: Command) -> list[Event]:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command: {command!r}")
        return await handler(command)

    def crash(self, tab_id: str, process_id: str) -> list[Event]:
        """Crash report from the rendering collaborator, forwarded as-is."""
        logger.warning("process_crash tab=%s process=%s", tab_id, process_id)
        return [ProcessCrash(tab_id=tab_id, process_id=process_id)]

    # ─────────────────────────────────────────────────────────────────────────
    # Handlers
    # ─────────────────────────────────────────────────────────────────────────

    async def _initialize(self, cmd: Initialize) -> list[Event]:
        self.registry.create(cmd.tab_id)
        logger.info("tab_initialized tab=%s", cmd.tab_id)
        return []

    async def _navigate(self, cmd: Navigate) -> list[Event]:
        generation = self.registry.generation(cmd.tab_id)
        if generation is None:
            return []
        logger.info("navigate tab=%s url=%s", cmd.tab_id, redact_url_brief(cmd.url))
        title = await self._resolve_title(cmd.url)
        events = await self.registry.with_tab(
            cmd.tab_id, lambda tab: apply_navigation(tab, cmd.url, title), default=[], generation=generation
        )
        if not events:
            logger.info("navigate_dropped tab=%s", cmd.tab_id)
        return events

    async def _back(self, cmd: Back) -> list[Event]:
        return await self.registry.with_tab(cmd.tab_id, lambda tab: apply_step(tab, -1), default=[])

    async def _forward(self, cmd: Forward) -> list[Event]:
        return await self.registry.with_tab(cmd.tab_id, lambda tab: apply_step(tab, 1), default=[])

    async def _refresh(self, cmd: Refresh) -> list[Event]:
        generation = self.registry.generation(cmd.tab_id)
        if generation is None:
            return []
        url = await self.registry.with_tab(cmd.tab_id, lambda tab: tab.current_url, default="", generation=generation)
        if not url:
            return []
        logger.info("refresh tab=%s url=%s", cmd.tab_id, redact_url_brief(url))
        title = await self._resolve_title(url)
        events = await self.registry.with_tab(
            cmd.tab_id, lambda tab: apply_reload(tab, url, title), default=[], generation=generation
        )
        if not events:
            logger.info("refresh_superseded tab=%s", cmd.tab_id)
        return events

    async def _shutdown(self, cmd: Shutdown) -> list[Event]:
        if self.registry.remove(cmd.tab_id):
            logger.info("tab_shutdown tab=%s", cmd.tab_id)
        return []

    # ─────────────────────────────────────────────────────────────────────────
    # Title resolution
    # ─────────────────────────────────────────────────────────────────────────

    async def _resolve_title(self, url: str) -> str:
        try:
            if self.resolve_timeout and self.resolve_timeout > 0:
                info = await asyncio.wait_for(self.resolver.resolve(url), timeout=self.resolve_timeout)
            else:
                info = await self.resolver.resolve(url)
        except asyncio.TimeoutError:
            logger.warning("resolve_timeout url=%s timeout=%.2fs", redact_url_brief(url), self.resolve_timeout)
            return NEW_TAB_TITLE
        except PageResolutionError as exc:
            logger.info("resolve_failed url=%s reason=%s", redact_url_brief(url), exc)
            return NEW_TAB_TITLE
        except Exception:
            logger.exception("resolve_crashed url=%s", redact_url_brief(url))
            return NEW_TAB_TITLE

        title = getattr(info, "title", None)
        if not isinstance(title, str) or not title:
            return NEW_TAB_TITLE
        return title
