"""
Event system for package lifecycle notifications.

Lifecycle events are a tagged union of action, package kind, descriptor and
optional error. Event names such as ``theme-installed`` or
``package-update-failed`` are only rendered when an event is dispatched, so
the rest of the code never concatenates strings to pick an event.

Example:
    from package_lifecycle.events import EventBus

    bus = EventBus()

    @bus.on("package-installed theme-installed")
    def refresh(event):
        print(f"{event.pack.name} installed")
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from package_lifecycle.logging import get_logger
from package_lifecycle.models import PackageDescriptor

logger = get_logger("events")


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class PackageAction(str, Enum):
    """Lifecycle step a package event reports."""

    INSTALLING = "installing"
    INSTALLED = "installed"
    INSTALL_FAILED = "install-failed"
    UPDATING = "updating"
    UPDATED = "updated"
    UPDATE_FAILED = "update-failed"
    UNINSTALLING = "uninstalling"
    UNINSTALLED = "uninstalled"
    UNINSTALL_FAILED = "uninstall-failed"
    UPDATE_AVAILABLE = "update-available"


class PackageKind(str, Enum):
    """Event-name prefix; themes and packages are reported separately."""

    PACKAGE = "package"
    THEME = "theme"

    @classmethod
    def of(cls, pack: PackageDescriptor) -> PackageKind:
        return cls.THEME if pack.is_theme else cls.PACKAGE


@dataclass(frozen=True)
class LifecycleEvent:
    """Emitted by install, update and uninstall operations."""

    action: PackageAction
    kind: PackageKind
    pack: PackageDescriptor
    error: Exception | None = None

    @classmethod
    def for_package(
        cls,
        action: PackageAction,
        pack: PackageDescriptor,
        error: Exception | None = None,
    ) -> LifecycleEvent:
        return cls(action=action, kind=PackageKind.of(pack), pack=pack, error=error)

    @property
    def name(self) -> str:
        return event_name(self.kind, self.action)


# Alternative-install event names
INSTALLING_ALTERNATIVE = "package-installing-alternative"
INSTALLED_ALTERNATIVE = "package-installed-alternative"
INSTALL_ALTERNATIVE_FAILED = "package-install-alternative-failed"


@dataclass(frozen=True)
class AlternativeEvent:
    """Emitted while a package is swapped for an alternative package."""

    pack: PackageDescriptor
    alternative: str
    error: Exception | None = None


def event_name(kind: PackageKind, action: PackageAction) -> str:
    """Render the subscription name for a lifecycle event."""
    return f"{kind.value}-{action.value}"


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------

# Handlers can be sync or async; return values are ignored.
EventHandler = Callable[..., Any]


@dataclass(eq=False)
class _HandlerEntry:
    """Internal: a registered handler with metadata."""

    event: str
    handler: EventHandler


class EventBus:
    """
    Publish/subscribe bus for package lifecycle events.

    Handlers run in registration order and may be sync or async. A handler
    that raises is logged and skipped; it never breaks the operation that
    emitted the event.

    Usage:
        bus = EventBus()

        unsub = bus.on("package-installing package-installed", handler)
        unsub()  # remove handler from every listed event
    """

    def __init__(self) -> None:
        self._handlers: list[_HandlerEntry] = []

    def on(
        self,
        selectors: str,
        handler: EventHandler | None = None,
    ) -> Callable[[], None] | Callable[[EventHandler], EventHandler]:
        """
        Register a handler for one or more space-separated event names.

        Can be used as a method call or as a decorator:

            # Method call: returns an unsubscribe function
            unsub = bus.on("theme-installed package-installed", my_handler)
            unsub()

            # Decorator: returns the original function
            @bus.on("package-update-available")
            def my_handler(event):
                ...
        """
        if handler is not None:
            entries = [_HandlerEntry(event=name, handler=handler) for name in selectors.split()]
            self._handlers.extend(entries)

            def unsubscribe() -> None:
                for entry in entries:
                    try:
                        self._handlers.remove(entry)
                    except ValueError:
                        pass

            return unsubscribe

        def decorator(fn: EventHandler) -> EventHandler:
            self.on(selectors, fn)
            return fn

        return decorator

    async def emit(self, event: str, data: Any = None) -> None:
        """
        Dispatch ``data`` to every handler registered for ``event``.

        Args:
            event: Event name
            data: Event object (e.g., LifecycleEvent)
        """
        relevant = [h for h in self._handlers if h.event == event]

        for entry in relevant:
            try:
                result = entry.handler(data)
                if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Event handler error (event=%s, handler=%r): %s",
                    event,
                    entry.handler,
                    e,
                )

    async def publish(self, event: LifecycleEvent) -> None:
        """Emit a lifecycle event under its rendered name."""
        await self.emit(event.name, event)
