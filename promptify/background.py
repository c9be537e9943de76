"""Supervised asyncio tasks.

Used for work that must finish even if whoever started it stops waiting,
e.g. an unlock request whose caller navigated away. Exceptions are logged
instead of disappearing with an unreferenced task.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

# Track tasks so they are not garbage collected before finishing.
_background_tasks: Set[asyncio.Task[Any]] = set()


def spawn(coro: Awaitable[Any], *, name: Optional[str] = None,
          on_error: Optional[Callable[[BaseException], None]] = None) -> asyncio.Task[Any]:
    """Create and supervise a background task.

    Args:
        coro: Awaitable coroutine to run in the background.
        name: Optional name for the task.
        on_error: Optional callback invoked if the task raises.
    """
    task = asyncio.ensure_future(coro)
    if name:
        task.set_name(name)
    _background_tasks.add(task)

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            logger.debug("Background task %s cancelled", name or t)
            return
        exc = t.exception()
        if exc is None:
            return
        if on_error:
            try:
                on_error(exc)
            except Exception:  # noqa: BLE001
                logger.exception("Error in on_error callback for task %s", name or t)
        logger.debug("Background task %s finished with %r", name or t, exc)

    task.add_done_callback(_finished)
    return task


__all__ = ["spawn"]
