"""Lifecycle observer callbacks shared by TaskScheduler and RequestQueue."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Observable:
    """Mixin providing decorator-registered lifecycle callbacks.

    Callbacks observe work; they cannot change its outcome. An exception
    raised by a callback is logged and dispatch carries on.
    """

    def __init__(self) -> None:
        self._on_start_callback: Callable | None = None
        self._on_complete_callback: Callable | None = None
        self._on_failure_callback: Callable | None = None

    def on_start(self, func):
        """
        Decorator to register start callback.

        Called with (item) each time an item begins executing.

        Example:
            @scheduler.on_start
            def on_start(item):
                logging.info(f"Starting {item.id} (attempt {item.attempt})")
        """
        self._on_start_callback = func
        return func

    def on_complete(self, func):
        """
        Decorator to register completion callback.

        Called after success with (item, result, duration).
        """
        self._on_complete_callback = func
        return func

    def on_failure(self, func):
        """
        Decorator to register failure callback.

        Called once an item has failed for good, with (item, error).
        """
        self._on_failure_callback = func
        return func

    def _emit(self, callback: Callable | None, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Callback %s raised", getattr(callback, "__name__", callback))
