"""Shared plumbing for admitting work items and settling their futures."""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from typing import Any, Callable

from workcue.errors import ValidationError
from workcue.models import WorkItem, WorkState


def new_work_id() -> str:
    return uuid.uuid4().hex[:12]


def create_item(handler: Any, data: Any, *, max_attempts: int = 1) -> WorkItem:
    """Create a QUEUED work item bound to a fresh future on the running loop.

    Raises RuntimeError if no event loop is running.
    """
    loop = asyncio.get_running_loop()
    return WorkItem(
        id=new_work_id(),
        handler=handler,
        data=data,
        future=loop.create_future(),
        max_attempts=max_attempts,
        created_at=time.time(),
    )


def validate(item: WorkItem) -> ValidationError | None:
    """Return a ValidationError if ``item`` cannot be executed, else None."""
    if item.handler is None:
        return ValidationError(f"Work {item.id}: handler is missing")
    if not callable(item.handler):
        return ValidationError(
            f"Work {item.id}: handler must be callable, got {type(item.handler).__name__}"
        )
    return None


async def invoke(handler: Callable[[Any], Any], data: Any) -> Any:
    """Call a handler (sync or async) with ``data`` and return its result."""
    if inspect.iscoroutinefunction(handler):
        return await handler(data)
    result = handler(data)
    # Plain callables may still hand back a coroutine or future
    if inspect.isawaitable(result):
        result = await result
    return result


def succeed(item: WorkItem, result: Any) -> None:
    """Move ``item`` to SUCCEEDED and resolve its future."""
    item.transition(WorkState.SUCCEEDED)
    item.result = result
    item.completed_at = time.time()
    if item.future is not None and not item.future.done():
        item.future.set_result(result)


def fail(item: WorkItem, error: BaseException) -> None:
    """Move ``item`` to FAILED and reject its future with ``error``."""
    item.transition(WorkState.FAILED)
    item.error = error
    item.completed_at = time.time()
    if item.future is not None and not item.future.done():
        item.future.set_exception(error)


def abandon(item: WorkItem) -> None:
    """Cancel the future of an item whose execution was cancelled from outside."""
    item.transition(WorkState.FAILED)
    item.completed_at = time.time()
    if item.future is not None and not item.future.done():
        item.future.cancel()
