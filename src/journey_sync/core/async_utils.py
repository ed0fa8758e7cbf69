"""Async utilities for bridging blocking HTTP calls to the event loop."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by ``WorkflowAPI`` to await the blocking ``requests`` calls of
    ``WorkflowClient``.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = WorkflowClient(config)
        workflow = await run_sync(client.get_workflow, remote_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
