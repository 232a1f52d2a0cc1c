"""Running blocking restic operations from asyncio code."""

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from restic_browser.restic.process import CancellationToken

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def run_cancellable(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run a blocking operation in a worker thread, cancellable from asyncio.

    ``func`` must accept a ``cancel_token`` keyword argument (all Repository
    operations do). When the awaiting task is cancelled the token fires,
    which terminates the restic child process instead of leaving it running
    in the abandoned thread.

    Args:
        func: Blocking callable, e.g. ``repo.list_files``.
        *args: Positional arguments for func.
        **kwargs: Keyword arguments for func (except cancel_token).

    Returns:
        Result of func.

    Raises:
        asyncio.CancelledError: If the awaiting task was cancelled.

    Example:
        >>> files = await run_cancellable(repo.list_files, snapshot, "/home")

    """
    token = CancellationToken()
    call = functools.partial(func, *args, cancel_token=token, **kwargs)
    try:
        return await asyncio.to_thread(call)
    except asyncio.CancelledError:
        logger.debug("Task cancelled, terminating %s", getattr(func, "__name__", func))
        token.cancel()
        raise
