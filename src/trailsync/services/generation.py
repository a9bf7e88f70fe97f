"""
Generation status subscription.

Polls the remote for the status of an in-progress trail generation and
hands every observed status to a callback until generation reaches 100%
or the subscription is cancelled.

Usage:
    subscription = subscribe_to_generation_status(client, trail_id, on_update)
    ...
    subscription.cancel()
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from trailsync.errors import NotFoundError, TrailServiceError
from trailsync.models import TrailGenerationStatus
from trailsync.settings import get_settings

logger = logging.getLogger(__name__)

StatusCallback = Callable[[TrailGenerationStatus], Awaitable[None] | None]


class StatusSource(Protocol):
    """Anything that can report a trail's generation status (TrailClient does)."""

    async def get_generation_status(self, trail_id: str) -> TrailGenerationStatus: ...


class GenerationStatusSubscription:
    """
    Cancellable repeating status check for one trail.

    - The first check runs as soon as the event loop gets control, then one
      check per ``interval`` seconds.
    - Every received status reaches ``on_update`` in order, duplicates included.
    - A status at 100% is delivered and then polling stops on its own.
    - A status carrying ``error_message`` is delivered and polling continues.
    - Network and server failures are logged and retried on the next tick.
    - After ``cancel()`` no callback runs, even for a response already in flight.
    """

    def __init__(
        self,
        source: StatusSource,
        trail_id: str,
        on_update: StatusCallback,
        *,
        interval: float = 3.0,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.trail_id = trail_id
        self.interval = interval
        self._source = source
        self._on_update = on_update
        self._cancelled = False
        self._completed = False
        self._task: asyncio.Task | None = None

    def start(self) -> "GenerationStatusSubscription":
        """Schedule the polling loop on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Subscription for trail {self.trail_id} already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"generation-status:{self.trail_id}"
        )
        self._task.add_done_callback(self._log_failure)
        return self

    def add_done_callback(self, callback: Callable[["GenerationStatusSubscription"], None]) -> None:
        """
        Call ``callback(subscription)`` once polling has stopped for any reason
        (completion, cancellation, a vanished trail or a failing ``on_update``).
        """
        if self._task is None:
            raise RuntimeError(f"Subscription for trail {self.trail_id} not started")
        self._task.add_done_callback(lambda _: callback(self))

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def completed(self) -> bool:
        """True once a 100% status was delivered."""
        return self._completed

    def cancel(self) -> None:
        """Stop polling. Safe to call repeatedly and after natural termination."""
        if self._cancelled:
            return
        self._cancelled = True

        task = self._task
        if task is None or task.done():
            return

        # Cancelling from inside our own callback: the flag alone stops the loop
        if task is not _current_task():
            task.cancel()
        logger.debug("Cancelled generation status subscription for trail %s", self.trail_id)

    async def wait(self) -> None:
        """Wait until polling has stopped (completion, cancellation or failure)."""
        if self._task is not None:
            await asyncio.wait({self._task})

    # ========================================================================
    # Polling loop
    # ========================================================================

    async def _run(self) -> None:
        logger.info("Watching generation of trail %s", self.trail_id)
        while not self._cancelled:
            try:
                status = await self._source.get_generation_status(self.trail_id)
            except NotFoundError as e:
                logger.warning("Trail %s disappeared while generating: %s", self.trail_id, e)
                return
            except TrailServiceError as e:
                logger.debug("Status check for trail %s failed, retrying: %s", self.trail_id, e)
                status = None

            # A response that lands after cancel() is discarded
            if self._cancelled:
                return

            if status is not None:
                result = self._on_update(status)
                if inspect.isawaitable(result):
                    await result

                if status.is_complete:
                    self._completed = True
                    logger.info("Generation of trail %s complete", self.trail_id)
                    return

            if self._cancelled:
                return
            await asyncio.sleep(self.interval)

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Generation status subscription for trail %s failed",
                self.trail_id,
                exc_info=error,
            )


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def subscribe_to_generation_status(
    source: StatusSource,
    trail_id: str,
    on_update: StatusCallback,
    *,
    interval: float | None = None,
) -> GenerationStatusSubscription:
    """
    Start watching a trail's generation.

    Must be called from a running event loop.

    Args:
        source: Status provider, normally a TrailClient
        trail_id: Trail being generated
        on_update: Called with every status; may be a coroutine function
        interval: Seconds between checks (defaults to the configured interval)

    Returns:
        The running subscription; call ``cancel()`` to stop it
    """
    if interval is None:
        interval = get_settings().poll_interval_seconds
    return GenerationStatusSubscription(source, trail_id, on_update, interval=interval).start()
