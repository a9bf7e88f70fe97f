"""
Trail state store.

Single source of truth for "which trails does this learner have, and what is
happening to them right now". Holds an immutable TrailStoreState snapshot,
replaces it wholesale on every change and notifies listeners with the
previous and current snapshots.

Commands never raise for service failures: they log, set ``error`` and keep
the last known good state.

Usage:
    async with TrailClient(base_url) as client, TrailStore(client) as store:
        store.subscribe(lambda previous, current: render(current))
        await store.load_active_trails()
        await store.generate_trail(GenerateTrailRequest(language_code="en"))
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from trailsync.client import TrailClient
from trailsync.errors import QuotaExceededError, TrailServiceError
from trailsync.models import (
    GenerateTrailRequest,
    Lesson,
    LessonProgressUpdate,
    OverallProgress,
    RefreshTrailRequest,
    Trail,
    TrailGenerationStatus,
    TrailModule,
    TrailStatus,
    TrailSummary,
    can_transition,
)
from trailsync.services.generation import (
    GenerationStatusSubscription,
    subscribe_to_generation_status,
)
from trailsync.services.lessons import (
    apply_lesson_update,
    demote_unfinished_modules,
    ensure_can_complete,
    find_lesson,
    reconcile_lesson,
    replace_lesson,
)
from trailsync.services.progress import (
    compute_overall_progress,
    summarize_trail,
    with_progress,
)
from trailsync.settings import Settings

logger = logging.getLogger(__name__)


class TrailStoreState(BaseModel):
    """Immutable snapshot of everything the store knows."""

    model_config = ConfigDict(frozen=True)

    active_trails: tuple[TrailSummary, ...] = ()
    trails: dict[str, Trail] = Field(default_factory=dict)
    generation_status: TrailGenerationStatus | None = None
    generation_statuses: dict[str, TrailGenerationStatus] = Field(default_factory=dict)
    current_lesson: Lesson | None = None
    error: str | None = None
    is_loading: bool = False


Listener = Callable[[TrailStoreState, TrailStoreState], None]


class TrailStore:
    """
    Reactive store for the learner's trails.

    Owns at most one generation status subscription per trail and cancels
    every subscription on disposal.
    """

    def __init__(
        self,
        client: TrailClient,
        *,
        max_active_trails: int = 3,
        poll_interval: float = 3.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self._client = client
        self._max_active_trails = max_active_trails
        self._poll_interval = poll_interval
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state = TrailStoreState()
        self._listeners: list[Listener] = []
        self._subscriptions: dict[str, GenerationStatusSubscription] = {}
        self._pending = 0
        self._disposed = False

    @classmethod
    def from_settings(cls, client: TrailClient, settings: Settings) -> "TrailStore":
        return cls(
            client,
            max_active_trails=settings.max_active_trails,
            poll_interval=settings.poll_interval_seconds,
        )

    async def __aenter__(self) -> "TrailStore":
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    # ========================================================================
    # Read-only views
    # ========================================================================

    @property
    def state(self) -> TrailStoreState:
        return self._state

    @property
    def active_trails(self) -> tuple[TrailSummary, ...]:
        return self._state.active_trails

    @property
    def generation_status(self) -> TrailGenerationStatus | None:
        return self._state.generation_status

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def overall_progress(self) -> OverallProgress:
        return compute_overall_progress(self._state.active_trails)

    @property
    def active_trail_count(self) -> int:
        """Trails counted against the quota, including ones still generating."""
        ids = {summary.id for summary in self._state.active_trails if summary.is_active}
        watched = {trail_id for trail_id in self._subscriptions if self.is_watching(trail_id)}
        return len(ids | watched)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_trail(self, trail_id: str) -> Trail | None:
        return self._state.trails.get(trail_id)

    def is_watching(self, trail_id: str) -> bool:
        subscription = self._subscriptions.get(trail_id)
        return subscription is not None and subscription.active

    # ========================================================================
    # Listeners
    # ========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with (previous, current) after every change.

        Returns:
            Function that removes the listener (safe to call twice)
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ========================================================================
    # Trail commands
    # ========================================================================

    async def load_active_trails(self) -> list[TrailSummary] | None:
        """
        Replace the active trail list with the remote one.

        On failure the previous list stays in place. Trails that are still
        generating get a status subscription if they do not have one.
        """
        async with self._loading():
            try:
                trails = await self._client.list_active_trails()
            except TrailServiceError as e:
                self._fail("Could not load your trails", e)
                return None

            self._set_state(active_trails=tuple(trails))
            logger.info("Loaded %d active trails", len(trails))

            for summary in trails:
                if summary.is_generating and not self.is_watching(summary.id):
                    self._watch(summary.id)
            return trails

    async def load_trail(self, trail_id: str) -> Trail | None:
        async with self._loading():
            try:
                trail = await self._client.get_trail_by_id(trail_id)
            except TrailServiceError as e:
                self._fail("Could not load trail", e)
                return None
            return self._accept_loaded_trail(trail)

    async def load_trail_by_language(self, language_code: str) -> Trail | None:
        async with self._loading():
            try:
                trail = await self._client.get_trail_by_language(language_code)
            except TrailServiceError as e:
                self._fail("Could not load trail", e)
                return None
            return self._accept_loaded_trail(trail)

    async def generate_trail(self, request: GenerateTrailRequest) -> str | None:
        """
        Start (or restart) generation and watch it.

        A new language is refused locally once the active-trail limit is
        reached; no request is sent in that case.

        Returns:
            The trail id, or None on failure
        """
        self._ensure_open()
        async with self._loading():
            existing = self._summary_for_language(request.language_code)
            if existing is None and self.active_trail_count >= self._max_active_trails:
                self._fail(
                    "Could not generate trail",
                    QuotaExceededError(
                        f"{self.active_trail_count} active trails, limit is "
                        f"{self._max_active_trails}",
                        limit=self._max_active_trails,
                    ),
                )
                return None

            try:
                response = await self._client.generate_trail(request)
            except TrailServiceError as e:
                self._fail("Could not generate trail", e)
                return None

            trail_id = response.trail_id
            logger.info(
                "Generation started for trail %s (language=%s, force=%s)",
                trail_id,
                request.language_code,
                request.force_regenerate,
            )
            if request.force_regenerate:
                self._mark_regenerating(trail_id)
            self._watch(trail_id)
            return trail_id

    async def refresh_trail(self, trail_id: str, request: RefreshTrailRequest) -> Trail | None:
        """
        Explicitly regenerate a trail.

        If the remote answers with a successor trail, the predecessor leaves
        the active list.
        """
        self._ensure_open()
        async with self._loading():
            try:
                trail = await self._client.refresh_trail(trail_id, request)
            except TrailServiceError as e:
                self._fail("Could not regenerate trail", e)
                return None

            logger.info("Trail %s regenerating (reason=%s)", trail_id, request.reason)
            if trail.id != trail_id:
                self._forget_trail(trail_id)
            self._store_trail(trail, restart=True)
            if trail.is_generating:
                self._watch(trail.id)
            return trail

    async def archive_trail(self, trail_id: str) -> bool:
        """
        Archive a trail, removing it from the active list right away.

        If the remote call fails the trail is put back where it was (and
        watched again if it was still generating).
        """
        self._ensure_open()
        async with self._loading():
            subscription = self._subscriptions.pop(trail_id, None)
            if subscription is not None:
                subscription.cancel()

            previous = self._state
            index, summary = _index_of(previous.active_trails, trail_id)
            trail = previous.trails.get(trail_id)
            self._forget_trail(trail_id)

            try:
                await self._client.archive_trail(trail_id)
            except TrailServiceError as e:
                self._restore_trail(index, summary, trail)
                self._fail("Could not archive trail", e)
                was_generating = (summary is not None and summary.is_generating) or (
                    trail is not None and trail.is_generating
                )
                if subscription is not None or was_generating:
                    self._watch(trail_id)
                return False

            logger.info("Archived trail %s", trail_id)
            return True

    # ========================================================================
    # Module and lesson commands
    # ========================================================================

    async def load_module(self, trail_id: str, module_id: str) -> TrailModule | None:
        async with self._loading():
            try:
                module = await self._client.get_module_by_id(trail_id, module_id)
            except TrailServiceError as e:
                self._fail("Could not load module", e)
                return None

            trail = self._state.trails.get(trail_id)
            if trail is not None:
                modules = [m for m in trail.modules if m.id != module.id]
                modules.append(module)
                modules.sort(key=lambda m: m.order_index)
                merged = trail.model_copy(update={"modules": tuple(modules)})
                self._put_trail(with_progress(demote_unfinished_modules(merged)))
            return module

    async def load_lesson(self, lesson_id: str) -> Lesson | None:
        async with self._loading():
            try:
                lesson = await self._client.get_lesson_by_id(lesson_id)
            except TrailServiceError as e:
                self._fail("Could not load lesson", e)
                return None
            return self._accept_lesson(lesson)

    async def load_next_lesson(self, trail_id: str) -> Lesson | None:
        """Fetch the next incomplete lesson; None also when everything is done."""
        async with self._loading():
            try:
                lesson = await self._client.get_next_lesson(trail_id)
            except TrailServiceError as e:
                self._fail("Could not load the next lesson", e)
                return None
            if lesson is None:
                return None
            return self._accept_lesson(lesson)

    async def update_lesson_progress(
        self, lesson_id: str, update: LessonProgressUpdate
    ) -> Lesson | None:
        """
        Report lesson progress with an optimistic update.

        The patched lesson and recomputed progress are published first, then
        replaced with the remote's answer, or reverted if the call fails.
        A completed lesson is never un-completed.

        Returns:
            The authoritative lesson, or None on failure
        """
        self._ensure_open()
        self._set_state(error=None)

        location = find_lesson(self._state.trails, lesson_id)
        if location is None:
            # Not in any loaded trail: nothing to patch optimistically
            try:
                lesson = await self._client.update_lesson_progress(lesson_id, update)
            except TrailServiceError as e:
                self._fail("Could not save your progress", e)
                return None
            self._set_state(current_lesson=lesson)
            return lesson

        try:
            ensure_can_complete(location, update)
        except TrailServiceError as e:
            self._fail("Could not save your progress", e)
            return None

        optimistic = apply_lesson_update(location.lesson, update, now=self._clock())
        self._put_trail(replace_lesson(location.trail, optimistic))

        try:
            remote = await self._client.update_lesson_progress(lesson_id, update)
        except TrailServiceError as e:
            self._revert_lesson(location.trail.id, location.lesson)
            self._fail("Could not save your progress", e)
            return None

        lesson = reconcile_lesson(optimistic, remote)
        current = self._state.trails.get(location.trail.id)
        if current is not None:
            self._put_trail(replace_lesson(current, lesson))
        self._set_state(current_lesson=lesson)
        logger.info("Saved progress for lesson %s", lesson_id)
        return lesson

    async def complete_lesson(
        self,
        lesson_id: str,
        score: float | None = None,
        time_spent_seconds: int | None = None,
    ) -> Lesson | None:
        return await self.update_lesson_progress(
            lesson_id,
            LessonProgressUpdate(
                completed=True, score=score, time_spent_seconds=time_spent_seconds
            ),
        )

    def clear_error(self) -> None:
        self._set_state(error=None)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def dispose(self) -> None:
        """Cancel every subscription and stop publishing state. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._subscriptions.clear()
        self._listeners.clear()
        logger.debug("Trail store disposed")

    async def aclose(self) -> None:
        """Dispose and wait for the polling loops to wind down."""
        subscriptions = list(self._subscriptions.values())
        self.dispose()
        await asyncio.gather(*(subscription.wait() for subscription in subscriptions))

    # ========================================================================
    # Generation tracking
    # ========================================================================

    def _watch(self, trail_id: str) -> None:
        """Open the status subscription for a trail, superseding any existing one."""
        if self._disposed:
            return

        previous = self._subscriptions.pop(trail_id, None)
        if previous is not None:
            logger.info("Superseding generation subscription for trail %s", trail_id)
            previous.cancel()

        async def on_update(status: TrailGenerationStatus) -> None:
            await self._handle_generation_status(trail_id, subscription, status)

        subscription = subscribe_to_generation_status(
            self._client, trail_id, on_update, interval=self._poll_interval
        )
        self._subscriptions[trail_id] = subscription
        subscription.add_done_callback(self._release_subscription)

    def _release_subscription(self, subscription: GenerationStatusSubscription) -> None:
        """Forget a subscription that stopped polling on its own."""
        if not self._owns(subscription.trail_id, subscription):
            return
        logger.info("Stopped watching trail %s", subscription.trail_id)
        self._finish_generation(subscription.trail_id)

    async def _handle_generation_status(
        self,
        trail_id: str,
        subscription: GenerationStatusSubscription,
        status: TrailGenerationStatus,
    ) -> None:
        if not self._owns(trail_id, subscription):
            return

        self._set_state(
            generation_status=status,
            generation_statuses={**self._state.generation_statuses, trail_id: status},
        )
        if status.error_message:
            logger.warning(
                "Generation of trail %s reported an error: %s", trail_id, status.error_message
            )
        if not status.is_complete:
            return

        try:
            trail = await self._client.get_trail_by_id(trail_id)
        except TrailServiceError as e:
            if self._owns(trail_id, subscription):
                self._finish_generation(trail_id)
                self._fail("Your trail is ready but could not be loaded", e)
            return

        # Archived or superseded while the final fetch was in flight
        if not self._owns(trail_id, subscription):
            logger.info("Discarding finished generation result for trail %s", trail_id)
            return

        self._finish_generation(trail_id)
        self._store_trail(trail)

    def _finish_generation(self, trail_id: str) -> None:
        self._subscriptions.pop(trail_id, None)
        self._drop_generation_status(trail_id)

    def _drop_generation_status(self, trail_id: str) -> None:
        statuses = dict(self._state.generation_statuses)
        last = statuses.pop(trail_id, None)
        current = self._state.generation_status
        if current is not None and current is last:
            current = None
        self._set_state(generation_status=current, generation_statuses=statuses)

    def _owns(self, trail_id: str, subscription: GenerationStatusSubscription) -> bool:
        return not self._disposed and self._subscriptions.get(trail_id) is subscription

    def _mark_regenerating(self, trail_id: str) -> None:
        """Reflect an accepted regeneration request before the first status arrives."""
        trail = self._state.trails.get(trail_id)
        if trail is not None:
            self._store_trail(
                trail.model_copy(update={"status": TrailStatus.GENERATING}), restart=True
            )
            return
        index, summary = _index_of(self._state.active_trails, trail_id)
        if summary is not None:
            active = list(self._state.active_trails)
            active[index] = summary.model_copy(update={"status": TrailStatus.GENERATING})
            self._set_state(active_trails=tuple(active))

    # ========================================================================
    # Snapshot helpers
    # ========================================================================

    def _accept_loaded_trail(self, trail: Trail) -> Trail:
        self._store_trail(trail, restart=True)
        if trail.is_generating and not self.is_watching(trail.id):
            self._watch(trail.id)
        return self._state.trails.get(trail.id, trail)

    def _accept_lesson(self, lesson: Lesson) -> Lesson:
        location = find_lesson(self._state.trails, lesson.id)
        if location is not None:
            lesson = reconcile_lesson(location.lesson, lesson)
            self._put_trail(replace_lesson(location.trail, lesson))
        self._set_state(current_lesson=lesson)
        return lesson

    def _store_trail(self, trail: Trail, *, restart: bool = False) -> bool:
        """
        Merge a trail from the remote, enforcing the forward-only lifecycle.

        Returns:
            False if the update would move the trail backwards and was ignored
        """
        existing = self._state.trails.get(trail.id)
        if existing is not None and not can_transition(
            existing.status, trail.status, restart=restart
        ):
            logger.warning(
                "Ignoring status change %s -> %s for trail %s",
                existing.status,
                trail.status,
                trail.id,
            )
            return False
        self._put_trail(with_progress(demote_unfinished_modules(trail)))
        return True

    def _put_trail(self, trail: Trail) -> None:
        """Publish a trail and its summary; archived trails leave the active list."""
        trails = {**self._state.trails, trail.id: trail}
        index, existing = _index_of(self._state.active_trails, trail.id)
        active = list(self._state.active_trails)

        if not trail.is_active:
            if existing is not None:
                del active[index]
        else:
            summary = summarize_trail(
                trail, created_at=existing.created_at if existing is not None else None
            )
            if existing is None:
                active.append(summary)
            else:
                active[index] = summary

        self._set_state(trails=trails, active_trails=tuple(active))

    def _forget_trail(self, trail_id: str) -> None:
        subscription = self._subscriptions.pop(trail_id, None)
        if subscription is not None:
            subscription.cancel()
        trails = {k: v for k, v in self._state.trails.items() if k != trail_id}
        active = tuple(s for s in self._state.active_trails if s.id != trail_id)
        self._set_state(trails=trails, active_trails=active)
        self._drop_generation_status(trail_id)

    def _restore_trail(
        self, index: int, summary: TrailSummary | None, trail: Trail | None
    ) -> None:
        active = list(self._state.active_trails)
        if summary is not None and all(s.id != summary.id for s in active):
            active.insert(min(index, len(active)), summary)
        trails = dict(self._state.trails)
        if trail is not None:
            trails.setdefault(trail.id, trail)
        self._set_state(active_trails=tuple(active), trails=trails)

    def _revert_lesson(self, trail_id: str, lesson: Lesson) -> None:
        current = self._state.trails.get(trail_id)
        if current is not None:
            self._put_trail(replace_lesson(current, lesson))

    def _summary_for_language(self, language_code: str) -> TrailSummary | None:
        return next(
            (
                s
                for s in self._state.active_trails
                if s.is_active and s.language_code == language_code
            ),
            None,
        )

    # ========================================================================
    # State plumbing
    # ========================================================================

    def _set_state(self, **changes) -> None:
        if self._disposed:
            return
        previous = self._state
        self._state = previous.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(previous, self._state)
            except Exception:
                logger.exception("Trail store listener failed")

    def _fail(self, message: str, error: TrailServiceError) -> None:
        logger.warning("%s: %s", message, error)
        self._set_state(error=f"{message}: {error.user_message}")

    def _ensure_open(self) -> None:
        if self._disposed:
            raise RuntimeError("TrailStore has been disposed")

    @asynccontextmanager
    async def _loading(self) -> AsyncIterator[None]:
        self._pending += 1
        self._set_state(is_loading=True, error=None)
        try:
            yield
        finally:
            self._pending -= 1
            self._set_state(is_loading=self._pending > 0)


def _index_of(
    summaries: tuple[TrailSummary, ...], trail_id: str
) -> tuple[int, TrailSummary | None]:
    for index, summary in enumerate(summaries):
        if summary.id == trail_id:
            return index, summary
    return len(summaries), None
