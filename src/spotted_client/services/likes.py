"""Optimistic like/unlike synchronization for post detail views."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from spotted_client.domain.likes import LikeRollback, LikeState

_logger = logging.getLogger(__name__)


class LikeGateway(Protocol):
    """Interface for the remote like endpoints."""

    async def like(self, post_id: int) -> None:
        """Like a post, raising LikeSyncFailed when it was not applied."""

    async def unlike(self, post_id: int) -> None:
        """Remove a like, raising LikeSyncFailed when it was not applied."""


@dataclass
class InteractionSyncController:
    """Keeps the like state of mounted posts in sync with the server.

    Each toggle flips ``local_liked`` immediately. The remote call is sent
    once the debounce window has passed, and only when the final desired
    state differs from what the server last confirmed, so a quick
    like-then-unlike never reaches the network. Toggles made while a call
    is in flight are reconciled with at most one follow-up call after it
    settles. A failed call reverts ``local_liked`` to the last confirmed
    state and notifies listeners.

    Syncs for one post never overlap: a post remounted while its previous
    sync is still settling waits for that sync and starts from the state
    it confirmed.
    """

    gateway: LikeGateway
    debounce_seconds: float = 0.3
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _states: dict[int, LikeState] = field(default_factory=dict, init=False)
    _tasks: dict[int, asyncio.Task[None]] = field(default_factory=dict, init=False)
    _detached: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    _latest: dict[int, tuple[asyncio.Task[None], LikeState]] = field(
        default_factory=dict, init=False
    )
    _listeners: list[Callable[[LikeRollback], None]] = field(
        default_factory=list, init=False
    )

    def mount(self, post_id: int, server_liked: bool, server_like_count: int) -> LikeState:
        """Create the interaction state for a post being shown."""
        state = LikeState.from_server(post_id, server_liked, server_like_count)
        self.unmount(post_id)
        self._states[post_id] = state
        return state

    def unmount(self, post_id: int) -> None:
        """Drop a post's state; a sync already underway is left to finish."""
        self._states.pop(post_id, None)
        task = self._tasks.pop(post_id, None)
        if task is not None and not task.done():
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)

    def state(self, post_id: int) -> LikeState:
        return self._states[post_id]

    def display_count(self, post_id: int) -> int:
        return self._states[post_id].display_count

    def subscribe(self, listener: Callable[[LikeRollback], None]) -> None:
        """Register a callback for reverted optimistic updates."""
        self._listeners.append(listener)

    def toggle_like(self, post_id: int) -> LikeState:
        """Flip the like state of a post and schedule a sync."""
        state = self._states[post_id]
        state.local_liked = not state.local_liked
        self._schedule_sync(state)
        return state

    def like_from_double_tap(self, post_id: int) -> LikeState:
        """Double-tap only ever likes; an already liked post is left alone."""
        state = self._states[post_id]
        if not state.local_liked:
            return self.toggle_like(post_id)
        return state

    def toggle_comments(self, post_id: int) -> bool:
        state = self._states[post_id]
        state.showing_comments = not state.showing_comments
        return state.showing_comments

    async def wait_idle(self) -> None:
        """Wait until no sync is pending for any post."""
        while self._tasks or self._detached:
            tasks = [*self._tasks.values(), *self._detached]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel every pending sync and forget all mounted posts."""
        tasks = [*self._tasks.values(), *self._detached]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._latest.clear()
        self._states.clear()

    def _schedule_sync(self, state: LikeState) -> None:
        if state.post_id in self._tasks:
            # The running sync reads the latest desired state when it settles.
            return
        previous = self._latest.get(state.post_id)
        task = asyncio.get_running_loop().create_task(self._sync(state, previous))
        self._tasks[state.post_id] = task
        self._latest[state.post_id] = (task, state)

    async def _sync(
        self,
        state: LikeState,
        previous: tuple[asyncio.Task[None], LikeState] | None,
    ) -> None:
        try:
            if previous is not None:
                previous_task, previous_state = previous
                if not previous_task.done():
                    await asyncio.wait({previous_task})
                    state.confirmed_liked = previous_state.confirmed_liked
            await self.sleep(self.debounce_seconds)
            while state.local_liked != state.confirmed_liked:
                desired = state.local_liked
                state.in_flight = True
                try:
                    if desired:
                        await self.gateway.like(state.post_id)
                    else:
                        await self.gateway.unlike(state.post_id)
                except Exception as exc:
                    state.in_flight = False
                    self._roll_back(state, exc)
                    return
                state.in_flight = False
                state.confirmed_liked = desired
        finally:
            state.in_flight = False
            current = asyncio.current_task()
            if self._tasks.get(state.post_id) is current:
                del self._tasks[state.post_id]
            latest = self._latest.get(state.post_id)
            if latest is not None and latest[0] is current:
                del self._latest[state.post_id]

    def _roll_back(self, state: LikeState, exc: Exception) -> None:
        reason = getattr(exc, "reason", None) or str(exc) or type(exc).__name__
        state.local_liked = state.confirmed_liked
        _logger.warning(
            "Like sync failed for post %s, reverted to liked=%s: %s",
            state.post_id,
            state.local_liked,
            reason,
        )
        if self._states.get(state.post_id) is not state:
            return
        rollback = LikeRollback(
            post_id=state.post_id,
            liked=state.local_liked,
            display_count=state.display_count,
            reason=reason,
        )
        for listener in list(self._listeners):
            listener(rollback)
