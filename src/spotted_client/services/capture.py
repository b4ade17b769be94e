"""State machine for the before/after workout capture session."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from spotted_client.domain.capture import (
    CAPTURE_PHASES,
    LIVE_PREVIEW_PHASES,
    TIMER_PHASES,
    AcquireDevice,
    Accept,
    ActivityType,
    AnimationElapsed,
    ArmTimer,
    CancelCapture,
    CaptureEffect,
    CaptureEvent,
    CaptureFailed,
    CaptureRejected,
    CaptureRequested,
    CaptureSession,
    CelebrationShown,
    Discard,
    DisarmTimer,
    EmitNotice,
    LensFacing,
    LensSwitched,
    Notice,
    NoticeKind,
    Phase,
    PhotoCaptured,
    PublishRejected,
    PublishSucceeded,
    ReleaseDevice,
    ResetRequested,
    ResetTimer,
    Retake,
    ScheduleCelebrationStep,
    SelectActivity,
    SetCaption,
    StartCapture,
    StartPublish,
    Submit,
    SwipeDirection,
    SwipeReview,
    SwitchDeviceLens,
    SwitchLens,
    TimerTicked,
    ToggleReview,
    VisibilityChanged,
)
from spotted_client.domain.posts import PublishFailed
from spotted_client.services.timer import ElapsedTimer

_logger = logging.getLogger(__name__)

Effects = tuple[CaptureEffect, ...]


class CaptureDevice(Protocol):
    """Platform camera capability."""

    async def start_preview(self, facing: LensFacing) -> object:
        """Open the camera and start streaming a preview."""

    async def capture(self) -> bytes:
        """Take a still image, raising CaptureFailed on device errors."""

    async def switch_lens(self) -> LensFacing:
        """Switch to the other lens and return the new facing."""

    def release(self) -> None:
        """Release the camera."""


class PublishGateway(Protocol):
    """Interface for publishing a finished workout."""

    async def submit(  # noqa: PLR0913
        self,
        before_photo: bytes,
        after_photo: bytes,
        activity: ActivityType,
        caption: str | None,
        duration_seconds: int,
    ) -> None:
        """Create the post, raising PublishFailed when it was not accepted."""


def transition(
    session: CaptureSession, event: CaptureEvent
) -> tuple[CaptureSession, Effects]:
    """Return the next session and the side effects an event causes.

    Events that do not apply to the current phase leave the session
    unchanged and produce no effects.
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown capture event: {event!r}")
    return handler(session, event)


def _ignore(session: CaptureSession) -> tuple[CaptureSession, Effects]:
    return session, ()


def _full_reset(session: CaptureSession) -> tuple[CaptureSession, Effects]:
    fresh = CaptureSession(facing=session.facing, visible=session.visible)
    effects: list[CaptureEffect] = [ResetTimer(), ReleaseDevice()]
    if fresh.visible:
        effects.append(AcquireDevice(fresh.facing))
    return fresh, tuple(effects)


def _on_visibility(
    session: CaptureSession, event: VisibilityChanged
) -> tuple[CaptureSession, Effects]:
    if event.visible == session.visible:
        return _ignore(session)
    updated = replace(session, visible=event.visible)
    if session.phase in {Phase.SUBMITTING, Phase.CELEBRATING}:
        return updated, ()
    effects: list[CaptureEffect] = []
    if not event.visible:
        if session.capture_in_flight:
            effects.append(CancelCapture())
        updated = replace(updated, capture_in_flight=False)
        effects.append(ReleaseDevice())
        if session.phase in TIMER_PHASES:
            effects.append(DisarmTimer())
        return updated, tuple(effects)
    if session.phase in CAPTURE_PHASES:
        effects.append(AcquireDevice(session.facing))
    if session.phase in TIMER_PHASES:
        effects.append(ArmTimer())
    return updated, tuple(effects)


def _on_capture_requested(
    session: CaptureSession, event: CaptureRequested
) -> tuple[CaptureSession, Effects]:
    if (
        session.phase not in LIVE_PREVIEW_PHASES
        or not session.visible
        or session.capture_in_flight
    ):
        return _ignore(session)
    return replace(session, capture_in_flight=True), (StartCapture(),)


def _on_photo_captured(
    session: CaptureSession, event: PhotoCaptured
) -> tuple[CaptureSession, Effects]:
    if not session.capture_in_flight:
        return _ignore(session)
    next_phase = (
        Phase.BEFORE_PENDING
        if session.phase is Phase.AWAITING_BEFORE
        else Phase.AFTER_PENDING
    )
    return (
        replace(
            session,
            phase=next_phase,
            pending_photo=bytes(event.data),
            capture_in_flight=False,
        ),
        (),
    )


def _on_capture_rejected(
    session: CaptureSession, event: CaptureRejected
) -> tuple[CaptureSession, Effects]:
    if not session.capture_in_flight:
        return _ignore(session)
    notice = Notice(
        kind=NoticeKind.CAPTURE_FAILED,
        message=f"Could not take the photo: {event.reason}",
    )
    return replace(session, capture_in_flight=False), (EmitNotice(notice),)


def _on_retake(
    session: CaptureSession, event: Retake
) -> tuple[CaptureSession, Effects]:
    if session.phase is Phase.BEFORE_PENDING:
        return replace(session, phase=Phase.AWAITING_BEFORE, pending_photo=None), ()
    if session.phase is Phase.AFTER_PENDING:
        return replace(session, phase=Phase.TIMER_RUNNING, pending_photo=None), ()
    return _ignore(session)


def _on_accept(
    session: CaptureSession, event: Accept
) -> tuple[CaptureSession, Effects]:
    if session.phase is Phase.BEFORE_PENDING:
        updated = replace(
            session,
            phase=Phase.TIMER_RUNNING,
            before_photo=session.pending_photo,
            pending_photo=None,
            elapsed_seconds=0,
        )
        # Hidden surfaces never tick; the timer is armed when shown again.
        effect = ArmTimer(reset=True) if session.visible else ResetTimer()
        return updated, (effect,)
    if session.phase is Phase.AFTER_PENDING:
        updated = replace(
            session,
            phase=Phase.REVIEWING,
            after_photo=session.pending_photo,
            pending_photo=None,
            review_index=0,
        )
        return updated, (DisarmTimer(), ReleaseDevice())
    return _ignore(session)


def _on_tick(
    session: CaptureSession, event: TimerTicked
) -> tuple[CaptureSession, Effects]:
    if session.phase not in TIMER_PHASES or event.seconds < session.elapsed_seconds:
        return _ignore(session)
    return replace(session, elapsed_seconds=event.seconds), ()


def _on_toggle_review(
    session: CaptureSession, event: ToggleReview
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    return replace(session, review_index=1 - session.review_index), ()


def _on_swipe(
    session: CaptureSession, event: SwipeReview
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    target = 1 if event.direction is SwipeDirection.LEFT else 0
    if target == session.review_index:
        return _ignore(session)
    return replace(session, review_index=target), ()


def _on_select_activity(
    session: CaptureSession, event: SelectActivity
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    return replace(session, selected_activity=event.activity), ()


def _on_set_caption(
    session: CaptureSession, event: SetCaption
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    return replace(session, caption=event.text), ()


def _on_discard(
    session: CaptureSession, event: Discard
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    return _full_reset(session)


def _on_submit(
    session: CaptureSession, event: Submit
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.REVIEWING:
        return _ignore(session)
    if session.before_photo is None or session.after_photo is None:
        raise ValueError("reviewing session is missing a photo")
    request = StartPublish(
        before_photo=session.before_photo,
        after_photo=session.after_photo,
        activity=session.selected_activity,
        caption=session.caption.strip() or None,
        duration_seconds=session.elapsed_seconds,
    )
    return replace(session, phase=Phase.SUBMITTING), (request,)


def _on_publish_succeeded(
    session: CaptureSession, event: PublishSucceeded
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.SUBMITTING:
        return _ignore(session)
    return (
        replace(session, phase=Phase.CELEBRATING, celebration_exiting=False),
        (ScheduleCelebrationStep(exiting=False),),
    )


def _on_publish_rejected(
    session: CaptureSession, event: PublishRejected
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.SUBMITTING:
        return _ignore(session)
    notice = Notice(
        kind=NoticeKind.PUBLISH_FAILED,
        message=f"Could not post your workout: {event.reason}",
    )
    return replace(session, phase=Phase.REVIEWING), (EmitNotice(notice),)


def _on_celebration_shown(
    session: CaptureSession, event: CelebrationShown
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.CELEBRATING or session.celebration_exiting:
        return _ignore(session)
    return (
        replace(session, celebration_exiting=True),
        (ScheduleCelebrationStep(exiting=True),),
    )


def _on_animation_elapsed(
    session: CaptureSession, event: AnimationElapsed
) -> tuple[CaptureSession, Effects]:
    if session.phase is not Phase.CELEBRATING or not session.celebration_exiting:
        return _ignore(session)
    return _full_reset(session)


def _on_switch_lens(
    session: CaptureSession, event: SwitchLens
) -> tuple[CaptureSession, Effects]:
    if (
        session.phase not in LIVE_PREVIEW_PHASES
        or not session.visible
        or session.capture_in_flight
    ):
        return _ignore(session)
    return session, (SwitchDeviceLens(),)


def _on_lens_switched(
    session: CaptureSession, event: LensSwitched
) -> tuple[CaptureSession, Effects]:
    if event.facing == session.facing:
        return _ignore(session)
    return replace(session, facing=event.facing), ()


def _on_reset_requested(
    session: CaptureSession, event: ResetRequested
) -> tuple[CaptureSession, Effects]:
    # Publishing cannot be cancelled.
    if session.phase is Phase.SUBMITTING:
        return _ignore(session)
    return _full_reset(session)


_HANDLERS: dict[type, Callable[[CaptureSession, Any], tuple[CaptureSession, Effects]]] = {
    VisibilityChanged: _on_visibility,
    CaptureRequested: _on_capture_requested,
    PhotoCaptured: _on_photo_captured,
    CaptureRejected: _on_capture_rejected,
    Retake: _on_retake,
    Accept: _on_accept,
    TimerTicked: _on_tick,
    ToggleReview: _on_toggle_review,
    SwipeReview: _on_swipe,
    SelectActivity: _on_select_activity,
    SetCaption: _on_set_caption,
    Discard: _on_discard,
    Submit: _on_submit,
    PublishSucceeded: _on_publish_succeeded,
    PublishRejected: _on_publish_rejected,
    CelebrationShown: _on_celebration_shown,
    AnimationElapsed: _on_animation_elapsed,
    SwitchLens: _on_switch_lens,
    LensSwitched: _on_lens_switched,
    ResetRequested: _on_reset_requested,
}


@dataclass
class CaptureSessionController:
    """Owns one capture session and runs the effects of its transitions.

    Transitions are applied synchronously in event order. Capture, publish
    and celebration delays run as background tasks that feed their result
    back in as events.
    """

    device: CaptureDevice
    timer: ElapsedTimer
    publish_gateway: PublishGateway
    celebration_visible_seconds: float = 1.5
    celebration_exit_seconds: float = 0.5
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _session: CaptureSession = field(default_factory=CaptureSession, init=False)
    _device_held: bool = field(default=False, init=False)
    _device_starting: bool = field(default=False, init=False)
    _listeners: list[Callable[[CaptureSession], None]] = field(
        default_factory=list, init=False
    )
    _notice_listeners: list[Callable[[Notice], None]] = field(
        default_factory=list, init=False
    )
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    _capture_task: asyncio.Task[None] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.timer.on_tick = self._handle_tick

    @property
    def session(self) -> CaptureSession:
        return self._session

    @property
    def can_leave(self) -> bool:
        return self._session.can_leave

    @property
    def device_held(self) -> bool:
        return self._device_held

    def subscribe(self, listener: Callable[[CaptureSession], None]) -> None:
        """Register a callback invoked after every session change."""
        self._listeners.append(listener)

    def subscribe_notices(self, listener: Callable[[Notice], None]) -> None:
        """Register a callback for transient error notices."""
        self._notice_listeners.append(listener)

    async def dispatch(self, event: CaptureEvent) -> CaptureSession:
        """Apply an event and run the effects it produces."""
        for effect in self._apply(event):
            await self._run_effect(effect)
        return self._session

    async def reset(self) -> CaptureSession:
        """Discard the session and return to the initial phase."""
        return await self.dispatch(ResetRequested())

    async def wait_idle(self) -> None:
        """Wait for pending capture, publish and celebration tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background work and free the device and timer."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.timer.disarm()
        self._release_device()

    def _apply(self, event: CaptureEvent) -> Effects:
        previous = self._session
        self._session, effects = transition(previous, event)
        if self._session is previous and not effects:
            _logger.debug("Ignored %s in phase %s", type(event).__name__, previous.phase)
            return effects
        if self._session.phase is not previous.phase:
            _logger.info(
                "Capture session %s -> %s", previous.phase, self._session.phase
            )
        if self._session != previous:
            for listener in list(self._listeners):
                listener(self._session)
        return effects

    def _handle_tick(self, seconds: int) -> None:
        self._apply(TimerTicked(seconds))

    async def _run_effect(self, effect: CaptureEffect) -> None:  # noqa: PLR0911
        if isinstance(effect, AcquireDevice):
            await self._acquire_device(effect.facing)
            return
        if isinstance(effect, ReleaseDevice):
            self._release_device()
            return
        if isinstance(effect, ArmTimer):
            if effect.reset:
                self.timer.reset()
            self.timer.arm()
            return
        if isinstance(effect, DisarmTimer):
            self.timer.disarm()
            return
        if isinstance(effect, ResetTimer):
            self.timer.disarm()
            self.timer.reset()
            return
        if isinstance(effect, StartCapture):
            self._capture_task = self._spawn(self._capture())
            return
        if isinstance(effect, CancelCapture):
            if self._capture_task is not None:
                self._capture_task.cancel()
                self._capture_task = None
            return
        if isinstance(effect, SwitchDeviceLens):
            await self._switch_lens()
            return
        if isinstance(effect, StartPublish):
            self._spawn(self._publish(effect))
            return
        if isinstance(effect, ScheduleCelebrationStep):
            self._spawn(self._celebration_step(effect.exiting))
            return
        if isinstance(effect, EmitNotice):
            for listener in list(self._notice_listeners):
                listener(effect.notice)
            return
        raise TypeError(f"Unknown capture effect: {effect!r}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _acquire_device(self, facing: LensFacing) -> None:
        if self._device_held or self._device_starting:
            # A preview that is still starting is kept or released by its
            # own acquire once it completes.
            return
        self._device_starting = True
        try:
            await self.device.start_preview(facing)
        except Exception:
            _logger.exception("Failed to start camera preview")
            notice = Notice(
                kind=NoticeKind.DEVICE_UNAVAILABLE,
                message="The camera is not available right now.",
            )
            for listener in list(self._notice_listeners):
                listener(notice)
            return
        finally:
            self._device_starting = False
        self._device_held = True
        session = self._session
        if not session.visible or session.phase not in CAPTURE_PHASES:
            # The surface went away while the preview was starting.
            self._release_device()

    def _release_device(self) -> None:
        if not self._device_held:
            return
        self._device_held = False
        try:
            self.device.release()
        except Exception:
            _logger.warning("Camera release failed", exc_info=True)

    async def _capture(self) -> None:
        try:
            data = await self.device.capture()
        except CaptureFailed as exc:
            _logger.warning("Capture failed: %s", exc.reason)
            await self.dispatch(CaptureRejected(exc.reason))
            return
        except Exception as exc:
            _logger.exception("Capture raised unexpectedly")
            await self.dispatch(CaptureRejected(str(exc) or type(exc).__name__))
            return
        await self.dispatch(PhotoCaptured(data))

    async def _switch_lens(self) -> None:
        try:
            facing = await self.device.switch_lens()
        except Exception:
            _logger.warning("Lens switch failed", exc_info=True)
            return
        await self.dispatch(LensSwitched(facing))

    async def _publish(self, request: StartPublish) -> None:
        try:
            await self.publish_gateway.submit(
                before_photo=request.before_photo,
                after_photo=request.after_photo,
                activity=request.activity,
                caption=request.caption,
                duration_seconds=request.duration_seconds,
            )
        except PublishFailed as exc:
            _logger.warning("Publish failed: %s", exc.reason)
            await self.dispatch(PublishRejected(exc.reason))
            return
        except Exception as exc:
            _logger.exception("Publish raised unexpectedly")
            await self.dispatch(PublishRejected(str(exc) or type(exc).__name__))
            return
        await self.dispatch(PublishSucceeded())

    async def _celebration_step(self, exiting: bool) -> None:
        if exiting:
            await self.sleep(self.celebration_exit_seconds)
            await self.dispatch(AnimationElapsed())
        else:
            await self.sleep(self.celebration_visible_seconds)
            await self.dispatch(CelebrationShown())
