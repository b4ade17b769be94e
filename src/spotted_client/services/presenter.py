"""Maps capture session state to view state and user gestures to events."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from spotted_client.domain.capture import (
    TIMER_PHASES,
    Accept,
    ActivityType,
    CaptureEvent,
    CaptureRequested,
    CaptureSession,
    Discard,
    Notice,
    Phase,
    Retake,
    SelectActivity,
    SetCaption,
    Submit,
    SwipeDirection,
    SwipeReview,
    SwitchLens,
    ToggleReview,
    VisibilityChanged,
)
from spotted_client.services.capture import CaptureSessionController


class Surface(StrEnum):
    """Mutually exclusive surfaces of the capture screen."""

    LIVE_PREVIEW = "LIVE_PREVIEW"
    PENDING_PHOTO_REVIEW = "PENDING_PHOTO_REVIEW"
    REVIEW_CAROUSEL = "REVIEW_CAROUSEL"
    SUBMITTING_OVERLAY = "SUBMITTING_OVERLAY"
    CELEBRATION_OVERLAY = "CELEBRATION_OVERLAY"


_SURFACES: dict[Phase, Surface] = {
    Phase.AWAITING_BEFORE: Surface.LIVE_PREVIEW,
    Phase.BEFORE_PENDING: Surface.PENDING_PHOTO_REVIEW,
    Phase.TIMER_RUNNING: Surface.LIVE_PREVIEW,
    Phase.AFTER_PENDING: Surface.PENDING_PHOTO_REVIEW,
    Phase.REVIEWING: Surface.REVIEW_CAROUSEL,
    Phase.SUBMITTING: Surface.SUBMITTING_OVERLAY,
    Phase.CELEBRATING: Surface.CELEBRATION_OVERLAY,
}


def surface_for(phase: Phase) -> Surface:
    return _SURFACES[phase]


def format_elapsed(seconds: int) -> str:
    """Format seconds as MM:SS; minutes keep counting past 59."""
    if seconds < 0:
        raise ValueError("seconds must be non-negative")
    minutes, remainder = divmod(seconds, 60)
    return f"{minutes:02d}:{remainder:02d}"


@dataclass(frozen=True)
class SessionViewState:
    """Everything the capture screen needs to render one frame."""

    surface: Surface
    phase: Phase
    timer_text: str
    show_timer_overlay: bool
    photo: bytes | None
    review_index: int
    activities: tuple[ActivityType, ...]
    selected_activity: ActivityType
    caption: str
    capture_enabled: bool
    controls_enabled: bool
    celebration_exiting: bool
    can_leave: bool
    notice: Notice | None


def build_view_state(
    session: CaptureSession, notice: Notice | None = None
) -> SessionViewState:
    """Derive the view state for a session snapshot."""
    surface = surface_for(session.phase)
    if surface is Surface.PENDING_PHOTO_REVIEW:
        photo = session.pending_photo
    else:
        photo = session.review_photo
    return SessionViewState(
        surface=surface,
        phase=session.phase,
        timer_text=format_elapsed(session.elapsed_seconds),
        show_timer_overlay=session.phase in TIMER_PHASES,
        photo=photo,
        review_index=session.review_index,
        activities=tuple(ActivityType),
        selected_activity=session.selected_activity,
        caption=session.caption,
        capture_enabled=(
            surface is Surface.LIVE_PREVIEW
            and session.visible
            and not session.capture_in_flight
        ),
        controls_enabled=session.phase
        not in {Phase.SUBMITTING, Phase.CELEBRATING},
        celebration_exiting=session.celebration_exiting,
        can_leave=session.can_leave,
        notice=notice,
    )


@dataclass
class SessionPresenter:
    """Glue between the capture screen and its controller.

    Every gesture maps to exactly one controller event. The presenter only
    remembers the latest transient notice until the next gesture.
    """

    controller: CaptureSessionController
    _notice: Notice | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.controller.subscribe_notices(self._on_notice)

    def view_state(self) -> SessionViewState:
        return build_view_state(self.controller.session, self._notice)

    def dismiss_notice(self) -> None:
        self._notice = None

    async def on_visibility_changed(self, visible: bool) -> SessionViewState:
        """Acquire or release the camera as the host shows or hides the screen."""
        await self.controller.dispatch(VisibilityChanged(visible))
        return self.view_state()

    async def on_capture_tap(self) -> SessionViewState:
        return await self._gesture(CaptureRequested())

    async def on_accept_tap(self) -> SessionViewState:
        return await self._gesture(Accept())

    async def on_retake_tap(self) -> SessionViewState:
        return await self._gesture(Retake())

    async def on_switch_lens_tap(self) -> SessionViewState:
        return await self._gesture(SwitchLens())

    async def on_review_tap(self) -> SessionViewState:
        return await self._gesture(ToggleReview())

    async def on_review_drag(self, delta_x: float) -> SessionViewState:
        """Swipe left shows the after photo, swipe right the before photo."""
        if delta_x == 0:
            return self.view_state()
        direction = SwipeDirection.LEFT if delta_x < 0 else SwipeDirection.RIGHT
        return await self._gesture(SwipeReview(direction))

    async def on_activity_tap(self, activity: ActivityType) -> SessionViewState:
        return await self._gesture(SelectActivity(activity))

    async def on_caption_changed(self, text: str) -> SessionViewState:
        return await self._gesture(SetCaption(text))

    async def on_submit_tap(self) -> SessionViewState:
        return await self._gesture(Submit())

    async def on_discard_tap(self) -> SessionViewState:
        return await self._gesture(Discard())

    async def request_leave(self, confirm_leave: Callable[[], Awaitable[bool]]) -> bool:
        """Decide whether navigation may switch away from the capture screen.

        Asks ``confirm_leave`` only when an accepted photo would be lost.
        A confirmed leave resets the session before returning True.
        """
        session = self.controller.session
        if session.can_leave:
            return True
        if session.phase is Phase.SUBMITTING:
            return False
        if not await confirm_leave():
            return False
        await self.controller.reset()
        return True

    async def _gesture(self, event: CaptureEvent) -> SessionViewState:
        self._notice = None
        await self.controller.dispatch(event)
        return self.view_state()

    def _on_notice(self, notice: Notice) -> None:
        self._notice = notice
