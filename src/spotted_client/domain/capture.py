"""Domain models for the before/after workout capture session."""

from dataclasses import dataclass
from enum import Enum, StrEnum


class ActivityType(Enum):
    """Workout activity tags a post can be labelled with."""

    RUNNING = "🏃"
    CYCLING = "🚲"
    SWIMMING = "🏊"
    SKIING = "⛷️"
    BOXING = "🥊"
    BASKETBALL = "🏀"

    @property
    def emoji(self) -> str:
        return self.value


DEFAULT_ACTIVITY = ActivityType.RUNNING


class LensFacing(StrEnum):
    """Which camera lens the preview is using."""

    FRONT = "FRONT"
    BACK = "BACK"


class Phase(StrEnum):
    """Discrete states of the capture session."""

    AWAITING_BEFORE = "AWAITING_BEFORE"
    BEFORE_PENDING = "BEFORE_PENDING"
    TIMER_RUNNING = "TIMER_RUNNING"
    AFTER_PENDING = "AFTER_PENDING"
    REVIEWING = "REVIEWING"
    SUBMITTING = "SUBMITTING"
    CELEBRATING = "CELEBRATING"


# Phases in which the camera device is needed while the surface is visible.
CAPTURE_PHASES = frozenset(
    {
        Phase.AWAITING_BEFORE,
        Phase.BEFORE_PENDING,
        Phase.TIMER_RUNNING,
        Phase.AFTER_PENDING,
    }
)
LIVE_PREVIEW_PHASES = frozenset({Phase.AWAITING_BEFORE, Phase.TIMER_RUNNING})
TIMER_PHASES = frozenset({Phase.TIMER_RUNNING, Phase.AFTER_PENDING})
_PENDING_PHASES = frozenset({Phase.BEFORE_PENDING, Phase.AFTER_PENDING})
_BOTH_PHOTO_PHASES = frozenset({Phase.REVIEWING, Phase.SUBMITTING, Phase.CELEBRATING})


class CaptureFailed(Exception):
    """Raised by a capture device when a still image could not be taken."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class CaptureSession:
    """Snapshot of one before/after capture attempt.

    Instances are immutable; every transition produces a new snapshot.
    Shapes that the state machine can never reach are rejected on
    construction, so an after photo without a before photo, or a pending
    photo next to an accepted photo for the same slot, cannot exist.
    """

    phase: Phase = Phase.AWAITING_BEFORE
    before_photo: bytes | None = None
    after_photo: bytes | None = None
    pending_photo: bytes | None = None
    elapsed_seconds: int = 0
    selected_activity: ActivityType = DEFAULT_ACTIVITY
    caption: str = ""
    review_index: int = 0
    facing: LensFacing = LensFacing.BACK
    visible: bool = False
    capture_in_flight: bool = False
    celebration_exiting: bool = False

    def __post_init__(self) -> None:
        if self.after_photo is not None and self.before_photo is None:
            raise ValueError("after photo requires a before photo")
        if self.elapsed_seconds < 0:
            raise ValueError("elapsed_seconds must be non-negative")
        if self.review_index not in (0, 1):
            raise ValueError("review_index must be 0 or 1")
        if (self.pending_photo is not None) != (self.phase in _PENDING_PHASES):
            raise ValueError(f"pending photo does not match phase {self.phase}")
        has_before = self.before_photo is not None
        has_after = self.after_photo is not None
        if self.phase in {Phase.AWAITING_BEFORE, Phase.BEFORE_PENDING}:
            expected = (False, False)
        elif self.phase in TIMER_PHASES:
            expected = (True, False)
        else:
            expected = (True, True)
        if (has_before, has_after) != expected:
            raise ValueError(f"accepted photos do not match phase {self.phase}")
        if self.capture_in_flight and self.phase not in LIVE_PREVIEW_PHASES:
            raise ValueError("capture can only be in flight during live preview")
        if self.celebration_exiting and self.phase is not Phase.CELEBRATING:
            raise ValueError("celebration_exiting outside CELEBRATING")

    @property
    def can_leave(self) -> bool:
        """Whether navigation may switch away without confirmation."""
        return self.before_photo is None or self.phase is Phase.CELEBRATING

    @property
    def review_photo(self) -> bytes | None:
        """Photo currently shown by the review carousel."""
        if self.phase not in _BOTH_PHOTO_PHASES:
            return None
        return self.before_photo if self.review_index == 0 else self.after_photo


class SwipeDirection(StrEnum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"


# Events fed into the state machine.


@dataclass(frozen=True)
class VisibilityChanged:
    visible: bool


@dataclass(frozen=True)
class CaptureRequested:
    pass


@dataclass(frozen=True)
class PhotoCaptured:
    data: bytes


@dataclass(frozen=True)
class CaptureRejected:
    reason: str


@dataclass(frozen=True)
class Retake:
    pass


@dataclass(frozen=True)
class Accept:
    pass


@dataclass(frozen=True)
class TimerTicked:
    seconds: int


@dataclass(frozen=True)
class ToggleReview:
    pass


@dataclass(frozen=True)
class SwipeReview:
    direction: SwipeDirection


@dataclass(frozen=True)
class SelectActivity:
    activity: ActivityType


@dataclass(frozen=True)
class SetCaption:
    text: str


@dataclass(frozen=True)
class Discard:
    pass


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class PublishSucceeded:
    pass


@dataclass(frozen=True)
class PublishRejected:
    reason: str


@dataclass(frozen=True)
class CelebrationShown:
    pass


@dataclass(frozen=True)
class AnimationElapsed:
    pass


@dataclass(frozen=True)
class SwitchLens:
    pass


@dataclass(frozen=True)
class LensSwitched:
    facing: LensFacing


@dataclass(frozen=True)
class ResetRequested:
    """Full reset requested by the host, e.g. after a confirmed leave."""


CaptureEvent = (
    VisibilityChanged
    | CaptureRequested
    | PhotoCaptured
    | CaptureRejected
    | Retake
    | Accept
    | TimerTicked
    | ToggleReview
    | SwipeReview
    | SelectActivity
    | SetCaption
    | Discard
    | Submit
    | PublishSucceeded
    | PublishRejected
    | CelebrationShown
    | AnimationElapsed
    | SwitchLens
    | LensSwitched
    | ResetRequested
)


class NoticeKind(StrEnum):
    CAPTURE_FAILED = "CAPTURE_FAILED"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"


@dataclass(frozen=True)
class Notice:
    """Transient, non-fatal error surfaced to the presenter."""

    kind: NoticeKind
    message: str


# Side effects requested by a transition; executed by the controller.


@dataclass(frozen=True)
class AcquireDevice:
    facing: LensFacing


@dataclass(frozen=True)
class ReleaseDevice:
    pass


@dataclass(frozen=True)
class StartCapture:
    pass


@dataclass(frozen=True)
class CancelCapture:
    pass


@dataclass(frozen=True)
class SwitchDeviceLens:
    pass


@dataclass(frozen=True)
class ArmTimer:
    reset: bool = False


@dataclass(frozen=True)
class DisarmTimer:
    pass


@dataclass(frozen=True)
class ResetTimer:
    pass


@dataclass(frozen=True)
class StartPublish:
    before_photo: bytes
    after_photo: bytes
    activity: ActivityType
    caption: str | None
    duration_seconds: int


@dataclass(frozen=True)
class ScheduleCelebrationStep:
    exiting: bool


@dataclass(frozen=True)
class EmitNotice:
    notice: Notice


CaptureEffect = (
    AcquireDevice
    | ReleaseDevice
    | StartCapture
    | CancelCapture
    | SwitchDeviceLens
    | ArmTimer
    | DisarmTimer
    | ResetTimer
    | StartPublish
    | ScheduleCelebrationStep
    | EmitNotice
)
