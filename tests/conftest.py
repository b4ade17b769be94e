"""Shared test fixtures."""

import asyncio
import logging
from dataclasses import dataclass, field

import pytest

from spotted_client.config import Settings
from spotted_client.domain.capture import ActivityType, LensFacing
from spotted_client.domain.posts import LikeSyncFailed, PublishFailed
from spotted_client.services.capture import (
    CaptureDevice,
    CaptureSessionController,
    PublishGateway,
)
from spotted_client.services.likes import LikeGateway
from spotted_client.services.timer import ElapsedTimer


async def settle(rounds: int = 20) -> None:
    """Give ready tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class ManualTicker:
    """Sleep replacement that only returns when a test advances it."""

    delays: list[float] = field(default_factory=list)
    _waiters: list[asyncio.Future[None]] = field(default_factory=list)

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def release(self) -> int:
        """Wake every current sleeper without yielding to the loop."""
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        return len(waiters)

    async def advance(self, steps: int = 1) -> None:
        for _ in range(steps):
            await settle()
            self.release()
            await settle()


@dataclass
class FakeCaptureDevice(CaptureDevice):
    """Fake camera that returns queued photos or raises queued errors."""

    photos: list[bytes | Exception] = field(
        default_factory=lambda: [b"before-bytes", b"after-bytes"]
    )
    facing: LensFacing = LensFacing.BACK
    previews: list[LensFacing] = field(default_factory=list)
    captures: int = 0
    releases: int = 0
    active: bool = False
    preview_error: Exception | None = None
    release_error: Exception | None = None
    capture_gate: asyncio.Event | None = None
    preview_gate: asyncio.Event | None = None

    async def start_preview(self, facing: LensFacing) -> object:
        if self.preview_gate is not None:
            await self.preview_gate.wait()
        if self.preview_error is not None:
            raise self.preview_error
        self.previews.append(facing)
        self.active = True
        return f"preview:{facing}"

    async def capture(self) -> bytes:
        self.captures += 1
        if self.capture_gate is not None:
            await self.capture_gate.wait()
        result = self.photos.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def switch_lens(self) -> LensFacing:
        self.facing = (
            LensFacing.FRONT if self.facing is LensFacing.BACK else LensFacing.BACK
        )
        return self.facing

    def release(self) -> None:
        self.releases += 1
        self.active = False
        if self.release_error is not None:
            raise self.release_error


@dataclass
class FakePublishGateway(PublishGateway):
    """Fake publish gateway that records submissions."""

    submissions: list[dict[str, object]] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def submit(  # noqa: PLR0913
        self,
        before_photo: bytes,
        after_photo: bytes,
        activity: ActivityType,
        caption: str | None,
        duration_seconds: int,
    ) -> None:
        self.submissions.append(
            {
                "before_photo": before_photo,
                "after_photo": after_photo,
                "activity": activity,
                "caption": caption,
                "duration_seconds": duration_seconds,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise PublishFailed(self.failures.pop(0))


@dataclass
class FakeLikeGateway(LikeGateway):
    """Fake like gateway with optional gating and queued failures."""

    calls: list[tuple[str, int]] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    gate: asyncio.Event | None = None
    in_flight: int = 0
    peak_in_flight: int = 0

    async def like(self, post_id: int) -> None:
        await self._call("like", post_id)

    async def unlike(self, post_id: int) -> None:
        await self._call("unlike", post_id)

    async def _call(self, action: str, post_id: int) -> None:
        self.calls.append((action, post_id))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
                self.gate.clear()
            if self.failures:
                raise LikeSyncFailed(self.failures.pop(0))
        finally:
            self.in_flight -= 1


def make_capture_controller(
    device: FakeCaptureDevice | None = None,
    gateway: FakePublishGateway | None = None,
    timer_ticker: ManualTicker | None = None,
    celebration_ticker: ManualTicker | None = None,
) -> CaptureSessionController:
    """Build a controller around fakes; must be called inside a running loop."""
    timer_ticker = timer_ticker or ManualTicker()
    celebration_ticker = celebration_ticker or ManualTicker()
    return CaptureSessionController(
        device=device or FakeCaptureDevice(),
        timer=ElapsedTimer(sleep=timer_ticker.sleep),
        publish_gateway=gateway or FakePublishGateway(),
        sleep=celebration_ticker.sleep,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url="https://api.spotted.test/",
        api_token="test-token",
    )


@pytest.fixture
def client_logger():  # type: ignore[no-untyped-def]
    """The package logger, restored to its prior handlers and level afterwards."""
    logger = logging.getLogger("spotted_client")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
