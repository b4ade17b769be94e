"""Tests for the capture session controller and its side effects."""

import asyncio
import logging

import pytest

from spotted_client.domain.capture import (
    Accept,
    ActivityType,
    CaptureFailed,
    CaptureRequested,
    CaptureSession,
    Discard,
    LensFacing,
    Notice,
    NoticeKind,
    Phase,
    SelectActivity,
    SetCaption,
    Submit,
    SwitchLens,
    VisibilityChanged,
)
from spotted_client.services.capture import CaptureSessionController
from tests.conftest import (
    FakeCaptureDevice,
    FakePublishGateway,
    ManualTicker,
    make_capture_controller,
    settle,
)


async def _capture(controller: CaptureSessionController) -> None:
    await controller.dispatch(CaptureRequested())
    await controller.wait_idle()


async def _reach_review(
    controller: CaptureSessionController, ticker: ManualTicker, seconds: int
) -> None:
    await controller.dispatch(VisibilityChanged(True))
    await _capture(controller)
    await controller.dispatch(Accept())
    await ticker.advance(seconds)
    await _capture(controller)
    await controller.dispatch(Accept())


def test_before_after_capture_reaches_review_with_elapsed_time() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        device = FakeCaptureDevice(photos=[b"A", b"B"])
        controller = make_capture_controller(device=device, timer_ticker=ticker)

        await controller.dispatch(VisibilityChanged(True))
        assert device.previews == [LensFacing.BACK]

        await _capture(controller)
        assert controller.session.phase is Phase.BEFORE_PENDING

        await controller.dispatch(Accept())
        await ticker.advance(12)
        assert controller.session.elapsed_seconds == 12

        await _capture(controller)
        assert controller.session.phase is Phase.AFTER_PENDING
        await controller.dispatch(Accept())

        session = controller.session
        assert session.phase is Phase.REVIEWING
        assert session.elapsed_seconds == 12
        assert session.before_photo == b"A"
        assert session.after_photo == b"B"
        assert not controller.timer.armed
        assert not device.active
        await controller.aclose()

    asyncio.run(scenario())


def test_publish_failure_returns_to_review_and_notifies_once() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        gateway = FakePublishGateway(failures=["server unavailable"])
        controller = make_capture_controller(gateway=gateway, timer_ticker=ticker)
        notices: list[Notice] = []
        controller.subscribe_notices(notices.append)
        await _reach_review(controller, ticker, seconds=5)

        await controller.dispatch(Submit())
        assert controller.session.phase is Phase.SUBMITTING
        await controller.wait_idle()

        session = controller.session
        assert session.phase is Phase.REVIEWING
        assert session.before_photo == b"before-bytes"
        assert session.after_photo == b"after-bytes"
        assert len(notices) == 1
        assert notices[0].kind is NoticeKind.PUBLISH_FAILED
        assert "server unavailable" in notices[0].message

        await controller.dispatch(Submit())
        await settle()
        assert controller.session.phase is Phase.CELEBRATING
        assert len(gateway.submissions) == 2
        await controller.aclose()

    asyncio.run(scenario())


def test_publish_success_celebrates_then_fully_resets() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        celebration = ManualTicker()
        device = FakeCaptureDevice()
        controller = make_capture_controller(
            device=device, timer_ticker=ticker, celebration_ticker=celebration
        )
        await _reach_review(controller, ticker, seconds=3)
        await controller.dispatch(SelectActivity(ActivityType.SKIING))

        await controller.dispatch(Submit())
        await settle()
        assert controller.session.phase is Phase.CELEBRATING
        assert not controller.session.celebration_exiting

        await celebration.advance()
        assert controller.session.phase is Phase.CELEBRATING
        assert controller.session.celebration_exiting

        await celebration.advance()
        assert controller.session == CaptureSession(visible=True)
        assert controller.timer.value == 0
        assert device.active
        assert celebration.delays == [1.5, 0.5]
        await controller.aclose()

    asyncio.run(scenario())


def test_submit_sends_selection_caption_and_duration() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        gateway = FakePublishGateway()
        controller = make_capture_controller(gateway=gateway, timer_ticker=ticker)
        await _reach_review(controller, ticker, seconds=8)
        await controller.dispatch(SelectActivity(ActivityType.BOXING))
        await controller.dispatch(SetCaption("pads day"))

        await controller.dispatch(Submit())
        await settle()

        assert gateway.submissions == [
            {
                "before_photo": b"before-bytes",
                "after_photo": b"after-bytes",
                "activity": ActivityType.BOXING,
                "caption": "pads day",
                "duration_seconds": 8,
            }
        ]
        await controller.aclose()

    asyncio.run(scenario())


def test_capture_failure_keeps_phase_and_reports_notice() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(photos=[CaptureFailed("sensor busy"), b"A"])
        controller = make_capture_controller(device=device)
        notices: list[Notice] = []
        controller.subscribe_notices(notices.append)
        await controller.dispatch(VisibilityChanged(True))

        await _capture(controller)

        assert controller.session.phase is Phase.AWAITING_BEFORE
        assert not controller.session.capture_in_flight
        assert [notice.kind for notice in notices] == [NoticeKind.CAPTURE_FAILED]

        await _capture(controller)
        assert controller.session.phase is Phase.BEFORE_PENDING
        await controller.aclose()

    asyncio.run(scenario())


def test_second_capture_not_issued_while_first_is_pending() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(capture_gate=asyncio.Event())
        controller = make_capture_controller(device=device)
        await controller.dispatch(VisibilityChanged(True))

        await controller.dispatch(CaptureRequested())
        await controller.dispatch(CaptureRequested())
        await settle()
        assert device.captures == 1

        device.capture_gate.set()
        await controller.wait_idle()
        assert controller.session.phase is Phase.BEFORE_PENDING
        await controller.aclose()

    asyncio.run(scenario())


def test_hiding_during_capture_abandons_the_photo() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(capture_gate=asyncio.Event())
        controller = make_capture_controller(device=device)
        await controller.dispatch(VisibilityChanged(True))
        await controller.dispatch(CaptureRequested())
        await settle()

        await controller.dispatch(VisibilityChanged(False))
        device.capture_gate.set()
        await controller.wait_idle()

        assert controller.session.phase is Phase.AWAITING_BEFORE
        assert controller.session.pending_photo is None
        assert not device.active
        await controller.aclose()

    asyncio.run(scenario())


def test_hiding_pauses_timer_and_showing_resumes_it() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        device = FakeCaptureDevice()
        controller = make_capture_controller(device=device, timer_ticker=ticker)
        await controller.dispatch(VisibilityChanged(True))
        await _capture(controller)
        await controller.dispatch(Accept())
        await ticker.advance(3)

        await controller.dispatch(VisibilityChanged(False))
        await settle()
        assert not device.active
        assert not controller.device_held
        assert not controller.timer.armed
        assert ticker.pending == 0
        assert controller.session.before_photo == b"before-bytes"

        await controller.dispatch(VisibilityChanged(True))
        assert device.active
        await ticker.advance(2)
        assert controller.session.elapsed_seconds == 5
        assert controller.session.phase is Phase.TIMER_RUNNING
        await controller.aclose()

    asyncio.run(scenario())


def test_hiding_during_review_keeps_photos() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        device = FakeCaptureDevice()
        controller = make_capture_controller(device=device, timer_ticker=ticker)
        await _reach_review(controller, ticker, seconds=4)

        await controller.dispatch(VisibilityChanged(False))
        await controller.dispatch(VisibilityChanged(True))

        session = controller.session
        assert session.phase is Phase.REVIEWING
        assert session.before_photo == b"before-bytes"
        assert session.after_photo == b"after-bytes"
        assert session.elapsed_seconds == 4
        assert not device.active
        await controller.aclose()

    asyncio.run(scenario())


def test_discard_resets_session_and_timer() -> None:
    async def scenario() -> None:
        ticker = ManualTicker()
        device = FakeCaptureDevice()
        controller = make_capture_controller(device=device, timer_ticker=ticker)
        await _reach_review(controller, ticker, seconds=6)

        await controller.dispatch(Discard())

        assert controller.session == CaptureSession(visible=True)
        assert controller.timer.value == 0
        assert device.active
        await controller.aclose()

    asyncio.run(scenario())


def test_release_failure_is_logged_and_does_not_block(
    caplog: pytest.LogCaptureFixture,
) -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(release_error=RuntimeError("device busy"))
        controller = make_capture_controller(device=device)
        await controller.dispatch(VisibilityChanged(True))

        await controller.dispatch(VisibilityChanged(False))

        assert device.releases == 1
        assert not controller.device_held
        assert not controller.session.visible
        await controller.aclose()

    with caplog.at_level(logging.WARNING, logger="spotted_client"):
        asyncio.run(scenario())

    assert "Camera release failed" in caplog.text


def test_preview_failure_emits_device_notice() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(preview_error=RuntimeError("no camera"))
        controller = make_capture_controller(device=device)
        notices: list[Notice] = []
        controller.subscribe_notices(notices.append)

        await controller.dispatch(VisibilityChanged(True))

        assert not controller.device_held
        assert [notice.kind for notice in notices] == [NoticeKind.DEVICE_UNAVAILABLE]
        await controller.aclose()

    asyncio.run(scenario())


def test_visibility_flip_while_preview_starts_keeps_one_preview() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(preview_gate=asyncio.Event())
        controller = make_capture_controller(device=device)
        first_show = asyncio.create_task(controller.dispatch(VisibilityChanged(True)))
        await settle()

        await controller.dispatch(VisibilityChanged(False))
        await controller.dispatch(VisibilityChanged(True))
        device.preview_gate.set()
        await first_show

        assert device.previews == [LensFacing.BACK]
        assert controller.device_held

        await controller.dispatch(VisibilityChanged(False))

        assert device.releases == 1
        assert not device.active
        assert not controller.device_held
        await controller.aclose()

    asyncio.run(scenario())


def test_hiding_while_preview_starts_releases_on_completion() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice(preview_gate=asyncio.Event())
        controller = make_capture_controller(device=device)
        show = asyncio.create_task(controller.dispatch(VisibilityChanged(True)))
        await settle()

        await controller.dispatch(VisibilityChanged(False))
        assert device.releases == 0
        device.preview_gate.set()
        await show

        assert len(device.previews) == device.releases == 1
        assert not controller.device_held
        await controller.aclose()

    asyncio.run(scenario())


def test_switch_lens_updates_facing() -> None:
    async def scenario() -> None:
        device = FakeCaptureDevice()
        controller = make_capture_controller(device=device)
        await controller.dispatch(VisibilityChanged(True))

        await controller.dispatch(SwitchLens())

        assert controller.session.facing is LensFacing.FRONT
        await controller.aclose()

    asyncio.run(scenario())


def test_listeners_see_every_session_change() -> None:
    async def scenario() -> None:
        controller = make_capture_controller()
        phases: list[Phase] = []
        controller.subscribe(lambda session: phases.append(session.phase))

        await controller.dispatch(VisibilityChanged(True))
        await _capture(controller)

        assert phases == [
            Phase.AWAITING_BEFORE,
            Phase.AWAITING_BEFORE,
            Phase.BEFORE_PENDING,
        ]
        await controller.aclose()

    asyncio.run(scenario())
