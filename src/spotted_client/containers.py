"""Dependency container wiring for the client."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from spotted_client.adapters.spotted_api_client import HttpxSpottedApiClient
from spotted_client.app_logging import configure_logging, resolve_log_level
from spotted_client.config import Settings, normalize_base_url
from spotted_client.services.capture import CaptureDevice, CaptureSessionController
from spotted_client.services.likes import InteractionSyncController
from spotted_client.services.presenter import SessionPresenter
from spotted_client.services.timer import ElapsedTimer


@dataclass
class AppContainer:
    """Holds client-wide dependencies."""

    settings: Settings
    api_client: HttpxSpottedApiClient
    capture_controller: CaptureSessionController
    session_presenter: SessionPresenter
    interaction_sync: InteractionSyncController
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    capture_device: CaptureDevice, settings: Settings | None = None
) -> AppContainer:
    """Create the default dependency container around a platform camera."""
    resolved_settings = settings or Settings()
    configure_logging(
        resolve_log_level(resolved_settings.environment, resolved_settings.log_level)
    )
    api_client = HttpxSpottedApiClient.create(
        base_url=normalize_base_url(resolved_settings.api_base_url),
        token=resolved_settings.api_token,
        timeout_seconds=resolved_settings.api_timeout_seconds,
    )
    timer = ElapsedTimer(interval_seconds=resolved_settings.timer_tick_seconds)
    capture_controller = CaptureSessionController(
        device=capture_device,
        timer=timer,
        publish_gateway=api_client,
        celebration_visible_seconds=resolved_settings.celebration_visible_seconds,
        celebration_exit_seconds=resolved_settings.celebration_exit_seconds,
    )
    session_presenter = SessionPresenter(capture_controller)
    interaction_sync = InteractionSyncController(
        gateway=api_client,
        debounce_seconds=resolved_settings.like_debounce_seconds,
    )

    async def close_resources() -> None:
        await capture_controller.aclose()
        await interaction_sync.aclose()
        await api_client.close()

    return AppContainer(
        settings=resolved_settings,
        api_client=api_client,
        capture_controller=capture_controller,
        session_presenter=session_presenter,
        interaction_sync=interaction_sync,
        close_resources=close_resources,
    )
