"""Spotted REST API client adapter for posting and liking."""

from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from spotted_client.domain.capture import ActivityType
from spotted_client.domain.posts import (
    ApiEnvelope,
    GatewayError,
    LikeSyncFailed,
    PublishFailed,
)


@dataclass
class HttpxSpottedApiClient:
    """Publish and like gateways implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    token: str | None = None
    timeout_seconds: float = 30.0

    @classmethod
    def create(
        cls, base_url: str, token: str | None = None, timeout_seconds: float = 30.0
    ) -> "HttpxSpottedApiClient":
        """Create an API client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            token=token,
            timeout_seconds=timeout_seconds,
        )

    async def submit(  # noqa: PLR0913
        self,
        before_photo: bytes,
        after_photo: bytes,
        activity: ActivityType,
        caption: str | None,
        duration_seconds: int,
    ) -> None:
        """Create a workout post from the before and after photos."""
        data = {"emoji": activity.emoji, "timer": str(duration_seconds)}
        if caption:
            data["text"] = caption
        files = {
            "photo1": ("photo1.jpg", before_photo, "image/jpeg"),
            "photo2": ("photo2.jpg", after_photo, "image/jpeg"),
        }
        await self._request(
            "POST", "/posts", PublishFailed, data=data, files=files
        )

    async def like(self, post_id: int) -> None:
        """Like a post."""
        await self._request("POST", f"/posts/{post_id}/like", LikeSyncFailed)

    async def unlike(self, post_id: int) -> None:
        """Remove the current user's like from a post."""
        await self._request("DELETE", f"/posts/{post_id}/like", LikeSyncFailed)

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[GatewayError],
        **kwargs: object,
    ) -> ApiEnvelope:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.timeout_seconds,
                **kwargs,  # type: ignore[arg-type]
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise error_cls(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise error_cls(str(exc) or type(exc).__name__) from exc
        try:
            envelope = ApiEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls("Malformed response") from exc
        if not envelope.ok:
            raise error_cls(envelope.message or "Request rejected")
        return envelope
