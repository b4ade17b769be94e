"""Domain models for optimistic post interactions."""

from dataclasses import dataclass


def display_count(server_like_count: int, server_liked: bool, local_liked: bool) -> int:
    """Return the like counter to render for the current local state."""
    if local_liked and not server_liked:
        return server_like_count + 1
    if server_liked and not local_liked:
        return server_like_count - 1
    return server_like_count


@dataclass
class LikeState:
    """Per-post interaction state for one mounted post detail view.

    ``server_liked`` and ``server_like_count`` are the snapshot loaded with
    the post and never change. ``confirmed_liked`` tracks what the server
    last acknowledged during this view's lifetime.
    """

    post_id: int
    server_liked: bool
    server_like_count: int
    local_liked: bool
    confirmed_liked: bool
    in_flight: bool = False
    showing_comments: bool = False

    @classmethod
    def from_server(
        cls, post_id: int, server_liked: bool, server_like_count: int
    ) -> "LikeState":
        """Create state for a freshly loaded post."""
        if server_like_count < 0:
            raise ValueError("server_like_count must be non-negative")
        return cls(
            post_id=post_id,
            server_liked=server_liked,
            server_like_count=server_like_count,
            local_liked=server_liked,
            confirmed_liked=server_liked,
        )

    @property
    def display_count(self) -> int:
        return display_count(
            self.server_like_count, self.server_liked, self.local_liked
        )


@dataclass(frozen=True)
class LikeRollback:
    """Emitted when an optimistic like/unlike had to be reverted."""

    post_id: int
    liked: bool
    display_count: int
    reason: str
