import enum
from dataclasses import dataclass, field
from typing import Any, Optional

Post = dict[str, Any]


class Phase(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class FetchMode(str, enum.Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


@dataclass
class ViewState:
    posts: list[Post] = field(default_factory=list)
    phase: Phase = Phase.IDLE
    is_loading: bool = False
    error_message: Optional[str] = None
    is_stale: bool = False
    is_revalidate_failed: bool = False
    applied_filter: Optional[str] = None
    pending_delete_id: Optional[int] = None
    is_deleting: bool = False
    delete_error_message: Optional[str] = None

    @property
    def is_dialog_open(self) -> bool:
        return self.pending_delete_id is not None

    @property
    def is_empty(self) -> bool:
        return self.phase == Phase.READY and not self.posts


# Order-preserving transitions over the post list. None of these mutate their input.

def sort_posts(posts: list[Post]) -> list[Post]:
    return sorted(posts, key=lambda p: p["id"], reverse=True)


def find_post(posts: list[Post], post_id: int) -> Optional[Post]:
    return next((p for p in posts if p["id"] == post_id), None)


def remove_post(posts: list[Post], post_id: int) -> list[Post]:
    return [p for p in posts if p["id"] != post_id]


def reinstate_post(posts: list[Post], post: Post) -> list[Post]:
    """Inverse of ``remove_post``: put ``post`` back at its descending-id position."""
    if find_post(posts, post["id"]) is not None:
        return list(posts)
    return sort_posts([*posts, post])
