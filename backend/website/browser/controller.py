"""
View state controller for the posts page.

Paints from the local cache first, then revalidates against the API in the
background. Deletes are optimistic: the post leaves the list immediately and
is put back if the server refuses.

Every list fetch takes a sequence token when issued. A response that arrives
after a newer fetch was issued is discarded, so a slow request for an old
filter cannot overwrite the current view.
"""

import asyncio
import logging
from typing import Any, Optional

from .cache import LocalCache, normalize_filter
from .client import PostsClient, QueryServiceError
from .dialog import ConfirmDialog, FocusHost
from .state import (
    FetchMode, Phase, Post, ViewState,
    find_post, reinstate_post, remove_post, sort_posts,
)

logger = logging.getLogger(__name__)


class PostsController:
    def __init__(
        self,
        client: PostsClient,
        cache: LocalCache,
        focus_host: Optional[FocusHost] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.state = ViewState()
        self.dialog = ConfirmDialog(
            on_confirm=self.confirm_delete,
            on_cancel=self.cancel_delete,
            focus_host=focus_host,
        )
        self._sequence = 0
        # filter the current posts were queried with; lags applied_filter after a failed load
        self._posts_filter: Optional[str] = None
        self._background: set[asyncio.Task] = set()

    # -- loading -------------------------------------------------------------

    async def initialize(self) -> None:
        await self._load(None)

    async def apply_filter(self, raw_input: Any) -> None:
        filter_key = normalize_filter(raw_input)
        if filter_key is None:
            await self.clear_filter()
            return
        self.state.applied_filter = filter_key
        await self._load(filter_key)

    async def clear_filter(self) -> None:
        self.state.applied_filter = None
        await self._load(None)

    async def retry(self) -> None:
        await self.fetch_and_commit(self.state.applied_filter, FetchMode.FOREGROUND)

    def revalidate(self, filter_key: Optional[str]) -> asyncio.Task:
        """Schedule a background refresh; never blocks and never shows loading."""
        token = self._next_token()
        task = asyncio.create_task(self._fetch(filter_key, FetchMode.BACKGROUND, token))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def fetch_and_commit(self, filter_key: Optional[str], mode: FetchMode) -> None:
        await self._fetch(filter_key, mode, self._next_token())

    async def wait_for_revalidation(self) -> None:
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        await self.client.aclose()

    async def _load(self, filter_key: Optional[str]) -> None:
        hit = self.cache.read(filter_key)
        if hit is None or not hit.data:
            await self.fetch_and_commit(filter_key, FetchMode.FOREGROUND)
            return

        state = self.state
        state.posts = sort_posts(hit.data)
        self._posts_filter = filter_key
        state.phase = Phase.READY
        state.is_loading = False
        state.error_message = None
        state.is_stale = hit.is_stale
        state.is_revalidate_failed = False
        self.revalidate(filter_key)

    def _next_token(self) -> int:
        self._sequence += 1
        return self._sequence

    async def _fetch(self, filter_key: Optional[str], mode: FetchMode, token: int) -> None:
        state = self.state
        foreground = mode == FetchMode.FOREGROUND
        if foreground:
            state.phase = Phase.LOADING
            state.is_loading = True
            state.error_message = None

        try:
            posts = await self.client.list_posts(filter_key)
        except QueryServiceError as e:
            if token != self._sequence:
                logger.debug("Dropping superseded %s failure (filter=%s)", mode.value, filter_key)
                return
            if foreground:
                state.error_message = e.message
                state.phase = Phase.ERROR
                state.is_loading = False
            else:
                logger.info("Revalidation failed, keeping cached posts (filter=%s): %s", filter_key, e)
                state.is_revalidate_failed = True
            return

        if token != self._sequence:
            logger.debug("Dropping superseded %s response (filter=%s)", mode.value, filter_key)
            return

        self._commit(sort_posts(posts), filter_key)

    def _commit(self, posts: list[Post], filter_key: Optional[str]) -> None:
        state = self.state
        state.posts = posts
        self._posts_filter = filter_key
        state.phase = Phase.READY
        state.is_loading = False
        state.error_message = None
        state.is_stale = False
        state.is_revalidate_failed = False
        self.cache.write(posts, filter_key)

    # -- deleting ------------------------------------------------------------

    def request_delete(self, post_id: int) -> None:
        self.state.pending_delete_id = post_id
        self.state.delete_error_message = None
        self.dialog.open()

    async def confirm_delete(self) -> bool:
        """
        Remove the pending post optimistically and confirm with the server.

        Returns True if the post was deleted. On failure the post is put back
        and the dialog switches to showing the error.
        """
        state = self.state
        post_id = state.pending_delete_id
        if post_id is None or state.is_deleting:
            return False
        if state.delete_error_message is not None:
            # acknowledge-only: confirming just dismisses the error
            self.cancel_delete()
            return False

        target = find_post(state.posts, post_id)
        if target is not None:
            state.posts = remove_post(state.posts, post_id)
        state.is_deleting = True
        self.dialog.loading = True

        try:
            await self.client.delete_post(post_id)
        except QueryServiceError as e:
            if target is not None:
                state.posts = reinstate_post(state.posts, target)
            state.delete_error_message = e.message
            self.dialog.show_error(e.message)
            logger.info("Delete of post %s failed, restored: %s", post_id, e)
            return False
        finally:
            state.is_deleting = False
            self.dialog.loading = False

        if self._posts_filter == state.applied_filter:
            self.cache.write(state.posts, state.applied_filter)
        else:
            logger.debug("Not caching posts for filter=%s under filter=%s", self._posts_filter, state.applied_filter)
        state.pending_delete_id = None
        state.delete_error_message = None
        self.dialog.close()
        return True

    def cancel_delete(self) -> None:
        if self.state.is_deleting:
            return
        self.state.pending_delete_id = None
        self.state.delete_error_message = None
        self.dialog.close()


def build_controller(focus_host: Optional[FocusHost] = None, **client_kwargs) -> PostsController:
    """Controller wired to the configured API base URL and persisted cache."""
    return PostsController(
        client=PostsClient(**client_kwargs),
        cache=LocalCache.from_settings(),
        focus_host=focus_host,
    )
