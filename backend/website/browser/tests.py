import asyncio
import json
import uuid

import httpx
from django.core.cache.backends.locmem import LocMemCache
from django.test import SimpleTestCase

from browser.cache import LocalCache
from browser.client import (
    InvalidPostId, PostNotFound, PostsClient, TransientStoreError,
)
from browser.controller import PostsController, build_controller
from browser.dialog import ConfirmDialog, DialogAction, FocusTracker
from browser.state import Phase, reinstate_post, remove_post

TTL = 5 * 60


def make_post(pid, user_id=1):
    return {
        "id": pid,
        "userId": user_id,
        "title": f"Post {pid}",
        "body": f"Body {pid}",
        "user": {"id": user_id, "name": f"User {user_id}", "username": f"user{user_id}", "email": f"u{user_id}@example.com"},
    }


def ids(posts):
    return [p["id"] for p in posts]


def fresh_backend():
    return LocMemCache(f"browser-tests-{uuid.uuid4().hex}", {})


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class BrokenBackend:
    def get(self, key, default=None):
        raise OSError("storage unavailable")

    def set(self, key, value, timeout=None):
        raise OSError("storage unavailable")


class FakePostsClient:
    """In-process stand-in for PostsClient. Gates hold responses until set."""

    def __init__(self, posts=()):
        self.posts = list(posts)
        self.list_calls = []
        self.delete_calls = []
        self.list_error = None
        self.delete_error = None
        self.list_gates = {}
        self.delete_gate = None
        self.closed = False

    async def list_posts(self, user_id=None):
        self.list_calls.append(user_id)
        gate = self.list_gates.get(user_id)
        if gate is not None:
            await gate.wait()
        if self.list_error is not None:
            raise self.list_error
        # oldest first on purpose; the controller owns the ordering
        return [p for p in self.posts if user_id is None or str(p["userId"]) == str(user_id)]

    async def delete_post(self, post_id):
        self.delete_calls.append(post_id)
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        if self.delete_error is not None:
            raise self.delete_error
        self.posts = [p for p in self.posts if p["id"] != post_id]
        return "Post deleted successfully."

    async def aclose(self):
        self.closed = True


class LocalCacheTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.backend = fresh_backend()
        self.cache = LocalCache(key="posts_cache", backend=self.backend, ttl=TTL, clock=self.clock)

    def test_write_then_read(self):
        data = [make_post(2), make_post(1)]
        self.assertTrue(self.cache.write(data, "3"))
        hit = self.cache.read("3")
        self.assertEqual(hit.data, data)
        self.assertFalse(hit.is_stale)

    def test_other_filter_misses(self):
        self.cache.write([make_post(1)], "3")
        self.assertIsNone(self.cache.read("4"))
        self.assertIsNone(self.cache.read(None))

    def test_unfiltered_entry_only_answers_unfiltered(self):
        self.cache.write([make_post(1)])
        self.assertIsNotNone(self.cache.read())
        self.assertIsNone(self.cache.read("1"))

    def test_filter_keys_normalised(self):
        self.cache.write([make_post(1)], 3)
        self.assertIsNotNone(self.cache.read(" 3 "))
        self.cache.write([make_post(1)], "   ")
        self.assertIsNotNone(self.cache.read(None))

    def test_stale_after_ttl(self):
        self.cache.write([make_post(1)])
        self.clock.now += TTL
        self.assertFalse(self.cache.read().is_stale)
        self.clock.now += 0.001
        hit = self.cache.read()
        self.assertTrue(hit.is_stale)
        self.assertEqual(ids(hit.data), [1])

    def test_last_write_wins(self):
        self.cache.write([make_post(1)], "3")
        self.cache.write([make_post(2)])
        self.assertIsNone(self.cache.read("3"))
        self.assertEqual(ids(self.cache.read().data), [2])

    def test_record_shape(self):
        self.cache.write([make_post(1)], "3")
        record = json.loads(self.backend.get("posts_cache"))
        self.assertEqual(record["userId"], "3")
        self.assertEqual(record["timestamp"], round(self.clock.now * 1000))
        self.assertEqual(ids(record["data"]), [1])

        self.cache.write([make_post(1)])
        self.assertNotIn("userId", json.loads(self.backend.get("posts_cache")))

    def test_corrupt_payload_is_a_miss(self):
        self.backend.set("posts_cache", "{not json")
        self.assertIsNone(self.cache.read())
        self.backend.set("posts_cache", json.dumps({"data": "nope", "timestamp": 1}))
        self.assertIsNone(self.cache.read())

    def test_entries_without_integer_id_are_a_miss(self):
        for data in ([{"title": "x"}], [make_post(1), "post"], [{"id": "1"}], [{"id": True}]):
            self.backend.set("posts_cache", json.dumps({"data": data, "timestamp": 1}))
            self.assertIsNone(self.cache.read(), data)

    def test_unavailable_storage_degrades(self):
        cache = LocalCache(backend=BrokenBackend(), clock=self.clock)
        self.assertFalse(cache.write([make_post(1)]))
        self.assertIsNone(cache.read())


class PostsClientTests(SimpleTestCase):
    def client_for(self, handler):
        return PostsClient(base_url="http://api.test", transport=httpx.MockTransport(handler))

    async def test_list_posts_with_filter(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[make_post(2, 3)])

        async with self.client_for(handler) as client:
            posts = await client.list_posts("3")
            await client.list_posts()

        self.assertEqual(ids(posts), [2])
        self.assertEqual(seen[0].url.path, "/api/posts/")
        self.assertEqual(seen[0].url.params["userId"], "3")
        self.assertNotIn("userId", seen[1].url.params)

    async def test_delete_returns_message(self):
        def handler(request):
            self.assertEqual(request.method, "DELETE")
            self.assertEqual(request.url.path, "/api/posts/7/")
            return httpx.Response(200, json={"message": "Post deleted successfully."})

        async with self.client_for(handler) as client:
            self.assertEqual(await client.delete_post(7), "Post deleted successfully.")

    async def test_error_statuses(self):
        cases = [
            (404, {"error": "Post not found."}, PostNotFound, "Post not found."),
            (400, {"error": "Invalid post ID. Must be a number."}, InvalidPostId, "Invalid post ID. Must be a number."),
            (500, {"error": "Failed to delete post. Please try again later."}, TransientStoreError,
             "Failed to delete post. Please try again later."),
        ]
        for status, body, error_class, message in cases:
            async with self.client_for(lambda request: httpx.Response(status, json=body)) as client:
                with self.assertRaises(error_class) as ctx:
                    await client.delete_post(1)
            self.assertEqual(ctx.exception.message, message)
            self.assertEqual(ctx.exception.status_code, status)

    async def test_unreadable_error_uses_fallback(self):
        async with self.client_for(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
            with self.assertRaises(TransientStoreError) as ctx:
                await client.delete_post(1)
        self.assertEqual(ctx.exception.message, "Failed to delete post")

    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with self.client_for(handler) as client:
            with self.assertRaises(TransientStoreError) as ctx:
                await client.list_posts()
        self.assertEqual(ctx.exception.message, "Failed to fetch posts")


class PostsControllerTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = LocalCache(backend=fresh_backend(), ttl=TTL, clock=self.clock)
        self.api = FakePostsClient([make_post(pid, (pid - 1) // 3 + 1) for pid in range(1, 7)])
        self.focus = FocusTracker("delete-button-2")
        self.controller = PostsController(self.api, self.cache, focus_host=self.focus)

    async def test_initialize_without_cache_loads_in_foreground(self):
        await self.controller.initialize()
        state = self.controller.state
        self.assertEqual(state.phase, Phase.READY)
        self.assertFalse(state.is_loading)
        self.assertEqual(ids(state.posts), [6, 5, 4, 3, 2, 1])
        self.assertEqual(ids(self.cache.read().data), [6, 5, 4, 3, 2, 1])
        self.assertEqual(self.api.list_calls, [None])

    async def test_loading_flag_while_fetching(self):
        self.api.list_gates[None] = gate = asyncio.Event()
        task = asyncio.create_task(self.controller.initialize())
        await asyncio.sleep(0)
        self.assertTrue(self.controller.state.is_loading)
        self.assertEqual(self.controller.state.phase, Phase.LOADING)
        gate.set()
        await task
        self.assertFalse(self.controller.state.is_loading)

    async def test_initialize_paints_cache_then_revalidates(self):
        self.cache.write([make_post(1)])
        self.api.list_gates[None] = gate = asyncio.Event()

        await self.controller.initialize()
        state = self.controller.state
        self.assertEqual(ids(state.posts), [1])
        self.assertEqual(state.phase, Phase.READY)
        self.assertFalse(state.is_loading)
        self.assertFalse(state.is_stale)

        gate.set()
        await self.controller.wait_for_revalidation()
        self.assertEqual(ids(state.posts), [6, 5, 4, 3, 2, 1])
        self.assertEqual(ids(self.cache.read().data), [6, 5, 4, 3, 2, 1])

    async def test_stale_cache_is_flagged_until_revalidated(self):
        self.cache.write([make_post(1)])
        self.clock.now += TTL + 1
        self.api.list_gates[None] = gate = asyncio.Event()

        await self.controller.initialize()
        self.assertTrue(self.controller.state.is_stale)

        gate.set()
        await self.controller.wait_for_revalidation()
        self.assertFalse(self.controller.state.is_stale)

    async def test_empty_cache_entry_loads_in_foreground(self):
        self.cache.write([])
        await self.controller.initialize()
        self.assertEqual(len(self.controller.state.posts), 6)
        self.assertEqual(self.api.list_calls, [None])

    async def test_corrupt_cache_entry_loads_in_foreground(self):
        self.cache.backend.set(self.cache.key, json.dumps({"data": [{"title": "x"}], "timestamp": 1}))
        await self.controller.initialize()
        state = self.controller.state
        self.assertEqual(state.phase, Phase.READY)
        self.assertEqual(ids(state.posts), [6, 5, 4, 3, 2, 1])
        self.assertEqual(self.api.list_calls, [None])
        self.assertEqual(ids(self.cache.read().data), [6, 5, 4, 3, 2, 1])

    async def test_failed_revalidation_keeps_cached_view(self):
        self.cache.write([make_post(1)])
        captured_at = self.cache.read().captured_at
        self.api.list_error = TransientStoreError("Failed to fetch posts")

        await self.controller.initialize()
        await self.controller.wait_for_revalidation()

        state = self.controller.state
        self.assertEqual(ids(state.posts), [1])
        self.assertTrue(state.is_revalidate_failed)
        self.assertIsNone(state.error_message)
        self.assertEqual(state.phase, Phase.READY)
        self.assertEqual(self.cache.read().captured_at, captured_at)

    async def test_foreground_failure_sets_error(self):
        self.api.list_error = TransientStoreError("Failed to fetch posts")
        await self.controller.initialize()
        state = self.controller.state
        self.assertEqual(state.phase, Phase.ERROR)
        self.assertEqual(state.error_message, "Failed to fetch posts")
        self.assertFalse(state.is_loading)
        self.assertIsNone(self.cache.read())

    async def test_retry_refetches_applied_filter(self):
        self.api.list_error = TransientStoreError("Failed to fetch posts")
        await self.controller.apply_filter("2")
        self.assertEqual(self.controller.state.phase, Phase.ERROR)

        self.api.list_error = None
        await self.controller.retry()
        state = self.controller.state
        self.assertEqual(self.api.list_calls, ["2", "2"])
        self.assertEqual(ids(state.posts), [6, 5, 4])
        self.assertIsNone(state.error_message)
        self.assertEqual(state.phase, Phase.READY)

    async def test_apply_filter_caches_under_filter(self):
        await self.controller.apply_filter(" 1 ")
        self.assertEqual(self.controller.state.applied_filter, "1")
        self.assertEqual(ids(self.controller.state.posts), [3, 2, 1])
        self.assertIsNone(self.cache.read(None))
        self.assertEqual(ids(self.cache.read("1").data), [3, 2, 1])

    async def test_blank_filter_behaves_as_clear(self):
        await self.controller.apply_filter("1")
        await self.controller.apply_filter("   ")
        self.assertIsNone(self.controller.state.applied_filter)
        self.assertEqual(self.api.list_calls, ["1", None])
        self.assertEqual(len(self.controller.state.posts), 6)

    async def test_clear_filter_after_switch_refetches(self):
        await self.controller.initialize()
        await self.controller.apply_filter("1")
        # switching filters replaced the stored entry, so clearing misses the cache
        await self.controller.clear_filter()
        self.assertEqual(self.api.list_calls, [None, "1", None])
        self.assertEqual(len(self.controller.state.posts), 6)

    async def test_superseded_response_is_dropped(self):
        first, second = asyncio.Event(), asyncio.Event()
        self.api.list_gates.update({"1": first, "2": second})

        slow = asyncio.create_task(self.controller.apply_filter("1"))
        await asyncio.sleep(0)
        fast = asyncio.create_task(self.controller.apply_filter("2"))
        await asyncio.sleep(0)

        second.set()
        await fast
        first.set()
        await slow

        state = self.controller.state
        self.assertEqual(state.applied_filter, "2")
        self.assertEqual(ids(state.posts), [6, 5, 4])
        self.assertIsNone(self.cache.read("1"))
        self.assertIsNotNone(self.cache.read("2"))

    async def test_request_and_cancel_delete(self):
        await self.controller.initialize()
        self.controller.request_delete(2)
        self.assertTrue(self.controller.state.is_dialog_open)
        self.assertTrue(self.controller.dialog.is_open)
        self.assertEqual(self.focus.current, DialogAction.CANCEL)

        self.controller.cancel_delete()
        self.assertIsNone(self.controller.state.pending_delete_id)
        self.assertFalse(self.controller.dialog.is_open)
        self.assertEqual(len(self.controller.state.posts), 6)
        self.assertEqual(self.focus.current, "delete-button-2")
        self.assertEqual(self.api.delete_calls, [])

    async def test_optimistic_delete(self):
        await self.controller.initialize()
        self.controller.request_delete(5)
        self.api.delete_gate = gate = asyncio.Event()

        task = asyncio.create_task(self.controller.dialog.confirm())
        await asyncio.sleep(0)
        state = self.controller.state
        self.assertEqual(ids(state.posts), [6, 4, 3, 2, 1])
        self.assertTrue(state.is_deleting)
        self.assertTrue(self.controller.dialog.loading)

        gate.set()
        self.assertTrue(await task)
        self.assertFalse(state.is_deleting)
        self.assertIsNone(state.pending_delete_id)
        self.assertFalse(self.controller.dialog.is_open)
        self.assertEqual(ids(self.cache.read().data), [6, 4, 3, 2, 1])

    async def test_failed_delete_rolls_back(self):
        await self.controller.initialize()
        stored = self.cache.backend.get(self.cache.key)
        self.api.delete_error = PostNotFound("Post not found.", 404)
        self.api.delete_gate = gate = asyncio.Event()
        self.controller.request_delete(5)

        task = asyncio.create_task(self.controller.confirm_delete())
        await asyncio.sleep(0)
        self.assertNotIn(5, ids(self.controller.state.posts))

        gate.set()
        self.assertFalse(await task)
        state = self.controller.state
        self.assertEqual(ids(state.posts), [6, 5, 4, 3, 2, 1])
        self.assertEqual(state.delete_error_message, "Post not found.")
        self.assertEqual(state.pending_delete_id, 5)
        self.assertFalse(state.is_deleting)
        self.assertEqual(self.cache.backend.get(self.cache.key), stored)

        dialog = self.controller.dialog
        self.assertTrue(dialog.is_open)
        self.assertTrue(dialog.acknowledge_only)
        self.assertEqual(dialog.message, "Post not found.")
        self.assertEqual(dialog.cancel_label, "Close")
        self.assertEqual(dialog.actions, (DialogAction.CANCEL,))

        # Escape acknowledges the error and closes
        self.assertTrue(dialog.handle_key("Escape"))
        self.assertFalse(dialog.is_open)
        self.assertIsNone(state.pending_delete_id)
        self.assertIsNone(state.delete_error_message)

    async def test_confirm_after_error_dismisses(self):
        await self.controller.initialize()
        self.api.delete_error = TransientStoreError("Failed to delete post")
        self.controller.request_delete(1)
        await self.controller.confirm_delete()
        self.assertFalse(await self.controller.confirm_delete())
        self.assertEqual(self.api.delete_calls, [1])
        self.assertFalse(self.controller.dialog.is_open)

    async def test_confirm_without_pending_delete(self):
        await self.controller.initialize()
        self.assertFalse(await self.controller.confirm_delete())
        self.assertEqual(self.api.delete_calls, [])

    async def test_delete_under_filter_writes_filtered_cache(self):
        await self.controller.apply_filter("2")
        self.controller.request_delete(4)
        self.assertTrue(await self.controller.confirm_delete())
        self.assertEqual(ids(self.cache.read("2").data), [6, 5])

    async def test_delete_after_failed_filter_switch_keeps_other_filter_uncached(self):
        await self.controller.initialize()
        self.api.list_error = TransientStoreError("Failed to fetch posts")
        await self.controller.apply_filter("2")
        self.assertEqual(self.controller.state.phase, Phase.ERROR)

        self.api.list_error = None
        self.controller.request_delete(1)
        self.assertTrue(await self.controller.confirm_delete())
        self.assertIsNone(self.cache.read("2"))
        self.assertEqual(ids(self.cache.read().data), [6, 5, 4, 3, 2, 1])

    async def test_aclose(self):
        self.cache.write([make_post(1)])
        self.api.list_gates[None] = asyncio.Event()
        await self.controller.initialize()
        await self.controller.aclose()
        self.assertTrue(self.api.closed)
        await self.controller.wait_for_revalidation()

    async def test_build_controller_uses_settings(self):
        controller = build_controller(base_url="http://api.test")
        self.assertEqual(controller.client.base_url, "http://api.test")
        self.assertEqual(controller.cache.key, "posts_cache")
        self.assertEqual(controller.cache.ttl_ms, TTL * 1000)
        await controller.aclose()


class ListTransitionTests(SimpleTestCase):
    def test_remove_then_reinstate_restores_order(self):
        posts = [make_post(9), make_post(7), make_post(4)]
        removed = remove_post(posts, 7)
        self.assertEqual(ids(removed), [9, 4])
        self.assertEqual(ids(posts), [9, 7, 4])
        self.assertEqual(ids(reinstate_post(removed, make_post(7))), [9, 7, 4])

    def test_reinstate_does_not_duplicate(self):
        posts = [make_post(2), make_post(1)]
        self.assertEqual(ids(reinstate_post(posts, make_post(2))), [2, 1])


class ConfirmDialogTests(SimpleTestCase):
    def setUp(self):
        self.calls = []
        self.focus = FocusTracker("filter-input")
        self.dialog = ConfirmDialog(
            on_confirm=lambda: self.calls.append("confirm"),
            on_cancel=self.cancel,
            focus_host=self.focus,
        )

    def cancel(self):
        self.calls.append("cancel")
        self.dialog.close()

    def test_focus_captured_and_restored(self):
        self.dialog.open()
        self.assertEqual(self.focus.current, DialogAction.CANCEL)
        self.dialog.close()
        self.assertEqual(self.focus.current, "filter-input")

    def test_closed_dialog_ignores_input(self):
        self.assertFalse(self.dialog.handle_key("Escape"))
        self.assertIsNone(self.dialog.confirm())
        self.assertEqual(self.calls, [])

    def test_escape_and_backdrop_cancel(self):
        self.dialog.open()
        self.assertTrue(self.dialog.handle_key("Escape"))
        self.dialog.open()
        self.dialog.click_backdrop()
        self.assertEqual(self.calls, ["cancel", "cancel"])

    def test_loading_blocks_dismissal_and_actions(self):
        self.dialog.open()
        self.dialog.loading = True
        self.assertFalse(self.dialog.handle_key("Escape"))
        self.dialog.click_backdrop()
        self.dialog.confirm()
        self.dialog.cancel()
        self.assertEqual(self.calls, [])
        self.assertTrue(self.dialog.is_open)

    def test_tab_cycles_between_actions(self):
        self.dialog.open()
        self.assertTrue(self.dialog.handle_key("Tab"))
        self.assertEqual(self.focus.current, DialogAction.CONFIRM)
        self.dialog.handle_key("Tab")
        self.assertEqual(self.focus.current, DialogAction.CANCEL)
        self.dialog.handle_key("Tab", shift=True)
        self.assertEqual(self.focus.current, DialogAction.CONFIRM)

        self.focus.focus("somewhere-else")
        self.dialog.handle_key("Tab")
        self.assertEqual(self.focus.current, DialogAction.CANCEL)

    def test_other_keys_pass_through(self):
        self.dialog.open()
        self.assertFalse(self.dialog.handle_key("Enter"))

    def test_acknowledge_only_after_error(self):
        self.dialog.open()
        self.assertEqual(self.dialog.cancel_label, "Cancel")
        self.assertEqual(self.dialog.message, self.dialog.description)

        self.dialog.show_error("Post not found.")
        self.assertEqual(self.dialog.message, "Post not found.")
        self.assertEqual(self.dialog.cancel_label, "Close")
        self.assertIsNone(self.dialog.confirm())
        self.dialog.handle_key("Tab")
        self.assertEqual(self.focus.current, DialogAction.CANCEL)

        self.dialog.cancel()
        self.assertEqual(self.calls, ["cancel"])
        self.assertEqual(self.focus.current, "filter-input")

    def test_reopen_clears_error(self):
        self.dialog.open()
        self.dialog.show_error("boom")
        self.dialog.open()
        self.assertFalse(self.dialog.acknowledge_only)
