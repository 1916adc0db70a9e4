from io import StringIO
from unittest import mock

import httpx
from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError
from django.test import TestCase
from rest_framework.test import APITestCase

from users.models import User
from blogs.models import Post
from blogs.seeding import FixtureError, SeedResult, fetch_fixtures, seed_from_fixtures
from blogs.tasks import seed_fixtures


def make_fixtures(user_count=10, posts_per_user=10):
    users = [
        {
            "id": i,
            "name": f"User {i}",
            "username": f"user{i}",
            "email": f"user{i}@example.com",
            "address": {"city": "Gwenborough"},
        }
        for i in range(1, user_count + 1)
    ]
    posts = [
        {
            "userId": (pid - 1) // posts_per_user + 1,
            "id": pid,
            "title": f"title {pid}",
            "body": f"body of post {pid}\nsecond line",
        }
        for pid in range(1, user_count * posts_per_user + 1)
    ]
    return users, posts


def store_snapshot():
    return (
        list(User.objects.order_by("id").values_list("id", "name", "username", "email")),
        list(Post.objects.order_by("id").values_list("id", "user_id", "title", "body")),
    )


class PostApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        seed_from_fixtures(*make_fixtures())

    def test_list_all_newest_first(self):
        res = self.client.get("/api/posts/")
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual([p["id"] for p in data], list(range(100, 0, -1)))
        self.assertEqual(data[0], {
            "id": 100,
            "userId": 10,
            "title": "title 100",
            "body": "body of post 100\nsecond line",
            "user": {"id": 10, "name": "User 10", "username": "user10", "email": "user10@example.com"},
        })

    def test_filter_by_user(self):
        res = self.client.get("/api/posts/", {"userId": 3})
        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual([p["id"] for p in data], list(range(30, 20, -1)))
        self.assertTrue(all(p["userId"] == 3 and p["user"]["id"] == 3 for p in data))

    def test_filter_unknown_user_is_empty(self):
        res = self.client.get("/api/posts/", {"userId": 42})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [])

    def test_blank_filter_lists_everything(self):
        res = self.client.get("/api/posts/", {"userId": ""})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(len(res.json()), 100)

    def test_plain_text_served_unescaped(self):
        post = Post.objects.get(pk=100)
        post.title, post.body = "Tom & Jerry", "x < y"
        post.save()
        post = self.client.get("/api/posts/").json()[0]
        self.assertEqual((post["title"], post["body"]), ("Tom & Jerry", "x < y"))

    def test_non_integer_filter_rejected(self):
        res = self.client.get("/api/posts/", {"userId": "three"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "Invalid user ID. Must be a number."})

    def test_delete_post(self):
        # warm the list cache so the delete has something to invalidate
        self.assertEqual(len(self.client.get("/api/posts/", {"userId": 1}).json()), 10)

        res = self.client.delete("/api/posts/5/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "Post deleted successfully."})
        self.assertEqual(Post.objects.count(), 99)

        ids = [p["id"] for p in self.client.get("/api/posts/", {"userId": 1}).json()]
        self.assertNotIn(5, ids)
        self.assertEqual(len(ids), 9)

    def test_delete_missing_post(self):
        res = self.client.delete("/api/posts/9999/")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json(), {"error": "Post not found."})
        self.assertEqual(Post.objects.count(), 100)
        self.assertEqual(User.objects.count(), 10)

    def test_delete_non_integer_id(self):
        res = self.client.delete("/api/posts/abc/")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "Invalid post ID. Must be a number."})
        self.assertEqual(Post.objects.count(), 100)

    def test_only_ascii_digit_ids_accepted(self):
        for raw in ("1_0", "\u0661\u0660", "+10"):
            res = self.client.delete(f"/api/posts/{raw}/")
            self.assertEqual(res.status_code, 400, raw)
            res = self.client.get("/api/posts/", {"userId": raw})
            self.assertEqual(res.status_code, 400, raw)
        self.assertTrue(Post.objects.filter(pk=10).exists())
        self.assertEqual(Post.objects.count(), 100)

    def test_list_store_failure(self):
        with mock.patch("blogs.views.posts_qs", side_effect=OperationalError("database is locked")):
            res = self.client.get("/api/posts/")
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Failed to fetch posts. Please try again later."})

    def test_delete_store_failure(self):
        with mock.patch.object(Post, "delete", side_effect=OperationalError("disk I/O error")):
            res = self.client.delete("/api/posts/5/")
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Failed to delete post. Please try again later."})
        self.assertTrue(Post.objects.filter(pk=5).exists())


class SeedTests(TestCase):
    def test_seed_counts(self):
        result = seed_from_fixtures(*make_fixtures())
        self.assertEqual(result, SeedResult(users=10, posts=100))
        self.assertEqual(User.objects.count(), 10)
        self.assertEqual(Post.objects.filter(user_id=3).count(), 10)

    def test_seed_is_idempotent(self):
        users, posts = make_fixtures()
        seed_from_fixtures(users, posts)
        first = store_snapshot()
        seed_from_fixtures(users, posts)
        self.assertEqual(store_snapshot(), first)

    def test_seed_updates_existing_rows(self):
        users, posts = make_fixtures()
        seed_from_fixtures(users, posts)
        posts[0]["title"] = "retitled"
        users[0]["email"] = "new@example.com"
        seed_from_fixtures(users, posts)
        self.assertEqual(Post.objects.get(pk=1).title, "retitled")
        self.assertEqual(User.objects.get(pk=1).email, "new@example.com")
        self.assertEqual(Post.objects.count(), 100)

    def test_unknown_author_rolls_back(self):
        users, posts = make_fixtures(user_count=2, posts_per_user=2)
        posts.append({"userId": 77, "id": 5, "title": "orphan", "body": "no author"})
        with self.assertRaises(FixtureError):
            seed_from_fixtures(users, posts)
        self.assertEqual(User.objects.count(), 0)
        self.assertEqual(Post.objects.count(), 0)

    def test_malformed_rows_rejected(self):
        users, posts = make_fixtures(user_count=1, posts_per_user=1)
        users[0]["email"] = "not-an-email"
        with self.assertRaises(FixtureError):
            seed_from_fixtures(users, posts)
        self.assertEqual(User.objects.count(), 0)

    def test_markup_stripped_from_posts(self):
        users, posts = make_fixtures(user_count=1, posts_per_user=1)
        posts[0]["title"] = "<b>Hello</b> world"
        posts[0]["body"] = "<script>alert(1)</script>plain text"
        seed_from_fixtures(users, posts)
        post = Post.objects.get(pk=1)
        self.assertEqual(post.title, "Hello world")
        self.assertNotIn("<script", post.body)
        self.assertIn("plain text", post.body)

    def test_plain_text_kept_verbatim(self):
        users, posts = make_fixtures(user_count=1, posts_per_user=1)
        posts[0]["title"] = "Tom & Jerry"
        posts[0]["body"] = "x < y and y > z"
        seed_from_fixtures(users, posts)
        first = store_snapshot()
        post = Post.objects.get(pk=1)
        self.assertEqual(post.title, "Tom & Jerry")
        self.assertEqual(post.body, "x < y and y > z")

        seed_from_fixtures(users, posts)
        self.assertEqual(store_snapshot(), first)


class FetchFixturesTests(TestCase):
    def transport(self, responses):
        def handler(request):
            status, payload = responses[request.url.path]
            return httpx.Response(status, json=payload)
        return httpx.MockTransport(handler)

    def test_fetch_users_and_posts(self):
        users, posts = make_fixtures(user_count=2, posts_per_user=1)
        transport = self.transport({"/users": (200, users), "/posts": (200, posts)})
        self.assertEqual(fetch_fixtures("https://fixtures.test", transport=transport), (users, posts))

    def test_http_error_status(self):
        transport = self.transport({"/users": (503, {"error": "down"}), "/posts": (200, [])})
        with self.assertRaisesMessage(FixtureError, "Failed to fetch users: 503"):
            fetch_fixtures("https://fixtures.test", transport=transport)

    def test_unreachable_source(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(FixtureError):
            fetch_fixtures("https://fixtures.test", transport=httpx.MockTransport(handler))

    def test_non_list_payload(self):
        transport = self.transport({"/users": (200, {"users": []}), "/posts": (200, [])})
        with self.assertRaisesMessage(FixtureError, "Expected a list of users"):
            fetch_fixtures("https://fixtures.test", transport=transport)


class SeedCommandTests(TestCase):
    def test_seed_command(self):
        out = StringIO()
        with mock.patch("blogs.management.commands.seed_posts.fetch_fixtures", return_value=make_fixtures()):
            call_command("seed_posts", stdout=out)
        self.assertIn("Seeded 10 users", out.getvalue())
        self.assertIn("Seeded 100 posts", out.getvalue())
        self.assertEqual(Post.objects.count(), 100)

    def test_seed_command_fails_loudly(self):
        failure = FixtureError("Failed to fetch users: 500 Internal Server Error")
        with mock.patch("blogs.management.commands.seed_posts.fetch_fixtures", side_effect=failure):
            with self.assertRaisesMessage(CommandError, "Seeding failed"):
                call_command("seed_posts", stdout=StringIO())
        self.assertEqual(Post.objects.count(), 0)

    def test_seed_task(self):
        with mock.patch("blogs.tasks.fetch_fixtures", return_value=make_fixtures(user_count=3)) as fetch:
            result = seed_fixtures.apply(kwargs={"base_url": "https://fixtures.test"})
        fetch.assert_called_once_with("https://fixtures.test")
        self.assertEqual(result.get(), {"users": 3, "posts": 30})
