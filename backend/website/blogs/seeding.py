"""
Fixture seeding for users and posts.

Fetches ``/users`` and ``/posts`` from a JSONPlaceholder-compatible API and
upserts them by id, so repeated runs converge to the same rows.

Usage:
    users, posts = fetch_fixtures()
    result = seed_from_fixtures(users, posts)
"""

import logging
from typing import Any, NamedTuple, Optional

import httpx
from django.conf import settings
from django.db import transaction

from users.models import User
from users.serializers import UserFixtureSerializer
from .models import Post
from .serializers import PostFixtureSerializer

logger = logging.getLogger(__name__)


class FixtureError(Exception):
    """Fixture source unreachable, or its payload unusable."""


class SeedResult(NamedTuple):
    users: int
    posts: int


def fetch_fixtures(
    base_url: Optional[str] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """
    Fetch user and post fixtures.

    Args:
        base_url: Fixture API root, defaults to settings.FIXTURES_BASE_URL
        transport: Optional httpx transport (tests inject a MockTransport)

    Returns:
        (users, posts) as decoded JSON lists

    Raises:
        FixtureError: If the source is unreachable or answers with a non-2xx status
    """
    base_url = base_url or settings.FIXTURES_BASE_URL
    with httpx.Client(base_url=base_url, timeout=settings.FIXTURES_TIMEOUT, transport=transport) as client:
        logger.info("Fetching users from %s", base_url)
        users = _get_list(client, "/users")
        logger.info("Fetching posts from %s", base_url)
        posts = _get_list(client, "/posts")
    return users, posts


def _get_list(client: httpx.Client, path: str) -> list[dict[str, Any]]:
    name = path.strip("/")
    try:
        response = client.get(path)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as e:
        raise FixtureError(
            f"Failed to fetch {name}: {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.HTTPError as e:
        raise FixtureError(f"Failed to fetch {name}: {e}") from e
    except ValueError as e:
        raise FixtureError(f"Failed to decode {name}: {e}") from e

    if not isinstance(payload, list):
        raise FixtureError(f"Expected a list of {name}, got {type(payload).__name__}")
    return payload


@transaction.atomic
def seed_from_fixtures(users: list[dict[str, Any]], posts: list[dict[str, Any]]) -> SeedResult:
    """
    Insert-or-update every user, then every post, keyed by fixture id.

    Runs in one transaction: any invalid row leaves the store untouched.

    Raises:
        FixtureError: If a fixture row is malformed or a post references an unknown user
    """
    user_rows = _validated(UserFixtureSerializer, users, "user")
    post_rows = _validated(PostFixtureSerializer, posts, "post")

    for row in user_rows:
        User.objects.update_or_create(
            id=row["id"],
            defaults={"name": row["name"], "username": row["username"], "email": row["email"]},
        )
    logger.info("Seeded %d users", len(user_rows))

    known_users = set(User.objects.values_list("id", flat=True))
    for row in post_rows:
        if row["userId"] not in known_users:
            raise FixtureError(f"Post {row['id']} references unknown user {row['userId']}")
        Post.objects.update_or_create(
            id=row["id"],
            defaults={"user_id": row["userId"], "title": row["title"], "body": row["body"]},
        )
    logger.info("Seeded %d posts", len(post_rows))

    return SeedResult(users=len(user_rows), posts=len(post_rows))


def _validated(serializer_class, rows, label):
    serializer = serializer_class(data=rows, many=True)
    if not serializer.is_valid():
        bad = [(i, err) for i, err in enumerate(serializer.errors) if err]
        raise FixtureError(f"Invalid {label} fixtures: {bad[:3]}")
    return serializer.validated_data
