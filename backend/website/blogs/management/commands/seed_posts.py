from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError

from blogs.seeding import FixtureError, fetch_fixtures, seed_from_fixtures


class Command(BaseCommand):
    help = "Load users and posts from the fixture API. Safe to run repeatedly."

    def add_arguments(self, parser):
        parser.add_argument(
            "--base-url",
            default=None,
            help="Fixture API root (defaults to settings.FIXTURES_BASE_URL).",
        )

    def handle(self, *args, **options):
        self.stdout.write("Seeding database...")
        try:
            users, posts = fetch_fixtures(options["base_url"])
            result = seed_from_fixtures(users, posts)
        except (FixtureError, DatabaseError) as e:
            raise CommandError(f"Seeding failed: {e}") from e

        self.stdout.write(f"  Seeded {result.users} users")
        self.stdout.write(f"  Seeded {result.posts} posts")
        self.stdout.write(self.style.SUCCESS("Seeding completed successfully"))
