from celery import shared_task

from .seeding import fetch_fixtures, seed_from_fixtures


@shared_task
def seed_fixtures(base_url=None):
    # errors propagate so the worker records the failure
    users, posts = fetch_fixtures(base_url)
    result = seed_from_fixtures(users, posts)
    return result._asdict()
