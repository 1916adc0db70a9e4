import html

import bleach
from django.db.models.signals import pre_save, post_save, post_delete
from django.dispatch import receiver

from users.models import User
from .models import Post
from .cache_keys import invalidate_list_cache


def strip_markup(text: str) -> str:
    # bleach escapes what it keeps; posts are plain text, so undo the escaping
    return html.unescape(bleach.clean(text, tags=set(), attributes={}, strip=True))


@receiver(pre_save, sender=Post)
def clean_post_text(sender, instance: Post, **kwargs):
    # posts are plain text; drop any markup that slipped into the fixtures
    if instance.title:
        instance.title = strip_markup(instance.title)
    if instance.body:
        instance.body = strip_markup(instance.body)


@receiver(post_save, sender=Post)
@receiver(post_delete, sender=Post)
@receiver(post_save, sender=User)
@receiver(post_delete, sender=User)
def expire_post_lists(sender, **kwargs):
    invalidate_list_cache()
