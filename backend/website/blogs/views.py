import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError
from rest_framework import viewsets, mixins, status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import Post
from .serializers import PostSerializer
from .exceptions import TransientStoreError, parse_identifier
from .cache_keys import list_cache_key
from .throttles import PostDeleteThrottle

logger = logging.getLogger(__name__)


def posts_qs():
    return Post.objects.select_related('user').order_by('-id')


class PostViewSet(mixins.ListModelMixin, mixins.DestroyModelMixin, viewsets.GenericViewSet):
    serializer_class = PostSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        return posts_qs()

    def get_throttles(self):
        if self.action == "destroy":
            return [PostDeleteThrottle()]
        return super().get_throttles()

    def list(self, request, *args, **kwargs):
        raw_user_id = request.query_params.get("userId", "").strip()
        user_id = None
        if raw_user_id:
            user_id = parse_identifier(raw_user_id, "Invalid user ID. Must be a number.")

        key = list_cache_key(dict(userId="" if user_id is None else user_id))
        data = cache.get(key)
        if data is None:
            try:
                qs = posts_qs()
                if user_id is not None:
                    qs = qs.filter(user_id=user_id)
                data = list(PostSerializer(qs, many=True).data)
            except DatabaseError as exc:
                logger.exception("Error fetching posts (userId=%s)", user_id)
                raise TransientStoreError("Failed to fetch posts. Please try again later.") from exc
            cache.set(key, data, timeout=settings.POSTS_LIST_CACHE_TIMEOUT)
        return Response(data)

    def destroy(self, request, pk=None, *args, **kwargs):
        post_id = parse_identifier(pk, "Invalid post ID. Must be a number.")
        try:
            post = Post.objects.filter(pk=post_id).first()
            if post is None:
                raise NotFound("Post not found.")
            post.delete()
        except DatabaseError as exc:
            logger.exception("Error deleting post %s", post_id)
            raise TransientStoreError("Failed to delete post. Please try again later.") from exc

        logger.info("Deleted post %s", post_id)
        return Response({"message": "Post deleted successfully."}, status=status.HTTP_200_OK)
