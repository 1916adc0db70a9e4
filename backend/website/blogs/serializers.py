from rest_framework import serializers

from users.serializers import UserMiniSerializer
from .models import Post


class PostSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source="user_id", read_only=True)
    user = UserMiniSerializer(read_only=True)

    class Meta:
        model = Post
        fields = ("id", "userId", "title", "body", "user")


class PostFixtureSerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)
    userId = serializers.IntegerField(min_value=1)
    title = serializers.CharField(max_length=255, allow_blank=True)
    body = serializers.CharField(allow_blank=True, trim_whitespace=False)
