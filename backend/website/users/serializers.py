# users/serializers.py
from rest_framework import serializers
from .models import User


class UserMiniSerializer(serializers.ModelSerializer):
    """Public author payload embedded in every post."""

    class Meta:
        model = User
        fields = ["id", "name", "username", "email"]


class UserFixtureSerializer(serializers.Serializer):
    # JSONPlaceholder users carry address/company/etc; only these are kept
    id = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=255)
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
