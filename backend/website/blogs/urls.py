from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import PostViewSet


router = DefaultRouter()
router.register("posts", PostViewSet, basename="posts")

urlpatterns = [
    path("api/", include(router.urls)),
]
