from rest_framework.throttling import AnonRateThrottle


class PostDeleteThrottle(AnonRateThrottle):
    scope = "post_delete"
