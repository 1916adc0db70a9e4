"""
Async client for the posts API.

Maps HTTP failures onto a small exception hierarchy so the controller only
ever has to catch ``QueryServiceError``.
"""

import logging
from typing import Any, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

LIST_FAILED = "Failed to fetch posts"
DELETE_FAILED = "Failed to delete post"


class QueryServiceError(Exception):
    status_code: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidPostId(QueryServiceError):
    status_code = 400


class PostNotFound(QueryServiceError):
    status_code = 404


class TransientStoreError(QueryServiceError):
    """Server-side store failure, transport error or unreadable response."""


_ERRORS_BY_STATUS = {
    400: InvalidPostId,
    404: PostNotFound,
}


class PostsClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url or settings.BROWSER_API_BASE_URL
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "PostsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_posts(self, user_id: Optional[Any] = None) -> list[dict[str, Any]]:
        """GET /api/posts/, optionally filtered by author id. Newest first."""
        params = {"userId": str(user_id)} if user_id is not None else None
        response = await self._request("GET", "/api/posts/", LIST_FAILED, params=params)
        data = self._decode(response, LIST_FAILED)
        if not isinstance(data, list):
            raise TransientStoreError(LIST_FAILED, response.status_code)
        return data

    async def delete_post(self, post_id: Any) -> str:
        """DELETE /api/posts/<id>/. Returns the server's confirmation message."""
        response = await self._request("DELETE", f"/api/posts/{post_id}/", DELETE_FAILED)
        data = self._decode(response, DELETE_FAILED)
        return data.get("message", "") if isinstance(data, dict) else ""

    async def _request(self, method: str, url: str, fallback: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransientStoreError(fallback) from e

        if response.is_success:
            return response

        message = self._error_message(response) or fallback
        error_class = _ERRORS_BY_STATUS.get(response.status_code, TransientStoreError)
        logger.info("%s %s returned %s: %s", method, url, response.status_code, message)
        raise error_class(message, response.status_code)

    @staticmethod
    def _decode(response: httpx.Response, fallback: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransientStoreError(fallback, response.status_code) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return None
