"""HTTP client for the chat ingestion service."""

from typing import Any

import requests

from chat_siphon.config import SyncConfig
from chat_siphon.logging import get_logger

logger = get_logger("client")

USER_ID_HEADER = "X-User-Id"


class IngestionError(Exception):
    """Transport failure or non-2xx response from the ingestion service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IngestionClient:
    """Talks to the ingestion service on behalf of one anonymous user.

    Every request carries the user's anonymous id in the X-User-Id header.
    """

    def __init__(self, config: SyncConfig, session: requests.Session | None = None) -> None:
        """Initialize client with sync configuration.

        Args:
            config: SyncConfig with service URL and timeout
            session: Optional requests session (for connection reuse or tests)
        """
        self._config = config
        self._base_url = config.api_url.rstrip("/")
        self._session = session or requests.Session()

    @property
    def session(self) -> requests.Session:
        """Access the underlying requests session."""
        return self._session

    def upload_chats(self, user_id: str, logs: list[dict[str, Any]]) -> int:
        """Upload chat log documents.

        The service ignores ids it already stored, so re-sending is harmless.

        Args:
            user_id: Anonymous user id
            logs: Documents of {id, platform, url, method, capturedAt, data}

        Returns:
            Number of documents the service reports as stored
        """
        result = self._request("POST", "/chats", user_id, json={"logs": logs})
        return int(result.get("stored", len(logs)))

    def delete_conversation(self, user_id: str, url: str) -> int:
        """Delete every stored record whose URL falls under a conversation key.

        Returns:
            Number of records the service reports as deleted
        """
        result = self._request("DELETE", "/conversation", user_id, json={"url": url})
        return int(result.get("deleted", 0))

    def list_my_chats(self, user_id: str, limit: int = 100, offset: int = 0) -> dict[str, Any]:
        """List the user's stored chat logs, newest first."""
        return self._request(
            "GET",
            "/my-chats",
            user_id,
            params={"limit": limit, "offset": offset},
        )

    def delete_my_chats(self, user_id: str) -> int:
        """Erase everything stored for the user.

        Returns:
            Number of records the service reports as deleted
        """
        result = self._request("DELETE", "/my-chats", user_id)
        return int(result.get("deleted", 0))

    def _request(self, method: str, path: str, user_id: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = {USER_ID_HEADER: user_id}
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                timeout=self._config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise IngestionError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise IngestionError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            logger.debug("Non-JSON response body: method=%s path=%s", method, path)
            return {}
        return body if isinstance(body, dict) else {"items": body}
