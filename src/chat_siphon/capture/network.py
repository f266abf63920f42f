"""Network capture: classify request/response pairs and forward chat payloads."""

import json
import time
from collections.abc import Callable, Iterable
from typing import Any

import requests

from chat_siphon.capture.dom import Page
from chat_siphon.capture.stream import reconstruct_stream
from chat_siphon.logging import get_logger
from chat_siphon.models import CHANNEL_NETWORK, RawCapture
from chat_siphon.platforms import PlatformProfile, PlatformRegistry

logger = get_logger("network")

EVENT_STREAM_TYPE = "text/event-stream"
JSON_TYPE = "application/json"


def classify(url: str, profile: PlatformProfile | None) -> bool:
    """True if the URL is a chat call worth capturing for this platform.

    Any include pattern must occur in the URL and no exclude pattern may.
    """
    if profile is None:
        return False
    included = any(pattern in url for pattern in profile.network_include_patterns)
    excluded = any(pattern in url for pattern in profile.network_exclude_patterns)
    return included and not excluded


class NetworkCaptureFilter:
    """Observes response bodies and emits RawCapture for relevant chat calls.

    Only reads copies of the body; callers keep their response untouched.
    When bound to a page, captures record the page location so they group
    with the conversation the user is looking at.
    """

    def __init__(self, emit: Callable[[RawCapture], Any], page: Page | None = None) -> None:
        self._emit = emit
        self.page = page

    def observe(
        self,
        url: str,
        method: str | None,
        content_type: str,
        body: bytes | Iterable[bytes],
    ) -> RawCapture | None:
        """Inspect one response and forward it if relevant.

        Args:
            url: Request URL
            method: HTTP method, None if unknown
            content_type: Response Content-Type header value
            body: Whole body, or an iterable of chunks for streamed bodies

        Returns:
            The emitted capture, or None
        """
        profile = PlatformRegistry.detect(url)
        if not classify(url, profile):
            return None

        content_type = (content_type or "").lower()
        chunks = [body] if isinstance(body, bytes) else body

        if EVENT_STREAM_TYPE in content_type:
            payload = reconstruct_stream(chunks)
            method = method or "POST"
        elif JSON_TYPE in content_type:
            payload = self._parse_json(chunks, url)
            method = method or "GET"
        else:
            return None

        if payload is None:
            return None

        capture = RawCapture(
            url=url,
            method=method.upper(),
            captured_at=time.time(),
            platform=profile.id,
            source_channel=CHANNEL_NETWORK,
            payload=payload,
            page_url=self.page.url if self.page is not None else None,
        )
        logger.debug("Intercepted chat call: platform=%s url=%s", profile.id, url)
        self._emit(capture)
        return capture

    def _parse_json(self, chunks: Iterable[bytes], url: str) -> dict[str, Any] | None:
        try:
            data = json.loads(b"".join(chunks))
        except ValueError:
            logger.debug("JSON parse error, skipping capture: url=%s", url)
            return None
        # Keep payloads as objects so they nest cleanly in upload documents
        return data if isinstance(data, dict) else {"data": data}


class CapturingSession(requests.Session):
    """requests.Session that reports chat responses to a NetworkCaptureFilter.

    The response returned to the caller is the one the transport produced.
    Streamed chat responses are buffered to completion; requests keeps the
    buffered body, so the caller can still read `.content` or `.iter_content()`.
    """

    def __init__(self, capture_filter: NetworkCaptureFilter) -> None:
        super().__init__()
        self.capture_filter = capture_filter

    def request(self, method: str | bytes, url: str | bytes, *args: Any, **kwargs: Any) -> requests.Response:
        response = super().request(method, url, *args, **kwargs)
        method_str = method.decode() if isinstance(method, bytes) else method
        url_str = response.url or (url.decode() if isinstance(url, bytes) else url)

        if not classify(url_str, PlatformRegistry.detect(url_str)):
            return response

        try:
            body = response.content
        except requests.RequestException:
            logger.debug("Body read failed, skipping capture: url=%s", url_str, exc_info=True)
            return response

        try:
            self.capture_filter.observe(
                url_str,
                method_str,
                response.headers.get("content-type", ""),
                body,
            )
        except Exception:
            logger.debug("Capture failed, returning response untouched: url=%s", url_str, exc_info=True)
        return response
