"""Canonical data models."""

import hashlib
from dataclasses import dataclass, field
from typing import Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

CHANNEL_NETWORK = "network"
CHANNEL_DOM = "dom"


def content_hash(content: str) -> str:
    """SHA256 fingerprint of message text, truncated to 16 hex chars.

    Two messages with identical text share a fingerprint.
    """
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class CanonicalMessage:
    """A message extracted from a rendered chat page."""

    fingerprint: str
    role: str  # user, assistant
    content: str
    observed_at: float  # Unix timestamp (seconds)

    @classmethod
    def from_text(cls, role: str, content: str, observed_at: float) -> "CanonicalMessage":
        return cls(
            fingerprint=content_hash(content),
            role=role,
            content=content,
            observed_at=observed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "role": self.role,
            "content": self.content,
            "observed_at": self.observed_at,
        }


@dataclass
class RawCapture:
    """One payload produced by a capture channel, before it is cached."""

    url: str
    method: str
    captured_at: float  # Wall clock, Unix seconds
    platform: str
    source_channel: str  # network, dom
    payload: dict[str, Any]
    page_url: str | None = None  # Location of the page that made the call

    @property
    def conversation_url(self) -> str:
        """URL the conversation key is derived from."""
        return self.page_url or self.url


@dataclass
class CachedCapture:
    """A capture batch stored in the local conversation cache.

    `seq` is the cache-assigned position; it identifies exactly which
    batches an upload included.
    """

    id: str
    platform: str
    url: str
    method: str
    captured_at: str  # ISO-8601
    source_channel: str
    data: dict[str, Any]
    seq: int | None = None

    def to_upload_doc(self) -> dict[str, Any]:
        """Convert to the ingestion service's chat log format."""
        return {
            "id": self.id,
            "platform": self.platform,
            "url": self.url,
            "method": self.method,
            "capturedAt": self.captured_at,
            "data": self.data,
        }


@dataclass
class ConversationCacheEntry:
    """Captured batches for one conversation, in capture order."""

    key: str
    captures: list[CachedCapture] = field(default_factory=list)
    last_update_at: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.captures


@dataclass
class GlobalCaptureState:
    enabled: bool = False
    user_identity: str | None = None
