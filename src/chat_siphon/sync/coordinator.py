"""Capture/sync/delete coordination.

Every capture is cached. Uploads only happen while capture is enabled and
a user identity exists. Turning capture off purges each open
conversation, locally without condition and remotely on a best-effort
basis.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Self

from chat_siphon.capture.channel import (
    CHAT_DATA,
    CONVERSATION_CLOSED,
    CONVERSATION_OPENED,
    GET_STATUS,
    SYNC_NOW,
    TOGGLE_ENABLED,
)
from chat_siphon.config import Config
from chat_siphon.identity import resolve_conversation_key
from chat_siphon.logging import get_logger
from chat_siphon.models import CHANNEL_NETWORK, CachedCapture, GlobalCaptureState, RawCapture
from chat_siphon.sync.cache import ConversationCache
from chat_siphon.sync.client import IngestionClient, IngestionError
from chat_siphon.sync.state import CaptureStateStore

logger = get_logger("coordinator")

# Per-conversation phases
PHASE_IDLE = "idle"
PHASE_CACHING = "caching"
PHASE_SYNCING = "syncing"
PHASE_DELETING = "deleting"


@dataclass
class SyncResult:
    """Outcome of one or more upload attempts."""

    success: bool
    synced: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "synced": self.synced}
        return {"success": False, "error": self.error}


@dataclass
class CaptureContext:
    """Everything the coordinator mutates, built once per process."""

    state: CaptureStateStore
    cache: ConversationCache
    client: IngestionClient

    @classmethod
    def from_config(cls, config: Config) -> Self:
        """Open the stores and client described by a configuration.

        A configured user identity seeds the persisted state when none is stored.
        """
        state = CaptureStateStore(config.storage.db_path)
        cache = ConversationCache(config.storage.db_path)
        client = IngestionClient(config.sync)
        if config.sync.user_identity and state.load().user_identity is None:
            state.update(user_identity=config.sync.user_identity)
        return cls(state=state, cache=cache, client=client)

    def close(self) -> None:
        self.state.close()
        self.cache.close()


class Coordinator:
    """Decides whether captured data is cached, uploaded or purged."""

    def __init__(self, context: CaptureContext) -> None:
        self.context = context
        self.global_state: GlobalCaptureState = context.state.load()
        self._in_flight: dict[str, str] = {}

    @property
    def enabled(self) -> bool:
        return self.global_state.enabled

    @property
    def user_identity(self) -> str | None:
        return self.global_state.user_identity

    def phase(self, key: str) -> str:
        """Current lifecycle phase of a conversation."""
        if key in self._in_flight:
            return self._in_flight[key]
        entry = self.context.cache.get(key)
        if entry is None or entry.is_empty:
            return PHASE_IDLE
        return PHASE_SYNCING if self.enabled else PHASE_CACHING

    def refresh(self) -> GlobalCaptureState:
        """Reload the persisted state and apply changes made by another process.

        The control CLI writes the enable flag and user identity with its own
        coordinator. A flag flip seen here runs the same transition locally,
        since captures cached after the other process finished are only
        visible to this one.
        """
        previous = self.global_state
        self.global_state = self.context.state.load()
        current = self.global_state

        if current.enabled != previous.enabled:
            logger.info("Capture state changed elsewhere: enabled=%s", current.enabled)
            self._apply_transition(current.enabled)
        elif current.enabled and current.user_identity and not previous.user_identity:
            logger.info("User identity set elsewhere, uploading open conversations")
            self._apply_transition(True)
        return self.global_state

    def status(self) -> dict[str, Any]:
        self.refresh()
        return {"enabled": self.enabled, "pendingCount": self.context.cache.pending_count()}

    def set_user_identity(self, user_identity: str | None) -> GlobalCaptureState:
        self.global_state = self.context.state.update(user_identity=user_identity)
        return self.global_state

    def handle_capture(self, capture: RawCapture) -> SyncResult | None:
        """Cache a capture and, when allowed, upload its conversation.

        Returns:
            The upload result, or None if no upload was attempted
        """
        self.refresh()
        key = resolve_conversation_key(capture.conversation_url)
        self.context.cache.append(key, [self._to_cached(capture)])
        logger.info(
            "Captured: platform=%s channel=%s key=%s",
            capture.platform,
            capture.source_channel,
            key,
        )

        if self.enabled and self.user_identity:
            return self.upload(key)
        return None

    def upload(self, key: str) -> SyncResult:
        """Upload everything currently cached for one conversation.

        Only the uploaded batches are removed on success; batches appended
        while the request was in flight stay cached. On failure the entry
        is left as it was for the next trigger.
        """
        if not self.enabled:
            return SyncResult(success=False, error="capture disabled")
        if not self.user_identity:
            return SyncResult(success=False, error="no user identity")

        entry = self.context.cache.get(key)
        if entry is None or entry.is_empty:
            return SyncResult(success=True, synced=0)

        uploaded = list(entry.captures)
        self._in_flight[key] = PHASE_SYNCING
        try:
            self.context.client.upload_chats(
                self.user_identity,
                [capture.to_upload_doc() for capture in uploaded],
            )
        except IngestionError as e:
            logger.warning("Upload failed, keeping cache: key=%s error=%s", key, e)
            return SyncResult(success=False, error=str(e))
        finally:
            self._in_flight.pop(key, None)

        self.context.cache.remove(key, [capture.seq for capture in uploaded])
        logger.info("Uploaded captures: key=%s count=%d", key, len(uploaded))
        return SyncResult(success=True, synced=len(uploaded))

    def purge(self, key: str) -> None:
        """Delete a conversation remotely (best effort) and locally (always)."""
        self._in_flight[key] = PHASE_DELETING
        try:
            self._delete_remote(key)
        finally:
            self._in_flight.pop(key, None)
            removed = self.context.cache.clear(key)
            logger.info("Purged conversation: key=%s local_removed=%d", key, removed)

    def set_enabled(self, enabled: bool) -> GlobalCaptureState:
        """Persist the enable flag and run the matching transition."""
        previous = self.refresh().enabled
        self.global_state = self.context.state.update(enabled=enabled)
        if enabled != previous:
            self._apply_transition(enabled)
        return self.global_state

    def _apply_transition(self, enabled: bool) -> None:
        active = self.context.state.active_keys()
        logger.info("Capture %s: active_conversations=%d", "enabled" if enabled else "disabled", len(active))

        for key in active:
            if enabled:
                entry = self.context.cache.get(key)
                if entry is not None and not entry.is_empty:
                    self.upload(key)
            else:
                self.purge(key)

    def conversation_opened(self, url: str) -> str:
        key = resolve_conversation_key(url)
        if self.context.state.add_active(key):
            logger.debug("Conversation opened: key=%s", key)
        return key

    def conversation_closed(self, url: str) -> str:
        key = resolve_conversation_key(url)
        self.refresh()
        self.context.state.remove_active(key)
        logger.debug("Conversation closed: key=%s", key)
        if not self.enabled:
            self._in_flight[key] = PHASE_DELETING
            try:
                self._delete_remote(key)
            finally:
                self._in_flight.pop(key, None)
        return key

    def flush(self) -> SyncResult:
        """Upload every non-empty cache entry (periodic timer)."""
        self.refresh()
        if not self.enabled:
            return SyncResult(success=True, synced=0)

        synced = 0
        errors = []
        for key in self.context.cache.pending_keys():
            result = self.upload(key)
            synced += result.synced
            if not result.success:
                errors.append(result.error)

        if errors:
            return SyncResult(success=False, synced=synced, error=errors[0])
        if synced:
            logger.info("Flush complete: synced=%d", synced)
        return SyncResult(success=True, synced=synced)

    def sync_now(self) -> SyncResult:
        if not self.enabled:
            return SyncResult(success=False, error="capture disabled")
        return self.flush()

    def forget_all(self) -> int:
        """Erase every stored record for the user and empty the local cache.

        Returns:
            Number of remote records deleted

        Raises:
            IngestionError: If the remote erasure failed (the local cache is
                cleared regardless)
        """
        self.refresh()
        try:
            if not self.user_identity:
                return 0
            return self.context.client.delete_my_chats(self.user_identity)
        finally:
            self.context.cache.clear_all()

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Dispatch one channel or UI message.

        Returns:
            Response for request/response messages, None otherwise
        """
        message_type = message.get("type")

        if message_type == CHAT_DATA:
            self.handle_capture(_coerce_capture(message["payload"]))
            return None
        if message_type == CONVERSATION_OPENED:
            self.conversation_opened(message["url"])
            return None
        if message_type == CONVERSATION_CLOSED:
            self.conversation_closed(message["url"])
            return None
        if message_type == TOGGLE_ENABLED:
            state = self.set_enabled(bool(message.get("enabled")))
            return {"enabled": state.enabled}
        if message_type == GET_STATUS:
            return self.status()
        if message_type == SYNC_NOW:
            return self.sync_now().to_dict()

        logger.warning("Unknown message type: type=%s", message_type)
        return None

    def _delete_remote(self, key: str) -> None:
        if not self.user_identity:
            logger.debug("No user identity, skipping remote delete: key=%s", key)
            return
        try:
            deleted = self.context.client.delete_conversation(self.user_identity, key)
            logger.info("Remote delete: key=%s deleted=%d", key, deleted)
        except IngestionError as e:
            logger.warning("Remote delete failed: key=%s error=%s", key, e)

    def _to_cached(self, capture: RawCapture) -> CachedCapture:
        data = capture.payload
        url = capture.url
        if capture.source_channel == CHANNEL_NETWORK and capture.page_url and capture.page_url != capture.url:
            # Stored URLs are page URLs so remote deletes by conversation prefix find them
            url = capture.page_url
            data = {**capture.payload, "request_url": capture.url}
        return CachedCapture(
            id=str(uuid.uuid4()),
            platform=capture.platform,
            url=url,
            method=capture.method,
            captured_at=datetime.fromtimestamp(capture.captured_at, tz=timezone.utc).isoformat(),
            source_channel=capture.source_channel,
            data=data,
        )


def _coerce_capture(payload: RawCapture | dict[str, Any]) -> RawCapture:
    """Accept captures either as RawCapture or as their JSON-shaped dict."""
    if isinstance(payload, RawCapture):
        return payload
    return RawCapture(
        url=payload["url"],
        method=payload.get("method", "GET"),
        captured_at=float(payload.get("captured_at", datetime.now(timezone.utc).timestamp())),
        platform=payload.get("platform", "unknown"),
        source_channel=payload.get("source_channel", CHANNEL_NETWORK),
        payload=payload.get("payload") or payload.get("data") or {},
        page_url=payload.get("page_url"),
    )
