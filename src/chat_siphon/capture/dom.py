"""DOM snapshot capture: extract messages from rendered chat pages.

The differ watches one page. A mutation is any change in the chat
container's markup between polls. Snapshots are only taken once the page
has been quiet for a debounce window and the visible text length has
stopped growing, so a response that is still streaming is not captured
half-written. A backup timer forces a snapshot on a fixed interval.
"""

import copy
import json
import time
from collections.abc import Callable
from typing import Any, Protocol

from bs4 import BeautifulSoup, Tag

from chat_siphon.logging import get_logger
from chat_siphon.models import CHANNEL_DOM, CanonicalMessage, RawCapture, content_hash
from chat_siphon.platforms import PlatformProfile, select_all, select_first

logger = get_logger("dom")

# Elements whose text is UI chrome rather than message content
STRIP_SELECTORS = ("button", '[aria-hidden="true"]')


class Page(Protocol):
    """A rendered page: its current URL and document markup."""

    @property
    def url(self) -> str: ...

    def html(self) -> str: ...


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_text(element: Tag) -> str:
    """Text content of an element without buttons and aria-hidden parts."""
    clone = copy.copy(element)
    for selector in STRIP_SELECTORS:
        for child in clone.select(selector):
            child.extract()
    return clone.get_text().strip()


def visible_text_length(soup: BeautifulSoup) -> int:
    root = soup.body or soup
    return len(root.get_text())


def extract_messages(
    soup: BeautifulSoup,
    profile: PlatformProfile,
    observed_at: float | None = None,
) -> list[CanonicalMessage]:
    """Extract the visible conversation using a platform profile.

    Args:
        soup: Parsed page
        profile: Platform selectors and role strategy
        observed_at: Timestamp stamped on every message (defaults to now)

    Returns:
        Messages in document order; containers without a role or text are skipped
    """
    if observed_at is None:
        observed_at = time.time()

    messages = []
    for container in select_all(profile.message_container_selectors, soup):
        role = profile.resolve_role(container)
        if role is None:
            continue
        content_el = select_first(profile.message_content_selectors, container) or container
        content = extract_text(content_el)
        if content:
            messages.append(CanonicalMessage.from_text(role, content, observed_at))
    return messages


class DomSnapshotDiffer:
    """Debounced, deduplicating snapshotter for one page.

    Drive it by calling poll() regularly; all timers are deadlines compared
    against the `now` passed in (monotonic seconds).
    """

    def __init__(
        self,
        page: Page,
        profile: PlatformProfile,
        emit: Callable[[RawCapture], Any],
        debounce_seconds: float = 2.0,
        backup_interval_seconds: float = 10.0,
        initial_delay_seconds: float = 2.0,
        setup_retry_seconds: float = 1.0,
        max_setup_attempts: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.page = page
        self.profile = profile
        self._emit = emit
        self.debounce_seconds = debounce_seconds
        self.backup_interval_seconds = backup_interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.setup_retry_seconds = setup_retry_seconds
        self.max_setup_attempts = max_setup_attempts
        self._clock = clock

        self.seen: set[str] = set()
        self._last_snapshot: list[CanonicalMessage] | None = None
        self._last_snapshot_hash: str | None = None
        self._last_content_length = 0

        self._url: str | None = None
        self._attached = False
        self._idle = False
        self._container_fingerprint: str | None = None
        self._setup_attempts = 0
        self._setup_at: float | None = None
        self._debounce_at: float | None = None
        self._backup_at: float | None = None

    @property
    def attached(self) -> bool:
        """True while a chat container is being watched."""
        return self._attached

    @property
    def idle(self) -> bool:
        """True after setup gave up finding a chat container for this view."""
        return self._idle

    def start(self, now: float | None = None) -> None:
        """Schedule the initial snapshot and observer setup."""
        now = self._clock() if now is None else now
        self._url = self.page.url
        self._setup_at = now + self.initial_delay_seconds
        logger.info("DOM capture starting: platform=%s url=%s", self.profile.id, self._url)

    def reset(self) -> None:
        """Forget everything seen in the current conversation view."""
        self.seen.clear()
        self._last_snapshot = None
        self._last_snapshot_hash = None
        self._last_content_length = 0
        self._attached = False
        self._idle = False
        self._container_fingerprint = None
        self._setup_attempts = 0
        self._debounce_at = None

    def notify_mutation(self, now: float | None = None) -> None:
        """Restart the debounce window."""
        now = self._clock() if now is None else now
        self._debounce_at = now + self.debounce_seconds

    def poll(self, now: float | None = None) -> None:
        """Advance URL tracking, observer setup, mutation detection and timers."""
        now = self._clock() if now is None else now
        if self._url is None:
            self.start(now)

        current_url = self.page.url
        if current_url != self._url:
            logger.info("URL changed, reinitializing: old=%s new=%s", self._url, current_url)
            self._url = current_url
            self.reset()
            self._setup_at = now + self.setup_retry_seconds

        soup: BeautifulSoup | None = None

        def document() -> BeautifulSoup:
            nonlocal soup
            if soup is None:
                soup = parse_html(self.page.html())
            return soup

        if self._setup_at is not None and now >= self._setup_at:
            self._setup(document(), now)

        if self._attached:
            self._observe(document(), now)

        if self._debounce_at is not None and now >= self._debounce_at:
            self._on_debounce(document(), now)

        if self._backup_at is not None and now >= self._backup_at:
            self._backup_at = now + self.backup_interval_seconds
            self.check_for_changes(document())

    def _setup(self, soup: BeautifulSoup, now: float) -> None:
        first_attempt = self._setup_attempts == 0
        self._setup_attempts += 1
        self._setup_at = None

        if first_attempt:
            self.check_for_changes(soup)

        container = select_first(self.profile.chat_container_selectors, soup)
        if container is None:
            if self._setup_attempts < self.max_setup_attempts:
                logger.debug(
                    "Chat container not found, retrying: platform=%s attempt=%d",
                    self.profile.id,
                    self._setup_attempts,
                )
                self._setup_at = now + self.setup_retry_seconds
            else:
                logger.info(
                    "Chat container not found, DOM capture idle: platform=%s url=%s",
                    self.profile.id,
                    self._url,
                )
                self._idle = True
            return

        self._attached = True
        self._container_fingerprint = content_hash(str(container))
        if self._backup_at is None:
            self._backup_at = now + self.backup_interval_seconds
        logger.debug("Observer attached: platform=%s container=%s", self.profile.id, container.name)

    def _observe(self, soup: BeautifulSoup, now: float) -> None:
        container = select_first(self.profile.chat_container_selectors, soup)
        if container is None:
            # Container swapped out from under us; look for it again
            logger.debug("Chat container detached: platform=%s", self.profile.id)
            self._attached = False
            self._setup_at = now + self.setup_retry_seconds
            return

        fingerprint = content_hash(str(container))
        if fingerprint != self._container_fingerprint:
            self._container_fingerprint = fingerprint
            self.notify_mutation(now)

    def _on_debounce(self, soup: BeautifulSoup, now: float) -> None:
        length = visible_text_length(soup)
        if length != self._last_content_length:
            # Still growing, give it another window
            self._last_content_length = length
            self._debounce_at = now + self.debounce_seconds
            return
        self._debounce_at = None
        self.check_for_changes(soup)

    def check_for_changes(self, soup: BeautifulSoup) -> RawCapture | None:
        """Snapshot the page and emit messages not seen in this view.

        The first snapshot of a view reports every message; later ones
        report only new fingerprints.

        Returns:
            The emitted capture, or None if nothing new was found
        """
        messages = extract_messages(soup, self.profile)
        if not messages:
            return None

        snapshot_hash = content_hash(json.dumps([m.content for m in messages]))
        if snapshot_hash == self._last_snapshot_hash:
            return None

        new_messages: list[CanonicalMessage] = []
        batch_seen: set[str] = set()
        for message in messages:
            if message.fingerprint in self.seen or message.fingerprint in batch_seen:
                continue
            batch_seen.add(message.fingerprint)
            new_messages.append(message)

        if not new_messages and self._last_snapshot is not None:
            return None

        self.seen.update(batch_seen)
        is_incremental = self._last_snapshot is not None and bool(new_messages)

        title_tag = soup.find("title")
        payload = {
            "type": "conversation_update",
            "url": self._url or self.page.url,
            "platform": self.profile.id,
            "title": title_tag.get_text().strip() if title_tag else "",
            "messages": [m.to_dict() for m in (new_messages or messages)],
            "full_conversation": [m.to_dict() for m in messages],
            "is_incremental": is_incremental,
        }

        self._last_snapshot = messages
        self._last_snapshot_hash = snapshot_hash

        capture = RawCapture(
            url=payload["url"],
            method="DOM",
            captured_at=time.time(),
            platform=self.profile.id,
            source_channel=CHANNEL_DOM,
            payload=payload,
        )
        logger.info(
            "Detected messages: platform=%s new=%d total=%d",
            self.profile.id,
            len(new_messages),
            len(messages),
        )
        self._emit(capture)
        return capture
