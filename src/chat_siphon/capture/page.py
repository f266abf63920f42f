"""Pages and per-page capture sessions."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from bs4 import BeautifulSoup

from chat_siphon.capture.channel import CHAT_DATA, MessageChannel
from chat_siphon.capture.dom import DomSnapshotDiffer, Page
from chat_siphon.capture.navigation import LocationPoller
from chat_siphon.capture.network import NetworkCaptureFilter
from chat_siphon.config import CaptureConfig
from chat_siphon.logging import get_logger
from chat_siphon.models import RawCapture
from chat_siphon.platforms import PlatformRegistry

logger = get_logger("page")


@dataclass
class StaticPage:
    """A page whose location and markup are fixed or set by the caller."""

    url: str
    markup: str = ""

    def html(self) -> str:
        return self.markup


class FilePage:
    """A page mirrored to an HTML file on disk.

    Whatever keeps the file current (a browser extension, a CDP script)
    may record navigation in a <link rel="canonical"> tag; otherwise the
    configured URL is used.
    """

    def __init__(self, path: Path, url: str) -> None:
        self.path = path
        self.default_url = url
        self._cached_mtime: float | None = None
        self._cached_html = ""
        self._cached_url = url

    def _refresh(self) -> None:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            self._cached_mtime = None
            self._cached_html = ""
            self._cached_url = self.default_url
            return

        if mtime == self._cached_mtime:
            return

        self._cached_mtime = mtime
        self._cached_html = self.path.read_text(encoding="utf-8", errors="replace")
        canonical = BeautifulSoup(self._cached_html, "html.parser").find("link", rel="canonical")
        href = canonical.get("href") if canonical else None
        self._cached_url = href or self.default_url

    @property
    def url(self) -> str:
        self._refresh()
        return self._cached_url

    def html(self) -> str:
        self._refresh()
        return self._cached_html


class PageSession:
    """Capture side of one open tab: location poller, DOM differ and network filter.

    All three feed the same channel. Pages on unknown platforms get none of them,
    so capture stays disabled for them.
    """

    def __init__(
        self,
        page: Page,
        channel: MessageChannel | None = None,
        config: CaptureConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or CaptureConfig()
        self.page = page
        self.channel = channel or MessageChannel()
        self.profile = PlatformRegistry.detect(page.url)
        self._clock = clock

        self.poller: LocationPoller | None = None
        self.differ: DomSnapshotDiffer | None = None
        self.network_filter: NetworkCaptureFilter | None = None
        if self.profile is None:
            logger.info("Unsupported platform, capture disabled: url=%s", page.url)
            return

        self.poller = LocationPoller(page, self.channel)
        self.network_filter = NetworkCaptureFilter(self._send_capture, page=page)
        self.differ = DomSnapshotDiffer(
            page,
            self.profile,
            self._send_capture,
            debounce_seconds=config.debounce_seconds,
            backup_interval_seconds=config.backup_interval_seconds,
            initial_delay_seconds=config.initial_delay_seconds,
            setup_retry_seconds=config.setup_retry_seconds,
            max_setup_attempts=config.max_setup_attempts,
            clock=clock,
        )

    @property
    def enabled(self) -> bool:
        return self.profile is not None

    def _send_capture(self, capture: RawCapture) -> None:
        self.channel.send({"type": CHAT_DATA, "payload": capture})

    def start(self, now: float | None = None) -> None:
        if not self.enabled:
            return
        now = self._clock() if now is None else now
        self.poller.start()
        self.differ.start(now)

    def poll(self, now: float | None = None) -> None:
        if not self.enabled:
            return
        now = self._clock() if now is None else now
        self.poller.poll()
        self.differ.poll(now)

    def close(self) -> None:
        """Report the page as closed and stop accepting sends."""
        if self.enabled:
            self.poller.stop()
        self.channel.close()
