"""Tests for pages and per-page capture sessions."""

import os
from pathlib import Path

import pytest

from chat_siphon.capture.channel import CHAT_DATA, CONVERSATION_CLOSED, CONVERSATION_OPENED
from chat_siphon.capture.page import FilePage, PageSession, StaticPage
from chat_siphon.config import CaptureConfig
from chat_siphon.models import CHANNEL_DOM, CHANNEL_NETWORK, RawCapture

CHAT_HTML = (
    "<html><body><main>"
    '<div data-message-author-role="user"><div class="markdown">Hello</div></div>'
    "</main></body></html>"
)


@pytest.fixture
def capture_config() -> CaptureConfig:
    return CaptureConfig(
        debounce_seconds=1.0,
        backup_interval_seconds=5.0,
        initial_delay_seconds=0.0,
        setup_retry_seconds=1.0,
        max_setup_attempts=2,
    )


class TestFilePage:
    """Tests for FilePage."""

    def test_reads_html_and_default_url(self, tmp_path: Path) -> None:
        path = tmp_path / "page.html"
        path.write_text(CHAT_HTML)
        page = FilePage(path, "https://chatgpt.com/c/1")
        assert page.url == "https://chatgpt.com/c/1"
        assert page.html() == CHAT_HTML

    def test_canonical_link_overrides_url(self, tmp_path: Path) -> None:
        path = tmp_path / "page.html"
        path.write_text('<html><head><link rel="canonical" href="https://chatgpt.com/c/2"></head></html>')
        assert FilePage(path, "https://chatgpt.com/c/1").url == "https://chatgpt.com/c/2"

    def test_missing_file(self, tmp_path: Path) -> None:
        page = FilePage(tmp_path / "missing.html", "https://chatgpt.com/")
        assert page.url == "https://chatgpt.com/"
        assert page.html() == ""

    def test_rereads_when_modified(self, tmp_path: Path) -> None:
        path = tmp_path / "page.html"
        path.write_text("<p>one</p>")
        os.utime(path, (1_000_000, 1_000_000))
        page = FilePage(path, "https://chatgpt.com/")
        assert page.html() == "<p>one</p>"

        path.write_text("<p>two</p>")
        os.utime(path, (1_000_010, 1_000_010))
        assert page.html() == "<p>two</p>"


class TestPageSession:
    """Tests for PageSession."""

    def test_unknown_platform_disabled(self) -> None:
        session = PageSession(StaticPage("https://example.com/"))
        assert session.enabled is False
        assert session.differ is None
        assert session.network_filter is None
        assert session.poller is None

        session.start(0)
        session.poll(1)
        assert len(session.channel) == 0

    def test_start_and_snapshot(self, capture_config: CaptureConfig) -> None:
        session = PageSession(StaticPage("https://chatgpt.com/c/1", CHAT_HTML), config=capture_config)
        assert session.enabled is True
        assert session.profile.id == "chatgpt"

        session.start(0)
        session.poll(0)
        messages = list(session.channel.drain())

        assert messages[0] == {"type": CONVERSATION_OPENED, "url": "https://chatgpt.com/c/1"}
        assert messages[1]["type"] == CHAT_DATA
        capture = messages[1]["payload"]
        assert isinstance(capture, RawCapture)
        assert capture.source_channel == CHANNEL_DOM

    def test_network_capture_uses_same_channel(self, capture_config: CaptureConfig) -> None:
        session = PageSession(StaticPage("https://chatgpt.com/c/1", CHAT_HTML), config=capture_config)
        session.network_filter.observe(
            "https://chatgpt.com/backend-api/conversation/1",
            "POST",
            "text/event-stream",
            b'data: {"m": 1}\n',
        )
        (message,) = list(session.channel.drain())
        assert message["type"] == CHAT_DATA
        assert message["payload"].source_channel == CHANNEL_NETWORK
        assert message["payload"].page_url == "https://chatgpt.com/c/1"

    def test_navigation_events(self, capture_config: CaptureConfig) -> None:
        page = StaticPage("https://chatgpt.com/c/1", CHAT_HTML)
        session = PageSession(page, config=capture_config)
        session.start(0)
        list(session.channel.drain())

        page.url = "https://chatgpt.com/c/2"
        session.poll(1)
        types = [m["type"] for m in session.channel.drain()]
        assert types[:2] == [CONVERSATION_CLOSED, CONVERSATION_OPENED]

    def test_close_reports_closed_and_stops_channel(self, capture_config: CaptureConfig) -> None:
        session = PageSession(StaticPage("https://chatgpt.com/c/1", CHAT_HTML), config=capture_config)
        session.start(0)
        list(session.channel.drain())

        session.close()
        assert list(session.channel.drain()) == [{"type": CONVERSATION_CLOSED, "url": "https://chatgpt.com/c/1"}]
        assert session.channel.is_alive is False
        assert session.channel.send({"type": CHAT_DATA}) is False
