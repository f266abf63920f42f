"""Tests for the capture daemon loop."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from chat_siphon.capture.channel import CHAT_DATA, CONVERSATION_CLOSED, CONVERSATION_OPENED
from chat_siphon.capture.page import PageSession, StaticPage
from chat_siphon.config import CaptureConfig, Config, PageConfig, StorageConfig
from chat_siphon.sync.cache import ConversationCache
from chat_siphon.sync.client import IngestionClient
from chat_siphon.sync.coordinator import CaptureContext, Coordinator
from chat_siphon.sync.daemon import (
    build_sessions,
    dispatch_messages,
    is_shutdown_requested,
    request_shutdown,
    reset_shutdown,
    run_daemon,
    run_daemon_cycle,
)
from chat_siphon.sync.state import CaptureStateStore

PAGE_URL = "https://chatgpt.com/c/abc"
CHAT_HTML = (
    "<html><body><main>"
    '<div data-message-author-role="user"><div class="markdown">Hello</div></div>'
    '<div data-message-author-role="assistant"><div class="markdown">Hi there</div></div>'
    "</main></body></html>"
)


@pytest.fixture(autouse=True)
def clear_shutdown_flag():
    reset_shutdown()
    yield
    reset_shutdown()


@pytest.fixture
def capture_config() -> CaptureConfig:
    return CaptureConfig(poll_interval_seconds=0.25, initial_delay_seconds=0.0)


@pytest.fixture
def test_config(tmp_path: Path, capture_config: CaptureConfig) -> Config:
    page_path = tmp_path / "pages" / "chatgpt.html"
    page_path.parent.mkdir(parents=True)
    page_path.write_text(CHAT_HTML)
    capture_config.pages = [
        PageConfig(url=PAGE_URL, path=page_path),
        PageConfig(url="https://example.com/", path=tmp_path / "pages" / "other.html"),
    ]
    return Config(capture=capture_config, storage=StorageConfig(db_path=tmp_path / "state" / "capture.db"))


class TestShutdownFlags:
    """Tests for shutdown flag management."""

    def test_request_and_reset(self) -> None:
        reset_shutdown()
        assert is_shutdown_requested() is False
        request_shutdown()
        assert is_shutdown_requested() is True
        reset_shutdown()
        assert is_shutdown_requested() is False


class TestDispatchMessages:
    """Tests for dispatch_messages."""

    def test_delivers_in_order(self, capture_config: CaptureConfig) -> None:
        session = PageSession(StaticPage(PAGE_URL, CHAT_HTML), config=capture_config)
        session.channel.send({"type": CONVERSATION_OPENED, "url": PAGE_URL})
        session.channel.send({"type": CONVERSATION_CLOSED, "url": PAGE_URL})
        coordinator = MagicMock()

        assert dispatch_messages([session], coordinator) == 2
        types = [c.args[0]["type"] for c in coordinator.handle_message.call_args_list]
        assert types == [CONVERSATION_OPENED, CONVERSATION_CLOSED]

    def test_handler_error_does_not_stop_dispatch(self, capture_config: CaptureConfig) -> None:
        session = PageSession(StaticPage(PAGE_URL, CHAT_HTML), config=capture_config)
        session.channel.send({"type": CONVERSATION_OPENED, "url": PAGE_URL})
        session.channel.send({"type": CONVERSATION_CLOSED, "url": PAGE_URL})
        coordinator = MagicMock()
        coordinator.handle_message.side_effect = [RuntimeError("boom"), None]

        assert dispatch_messages([session], coordinator) == 2
        assert len(session.channel) == 0


class TestRunDaemonCycle:
    """Tests for run_daemon_cycle."""

    def test_polls_and_dispatches(self, capture_config: CaptureConfig) -> None:
        reset_shutdown()
        session = PageSession(StaticPage(PAGE_URL, CHAT_HTML), config=capture_config)
        session.start(0)
        coordinator = MagicMock()

        assert run_daemon_cycle([session], coordinator, now=0) == 2
        types = [c.args[0]["type"] for c in coordinator.handle_message.call_args_list]
        assert types == [CONVERSATION_OPENED, CHAT_DATA]

    def test_poll_error_logged_and_skipped(self, capture_config: CaptureConfig) -> None:
        reset_shutdown()
        broken = MagicMock()
        broken.poll.side_effect = RuntimeError("boom")
        broken.channel.drain.return_value = iter([])
        session = PageSession(StaticPage(PAGE_URL, CHAT_HTML), config=capture_config)
        session.start(0)
        coordinator = MagicMock()

        assert run_daemon_cycle([broken, session], coordinator, now=0) == 2

    def test_stops_polling_on_shutdown(self, capture_config: CaptureConfig) -> None:
        request_shutdown()
        try:
            session = MagicMock()
            session.channel.drain.return_value = iter([])
            run_daemon_cycle([session], MagicMock(), now=0)
            session.poll.assert_not_called()
        finally:
            reset_shutdown()

    def test_applies_disable_from_another_process(self, tmp_path: Path, capture_config: CaptureConfig) -> None:
        db_path = tmp_path / "capture.db"
        client = MagicMock(spec=IngestionClient)
        client.upload_chats.side_effect = lambda user_id, logs: len(logs)
        client.delete_conversation.return_value = 0
        daemon_context = CaptureContext(CaptureStateStore(db_path), ConversationCache(db_path), client)
        cli_context = CaptureContext(CaptureStateStore(db_path), ConversationCache(db_path), client)
        try:
            coordinator = Coordinator(daemon_context)
            coordinator.set_user_identity("anon-1")
            coordinator.set_enabled(True)
            session = PageSession(StaticPage(PAGE_URL, CHAT_HTML), config=capture_config)
            session.start(0)
            run_daemon_cycle([session], coordinator, now=0)
            assert client.upload_chats.call_count == 1

            Coordinator(cli_context).set_enabled(False)
            session.network_filter.observe(
                "https://chatgpt.com/backend-api/conversation/abc",
                "POST",
                "text/event-stream",
                b'data: {"m": 1}\n\n',
            )
            run_daemon_cycle([session], coordinator, now=1)

            assert coordinator.enabled is False
            assert client.upload_chats.call_count == 1
            assert len(daemon_context.cache.get(PAGE_URL).captures) == 1
        finally:
            daemon_context.close()
            cli_context.close()


class TestBuildSessions:
    """Tests for build_sessions."""

    def test_skips_unsupported_pages(self, test_config: Config) -> None:
        sessions = build_sessions(test_config)
        assert len(sessions) == 1
        assert sessions[0].profile.id == "chatgpt"
        assert sessions[0].page.url == PAGE_URL


class TestRunDaemon:
    """Tests for the full daemon loop."""

    def test_captures_and_closes_on_shutdown(self, test_config: Config) -> None:
        with (
            patch("chat_siphon.sync.daemon.setup_logging"),
            patch("chat_siphon.sync.daemon.time.sleep", side_effect=lambda _: request_shutdown()),
        ):
            run_daemon(test_config)

        with ConversationCache(test_config.storage.db_path) as cache:
            entry = cache.get(PAGE_URL)
            assert entry is not None
            assert len(entry.captures) == 1
            assert entry.captures[0].data["type"] == "conversation_update"

        with CaptureStateStore(test_config.storage.db_path) as state:
            # Disabled by default: nothing uploaded, and the page was reported closed
            assert state.load().enabled is False
            assert state.active_keys() == []

    def test_clears_stale_active_set(self, test_config: Config) -> None:
        with CaptureStateStore(test_config.storage.db_path) as state:
            state.add_active("https://claude.ai/chat/stale")

        with (
            patch("chat_siphon.sync.daemon.setup_logging"),
            patch("chat_siphon.sync.daemon.time.sleep", side_effect=lambda _: request_shutdown()),
        ):
            run_daemon(test_config)

        with CaptureStateStore(test_config.storage.db_path) as state:
            assert "https://claude.ai/chat/stale" not in state.active_keys()

    def test_flushes_on_interval(self, test_config: Config) -> None:
        test_config.sync.flush_interval_seconds = 0
        with (
            patch("chat_siphon.sync.daemon.setup_logging"),
            patch("chat_siphon.sync.daemon.time.sleep", side_effect=lambda _: request_shutdown()),
            patch("chat_siphon.sync.daemon.Coordinator.flush") as mock_flush,
        ):
            run_daemon(test_config)

        mock_flush.assert_called_once()
