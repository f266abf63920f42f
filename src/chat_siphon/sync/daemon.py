"""Capture daemon main loop: poll pages, dispatch channel messages, flush on a timer."""

import time

from chat_siphon.capture.page import FilePage, PageSession
from chat_siphon.config import Config
from chat_siphon.logging import get_logger, setup_logging
from chat_siphon.sync.coordinator import CaptureContext, Coordinator

logger = get_logger("daemon")

# Global flag for graceful shutdown
_shutdown_requested = False


def request_shutdown() -> None:
    """Request graceful shutdown of the capture daemon."""
    global _shutdown_requested
    _shutdown_requested = True


def is_shutdown_requested() -> bool:
    """Check if shutdown has been requested."""
    return _shutdown_requested


def reset_shutdown() -> None:
    """Reset shutdown flag (useful for testing)."""
    global _shutdown_requested
    _shutdown_requested = False


def dispatch_messages(sessions: list[PageSession], coordinator: Coordinator) -> int:
    """Deliver queued channel messages to the coordinator, per channel in FIFO order.

    Returns:
        Number of messages delivered
    """
    delivered = 0
    for session in sessions:
        for message in session.channel.drain():
            try:
                coordinator.handle_message(message)
            except Exception:
                logger.exception("Error handling message: type=%s", message.get("type"))
            delivered += 1
    return delivered


def run_daemon_cycle(
    sessions: list[PageSession],
    coordinator: Coordinator,
    now: float,
) -> int:
    """Run one poll of every page and deliver the resulting messages.

    Args:
        sessions: Open page sessions
        coordinator: Coordinator receiving channel messages
        now: Monotonic time for the page timers

    Returns:
        Number of messages delivered
    """
    for session in sessions:
        if is_shutdown_requested():
            break
        try:
            session.poll(now)
        except Exception:
            logger.exception("Error polling page: url=%s", session.page.url)

    # Pick up enable/disable and identity changes made by the control CLI
    try:
        coordinator.refresh()
    except Exception:
        logger.exception("Error reloading capture state")

    return dispatch_messages(sessions, coordinator)


def build_sessions(config: Config) -> list[PageSession]:
    """Create a page session for every configured page."""
    sessions = []
    for page_config in config.capture.pages:
        page = FilePage(page_config.path, page_config.url)
        session = PageSession(page, config=config.capture)
        if session.enabled:
            sessions.append(session)
    return sessions


def run_daemon(config: Config) -> None:
    """Run the capture daemon main loop.

    Polls configured pages, feeds captures and lifecycle events to the
    coordinator, and flushes the cache on the configured interval until
    shutdown is requested. Pages are reported closed on the way out.

    Args:
        config: Application configuration
    """
    reset_shutdown()

    setup_logging("daemon")

    poll_interval = config.capture.poll_interval_seconds
    flush_interval = config.sync.flush_interval_seconds

    logger.info(
        "Starting capture daemon: db=%s api=%s pages=%d poll=%.1fs flush=%ds",
        config.storage.db_path,
        config.sync.api_url,
        len(config.capture.pages),
        poll_interval,
        flush_interval,
    )

    context = CaptureContext.from_config(config)
    try:
        # Tabs from a previous run are gone
        context.state.clear_active()
        coordinator = Coordinator(context)
        sessions = build_sessions(config)

        start = time.monotonic()
        for session in sessions:
            session.start(start)
        next_flush = start + flush_interval

        while not is_shutdown_requested():
            now = time.monotonic()
            run_daemon_cycle(sessions, coordinator, now)

            if now >= next_flush:
                next_flush = now + flush_interval
                try:
                    coordinator.flush()
                except Exception:
                    logger.exception("Error during periodic flush")

            if is_shutdown_requested():
                break

            # Sleep in small increments to allow graceful shutdown
            sleep_remaining = poll_interval
            while sleep_remaining > 0 and not is_shutdown_requested():
                sleep_time = min(0.25, sleep_remaining)
                time.sleep(sleep_time)
                sleep_remaining -= sleep_time

        for session in sessions:
            session.close()
        dispatch_messages(sessions, coordinator)
    finally:
        context.close()

    logger.info("Capture daemon stopped")
