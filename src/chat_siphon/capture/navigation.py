"""Current-location polling that turns page navigation into lifecycle events."""

from chat_siphon.capture.channel import CONVERSATION_CLOSED, CONVERSATION_OPENED, MessageChannel
from chat_siphon.capture.dom import Page
from chat_siphon.logging import get_logger

logger = get_logger("navigation")


class LocationPoller:
    """Emits CONVERSATION_OPENED / CONVERSATION_CLOSED as a page's URL changes."""

    def __init__(self, page: Page, channel: MessageChannel) -> None:
        self.page = page
        self.channel = channel
        self.current_url: str | None = None

    def start(self) -> None:
        self.current_url = self.page.url
        self.channel.send({"type": CONVERSATION_OPENED, "url": self.current_url})

    def poll(self) -> bool:
        """Check the page location once.

        Returns:
            True if a navigation was detected
        """
        if self.current_url is None:
            self.start()
            return False

        url = self.page.url
        if url == self.current_url:
            return False

        old_url = self.current_url
        self.current_url = url
        self.channel.send({"type": CONVERSATION_CLOSED, "url": old_url})
        self.channel.send({"type": CONVERSATION_OPENED, "url": url})
        logger.info("URL changed: old=%s new=%s", old_url, url)
        return True

    def stop(self) -> None:
        """Report the page as closed (unload)."""
        if self.current_url is None:
            return
        self.channel.send({"type": CONVERSATION_CLOSED, "url": self.current_url})
        self.current_url = None
