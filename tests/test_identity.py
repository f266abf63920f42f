"""Tests for conversation key derivation."""

import pytest

from chat_siphon.identity import resolve_conversation_key


class TestResolveConversationKey:
    """Tests for resolve_conversation_key."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://chatgpt.com/c/abc-123", "https://chatgpt.com/c/abc-123"),
            ("https://chatgpt.com/g/g-xyz/c/abc-123", "https://chatgpt.com/g/g-xyz/c/abc-123"),
            ("https://claude.ai/chat/0f1e2d", "https://claude.ai/chat/0f1e2d"),
            (
                "https://huggingface.co/chat/conversation/65ab",
                "https://huggingface.co/chat/conversation/65ab",
            ),
            ("https://chat.deepseek.com/a/chat/s/42", "https://chat.deepseek.com/a/chat/s/42"),
            ("https://gemini.google.com/app/9f8e", "https://gemini.google.com/app/9f8e"),
            ("https://www.perplexity.ai/search/what-is-x", "https://www.perplexity.ai/search/what-is-x"),
        ],
    )
    def test_known_conversation_paths(self, url: str, expected: str) -> None:
        """Conversation URLs should key on origin plus conversation prefix."""
        assert resolve_conversation_key(url) == expected

    def test_drops_query_and_fragment(self) -> None:
        """Query strings and fragments should not split a conversation."""
        assert (
            resolve_conversation_key("https://chatgpt.com/c/abc?model=gpt-4o#bottom")
            == "https://chatgpt.com/c/abc"
        )

    def test_drops_trailing_segments(self) -> None:
        """Segments after the conversation id should be ignored."""
        assert (
            resolve_conversation_key("https://chatgpt.com/c/abc/share/extra")
            == "https://chatgpt.com/c/abc"
        )

    def test_same_conversation_same_key(self) -> None:
        """Two URLs of one conversation should produce equal keys."""
        a = resolve_conversation_key("https://claude.ai/chat/123?x=1")
        b = resolve_conversation_key("https://claude.ai/chat/123#y")
        assert a == b

    def test_unknown_path_uses_full_path(self) -> None:
        """Paths without a known shape should key on origin plus path."""
        assert resolve_conversation_key("https://grok.com/project/7?tab=1") == "https://grok.com/project/7"

    @pytest.mark.parametrize(
        "url",
        [
            "https://chatgpt.com/c/abc?x=1",
            "https://claude.ai/chat/1/extra",
            "https://grok.com/",
            "https://poe.com/GPT-4",
            "https://huggingface.co/chat/conversation/9#end",
        ],
    )
    def test_idempotent(self, url: str) -> None:
        """Resolving an already-resolved key should return it unchanged."""
        key = resolve_conversation_key(url)
        assert resolve_conversation_key(key) == key

    def test_root_path(self) -> None:
        """An empty path should become '/'."""
        assert resolve_conversation_key("https://chatgpt.com") == "https://chatgpt.com/"

    def test_preserves_port(self) -> None:
        """The origin should keep an explicit port."""
        assert resolve_conversation_key("http://localhost:8080/c/1") == "http://localhost:8080/c/1"

    @pytest.mark.parametrize("url", ["not a url", "/c/abc", ""])
    def test_unparseable_url_returned_unchanged(self, url: str) -> None:
        """URLs without scheme and host should be returned as-is."""
        assert resolve_conversation_key(url) == url

    def test_invalid_url_returned_unchanged(self) -> None:
        """URLs urlsplit rejects should be returned as-is."""
        url = "http://[::1/c/abc"
        assert resolve_conversation_key(url) == url
