"""Conversation identity derived from page URLs."""

import re
from urllib.parse import urlsplit

# Path shapes that carry a conversation id, most specific first. The key keeps
# only the matched prefix so trailing segments, queries and fragments do not
# split one conversation into several.
CONVERSATION_PATH_PATTERNS = [
    re.compile(r"^/g/[^/]+/c/[^/]+"),  # chatgpt custom GPT
    re.compile(r"^/c/[^/]+"),  # chatgpt, grok
    re.compile(r"^/chat/conversation/[^/]+"),  # huggingchat
    re.compile(r"^/a/chat/s/[^/]+"),  # deepseek
    re.compile(r"^/chats?/[^/]+"),  # claude, doubao, poe, copilot
    re.compile(r"^/app/[^/]+"),  # gemini
    re.compile(r"^/search/[^/]+"),  # perplexity
]


def resolve_conversation_key(url: str) -> str:
    """Derive the conversation key for a URL.

    Returns origin + matched conversation prefix when the path has a known
    conversation shape, otherwise origin + path. URLs that cannot be parsed
    into scheme and host are returned unchanged.

    Args:
        url: Page or request URL

    Returns:
        Conversation key
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.scheme or not parts.netloc:
        return url

    origin = f"{parts.scheme}://{parts.netloc}"
    path = parts.path or "/"

    for pattern in CONVERSATION_PATH_PATTERNS:
        match = pattern.match(path)
        if match:
            return origin + match.group(0)

    return origin + path
