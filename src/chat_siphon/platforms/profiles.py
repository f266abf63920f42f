"""Built-in profiles for the supported chat platforms."""

from chat_siphon.models import ROLE_ASSISTANT, ROLE_USER
from chat_siphon.platforms.base import (
    AttributeRole,
    PlatformProfile,
    PositionalRole,
    PresenceRole,
    UrlRule,
)

# Generic chat container fallbacks shared by most platforms
MAIN_CONTAINERS = ("main", '[role="main"]')

CHATGPT = PlatformProfile(
    id="chatgpt",
    url_rules=(UrlRule("chatgpt.com"), UrlRule("openai.com")),
    network_include_patterns=("/backend-api/conversation/",),
    network_exclude_patterns=(
        "/sentinel/",
        "/conversations",
        "/init",
        "/stream_status",
        "/textdocs",
        "/gen_title",
        "/tags",
        "/share",
    ),
    message_container_selectors=(
        "[data-message-author-role]",
        '[data-testid^="conversation-turn"]',
        ".group\\/conversation-turn",
    ),
    user_message_selectors=(
        '[data-message-author-role="user"]',
        '[data-testid="conversation-turn-user"]',
    ),
    assistant_message_selectors=(
        '[data-message-author-role="assistant"]',
        '[data-testid="conversation-turn-assistant"]',
    ),
    message_content_selectors=(".markdown", ".prose", "[data-message-content]"),
    chat_container_selectors=(*MAIN_CONTAINERS, ".flex-1.overflow-hidden"),
    role_resolver=AttributeRole("data-message-author-role", fallback=PresenceRole()),
)

CLAUDE = PlatformProfile(
    id="claude",
    url_rules=(UrlRule("claude.ai"),),
    network_include_patterns=("/chat_conversations/",),
    network_exclude_patterns=("/settings", "/title", "/current_leaf_message_uuid"),
    message_container_selectors=(
        "[data-test-render-count]",
        '[data-testid="user-message"]',
        '[data-testid="assistant-message"]',
        ".font-claude-response",
    ),
    user_message_selectors=('[data-testid="user-message"]', ".font-user-message"),
    assistant_message_selectors=('[data-testid="assistant-message"]', ".font-claude-response"),
    message_content_selectors=(
        ".font-claude-response-body",
        ".font-user-message",
        ".prose",
        ".markdown",
        "p",
    ),
    chat_container_selectors=MAIN_CONTAINERS,
    role_resolver=PresenceRole(),
)

GROK = PlatformProfile(
    id="grok",
    url_rules=(UrlRule("grok.com"), UrlRule("x.com", "/i/grok")),
    network_include_patterns=("/api/rpc", "/rest/app-chat/conversations/"),
    network_exclude_patterns=("/settings", "/auth"),
    message_container_selectors=(
        ".message-bubble",
        '[class*="message-row"]',
        '[class*="MessageRow"]',
    ),
    user_message_selectors=(
        '[class*="items-end"] .message-bubble',
        '[class*="items-end"] > .message-bubble',
        '[class*="user-message"]',
    ),
    assistant_message_selectors=(
        '[class*="items-start"] .message-bubble',
        '[class*="items-start"] > .message-bubble',
        '[class*="assistant-message"]',
    ),
    message_content_selectors=(
        ".response-content-markdown",
        ".markdown",
        ".prose",
        '[class*="message-content"]',
        "p",
    ),
    chat_container_selectors=(*MAIN_CONTAINERS, '[class*="conversation"]', '[class*="chat-container"]'),
    role_resolver=PositionalRole(user_classes=("items-end",), assistant_classes=("items-start",)),
)

COPILOT = PlatformProfile(
    id="copilot",
    url_rules=(
        UrlRule("copilot.microsoft.com"),
        UrlRule("bing.com", "/chat"),
        UrlRule("bing.com", "/turing"),
    ),
    network_include_patterns=("/turing/conversation/", "/c/api/conversations/"),
    network_exclude_patterns=("/turing/conversation/create", "/c/api/user"),
    message_container_selectors=(
        '[data-testid="message"]',
        '[class*="ChatMessage"]',
        '[class*="turn"]',
        '[class*="message-group"]',
    ),
    user_message_selectors=(
        '[data-testid="user-message"]',
        '[class*="user-message"]',
        '[class*="UserMessage"]',
        '[data-author="user"]',
    ),
    assistant_message_selectors=(
        '[data-testid="assistant-message"]',
        '[class*="bot-message"]',
        '[class*="AssistantMessage"]',
        '[data-author="bot"]',
    ),
    message_content_selectors=(
        ".markdown",
        ".prose",
        '[class*="message-content"]',
        '[class*="ac-textBlock"]',
        "p",
    ),
    chat_container_selectors=(
        *MAIN_CONTAINERS,
        '[class*="chat-container"]',
        '[class*="conversation-container"]',
    ),
    role_resolver=PresenceRole(),
)

# Assistant turns carry a .ds-markdown child, user turns do not
DEEPSEEK = PlatformProfile(
    id="deepseek",
    url_rules=(UrlRule("chat.deepseek.com"),),
    network_include_patterns=("/api/v0/chat/",),
    network_exclude_patterns=("/chat/list", "/chat/create_pow_challenge"),
    message_container_selectors=(".ds-message", "[data-role]", '[class*="message-item"]'),
    user_message_selectors=(".ds-message:not(:has(.ds-markdown))", '[data-role="user"]'),
    assistant_message_selectors=(".ds-message:has(.ds-markdown)", '[data-role="assistant"]'),
    message_content_selectors=(".ds-markdown", ".markdown", '[class*="message-content"]', "p"),
    chat_container_selectors=MAIN_CONTAINERS,
    role_resolver=AttributeRole(
        "data-role",
        fallback=PresenceRole(user_selectors=(), assistant_selectors=(".ds-markdown",), default=ROLE_USER),
    ),
)

DOUBAO = PlatformProfile(
    id="doubao",
    url_rules=(UrlRule("doubao.com"),),
    network_include_patterns=("/api/chat/", "/samantha/chat/completion"),
    network_exclude_patterns=("/chat/list",),
    message_container_selectors=(
        '[class*="message-item"]',
        '[class*="chat-message"]',
        '[class*="MessageItem"]',
        "[data-role]",
    ),
    user_message_selectors=('[data-role="user"]', '[class*="user-message"]', '[class*="UserMessage"]'),
    assistant_message_selectors=(
        '[data-role="assistant"]',
        '[class*="bot-message"]',
        '[class*="AssistantMessage"]',
    ),
    message_content_selectors=(
        ".markdown",
        '[class*="message-content"]',
        '[class*="MessageContent"]',
        ".prose",
        "p",
    ),
    chat_container_selectors=(*MAIN_CONTAINERS, '[class*="chat-container"]', '[class*="conversation"]'),
    role_resolver=AttributeRole("data-role", fallback=PresenceRole()),
)

GEMINI = PlatformProfile(
    id="gemini",
    url_rules=(UrlRule("gemini.google.com"),),
    network_include_patterns=("/BardChatUi/data",),
    network_exclude_patterns=("/settings", "/jserror"),
    message_container_selectors=(
        ".message-container",
        ".conversation-container",
        "[data-message-id]",
        '[class*="message-row"]',
    ),
    user_message_selectors=(".user-query-container", ".user-query", ".query-content", '[data-role="user"]'),
    assistant_message_selectors=(
        ".response-container",
        ".model-response-text",
        '[class*="model-response"]',
        '[data-role="model"]',
    ),
    message_content_selectors=(
        ".query-text",
        ".model-response-text",
        ".response-content",
        ".markdown",
        ".prose",
        "p",
    ),
    chat_container_selectors=(
        "main",
        ".conversation-container",
        '[class*="chat-container"]',
        '[class*="conversation"]',
    ),
    role_resolver=PresenceRole(),
)

# User queries render as h1 headings, answers as .prose blocks
PERPLEXITY = PlatformProfile(
    id="perplexity",
    url_rules=(UrlRule("perplexity.ai"),),
    network_include_patterns=("/api/query", "/rest/sse/perplexity_ask"),
    network_exclude_patterns=("/api/auth/",),
    message_container_selectors=(
        '[class*="threadContentWidth"]',
        '[class*="ConversationMessage"]',
        '[data-testid="message"]',
    ),
    user_message_selectors=('h1[class*="query"]', '[class*="user-message"]', '[data-role="user"]'),
    assistant_message_selectors=(".prose", '[class*="assistant-message"]', '[data-role="assistant"]'),
    message_content_selectors=('h1[class*="query"]', ".prose", "p"),
    chat_container_selectors=MAIN_CONTAINERS,
    role_resolver=AttributeRole(
        "data-role",
        fallback=PresenceRole(
            user_selectors=('h1[class*="query"]',),
            assistant_selectors=(".prose",),
            default=None,
        ),
    ),
)

# CSS-module class names carry hash suffixes, hence the substring matches
POE = PlatformProfile(
    id="poe",
    url_rules=(UrlRule("poe.com"),),
    network_include_patterns=("/api/gql_POST", "/api/receive_POST"),
    network_exclude_patterns=("/api/settings",),
    message_container_selectors=(
        '[class*="ChatMessage_chatMessage"]',
        '[class*="Message_row"]',
        "[data-message-id]",
    ),
    user_message_selectors=(
        '[class*="rightSideMessageBubble"]',
        '[class*="Message_humanMessage"]',
        '[data-role="user"]',
    ),
    assistant_message_selectors=('[class*="Message_botMessage"]', '[data-role="assistant"]'),
    message_content_selectors=(
        '[class*="messageTextContainer"]',
        '[class*="Message_row"]',
        ".markdown",
        ".prose",
        "p",
    ),
    chat_container_selectors=('[class*="ChatMessagesView"]', '[class*="ChatMessages"]', "main"),
    role_resolver=PresenceRole(
        user_selectors=('[class*="rightSide"]', '[class*="humanMessage"]'),
        assistant_selectors=('[class*="botMessage"]',),
        default=ROLE_ASSISTANT,
    ),
)

HUGGINGCHAT = PlatformProfile(
    id="huggingchat",
    url_rules=(UrlRule("huggingface.co", "/chat"),),
    network_include_patterns=("/chat/conversation/",),
    network_exclude_patterns=("/chat/api/", "/chat/settings"),
    message_container_selectors=(
        ".message",
        '[class*="message"]',
        '[data-testid="message"]',
        ".group",
    ),
    user_message_selectors=(".message.user", '[data-role="user"]', '[class*="user-message"]'),
    assistant_message_selectors=(
        ".message.assistant",
        '[data-role="assistant"]',
        '[class*="assistant-message"]',
    ),
    message_content_selectors=(".prose", ".markdown", '[class*="message-content"]', "p"),
    chat_container_selectors=("main", '[class*="chat-container"]', '[class*="conversation"]', ".flex-col"),
    role_resolver=AttributeRole("data-role", fallback=PresenceRole()),
)

BUILTIN_PROFILES = (
    CHATGPT,
    CLAUDE,
    GROK,
    COPILOT,
    DEEPSEEK,
    DOUBAO,
    GEMINI,
    PERPLEXITY,
    POE,
    HUGGINGCHAT,
)
