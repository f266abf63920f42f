"""Platform profile record, role strategies and registry."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import Tag
from soupsieve import SelectorSyntaxError

from chat_siphon.logging import get_logger
from chat_siphon.models import ROLE_ASSISTANT, ROLE_USER

__all__ = [
    "AttributeRole",
    "PlatformProfile",
    "PlatformRegistry",
    "PositionalRole",
    "PresenceRole",
    "RoleResolver",
    "UrlRule",
    "matches_any",
    "select_all",
    "select_first",
]

logger = get_logger("platforms")


def select_first(selectors: tuple[str, ...], parent: Tag) -> Tag | None:
    """Return the first element matched by the first selector that matches.

    Selectors the CSS engine rejects are skipped.
    """
    for selector in selectors:
        try:
            element = parent.select_one(selector)
        except SelectorSyntaxError:
            logger.debug("Skipping invalid selector: selector=%s", selector)
            continue
        if element is not None:
            return element
    return None


def select_all(selectors: tuple[str, ...], parent: Tag) -> list[Tag]:
    """Return every match of the first selector that yields any match."""
    for selector in selectors:
        try:
            elements = parent.select(selector)
        except SelectorSyntaxError:
            logger.debug("Skipping invalid selector: selector=%s", selector)
            continue
        if elements:
            return list(elements)
    return []


def matches_any(selectors: tuple[str, ...], element: Tag) -> bool:
    """True if the element itself or one of its descendants matches a selector."""
    for selector in selectors:
        try:
            if element.css.match(selector) or element.select_one(selector) is not None:
                return True
        except SelectorSyntaxError:
            logger.debug("Skipping invalid selector: selector=%s", selector)
    return False


class RoleResolver(ABC):
    """Strategy deciding whether a message container holds a user or assistant turn."""

    @abstractmethod
    def resolve(self, element: Tag, profile: "PlatformProfile") -> str | None:
        """Return the role for a message container, or None to skip it."""


class AttributeRole(RoleResolver):
    """Role read from an explicit attribute such as data-message-author-role.

    Values outside the known role names (tool, system) skip the element.
    Elements without the attribute are passed to the fallback resolver.
    """

    ROLE_VALUES = {
        "user": ROLE_USER,
        "human": ROLE_USER,
        "assistant": ROLE_ASSISTANT,
        "model": ROLE_ASSISTANT,
        "bot": ROLE_ASSISTANT,
    }

    def __init__(self, attribute: str, fallback: RoleResolver | None = None) -> None:
        self.attribute = attribute
        self.fallback = fallback

    def resolve(self, element: Tag, profile: "PlatformProfile") -> str | None:
        value = element.get(self.attribute)
        if value is None:
            if self.fallback is None:
                return None
            return self.fallback.resolve(element, profile)
        if isinstance(value, list):
            value = " ".join(value)
        return self.ROLE_VALUES.get(value.strip().lower())


class PresenceRole(RoleResolver):
    """Role inferred from the presence of a marker element.

    User markers are checked before assistant markers. Passing None for a
    marker list uses the profile's own user/assistant selectors; an empty
    tuple disables that check.
    """

    def __init__(
        self,
        user_selectors: tuple[str, ...] | None = None,
        assistant_selectors: tuple[str, ...] | None = (),
        default: str | None = ROLE_ASSISTANT,
    ) -> None:
        self.user_selectors = user_selectors
        self.assistant_selectors = assistant_selectors
        self.default = default

    def resolve(self, element: Tag, profile: "PlatformProfile") -> str | None:
        user_selectors = (
            profile.user_message_selectors if self.user_selectors is None else self.user_selectors
        )
        assistant_selectors = (
            profile.assistant_message_selectors
            if self.assistant_selectors is None
            else self.assistant_selectors
        )
        if user_selectors and matches_any(user_selectors, element):
            return ROLE_USER
        if assistant_selectors and matches_any(assistant_selectors, element):
            return ROLE_ASSISTANT
        return self.default


class PositionalRole(RoleResolver):
    """Role inferred from left/right layout classes on the nearest ancestor.

    Class names are matched by substring, like [class*="items-end"].
    """

    def __init__(
        self,
        user_classes: tuple[str, ...],
        assistant_classes: tuple[str, ...],
        default: str | None = ROLE_ASSISTANT,
    ) -> None:
        self.user_classes = user_classes
        self.assistant_classes = assistant_classes
        self.default = default

    def resolve(self, element: Tag, profile: "PlatformProfile") -> str | None:
        node: Tag | None = element
        while node is not None and node.name != "[document]":
            class_attr = " ".join(node.get("class") or [])
            if any(cls in class_attr for cls in self.user_classes):
                return ROLE_USER
            if any(cls in class_attr for cls in self.assistant_classes):
                return ROLE_ASSISTANT
            node = node.parent
        return self.default


@dataclass(frozen=True)
class UrlRule:
    """Host suffix plus optional path prefix identifying a platform."""

    host: str
    path_prefix: str = ""

    def matches(self, host: str, path: str) -> bool:
        host_ok = host == self.host or host.endswith("." + self.host)
        return host_ok and path.startswith(self.path_prefix)


@dataclass(frozen=True)
class PlatformProfile:
    """Static capture configuration for one chat platform.

    Selector tuples are ordered fallbacks: the first selector yielding any
    match wins.
    """

    id: str
    url_rules: tuple[UrlRule, ...]
    network_include_patterns: tuple[str, ...]
    network_exclude_patterns: tuple[str, ...]
    message_container_selectors: tuple[str, ...]
    user_message_selectors: tuple[str, ...]
    assistant_message_selectors: tuple[str, ...]
    message_content_selectors: tuple[str, ...]
    chat_container_selectors: tuple[str, ...]
    role_resolver: RoleResolver

    def matches_url(self, url: str) -> bool:
        try:
            parts = urlsplit(url)
        except ValueError:
            return False
        host = (parts.hostname or "").lower()
        return any(rule.matches(host, parts.path or "/") for rule in self.url_rules)

    def resolve_role(self, element: Tag) -> str | None:
        return self.role_resolver.resolve(element, self)


class PlatformRegistry:
    """Registry of platform profiles by id."""

    _profiles: dict[str, PlatformProfile] = {}

    @classmethod
    def register(cls, profile: PlatformProfile) -> None:
        """Register a profile."""
        cls._profiles[profile.id] = profile

    @classmethod
    def get(cls, platform_id: str) -> PlatformProfile | None:
        """Get profile by platform id."""
        return cls._profiles.get(platform_id)

    @classmethod
    def all_platforms(cls) -> list[str]:
        """List all registered platform ids."""
        return list(cls._profiles.keys())

    @classmethod
    def detect(cls, url: str) -> PlatformProfile | None:
        """Find the profile whose URL rules match, or None for unknown platforms."""
        for profile in cls._profiles.values():
            if profile.matches_url(url):
                return profile
        return None
