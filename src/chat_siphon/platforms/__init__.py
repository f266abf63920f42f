"""Capture profiles for the supported chat platforms."""

from .base import (
    AttributeRole,
    PlatformProfile,
    PlatformRegistry,
    PositionalRole,
    PresenceRole,
    RoleResolver,
    UrlRule,
    matches_any,
    select_all,
    select_first,
)
from .profiles import BUILTIN_PROFILES

__all__ = [
    "AttributeRole",
    "BUILTIN_PROFILES",
    "PlatformProfile",
    "PlatformRegistry",
    "PositionalRole",
    "PresenceRole",
    "RoleResolver",
    "UrlRule",
    "detect_platform",
    "matches_any",
    "select_all",
    "select_first",
]

# Register profiles
for _profile in BUILTIN_PROFILES:
    PlatformRegistry.register(_profile)


def detect_platform(url: str) -> str:
    """Platform id for a URL, or 'unknown' when no profile matches."""
    profile = PlatformRegistry.detect(url)
    return profile.id if profile else "unknown"
