"""Configuration loading and management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class PageConfig:
    url: str
    path: Path


@dataclass
class CaptureConfig:
    poll_interval_seconds: float = 1.0
    debounce_seconds: float = 2.0
    backup_interval_seconds: float = 10.0
    initial_delay_seconds: float = 2.0
    setup_retry_seconds: float = 1.0
    max_setup_attempts: int = 30
    pages: list[PageConfig] = field(default_factory=list)


@dataclass
class SyncConfig:
    api_url: str = "http://localhost:3000/api"
    flush_interval_seconds: int = 300
    timeout_seconds: int = 10
    user_identity: str | None = None


@dataclass
class StorageConfig:
    db_path: Path = field(default_factory=lambda: Path.home() / "chat-siphon" / "state" / "capture.db")


@dataclass
class Config:
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "chat-siphon" / "config.yaml",
            Path("/etc/chat-siphon/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    # Parse capture config
    capture_data = data.get("capture", {})
    pages = [
        PageConfig(url=page_data["url"], path=expand_path(page_data["path"]))
        for page_data in capture_data.get("pages", [])
        if page_data.get("url") and page_data.get("path")
    ]

    capture = CaptureConfig(
        poll_interval_seconds=float(capture_data.get("poll_interval_seconds", 1.0)),
        debounce_seconds=float(capture_data.get("debounce_seconds", 2.0)),
        backup_interval_seconds=float(capture_data.get("backup_interval_seconds", 10.0)),
        initial_delay_seconds=float(capture_data.get("initial_delay_seconds", 2.0)),
        setup_retry_seconds=float(capture_data.get("setup_retry_seconds", 1.0)),
        max_setup_attempts=int(capture_data.get("max_setup_attempts", 30)),
        pages=pages,
    )

    # Parse sync config
    sync_data = data.get("sync", {})
    user_identity = sync_data.get("user_identity")
    if user_identity:
        user_identity = expand_env_var(user_identity)
        # Unset variable leaves the placeholder behind
        if user_identity.startswith("${"):
            user_identity = None

    sync = SyncConfig(
        api_url=expand_env_var(sync_data.get("api_url", "http://localhost:3000/api")).rstrip("/"),
        flush_interval_seconds=int(sync_data.get("flush_interval_seconds", 300)),
        timeout_seconds=int(sync_data.get("timeout_seconds", 10)),
        user_identity=user_identity or None,
    )

    # Parse storage config
    storage_data = data.get("storage", {})
    storage = StorageConfig(
        db_path=expand_path(storage_data.get("db_path", "~/chat-siphon/state/capture.db")),
    )

    return Config(capture=capture, sync=sync, storage=storage)
