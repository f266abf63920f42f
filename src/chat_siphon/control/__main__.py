"""Command-line control surface.

Exposes the coordinator's status query and commands (enable/disable,
sync now, conversation open/close) plus one-shot captures from saved
pages and response bodies.
"""

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import click

from chat_siphon.capture.dom import DomSnapshotDiffer, parse_html
from chat_siphon.capture.network import NetworkCaptureFilter
from chat_siphon.capture.page import FilePage, StaticPage
from chat_siphon.config import load_config
from chat_siphon.logging import setup_logging
from chat_siphon.platforms import PlatformRegistry
from chat_siphon.sync.client import IngestionError
from chat_siphon.sync.coordinator import CaptureContext, Coordinator

# Body chunk size when replaying a saved event stream
STREAM_CHUNK_SIZE = 4096


@contextmanager
def open_coordinator(ctx: click.Context) -> Iterator[Coordinator]:
    context = CaptureContext.from_config(ctx.obj["config"])
    try:
        yield Coordinator(context)
    finally:
        context.close()


def print_result(result: dict[str, Any]) -> None:
    if result.get("success"):
        click.echo(f"\033[32mSynced {result['synced']} capture(s)\033[0m")
    else:
        click.echo(f"\033[31mSync failed: {result.get('error')}\033[0m", err=True)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Config file (defaults to the standard search locations)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Control chat capture and sync."""
    setup_logging("control", console=False)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether capture is enabled and how much is pending."""
    with open_coordinator(ctx) as coordinator:
        current = coordinator.status()
        state = "\033[32menabled\033[0m" if current["enabled"] else "\033[33mdisabled\033[0m"
        click.echo(f"Capture: {state}")
        click.echo(f"Pending captures: {current['pendingCount']}")
        click.echo(f"User identity: {coordinator.user_identity or '(none)'}")
        active = coordinator.context.state.active_keys()
        if active:
            click.echo("Open conversations:")
            for key in active:
                click.echo(f"  {key} [{coordinator.phase(key)}]")


@cli.command()
@click.pass_context
def enable(ctx: click.Context) -> None:
    """Enable capture and upload open conversations."""
    with open_coordinator(ctx) as coordinator:
        coordinator.set_enabled(True)
        click.echo(f"Capture enabled, pending captures: {coordinator.status()['pendingCount']}")


@cli.command()
@click.pass_context
def disable(ctx: click.Context) -> None:
    """Disable capture and purge open conversations."""
    with open_coordinator(ctx) as coordinator:
        coordinator.set_enabled(False)
        click.echo("Capture disabled, open conversations purged")


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Upload every pending capture now."""
    with open_coordinator(ctx) as coordinator:
        result = coordinator.sync_now().to_dict()
    print_result(result)
    if not result["success"]:
        sys.exit(1)


@cli.command()
@click.argument("user_id")
@click.pass_context
def identify(ctx: click.Context, user_id: str) -> None:
    """Set the anonymous user id sent with uploads."""
    with open_coordinator(ctx) as coordinator:
        coordinator.set_user_identity(user_id)
    click.echo(f"User identity set: {user_id}")


@cli.command("open")
@click.argument("url")
@click.pass_context
def open_conversation(ctx: click.Context, url: str) -> None:
    """Mark a conversation as open."""
    with open_coordinator(ctx) as coordinator:
        click.echo(coordinator.conversation_opened(url))


@cli.command("close")
@click.argument("url")
@click.pass_context
def close_conversation(ctx: click.Context, url: str) -> None:
    """Mark a conversation as closed."""
    with open_coordinator(ctx) as coordinator:
        click.echo(coordinator.conversation_closed(url))


@cli.command("capture-html")
@click.argument("html_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", required=True, help="Page URL the HTML was saved from")
@click.pass_context
def capture_html(ctx: click.Context, html_file: Path, url: str) -> None:
    """Capture the conversation in a saved page."""
    page = FilePage(html_file, url)
    profile = PlatformRegistry.detect(page.url)
    if profile is None:
        click.echo(f"Unsupported platform: {page.url}", err=True)
        sys.exit(1)

    with open_coordinator(ctx) as coordinator:
        differ = DomSnapshotDiffer(page, profile, coordinator.handle_capture)
        differ.start()
        capture = differ.check_for_changes(parse_html(page.html()))

    if capture is None:
        click.echo("No messages found")
        sys.exit(1)
    click.echo(f"Captured {len(capture.payload['messages'])} message(s) from {profile.id}")


@cli.command("capture-stream")
@click.argument("body_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", required=True, help="Request URL of the saved response")
@click.option("--method", default=None, help="Request method")
@click.option("--content-type", default="text/event-stream", show_default=True)
@click.option("--page-url", default=None, help="URL of the page that made the request")
@click.pass_context
def capture_stream(
    ctx: click.Context,
    body_file: Path,
    url: str,
    method: str | None,
    content_type: str,
    page_url: str | None,
) -> None:
    """Capture a saved chat API response body."""
    body = body_file.read_bytes()
    chunks = [body[i : i + STREAM_CHUNK_SIZE] for i in range(0, len(body), STREAM_CHUNK_SIZE)]

    with open_coordinator(ctx) as coordinator:
        page = StaticPage(page_url) if page_url else None
        capture_filter = NetworkCaptureFilter(coordinator.handle_capture, page=page)
        capture = capture_filter.observe(url, method, content_type, chunks)

    if capture is None:
        click.echo("Response not captured (irrelevant URL or unparseable body)", err=True)
        sys.exit(1)
    records = capture.payload.get("records")
    detail = f"{len(records)} record(s)" if records is not None else "JSON document"
    click.echo(f"Captured {detail} from {capture.platform}")


@cli.command("my-chats")
@click.option("--limit", "-n", default=20, help="Number of results")
@click.option("--offset", default=0, help="Results to skip")
@click.pass_context
def my_chats(ctx: click.Context, limit: int, offset: int) -> None:
    """List chat logs stored for this user."""
    with open_coordinator(ctx) as coordinator:
        if not coordinator.user_identity:
            click.echo("No user identity set (use 'identify')", err=True)
            sys.exit(1)
        try:
            results = coordinator.context.client.list_my_chats(
                coordinator.user_identity, limit=limit, offset=offset
            )
        except IngestionError as e:
            click.echo(f"Error listing chats: {e}", err=True)
            sys.exit(1)

    chats = results.get("chats", results.get("items", []))
    click.echo(f"Found {results.get('total', len(chats))} chat logs (showing {len(chats)}):\n")
    for chat in chats:
        captured = chat.get("captured_at") or chat.get("capturedAt") or ""
        try:
            captured = datetime.fromisoformat(captured.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
        except ValueError:
            pass
        click.echo(f"\033[36m[{captured}]\033[0m \033[32m{chat.get('platform', '?')}\033[0m {chat.get('url', '')}")


@cli.command("forget-all")
@click.confirmation_option(prompt="Erase every uploaded chat and the local cache?")
@click.pass_context
def forget_all(ctx: click.Context) -> None:
    """Erase all uploaded chats and the local cache."""
    with open_coordinator(ctx) as coordinator:
        try:
            deleted = coordinator.forget_all()
        except IngestionError as e:
            click.echo(f"Local cache cleared; remote erase failed: {e}", err=True)
            sys.exit(1)
    click.echo(f"Erased {deleted} remote record(s) and the local cache")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
