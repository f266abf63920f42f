"""Entry point for the capture daemon.

    python -m chat_siphon.sync [--config PATH]
"""

import signal
from pathlib import Path
from types import FrameType

import click

from chat_siphon.config import load_config
from chat_siphon.logging import get_logger
from chat_siphon.sync.daemon import request_shutdown, run_daemon

logger = get_logger("daemon")


def _on_signal(signum: int, frame: FrameType | None) -> None:
    logger.info("Received signal %s, shutting down", signal.Signals(signum).name)
    request_shutdown()


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Config file (defaults to the standard search locations)",
)
def cli(config_path: Path | None) -> None:
    """Watch configured chat pages and sync captured conversations."""
    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        run_daemon(load_config(config_path))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        request_shutdown()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
