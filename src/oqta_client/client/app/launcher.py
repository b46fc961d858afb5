"""
Launcher for the OqtaDrive client.

Starts the Qt drive panel connected to a drive server, or runs one of the
headless commands from :mod:`oqta_client.client.app.cli`.
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from oqta_client import __version__
from oqta_client.client.config import ClientConfig, load_client_config

from . import cli

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s'
    )
    # aiohttp's access/client chatter is only interesting when debugging
    if not debug:
        logging.getLogger('aiohttp').setLevel(logging.WARNING)


def launch_drive_client(config: ClientConfig) -> int:
    """
    Launch the Qt drive panel connected to ``config.address``.

    Parameters
    ----------
    config : ClientConfig
        Resolved client settings (server address, timings).

    Returns
    -------
    int
        Qt application exit code.
    """
    from qtpy import QtWidgets

    from oqta_client.client._qt.drive_panel import DrivePanel
    from oqta_client.client.runtime.engine_thread import SessionHost

    logger.info("Launching drive client for %s", config.address)

    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
    panel = DrivePanel()
    panel.setWindowTitle(f"OqtaDrive - {config.address}")
    host = SessionHost(config, panel)
    try:
        host.start(timeout=max(10.0, config.request_timeout_s * 5))
    except Exception:
        logger.exception("Could not start drive session")
        host.stop()
        return 1
    panel.attach(host)
    panel.resize(560, 420)
    panel.show()
    logger.info("Client launched successfully")

    try:
        code = app.exec_()
    finally:
        host.stop()
        logger.info("Client closed")
    return int(code)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='oqta-client',
        description='OqtaDrive client: drive panel and headless commands'
    )
    parser.add_argument(
        '--address',
        default=None,
        help='Drive server address, host[:port] or URL (default: $OQTA_ADDRESS or localhost:8888)'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=None,
        help='Timeout in seconds for one-shot requests, 0 disables (default: 30)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('gui', help='open the drive panel (default)')
    cli.add_commands(subparsers)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_client_config().with_overrides(
        address=args.address,
        request_timeout_s=args.timeout,
    )
    if args.debug:
        config = config.with_overrides(debug=True)
    configure_logging(config.debug)

    command = args.command or 'gui'
    if command == 'gui':
        return launch_drive_client(config)
    return cli.run_command(args, config)


if __name__ == '__main__':
    sys.exit(main())
