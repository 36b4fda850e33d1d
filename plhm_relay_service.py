"""CLI entry point for the Polhemus tracker relay service."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from plhm_relay import __version__, load_config
from plhm_relay.acquisition import AcquisitionFailure, RelayService
from plhm_relay.cli import apply_overrides
from plhm_relay.config import SUPPORTED_TRANSPORTS
from plhm_relay.service import ServiceRunner
from plhm_relay.transport import AddressResolutionFailed

POLL_AS_FAST_AS_POSSIBLE = -1.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='plhm',
        description='Relay Polhemus tracker data to a log, OSC peers, and mapping signals.',
        epilog='At least one of --position, --euler or --timestamp is required.',
    )
    parser.add_argument('--config', type=str, help='Path to a JSON, TOML or YAML config file.')
    parser.add_argument('-D', '--daemon', action='store_true', help='Wait indefinitely for the device.')
    parser.add_argument('-d', '--device', type=str, help='Serial device to use (default: /dev/ttyUSB0).')
    parser.add_argument(
        '--transport', choices=sorted(SUPPORTED_TRANSPORTS), help='Tracker driver (use "sim" for a bench run).'
    )
    parser.add_argument('-P', '--position', action='store_true', help='Request position data.')
    parser.add_argument('-E', '--euler', action='store_true', help='Request euler angle data.')
    parser.add_argument('-T', '--timestamp', action='store_true', help='Request timestamp data.')
    parser.add_argument(
        '-o', '--output', nargs='?', const='-', default=None, metavar='PATH',
        help='Write data to stdout, or to PATH if given.',
    )
    parser.add_argument('-H', '--hex', action='store_true', help='Write float values as hexadecimal.')
    parser.add_argument(
        '-s', '--send', type=str, metavar='URL', help='OSC destination, e.g. osc.udp://localhost:9999.'
    )
    parser.add_argument('-l', '--listen', type=int, metavar='PORT', help='Port on which to listen for OSC commands.')
    parser.add_argument('-m', '--mapper', action='store_true', help='Enable ad-hoc mapping with libmapper.')
    parser.add_argument(
        '-p', '--poll', nargs='?', type=float, const=POLL_AS_FAST_AS_POSSIBLE, default=None, metavar='MS',
        help='Poll instead of requesting continuous data; period in milliseconds, as fast as possible if omitted.',
    )
    parser.add_argument(
        '--reset', action='store_true', help='Reset the device before starting acquisition (takes 10 seconds).'
    )
    parser.add_argument('-q', '--quiet', action='store_true', help='Only log warnings; hide the update frequency.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging.')
    parser.add_argument('-V', '--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(message)s')


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.poll is not None:
        if args.poll == POLL_AS_FAST_AS_POSSIBLE:
            args.poll = 0.0
        elif args.poll <= 0:
            parser.error('Please specify a poll period in milliseconds.')

    _configure_logging(args)

    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        print(f'Config file not found: {config_path}', file=sys.stderr)
        return 1

    try:
        config = apply_overrides(load_config(config_path), args)
        config.validate()
    except ValueError as exc:
        print(f"[plhm] {exc}. Try option '-h' for help.", file=sys.stderr)
        return 1

    try:
        service = RelayService(config)
    except AddressResolutionFailed as exc:
        print(f"[plhm] Couldn't open OSC address {config.network.send_url}: {exc}", file=sys.stderr)
        return 1

    runner = ServiceRunner(service, listen_port=config.network.listen_port)
    if config.network.listen_port:
        print(f'Listening for OSC commands on port {config.network.listen_port} under {config.network.namespace}')

    shutdown_requested = False

    def signal_handler(signum, frame):
        nonlocal shutdown_requested
        if not shutdown_requested:
            shutdown_requested = True
            print(f'Received shutdown signal {signum}, stopping...', file=sys.stderr)
            service.request_stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    if hasattr(signal, 'SIGHUP'):
        signal.signal(signal.SIGHUP, signal_handler)

    try:
        runner.run()
    except AcquisitionFailure as exc:
        print(f'[plhm] error: {exc}', file=sys.stderr)
        return 1
    except (RuntimeError, ValueError, OSError) as exc:
        print(f'[plhm] error: {exc}', file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        service.request_stop()
    return 0


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
