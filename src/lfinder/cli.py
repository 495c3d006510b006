import argparse
import asyncio
import logging
import signal
import sys
import textwrap
from pathlib import Path

from . import LinkScanner, Processor, ScanConfig, ScanMode, ScanSettings, ScanSetupError
from .config import DEFAULT_SKIP_DIRS, DEFAULT_TIMEOUT, DEFAULT_WORKERS, DEFAULT_QUEUE_SIZE
from .settings import (SETTING_SKIP_DIRS, SETTING_TIMEOUT_MINUTES, SETTING_WORKERS, SETTING_QUEUE_SIZE,
                       SETTING_LOG_PATH, SETTING_LOG_LEVEL)
from .utils.profiling import profile_main

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lfinder',
        description='Find the symbolic links and hard links that refer to a file.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              lfinder notes.txt
              lfinder -s -p /srv /srv/data/current.db
              lfinder -H -t 5 -p / /etc/hosts

            Each match is printed as soon as it is found:
              ./latest (symlink) -> data/current.db
              ./backup/hosts (hardlink)
            ''').strip()
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '-s', '--symlinks-only',
        action='store_true',
        help='Find symbolic links only')
    mode.add_argument(
        '-H', '--hardlinks-only',
        action='store_true',
        help='Find hard links only')
    parser.add_argument(
        '-p', '--path',
        metavar='PATH',
        default='.',
        help='Path to start the search from (default: current directory)')
    parser.add_argument(
        '-t', '--timeout',
        type=float,
        metavar='MINUTES',
        help=f'Stop the search after this many minutes and keep the partial results; 0 disables the deadline '
             f'(default: scan.timeout_minutes from settings, or {DEFAULT_TIMEOUT / 60:g})')
    parser.add_argument(
        '--skip-dir',
        action='append',
        default=[],
        metavar='PATH',
        help=f'Directory to leave out of the search, in addition to {", ".join(DEFAULT_SKIP_DIRS)}. May be repeated.')
    parser.add_argument(
        '--workers',
        type=int,
        metavar='N',
        help=f'Number of concurrent workers (default: scan.workers from settings, or {DEFAULT_WORKERS})')
    parser.add_argument(
        '--settings',
        metavar='PATH',
        help='Path to a TOML settings file. If not provided, uses the LFINDER_SETTINGS environment variable.')
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Log progress to standard error')
    parser.add_argument(
        '--log-file',
        metavar='PATH',
        help='Path to log file for operation logging. If not provided, uses logging.path from settings or no '
             'logging.')
    parser.add_argument(
        '--log-level',
        metavar='LEVEL',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO when logging is enabled.')
    parser.add_argument(
        'target',
        metavar='TARGET',
        help='File whose links are sought, relative to the search path unless absolute')
    return parser


def configure_logging(args, settings: ScanSettings):
    """Set up logging from arguments, falling back to settings.

    Raises:
        ValueError: logging.level in settings is not a logging level name
    """
    log_level = str(args.log_level or settings.get(SETTING_LOG_LEVEL) or 'INFO').upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ValueError(f"{SETTING_LOG_LEVEL} must be a logging level name, got {log_level!r}")
    log_file = args.log_file or settings.get(SETTING_LOG_PATH)

    if log_file:
        logging.basicConfig(filename=str(log_file), level=log_level, format=LOG_FORMAT)
    elif args.verbose:
        logging.basicConfig(stream=sys.stderr, level=log_level, format=LOG_FORMAT)


def numeric_setting(settings: ScanSettings, key: str, default, convert):
    """Read a numeric setting, converted with convert.

    Raises:
        ValueError: the setting is present but not a number
    """
    value = settings.get(key, default)
    # TOML booleans would otherwise pass as 0 and 1
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return convert(value)


def build_config(args, settings: ScanSettings) -> ScanConfig:
    """Combine command-line arguments, settings and defaults into a ScanConfig.

    Command-line arguments take precedence over settings. Skip directories from
    either source are added to the built-in ones.

    Raises:
        ValueError: a setting has the wrong type
    """
    if args.symlinks_only:
        mode = ScanMode.SYMLINKS
    elif args.hardlinks_only:
        mode = ScanMode.HARDLINKS
    else:
        mode = ScanMode.BOTH

    timeout_minutes = args.timeout
    if timeout_minutes is None:
        timeout_minutes = numeric_setting(settings, SETTING_TIMEOUT_MINUTES, DEFAULT_TIMEOUT / 60, float)
    timeout = timeout_minutes * 60 if timeout_minutes > 0 else None

    extra_skip_dirs = settings.get(SETTING_SKIP_DIRS, [])
    if not isinstance(extra_skip_dirs, list) or not all(isinstance(d, str) for d in extra_skip_dirs):
        raise ValueError(f"{SETTING_SKIP_DIRS} must be a list of paths, got {extra_skip_dirs!r}")
    skip_dirs = [*DEFAULT_SKIP_DIRS, *extra_skip_dirs, *args.skip_dir]

    workers = args.workers
    if workers is None:
        workers = numeric_setting(settings, SETTING_WORKERS, DEFAULT_WORKERS, int)

    queue_size = numeric_setting(settings, SETTING_QUEUE_SIZE, DEFAULT_QUEUE_SIZE, int)
    if queue_size < 1:
        raise ValueError(f"{SETTING_QUEUE_SIZE} must be positive, got {queue_size}")

    return ScanConfig(
        mode=mode,
        search_path=Path(args.path),
        skip_dirs=tuple(dict.fromkeys(Path(d) for d in skip_dirs)),
        timeout=timeout,
        workers=workers,
        queue_size=queue_size,
    )


def print_match(line: str):
    print(line, flush=True)


async def run_with_signals(scanner: LinkScanner):
    """Run the scan, turning SIGINT and SIGTERM into a cancellation of the scan."""
    loop = asyncio.get_running_loop()
    handled = []
    # Windows event loops lack add_signal_handler; Ctrl-C raises KeyboardInterrupt there
    if sys.platform != 'win32':
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scanner.cancel)
            handled.append(sig)
    try:
        return await scanner.run(print_match)
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)


@profile_main
def lfinder_main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ScanSettings.locate(args.settings)
        configure_logging(args, settings)
        config = build_config(args, settings)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        # tomllib.TOMLDecodeError is a ValueError
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        sys.exit(1)

    if config.workers < 1:
        parser.error(f"--workers must be positive, got {config.workers}")

    with Processor(config.workers) as processor:
        try:
            scanner = LinkScanner(processor, config, args.target)
        except ScanSetupError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        outcome = asyncio.run(run_with_signals(scanner))

    status = outcome.status_line()
    if status is not None:
        print(status, flush=True)


if __name__ == '__main__':
    lfinder_main()
