import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .crawler import run_sync
from .errors import SyncError
from .models import SyncOptions
import settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNITS_FAILED = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ilias-mirror",
                                     description="Mirror courses, files, forums and videos to a local directory")
    parser.add_argument("-o", "--output", type=Path, default=settings.DEFAULT_OUTPUT_DIR,
                        help="Directory to write the mirror into")
    parser.add_argument("-j", "--jobs", type=int, default=settings.SYNC_DEFAULT_JOBS,
                        help="Number of units processed at once")
    parser.add_argument("--rate", type=float, default=settings.SYNC_DEFAULT_RATE,
                        help="Requests per minute")
    parser.add_argument("-f", "--force", action="store_true",
                        help="Re-download files that exist already")
    parser.add_argument("-s", "--skip-files", action="store_true",
                        help="Do not download files")
    parser.add_argument("-n", "--no-videos", action="store_true",
                        help="Do not download videos")
    parser.add_argument("-t", "--forum", action="store_true",
                        help="Download forum threads")
    parser.add_argument("--check-videos", action="store_true",
                        help="Compare sizes of existing videos with the server")
    parser.add_argument("--save-ilias-pages", action="store_true",
                        help="Save the text of course and folder pages")
    parser.add_argument("--sync-url",
                        help="Start page (defaults to the personal desktop)")
    parser.add_argument("-p", "--proxy",
                        help="Proxy URL, e.g. socks5://127.0.0.1:1080")
    parser.add_argument("--keep-session", action="store_true",
                        help=f"Load and save session cookies ({settings.SESSION_FILE_NAME} in the output directory)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Log more (-v info, -vv debug)")
    return parser.parse_args(argv)


def configure_logging(verbosity: int):
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, settings.SYNC_LOG_LEVEL, logging.WARNING)
    logging.basicConfig(level=level, format=settings.LOG_FORMAT)
    # h2 and httpcore are very chatty at debug level
    for name in ('httpx', 'httpcore', 'h2', 'hpack'):
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        options = SyncOptions(
            output=args.output,
            jobs=args.jobs,
            rate=args.rate,
            force=args.force,
            skip_files=args.skip_files,
            no_videos=args.no_videos,
            forum=args.forum,
            check_videos=args.check_videos,
            save_ilias_pages=args.save_ilias_pages,
            sync_url=args.sync_url,
            proxy=args.proxy,
            keep_session=args.keep_session,
        )
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    try:
        stats = asyncio.run(run_sync(options))
    except (SyncError, OSError) as e:
        logger.error(f"Sync could not start: {e}")
        return EXIT_CONFIG_ERROR

    if stats['failed']:
        logger.warning(f"{stats['failed']} of {stats['submitted']} units failed")
        return EXIT_UNITS_FAILED
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
