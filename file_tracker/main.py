"""Command-line entry point: load config, set up logging, serve the API."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import uvicorn

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that drown out ours at INFO
QUIET_LOGGERS = ('sqlalchemy.engine', 'alembic.runtime.migration', 'uvicorn.access', 'multipart')


def setup_logging(debug: bool = False, data_dir: Path = Path("data")) -> Optional[Path]:
    """
    Send logs to stdout, plus a timestamped file under <data>/debug_logs
    when debug is on. Returns the log file path, if any.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = None

    if debug:
        log_dir = Path(data_dir) / "debug_logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"file_tracker_{datetime.now():%Y%m%d_%H%M%S}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True)
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.getLogger('file_tracker').setLevel(logging.DEBUG if debug else logging.INFO)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        logging.getLogger(__name__).info(f"Debug log: {log_file}")
    return log_file


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="file-tracker", description="File Tracker server")
    parser.add_argument("--config", type=Path, help="path to system.yaml")
    parser.add_argument("--host", help="override api_host")
    parser.add_argument("--port", type=int, help="override api_port")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    from file_tracker.config import ConfigLoader, ConfigLoadError, SystemConfig

    args = parse_args(argv)

    try:
        system_config = ConfigLoader().load_system_config(args.config)
    except ConfigLoadError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logging.getLogger(__name__).warning(f"Falling back to default config: {e}")
        system_config = SystemConfig()

    if args.host:
        system_config.api_host = args.host
    if args.port:
        system_config.api_port = args.port
    if args.debug:
        system_config.debug = True

    setup_logging(debug=system_config.debug, data_dir=system_config.paths.data)
    logger = logging.getLogger(__name__)
    logger.info(
        f"File Tracker listening on {system_config.api_host}:{system_config.api_port} "
        f"(data: {system_config.paths.data}, debug: {system_config.debug})"
    )

    from file_tracker.api.app import create_app

    uvicorn.run(
        create_app(system_config),
        host=system_config.api_host,
        port=system_config.api_port,
        log_level="debug" if system_config.debug else "info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
