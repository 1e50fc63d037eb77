"""``regroup`` console script: serve the organizer API with uvicorn."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

import uvicorn  # pylint: disable=import-error

from organizer_utils import DEFAULT_CONFIG_PATH, setup_logging

LOGGER = logging.getLogger(__name__)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
CONFIG_ENV = "REGROUP_CONFIG"


def load_config(config_path: Path) -> Dict[str, Any]:
    """Read ``config_path`` as a JSON object, exiting with a message if it is unusable."""

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            config = json.load(handle)
    except FileNotFoundError as exc:
        raise SystemExit(f"Configuration file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in configuration file: {config_path}") from exc
    if not isinstance(config, dict):
        raise SystemExit(f"Configuration must be a JSON object: {config_path}")
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regroup",
        description="Serve the Regroup clustering and folder organization API.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="interface to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="organizer config JSON; also holds db_path and log_dir",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Start the API server.

    The resolved config path is exported through ``REGROUP_CONFIG`` because
    uvicorn imports ``regroup.app`` by name and the module opens its store
    at import time.
    """

    args = build_parser().parse_args(argv)

    config_path = Path(args.config).expanduser().resolve()
    config = load_config(config_path)
    log_file = setup_logging(config_path)
    LOGGER.info("Writing logs to %s", log_file)
    LOGGER.info(
        "Using config %s (target_dir=%s)", config_path, config.get("target_dir") or "unset"
    )

    os.environ[CONFIG_ENV] = str(config_path)
    uvicorn.run("regroup.app:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
