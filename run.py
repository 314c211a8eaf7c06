from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from lms.app.config import configure_logging, get_lab_settings, load_config
from lms.server import create_app
from lms.services.session_registry import session_registry

DEFAULT_CONFIG = ROOT / "config.json"

logger = logging.getLogger("lms.run")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the lab sample entry service")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG if DEFAULT_CONFIG.exists() else None,
        help=(
            "Optional path to a JSON/YAML/TOML config file (defaults to config.json when present, "
            "otherwise relies on the LMS_CONFIG environment variable or built-in defaults)"
        ),
    )
    parser.add_argument("--host", default=None, help="Host interface to bind (default: server.host)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: server.port)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    config_arg: Path | None = args.config
    config_path = str(config_arg) if config_arg else None

    cfg = load_config(config_path)
    server = cfg.get("server", {})
    debug = args.debug or bool(server.get("debug"))
    level = "debug" if debug else cfg.log_level
    configure_logging(level)

    session_registry.configure(get_lab_settings(config_path))
    host = args.host or server.get("host", "0.0.0.0")
    port = args.port or int(server.get("port", 7600))
    logger.info("Starting lab sample entry service on %s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level=str(level).lower())


if __name__ == "__main__":
    main()
