from __future__ import annotations

import argparse
import logging
from typing import Optional

import uvicorn

from .app import create_app

logger = logging.getLogger("brainguck.webui")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve brainguck debugger sessions over HTTP")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level for the server and interpreter (default: info)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper())
    logger.info("Starting session API on %s:%d", args.host, args.port)
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
