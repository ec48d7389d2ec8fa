"""
Advisory scheduler entry point.

Serves the HTTP API with uvicorn, or runs the offline console demo.

Usage:
    API server:   python main.py serve [--host 0.0.0.0] [--port 8000]
    Console mode: python main.py console [--scenario race]
"""

import logging
import sys

from advisory_scheduler.config import settings

logger = logging.getLogger(__name__)


def _run_server(argv: list[str]) -> None:
    """Start the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(prog="main.py serve")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    logger.info("Starting %s on %s:%d", settings.app_name, args.host, args.port)
    uvicorn.run(
        "advisory_scheduler.api.app:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo."""
    import console_demo

    sys.argv = ["console_demo.py", *argv]
    console_demo.main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2:])
    elif len(sys.argv) > 1 and sys.argv[1] == "serve":
        _run_server(sys.argv[2:])
    else:
        print(__doc__)
        sys.exit(2)
