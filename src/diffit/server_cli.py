"""CLI entry point for the Diffit API server."""

import argparse
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="diffit-server",
        description="Diffit API server: visual regression diffing and review",
    )
    parser.add_argument("--host", default=None, help="Bind host (default: DIFFIT_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: DIFFIT_PORT or 8080)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database with tables created on startup",
    )
    parser.add_argument("--storage", default=None, help="Blob storage directory (DIFFIT_STORAGE_PATH)")
    args = parser.parse_args(argv)

    # Settings are read at import time, so environment overrides go first.
    if args.local:
        os.environ["DIFFIT_LOCAL_MODE"] = "1"
    if args.storage:
        os.environ["DIFFIT_STORAGE_PATH"] = args.storage

    import uvicorn

    from diffit.config import settings

    uvicorn.run(
        "diffit.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
