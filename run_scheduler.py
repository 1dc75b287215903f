"""Command-line entry point for the job scheduler service."""

import argparse
import sys

import uvicorn

from app.core.config import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument(
        "-v", "--version", action="store_true", help="print the version and exit"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.version:
        print(f"{settings.APP_NAME} {settings.VERSION}")
        return 0

    uvicorn.run(
        "app.main:app",
        host=settings.HTTP_BIND_ADDR,
        port=settings.HTTP_PORT,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
