"""Run the push server: python -m pushserver [--host HOST] [--port PORT]."""

from __future__ import annotations

import argparse

import uvicorn

from pushserver.config import settings


def main() -> None:
    parser = argparse.ArgumentParser(prog="pushserver")
    parser.add_argument("--host", default=settings.HOST)
    parser.add_argument("--port", type=int, default=settings.PORT)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run("pushserver.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
