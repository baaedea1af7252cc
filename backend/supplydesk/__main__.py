from __future__ import annotations

import argparse
import asyncio
import logging

from supplydesk.config.settings import settings
from supplydesk.context import build_context, build_publisher
from supplydesk.errors import LedgerSubmissionFailure
from supplydesk.logging_config import configure_logging

logger = logging.getLogger("supplydesk")


async def _publish_once() -> int:
    context = build_context(settings, with_publisher=False)
    try:
        publisher = build_publisher(settings, context.snapshot_service)
    except LedgerSubmissionFailure as exc:
        logger.error("%s", exc)
        return 1
    result = await publisher.publish_once()
    return 0 if result is not None else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Crypto supply reconciliation service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API and the supply publisher")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=3000, help="Port (default: 3000)")

    subparsers.add_parser("publish-once", help="Run one publish cycle and exit")

    args = parser.parse_args()
    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("supplydesk.main:app", host=args.host, port=args.port)
        return 0
    return asyncio.run(_publish_once())


if __name__ == "__main__":
    raise SystemExit(main())
