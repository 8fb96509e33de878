"""ddaloop JSON-lines bridge entry point.

Usage: python -m ddaloop.server

The game writes one JSON request per line to stdin and reads responses and
notifications (parameter mutations) from stdout. All logging goes to stderr
to keep the protocol clean.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ddaloop.config.settings import Settings

from .handler import ServerHandler
from .protocol import Notification, Response, parse_request


async def handle_line(handler: ServerHandler, line: str) -> Optional[str]:
    """Process one input line and return the response line, if any."""
    line = line.strip()
    if not line:
        return None

    try:
        request = parse_request(line)
    except ValueError as e:
        return Response(id=0, error=str(e)).to_json_line()

    try:
        result = await handler.dispatch(
            {"method": request.method, "params": request.params}
        )
        resp = Response(id=request.id, result=result)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Request {request.method} rejected: {e!r}")
        resp = Response(id=request.id, error=str(e))
    except Exception as e:
        logger.exception(f"Request {request.method} failed.")
        resp = Response(id=request.id, error=f"Internal error: {e!r}")
    return resp.to_json_line()


async def main(settings: Optional[Settings] = None) -> None:
    loop = asyncio.get_running_loop()

    def write_line(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def write_notification(notification: Notification) -> None:
        write_line(notification.to_json_line())

    handler = ServerHandler(settings=settings, write_notification=write_notification)
    logger.info("ddaloop-server: ready")

    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    try:
        while True:
            line = await reader.readline()
            if not line:
                break  # stdin closed

            reply = await handle_line(handler, line.decode("utf-8", errors="replace"))
            if reply is not None:
                write_line(reply)
    finally:
        await handler.aclose()


def run(config_path: Optional[Path] = None) -> None:
    asyncio.run(main(Settings.load(config_path)))


if __name__ == "__main__":
    logger.remove()
    logger.add(sys.stderr, level="INFO")
    run()
