# src/complaint_desk/notify/console.py

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import TextIO

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleNotifier:
    """Prints notifications as timestamped lines (interactive console runs)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._started = False

    async def start(self) -> None:
        self._started = True

    async def notify(self, title: str, body: str) -> None:
        if not self._started:
            logger.debug("Notification before start(): %s", title)
        text = body.replace("\n", " | ")
        print(f"\n[{_ts_local()}] [NOTICE] {title}: {text}", file=self._stream, flush=True)

    async def close(self) -> None:
        self._started = False


class NullNotifier:
    """Drops notifications (headless runs, tests)."""

    async def start(self) -> None:
        return

    async def notify(self, title: str, body: str) -> None:
        logger.debug("Notification dropped: %s", title)

    async def close(self) -> None:
        return
