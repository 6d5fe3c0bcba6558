"""
Notification services.

Components:
- console.py: ConsoleNotifier (timestamped stdout lines), NullNotifier
- matrix.py: MatrixNotifier (matrix-nio, posts into one room)
"""

from __future__ import annotations

import logging

from ..core.ports import Notifier
from .console import ConsoleNotifier, NullNotifier

logger = logging.getLogger(__name__)


def build_notifier(settings) -> Notifier:
    kind = (getattr(settings, "notifier", "console") or "console").strip().lower()
    if kind == "matrix":
        from .matrix import MatrixNotifier

        return MatrixNotifier(settings)
    if kind in ("none", "off", "null"):
        return NullNotifier()
    if kind != "console":
        logger.warning("Unknown notifier %r, using console", kind)
    return ConsoleNotifier()
