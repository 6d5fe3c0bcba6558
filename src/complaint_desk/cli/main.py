# src/complaint_desk/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then:
- runs the store, reconciler and notifier on a background event loop,
- runs the console REPL in the main thread until /exit, EOF or a signal.
"""

from __future__ import annotations

import logging
import signal

from ..cli.bootstrap import create_initial_state, start_services, stop_services
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.runtime import BackgroundLoop, start_background_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _install_signal_handlers() -> None:
    # SIGTERM ends the REPL the same way Ctrl+C does.
    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        raise KeyboardInterrupt

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        logger.debug("SIGTERM handler not installed.", exc_info=True)


def _shutdown(state, bg: BackgroundLoop) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        bg.run(stop_services(state), timeout=10.0)
    except Exception:
        logger.exception("Service shutdown failed.")
    bg.stop()
    bg.join(timeout=5.0)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (store=%s, log=%s)...", settings.app_name, settings.store_backend, log_file)

    state = create_initial_state(settings=settings)
    bg = start_background_loop()
    _install_signal_handlers()

    try:
        bg.run(start_services(state))
        run_console_loop(state, bg.run)
    except KeyboardInterrupt:
        logger.info("Interrupted during startup.")
    finally:
        _shutdown(state, bg)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
