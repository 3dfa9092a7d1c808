from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
import time
import traceback

from PySide6.QtCore import QtMsgType, qInstallMessageHandler
from PySide6.QtWidgets import QApplication

from sibylx.app import config
from sibylx.app.ui.main_window import MainWindow


# ============================================================================
# DEBUG CONFIGURATION - Environment Variables
# ============================================================================
# Set these environment variables to "1" or "true" to enable detailed logging
#
# SIBYLX_DEBUG          - Root logger at DEBUG level instead of INFO
# SIBYLX_DEBUG_SYNC     - Coordinator state changes and dispatched cycles
# SIBYLX_DEBUG_PREVIEW  - Preview render passes
#
# Examples:
#   SIBYLX_DEBUG_SYNC=1 sibylx ~/notes/todo.txt
# ============================================================================

def _debug_enabled(var_name: str) -> bool:
    """Check if a debug flag is enabled."""
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)


def _qt_message_handler(mode: QtMsgType, context, message: str) -> None:
    """Custom Qt message handler to suppress known harmless warnings."""
    if "QTextCursor::setPosition" in message:
        return
    if "Accessible invalid" in message or "Could not find accessible on path" in message:
        return
    if mode == QtMsgType.QtDebugMsg:
        print(f"Qt Debug: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtWarningMsg:
        print(f"Qt Warning: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtCriticalMsg:
        print(f"Qt Critical: {message}", file=sys.stderr)
    elif mode == QtMsgType.QtFatalMsg:
        print(f"Qt Fatal: {message}", file=sys.stderr)
        sys.exit(1)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sibyl todo editor.")
    parser.add_argument("file", nargs="?", help="Todo file to open at startup.")
    parser.add_argument("--rest-url", help="Base URL of the analysis service.")
    parser.add_argument("--debounce", type=int, metavar="MS", help="Quiet period after an edit before re-analysing.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> config.SibylConfig:
    """Stored settings with command-line overrides applied (not persisted)."""
    cfg = config.load_sibyl_config()
    overrides = {}
    if args.rest_url:
        overrides["rest_url"] = args.rest_url.strip().rstrip("/")
    if args.debounce is not None:
        overrides["debounce_ms"] = max(0, args.debounce)
    return dataclasses.replace(cfg, **overrides) if overrides else cfg


def _diag(msg: str) -> None:
    """Lightweight diagnostic logger for startup/teardown events."""
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    print(f"[SibylDiag {timestamp}] {msg}", file=sys.stderr)


def main() -> None:
    args = _parse_args(sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if _debug_enabled("SIBYLX_DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    start_ts = time.time()
    _diag("Application starting.")
    config.init_settings()
    cfg = build_config(args)
    _diag(f"Analysis service at {cfg.rest_url}; watching '*{cfg.todo_file_name}' (debounce {cfg.debounce_ms} ms).")
    qInstallMessageHandler(_qt_message_handler)
    qt_app = QApplication(sys.argv)
    qt_app.setApplicationName("Sibyl")
    qt_app.aboutToQuit.connect(lambda: _diag("QApplication aboutToQuit emitted."))
    window = MainWindow(cfg)
    window.resize(1000, 760)
    qt_app.aboutToQuit.connect(window.teardown)
    try:
        window.startup(args.file)
        window.show()
        _diag("Main window shown; entering Qt event loop.")
        rc = qt_app.exec()
        uptime = time.time() - start_ts
        _diag(f"Qt event loop exited with code {rc} after {uptime:.2f}s.")
        sys.exit(rc)
    except Exception as exc:
        uptime = time.time() - start_ts
        _diag(f"Unhandled exception after {uptime:.2f}s: {exc}")
        traceback.print_exc()
        qt_app.quit()
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - manual entry point
    main()
