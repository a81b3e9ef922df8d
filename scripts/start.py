#!/usr/bin/env python3
"""
Container entrypoint for the IMPGEO API.

Runs the release phase (wait for the database, migrate, seed), optionally
purges stale reset tokens, then execs gunicorn on app.wsgi:app.

Environment:
    PORT                 listen port (default 3002)
    WEB_CONCURRENCY      gunicorn workers (default 2)
    GUNICORN_TIMEOUT     worker timeout in seconds (default 60)
    SKIP_RELEASE=1       start without migrating (extra replicas behind a single releaser)
    CLEANUP_ON_START=1   run scripts/cleanup_tokens.py before serving

Usage:
    python scripts/start.py [--print-command]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 3002
DEFAULT_WORKERS = 2
DEFAULT_TIMEOUT = 60


def _flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in ("1", "true", "yes", "on")


def parse_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        return DEFAULT_PORT
    port = int(raw)
    if port < 1 or port > 65535:
        raise ValueError(f"PORT fora do intervalo 1-65535: {port}")
    return port


def _positive_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < 1:
        raise ValueError(f"{name} deve ser maior que zero")
    return value


def gunicorn_argv(*, port: int, workers: int = DEFAULT_WORKERS, timeout: int = DEFAULT_TIMEOUT) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    parser = argparse.ArgumentParser(description="Release and serve the IMPGEO API.")
    parser.add_argument("--print-command", action="store_true", help="Print the gunicorn command instead of running it")
    args = parser.parse_args()

    from dotenv import load_dotenv

    load_dotenv()
    try:
        port = parse_port(os.environ.get("PORT"))
        workers = _positive_int("WEB_CONCURRENCY", DEFAULT_WORKERS)
        timeout = _positive_int("GUNICORN_TIMEOUT", DEFAULT_TIMEOUT)
    except ValueError as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)
    argv = gunicorn_argv(port=port, workers=workers, timeout=timeout)
    if args.print_command:
        print(" ".join(argv), flush=True)
        return

    if _flag("SKIP_RELEASE"):
        print("SKIP_RELEASE set; not migrating", flush=True)
    else:
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    if _flag("CLEANUP_ON_START"):
        from scripts.cleanup_tokens import run_cleanup

        print(f"Cleanup: {run_cleanup()}", flush=True)

    print(f"=== IMPGEO API on 0.0.0.0:{port} ({workers} workers); health at /health ===", flush=True)
    # gunicorn takes over this PID and receives signals directly
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
