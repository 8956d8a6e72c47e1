#!/usr/bin/env python3
"""
Production startup script.

1. Runs migrations + seed (release.py) unless SKIP_RELEASE=1
2. Starts gunicorn (replaces this process via os.execvp)

Usage:
    python scripts/start.py

Env:
    PORT             bind port (default 8080)
    WEB_CONCURRENCY  gunicorn workers (default 2)
    SKIP_RELEASE     set to 1 when migrations run in a separate release phase
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _positive_int_env(name: str, default: int, *, upper: int | None = None) -> str:
    raw = (os.environ.get(name) or "").strip() or str(default)
    try:
        value = int(raw)
        if value < 1 or (upper is not None and value > upper):
            raise ValueError("out of range")
    except ValueError:
        print(f"ERROR: Invalid {name} value '{raw}'.", flush=True)
        sys.exit(1)
    return str(value)


def main() -> None:
    port = _positive_int_env("PORT", 8080, upper=65535)
    workers = _positive_int_env("WEB_CONCURRENCY", 2)
    print(f"PORT={port} WEB_CONCURRENCY={workers}", flush=True)

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        print("=== Running release phase ===", flush=True)
        from scripts.release import run_release
        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} (health check at /healthz) ===", flush=True)

    # exec so gunicorn is PID 1 and receives signals directly
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", workers,
            "--timeout", "60",
            "--preload",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
