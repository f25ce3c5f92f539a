"""Run the automation jobs in a standalone process.

Usage:
    DATABASE_URL=... uv run python scripts/run_scheduler.py
    DATABASE_URL=... uv run python scripts/run_scheduler.py --once dispatch_due

Without arguments all periodic jobs run until SIGINT/SIGTERM. With
--once <job> the job runs a single time in the foreground and its result
is printed (ids and counts only).
"""

from __future__ import annotations

import json
import os
import signal
import sys
import threading


def main() -> None:
    if not os.environ.get("DATABASE_URL"):
        print("ERROR: DATABASE_URL not set")
        sys.exit(1)

    # Import after env validation so missing DB doesn't blow up on import
    from guestcomms.bootstrap import build_engine

    engine = build_engine()

    if len(sys.argv) >= 2:
        if sys.argv[1] != "--once" or len(sys.argv) != 3:
            print("Usage: uv run python scripts/run_scheduler.py [--once <job>]")
            sys.exit(2)
        job = sys.argv[2]
        if job not in engine.scheduler.job_names:
            print(f"ERROR: unknown job {job}; known: {', '.join(engine.scheduler.job_names)}")
            sys.exit(2)
        print(json.dumps(engine.scheduler.run_now(job), indent=2, default=str))
        return

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    engine.scheduler.start()
    print(f"Scheduler running jobs: {', '.join(engine.scheduler.job_names)}")
    stop.wait()
    engine.scheduler.stop()


if __name__ == "__main__":
    main()
