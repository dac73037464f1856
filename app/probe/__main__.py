from __future__ import annotations

import argparse

from app.probe.runner import run_probe


def main() -> None:
    parser = argparse.ArgumentParser(description="Compare correlation fields in the access log for sync vs deferred requests")
    parser.add_argument("--out", default="probe/results/latest.json", help="Path to write JSON report")
    parser.add_argument("--access-log", default=None, help="Access log file (defaults to ACCESS_LOG_PATH)")
    parser.add_argument("--propagate", action=argparse.BooleanOptionalAction, default=False, help="Carry correlation context into deferred work")
    parser.add_argument("--repeat", type=int, default=1, help="Number of sync+async request pairs")
    parser.add_argument("--delay-ms", type=int, default=None, help="Override ASYNC_DELAY_MS")
    args = parser.parse_args()

    report = run_probe(
        out_path=args.out,
        propagate=bool(args.propagate),
        repeat=args.repeat,
        access_log_path=args.access_log,
        delay_ms=args.delay_ms,
    )
    print(report.summary.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
