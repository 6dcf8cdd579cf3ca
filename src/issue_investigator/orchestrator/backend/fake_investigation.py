"""Local stand-in for the investigation executable, used by integration tests."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Record the call and exit with the requested status."""

    parser = argparse.ArgumentParser()
    parser.add_argument("repo")
    parser.add_argument("issue", type=int)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--record", type=Path, default=None)
    args = parser.parse_args(argv)

    print(f"=== Investigating {args.repo}#{args.issue} ===")
    if args.record is not None:
        args.record.parent.mkdir(parents=True, exist_ok=True)
        with args.record.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps({"repo": args.repo, "issue": args.issue}) + "\n")
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
