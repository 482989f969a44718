"""Developer helper commands.

Usage:
    python -m scripts.dev install
    python -m scripts.dev serve
    python -m scripts.dev loop mirror --telemetry recording.jsonl
    python -m scripts.dev test
"""
from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def run_command(command: list[str]) -> int:
    process = subprocess.run(command, cwd=ROOT)
    return process.returncode


def cmd_install(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "pip", "install", "-e", ".[test]"])


def cmd_serve(_: argparse.Namespace) -> int:
    return run_command([sys.executable, "app.py"])


def cmd_loop(args: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "runner.run_loop", *args.extra])


def cmd_test(args: argparse.Namespace) -> int:
    return run_command([sys.executable, "-m", "pytest", "-q", *args.extra])


COMMANDS = {
    "install": cmd_install,
    "serve": cmd_serve,
    "loop": cmd_loop,
    "test": cmd_test,
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Developer helper commands")
    parser.add_argument("command", choices=COMMANDS.keys())
    parser.add_argument("extra", nargs=argparse.REMAINDER, help="Arguments passed through")
    args = parser.parse_args()
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
