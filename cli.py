"""Dev CLI for fleet-telemetry."""

import os
import subprocess
import sys

COMMANDS = {
    "dev": "Run uvicorn in development mode with auto-reload",
    "start": "Run uvicorn in production mode",
}

APP = "fleet_telemetry.main:app"


def uvicorn_args(reload: bool = False) -> list[str]:
    args = [sys.executable, "-m", "uvicorn", APP]
    if reload:
        args.append("--reload")
    return args + ["--host", "0.0.0.0", "--port", os.environ.get("PORT", "8000")]


def dev():
    subprocess.run(
        uvicorn_args(reload=True),
        env={**os.environ, "LOG_LEVEL": os.environ.get("LOG_LEVEL", "DEBUG")},
    )


def start():
    subprocess.run(uvicorn_args())


def usage():
    print("Usage: uv run cli.py <command>\n")
    print("Commands:")
    for name, desc in COMMANDS.items():
        print(f"  {name:14s} {desc}")
    sys.exit(1)


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        usage()

    dispatch = {
        "dev": dev,
        "start": start,
    }
    dispatch[sys.argv[1]]()


if __name__ == "__main__":
    main()
