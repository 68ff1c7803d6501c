"""Persona Chat — dev launcher. Starts the API in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Persona Chat dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Store documents as JSON files here (default: in memory)")
    parser.add_argument("--owner-scope", default=None,
                        help="Prefix partitioning all store paths")
    parser.add_argument("--echo", action="store_true",
                        help="Point the session at no model; replies echo the user text")
    args = parser.parse_args()

    # Build env for the subprocess so the session picks up the same settings
    env = os.environ.copy()
    if args.data_dir:
        env["PERSONA_CHAT_DATA_DIR"] = str(args.data_dir.resolve())
    if args.owner_scope is not None:
        env["PERSONA_CHAT_OWNER_SCOPE"] = args.owner_scope
    if args.echo:
        env["PERSONA_CHAT_ECHO"] = "1"

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting API on http://localhost:{BACKEND_PORT} ...")
    procs.append(subprocess.Popen(
        ["uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
