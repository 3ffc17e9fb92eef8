"""Canon Wiki dev launcher. Starts the backend in watch mode."""

import argparse
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def check_workspaces(data_dir: Path) -> int:
    """Run the invariant checker over every stored workspace. Returns the violation count."""
    from canonwiki.invariants import check_invariants
    from canonwiki.storage import Storage

    store = Storage(data_dir)
    total = 0
    for workspace_id in store.list_workspaces():
        problems = check_invariants(store.snapshot(workspace_id))
        total += len(problems)
        status = "ok" if not problems else f"{len(problems)} problem(s)"
        print(f"{workspace_id}: {status}")
        for problem in problems:
            print(f"  - {problem}")
    return total


def main():
    parser = argparse.ArgumentParser(description="Canon Wiki dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Clean and create the demo workspace")
    parser.add_argument("--check", action="store_true",
                        help="Check stored workspaces for consistency and exit")
    args = parser.parse_args()

    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", str(ROOT / "data")))

    if args.check:
        sys.exit(1 if check_workspaces(data_dir) else 0)

    if args.demo:
        from backend import wiki
        from backend.demo import create_demo_data
        wiki.init_engine(data_dir)
        create_demo_data()

    # Build env for the subprocess so the backend picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    proc = subprocess.Popen(
        ["uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    )
    try:
        proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
        proc.terminate()
        proc.wait()


if __name__ == "__main__":
    main()
