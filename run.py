"""
Run the QCFlow API with uvicorn.

Usage:
    python run.py
    python run.py --reload                 # Auto-reload while developing
    python run.py --storage memory         # No MongoDB; state is lost on exit
    python run.py --workers 4 --no-sweeper # API replicas; sweep runs elsewhere
"""
import argparse
import os

import uvicorn


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the QCFlow workflow API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (ignored with --reload)"
    )
    parser.add_argument(
        "--storage",
        choices=["mongo", "memory"],
        help="Override STORAGE_BACKEND for this run"
    )
    parser.add_argument(
        "--no-sweeper",
        action="store_true",
        help="Do not start the timeout sweeper in this process"
    )
    return parser.parse_args()


def main():
    args = parse_args()

    # Settings are read when the app module is imported, in every worker
    if args.storage:
        os.environ["STORAGE_BACKEND"] = args.storage
        if args.storage == "memory":
            os.environ.setdefault("NOTIFICATION_BACKEND", "memory")
    if args.no_sweeper:
        os.environ["SWEEPER_ENABLED"] = "false"

    workers = 1 if args.reload else args.workers
    print("Starting QCFlow workflow API server...")
    print(f"  Address: http://{args.host}:{args.port}")
    print(f"  Storage: {os.environ.get('STORAGE_BACKEND', 'from settings')}")
    print(f"  Sweeper: {'off' if args.no_sweeper else 'on'}")
    print(f"  Workers: {workers}{' (reload)' if args.reload else ''}")
    if args.storage == "memory" and workers > 1:
        print("  Warning: each worker keeps its own in-memory store")
    print()

    uvicorn.run(
        "qcflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers
    )


if __name__ == "__main__":
    main()
