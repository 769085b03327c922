"""
CLI for the task-time system.

Usage examples:

    # Run the API server
    python -m app.cli serve --port 8000

    # Summary statistics for a CSV of tasks, as of a fixed instant
    python -m app.cli stats data/samples/tasks.csv --now 2024-05-01T12:00:00Z

    # Dump one user's tasks from the database to CSV
    python -m app.cli export-tasks someone@example.com exports/tasks.csv

    # Upload a task CSV to Azure Blob Storage
    python -m app.cli push-blob exports/tasks.csv exports/tasks.csv

    # Download a task CSV from Azure Blob Storage
    python -m app.cli pull-blob exports/tasks.csv restored/tasks.csv
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

# --- Make src/ importable ----------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from task_time.config import get_config
from task_time.data_io import (
    load_tasks_from_csv,
    load_tasks_from_azure_blob,
    parse_datetime,
    save_tasks_to_csv,
    sync_csv_to_azure_blob,
)
from task_time.errors import TaskTimeError
from task_time.logging_setup import setup_logging
from task_time.stats import compute_stats
from task_time.store import TaskStore, UserStore

logger = logging.getLogger(__name__)


# --- Commands ----------------------------------------------------------------


def cmd_serve(args: argparse.Namespace) -> None:
    """
    Run the API with uvicorn.
    """
    import uvicorn

    cfg = get_config()
    port = args.port or cfg.port
    logger.info("Starting API on %s:%s", args.host, port)
    uvicorn.run(
        "app.api:create_app",
        factory=True,
        host=args.host,
        port=port,
        reload=args.reload,
    )


def cmd_stats(args: argparse.Namespace) -> None:
    """
    Print summary statistics for a CSV of tasks as JSON.
    """
    csv_path = Path(args.csv_path).resolve()
    if not csv_path.exists():
        raise SystemExit(f"[stats] CSV file not found: {csv_path}")

    now = parse_datetime(args.now) if args.now else datetime.now(timezone.utc)

    tasks = load_tasks_from_csv(str(csv_path))
    logger.info("Loaded %d tasks from %s", len(tasks), csv_path)

    summary = compute_stats(tasks, now)
    print(json.dumps(asdict(summary), indent=2))


def cmd_export_tasks(args: argparse.Namespace) -> None:
    """
    Write every task of one user to a CSV file.
    """
    cfg = get_config()
    dest_path = Path(args.dest_path).resolve()

    user = UserStore(cfg.database_path).get_by_email(args.email)
    if user is None:
        raise SystemExit(f"[export-tasks] No user with email {args.email}")

    tasks = TaskStore(cfg.database_path).list_by_owner(user.id)

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    save_tasks_to_csv(tasks, str(dest_path))
    print(f"[export-tasks] Wrote {len(tasks)} tasks to {dest_path}")


def cmd_push_blob(args: argparse.Namespace) -> None:
    """
    Upload a local task CSV to Azure Blob Storage.
    """
    csv_path = Path(args.csv_path).resolve()
    if not csv_path.exists():
        raise SystemExit(f"[push-blob] CSV file not found: {csv_path}")

    sync_csv_to_azure_blob(
        str(csv_path),
        blob_name=args.blob_name,
        container_name=args.container,
    )
    print(f"[push-blob] Uploaded {csv_path} -> {args.blob_name}")


def cmd_pull_blob(args: argparse.Namespace) -> None:
    """
    Download a task CSV from Azure Blob Storage to a local file.
    """
    dest_path = Path(args.dest_path).resolve()

    tasks = load_tasks_from_azure_blob(args.blob_name, container_name=args.container)

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    save_tasks_to_csv(tasks, str(dest_path))
    print(f"[pull-blob] Wrote {len(tasks)} tasks from {args.blob_name} to {dest_path}")


# --- Main --------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Task Time CLI – serve the API, compute stats, export tasks."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve
    serve_p = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: PORT env var or 8000).",
    )
    serve_p.add_argument("--reload", action="store_true", help="Auto-reload on edits.")
    serve_p.set_defaults(func=cmd_serve)

    # stats
    stats_p = subparsers.add_parser(
        "stats",
        help="Summary statistics for a CSV of tasks.",
    )
    stats_p.add_argument("csv_path", help="Path to a task CSV (see data_io.FIELDNAMES).")
    stats_p.add_argument(
        "--now",
        default=None,
        help="Reference instant, ISO-8601 (default: current UTC time).",
    )
    stats_p.set_defaults(func=cmd_stats)

    # export-tasks
    exp_p = subparsers.add_parser(
        "export-tasks",
        help="Dump one user's tasks from the database to CSV.",
    )
    exp_p.add_argument("email", help="Email of the task owner.")
    exp_p.add_argument("dest_path", help="Destination CSV path.")
    exp_p.set_defaults(func=cmd_export_tasks)

    # push-blob
    push_p = subparsers.add_parser(
        "push-blob",
        help="Upload a task CSV to Azure Blob Storage.",
    )
    push_p.add_argument("csv_path", help="Local task CSV.")
    push_p.add_argument("blob_name", help="Target blob name.")
    push_p.add_argument(
        "--container",
        default=None,
        help="Container name (default: TT_AZURE_BLOB_CONTAINER_NAME).",
    )
    push_p.set_defaults(func=cmd_push_blob)

    # pull-blob
    pull_p = subparsers.add_parser(
        "pull-blob",
        help="Download a task CSV from Azure Blob Storage.",
    )
    pull_p.add_argument("blob_name", help="Source blob name.")
    pull_p.add_argument("dest_path", help="Local destination CSV.")
    pull_p.add_argument(
        "--container",
        default=None,
        help="Container name (default: TT_AZURE_BLOB_CONTAINER_NAME).",
    )
    pull_p.set_defaults(func=cmd_pull_blob)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = get_config()
    setup_logging(cfg.log_level, cfg.log_dir)

    try:
        args.func(args)
    except TaskTimeError as e:
        raise SystemExit(f"[{args.command}] {e.message}")


if __name__ == "__main__":
    main()
