"""
Data I/O utilities.

Provides thin helpers to:
- Load tasks from a local CSV (spreadsheet-style exports)
- Load/save tasks to Azure Blob Storage as CSV
- Sync a local CSV to Azure Blob

Dependencies:
- Standard library only for local CSV.
- For Azure Blob: `azure-storage-blob` package is required.
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from io import StringIO
from typing import IO, Dict, Iterable, List, Optional

from .config import Config, get_config
from .errors import ValidationError
from .schema import Task, TaskStatus

try:
    from azure.storage.blob import BlobServiceClient  # type: ignore[import]
except ImportError:  # pragma: no cover - optional dependency
    BlobServiceClient = None  # type: ignore[assignment]


FIELDNAMES = [
    "id",
    "title",
    "startTime",
    "endTime",
    "priority",
    "status",
    "ownerId",
    "createdAt",
    "updatedAt",
]


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.

    A trailing 'Z' is accepted.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _row_to_task(row: Dict[str, str], line: int) -> Task:
    def _opt_dt(key: str) -> Optional[datetime]:
        val = row.get(key)
        return parse_datetime(val) if val not in (None, "") else None

    try:
        return Task(
            id=int(row["id"]) if row.get("id") else None,
            title=(row.get("title") or "").strip(),
            start_time=parse_datetime(row["startTime"]),
            end_time=parse_datetime(row["endTime"]),
            priority=int(row["priority"]),
            status=TaskStatus(row.get("status") or "pending"),
            owner_id=int(row.get("ownerId") or 0),
            created_at=_opt_dt("createdAt"),
            updated_at=_opt_dt("updatedAt"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid task row at line {line}: {e}") from e


def _read_tasks(stream: IO[str]) -> List[Task]:
    tasks: List[Task] = []
    reader = csv.DictReader(stream)
    for row in reader:
        if not row or not any(row.values()):
            continue
        tasks.append(_row_to_task(row, reader.line_num))
    return tasks


def _write_tasks(tasks: Iterable[Task], stream: IO[str]) -> None:
    writer = csv.DictWriter(stream, fieldnames=FIELDNAMES)
    writer.writeheader()
    for task in tasks:
        writer.writerow(
            {
                "id": task.id if task.id is not None else "",
                "title": task.title,
                "startTime": format_datetime(task.start_time),
                "endTime": format_datetime(task.end_time),
                "priority": task.priority,
                "status": task.status.value,
                "ownerId": task.owner_id,
                "createdAt": format_datetime(task.created_at),
                "updatedAt": format_datetime(task.updated_at),
            }
        )


# --- Local CSV helpers -----------------------------------------------------


def load_tasks_from_csv(path: str) -> List[Task]:
    """
    Load tasks from a CSV file.

    Expected columns (case-sensitive):
    - Required: startTime, endTime, priority
    - Optional: id, title, status (default pending), ownerId,
      createdAt, updatedAt

    Times are ISO-8601. Extra columns are ignored.
    """
    with open(path, mode="r", newline="", encoding="utf-8") as f:
        return _read_tasks(f)


def save_tasks_to_csv(tasks: Iterable[Task], path: str) -> None:
    """
    Save tasks to a CSV file.

    Columns:
    id, title, startTime, endTime, priority, status, ownerId,
    createdAt, updatedAt
    """
    with open(path, mode="w", newline="", encoding="utf-8") as f:
        _write_tasks(tasks, f)


# --- Azure Blob helpers ----------------------------------------------------


def _get_blob_service(config: Optional[Config] = None):
    if BlobServiceClient is None:
        raise ImportError(
            "azure-storage-blob is required for Azure Blob operations. "
            "Install via `pip install azure-storage-blob`."
        )
    cfg = config or get_config()
    if not cfg.azure_blob_connection_string:
        raise ValueError(
            "Azure blob connection string is not configured. "
            "Set TT_AZURE_BLOB_CONNECTION_STRING or pass Config explicitly."
        )
    return BlobServiceClient.from_connection_string(
        cfg.azure_blob_connection_string
    ), cfg


def _resolve_container(cfg: Config, container_name: Optional[str]) -> str:
    container = container_name or cfg.azure_blob_container_name
    if not container:
        raise ValueError(
            "Azure blob container name is not configured. "
            "Set TT_AZURE_BLOB_CONTAINER_NAME or pass container_name."
        )
    return container


def load_tasks_from_azure_blob(
    blob_name: str,
    *,
    container_name: Optional[str] = None,
    config: Optional[Config] = None,
) -> List[Task]:
    """
    Load tasks from a CSV stored in Azure Blob Storage.

    - blob_name: name of the blob (e.g., 'exports/tasks.csv')
    - container_name: overrides Config.azure_blob_container_name if provided
    """
    service_client, cfg = _get_blob_service(config)
    container = _resolve_container(cfg, container_name)

    blob_client = service_client.get_blob_client(container=container, blob=blob_name)
    csv_text = blob_client.download_blob().readall().decode("utf-8")
    return _read_tasks(StringIO(csv_text))


def save_tasks_to_azure_blob(
    tasks: Iterable[Task],
    blob_name: str,
    *,
    container_name: Optional[str] = None,
    config: Optional[Config] = None,
) -> None:
    """
    Save tasks as CSV into an Azure Blob.

    Overwrites the target blob.
    """
    service_client, cfg = _get_blob_service(config)
    container = _resolve_container(cfg, container_name)

    buffer = StringIO()
    _write_tasks(tasks, buffer)
    csv_bytes = buffer.getvalue().encode("utf-8")

    blob_client = service_client.get_blob_client(container=container, blob=blob_name)
    blob_client.upload_blob(csv_bytes, overwrite=True)


def sync_csv_to_azure_blob(
    local_csv_path: str,
    blob_name: str,
    *,
    container_name: Optional[str] = None,
    config: Optional[Config] = None,
) -> None:
    """
    Convenience function:

    1) Load tasks from a local CSV.
    2) Push them to Azure Blob Storage as CSV.
    """
    tasks = load_tasks_from_csv(local_csv_path)
    save_tasks_to_azure_blob(
        tasks,
        blob_name=blob_name,
        container_name=container_name,
        config=config,
    )
