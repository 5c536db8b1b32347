"""JobRun / JobStep database queries backing the durable job runtime."""

from datetime import datetime, timezone
from typing import Any, Optional, List
import databases
import secrets
import json

ACTIVE_STATUSES = ("queued", "running")


async def create_job_run(
    db: databases.Database,
    function_id: str,
    event_name: str,
    event_data: dict,
    correlation_id: Optional[str] = None,
) -> dict:
    """Persist a queued run for a triggered function."""
    run_id = secrets.token_urlsafe(16)
    now = datetime.now(timezone.utc).isoformat()

    query = """
        INSERT INTO JobRun (id, functionId, eventName, eventData, correlationId, status, createdAt, updatedAt)
        VALUES (:id, :function_id, :event_name, :event_data, :correlation_id, 'queued', :created_at, :updated_at)
    """
    await db.execute(query, {
        "id": run_id,
        "function_id": function_id,
        "event_name": event_name,
        "event_data": json.dumps(event_data),
        "correlation_id": correlation_id,
        "created_at": now,
        "updated_at": now,
    })

    return {
        "id": run_id,
        "functionId": function_id,
        "eventName": event_name,
        "eventData": event_data,
        "correlationId": correlation_id,
        "status": "queued",
        "error": None,
        "createdAt": now,
        "updatedAt": now,
    }


async def get_job_run(db: databases.Database, run_id: str) -> Optional[dict]:
    """Get a job run by ID."""
    row = await db.fetch_one("SELECT * FROM JobRun WHERE id = :id", {"id": run_id})
    if not row:
        return None
    return _row_to_dict(row)


async def get_job_run_status(db: databases.Database, run_id: str) -> Optional[str]:
    row = await db.fetch_one("SELECT status FROM JobRun WHERE id = :id", {"id": run_id})
    return row["status"] if row else None


async def list_active_runs(
    db: databases.Database,
    function_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> List[dict]:
    """Queued or running runs, optionally filtered by function and correlation value."""
    clauses = ["status IN ('queued', 'running')"]
    values = {}

    if function_id is not None:
        clauses.append("functionId = :function_id")
        values["function_id"] = function_id
    if correlation_id is not None:
        clauses.append("correlationId = :correlation_id")
        values["correlation_id"] = correlation_id

    query = f"SELECT * FROM JobRun WHERE {' AND '.join(clauses)} ORDER BY createdAt ASC"
    rows = await db.fetch_all(query, values)
    return [_row_to_dict(row) for row in rows]


async def mark_job_run(
    db: databases.Database,
    run_id: str,
    status: str,
    error: Optional[str] = None,
    only_if: Optional[tuple] = None,
) -> None:
    """Set a run's status. `only_if` restricts the update to runs in those statuses."""
    query = "UPDATE JobRun SET status = :status, error = :error, updatedAt = :updated_at WHERE id = :id"
    values = {
        "id": run_id,
        "status": status,
        "error": error,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }

    if only_if:
        placeholders = []
        for i, allowed in enumerate(only_if):
            key = f"allowed_{i}"
            placeholders.append(f":{key}")
            values[key] = allowed
        query += f" AND status IN ({', '.join(placeholders)})"

    await db.execute(query, values)


async def get_step(db: databases.Database, run_id: str, step_id: str) -> Optional[dict]:
    """Memoized output of a completed step, or None."""
    row = await db.fetch_one(
        "SELECT * FROM JobStep WHERE jobRunId = :run_id AND stepId = :step_id",
        {"run_id": run_id, "step_id": step_id},
    )
    if not row:
        return None
    return {
        "jobRunId": row["jobRunId"],
        "stepId": row["stepId"],
        "output": json.loads(row["output"]) if row["output"] is not None else None,
        "attempts": row["attempts"],
        "completedAt": row["completedAt"],
    }


async def save_step(
    db: databases.Database,
    run_id: str,
    step_id: str,
    output: Any,
    attempts: int,
) -> None:
    """Record a completed step. Re-saving the same step keeps the first record."""
    query = """
        INSERT OR IGNORE INTO JobStep (jobRunId, stepId, output, attempts, completedAt)
        VALUES (:run_id, :step_id, :output, :attempts, :completed_at)
    """
    await db.execute(query, {
        "run_id": run_id,
        "step_id": step_id,
        "output": json.dumps(output),
        "attempts": attempts,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    })


async def list_steps(db: databases.Database, run_id: str) -> List[str]:
    """IDs of a run's completed steps in completion order."""
    rows = await db.fetch_all(
        "SELECT stepId FROM JobStep WHERE jobRunId = :run_id ORDER BY completedAt ASC, rowid ASC",
        {"run_id": run_id},
    )
    return [row["stepId"] for row in rows]


def _row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "functionId": row["functionId"],
        "eventName": row["eventName"],
        "eventData": json.loads(row["eventData"]) if row["eventData"] else {},
        "correlationId": row["correlationId"],
        "status": row["status"],
        "error": row["error"],
        "createdAt": row["createdAt"],
        "updatedAt": row["updatedAt"],
    }
