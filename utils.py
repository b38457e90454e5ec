"""Shared utility functions for career-memory."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, TypeVar

from errors import CareerMemoryError

T = TypeVar("T")


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now().isoformat()


def new_record_id() -> str:
    """UUID hex string - safe under concurrent writers, no counter to race on."""
    return uuid.uuid4().hex


def escape_filter_value(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


def build_filter(
    user_id: str,
    *,
    record_types: Iterable[str] | None = None,
    status: str | None = None,
    record_id: str | None = None,
) -> str:
    """Build a LanceDB where-expression that is always scoped to ``user_id``."""
    filters = [f"user_id = '{escape_filter_value(user_id)}'"]
    if record_id is not None:
        filters.append(f"id = '{escape_filter_value(record_id)}'")
    if record_types:
        quoted = ", ".join(f"'{escape_filter_value(t)}'" for t in record_types)
        filters.append(f"record_type IN ({quoted})")
    if status is not None:
        filters.append(f"status = '{escape_filter_value(status)}'")
    return " AND ".join(filters)


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


async def run_blocking(
    fn: Callable[..., T],
    *args: Any,
    timeout: float,
    error: type[CareerMemoryError],
    what: str,
) -> T:
    """Run a blocking SDK call in a worker thread with an explicit timeout.

    Timeouts and unexpected exceptions are re-raised as ``error``. Errors that
    already belong to the career-memory taxonomy pass through untouched. A
    timed-out call keeps running in its thread; its side effects are not
    rolled back.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise error(f"{what} timed out after {timeout:g}s") from e
    except CareerMemoryError:
        raise
    except Exception as e:
        raise error(f"{what} failed: {e}") from e
