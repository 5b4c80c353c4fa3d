from __future__ import annotations

from typing import Any

from .db import execute, fetchone

SQL_GET = """
SELECT last_event_id
FROM consumer_cursors
WHERE source_name = %s
"""

# GREATEST keeps the watermark monotonic even if two writers race.
SQL_UPSERT = """
INSERT INTO consumer_cursors (source_name, last_event_id, updated_at_utc)
VALUES (%s, %s, now())
ON CONFLICT (source_name)
DO UPDATE SET
  last_event_id = GREATEST(consumer_cursors.last_event_id, EXCLUDED.last_event_id),
  updated_at_utc = now()
"""


def get_cursor(conn: Any, source_name: str) -> int:
    row = fetchone(conn, SQL_GET, (source_name,))
    if not row or row[0] is None:
        return 0
    return int(row[0])


def save_cursor(conn: Any, source_name: str, last_event_id: int) -> None:
    execute(conn, SQL_UPSERT, (source_name, last_event_id))
