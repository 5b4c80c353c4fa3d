from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg


@contextmanager
def connect(dsn: str) -> Iterator[psycopg.Connection]:
    conn = psycopg.connect(dsn)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute(conn: Any, sql: str, params: tuple = ()) -> int:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        return cur.rowcount


def fetchone(conn: Any, sql: str, params: tuple = ()) -> Optional[tuple]:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        return cur.fetchone()

