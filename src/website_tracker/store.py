"""
Event store adapters.

Both adapters speak SQLite SQL against the same ``events`` table:
SQLiteEventStore for a local file database, D1EventStore for the
Cloudflare D1 HTTP API used by the edge deployment.
"""
import asyncio
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .errors import StoreError
from .models import Event, EventQuery

logger = logging.getLogger(__name__)

EVENT_COLUMNS = (
    "id", "site", "ts", "type", "session_id", "visitor_id",
    "url", "path", "referrer", "ua", "ip_hash", "data",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    site TEXT NOT NULL,
    ts INTEGER NOT NULL,
    type TEXT NOT NULL,
    session_id TEXT,
    visitor_id TEXT,
    url TEXT,
    path TEXT,
    referrer TEXT,
    ua TEXT,
    ip_hash TEXT,
    data TEXT
);

CREATE INDEX IF NOT EXISTS idx_events_site_ts ON events(site, ts);
CREATE INDEX IF NOT EXISTS idx_events_site_visitor ON events(site, visitor_id);
CREATE INDEX IF NOT EXISTS idx_events_site_type_ts ON events(site, type, ts);
"""

INSERT_SQL = (
    f"INSERT INTO events ({', '.join(EVENT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in EVENT_COLUMNS)})"
)


def build_query_sql(query: EventQuery) -> tuple[str, list]:
    """Build a parameterized SELECT for an EventQuery.

    Returns (sql_string, params_list) tuple.
    """
    clauses = ["site = ?"]
    params: list[Any] = [query.site]

    if query.since_ts is not None:
        clauses.append("ts >= ?")
        params.append(query.since_ts)

    sql = f"SELECT {', '.join(EVENT_COLUMNS)} FROM events WHERE {' AND '.join(clauses)}"

    if query.newest_first is not None:
        sql += " ORDER BY ts DESC" if query.newest_first else " ORDER BY ts ASC"
    if query.limit is not None:
        sql += " LIMIT ?"
        params.append(query.limit)

    return sql, params


def build_first_visits_sql(site: str, visitor_ids: list[str]) -> tuple[str, list]:
    """Build the all-time first-visit lookup for a set of visitors.

    Returns (sql_string, params_list) tuple. Rows are (visitor_id, first_ts).
    """
    placeholders = ", ".join("?" for _ in visitor_ids)
    sql = (
        "SELECT visitor_id, MIN(ts) AS first_ts FROM events "
        f"WHERE site = ? AND visitor_id IN ({placeholders}) "
        "GROUP BY visitor_id"
    )
    return sql, [site, *visitor_ids]


def _first_visit_map(rows: list[dict]) -> dict[str, int]:
    return {row["visitor_id"]: int(row["first_ts"]) for row in rows if row.get("visitor_id")}


def _event_params(event: Event) -> list:
    return [getattr(event, column) for column in EVENT_COLUMNS]


def _row_to_event(row: dict) -> Event:
    values = dict(row)
    values["data"] = values.get("data") or "{}"
    values["ip_hash"] = values.get("ip_hash") or ""
    return Event(**values)


class EventStore(ABC):
    """Append-only event log."""

    # Most bound parameters a single query may carry
    max_query_params = 999

    @abstractmethod
    async def insert(self, event: Event) -> None:
        """Append one event."""

    @abstractmethod
    async def query(self, query: EventQuery) -> list[Event]:
        """Fetch the events matching a scoped query."""

    @abstractmethod
    async def first_visits(self, site: str, visitor_ids: list[str]) -> dict[str, int]:
        """Earliest event timestamp of each visitor, over all time.

        Visitors with no events are absent from the result.
        """


class SQLiteEventStore(EventStore):
    """Event store backed by a local SQLite file.

    Calls run in a worker thread; one connection is shared and serialized
    by a lock.
    """

    def __init__(self, path: str = "tracker.db"):
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def _run(self, sql: str, params: Optional[list] = None, script: bool = False) -> list[dict]:
        with self._lock:
            try:
                if script:
                    self._conn.executescript(sql)
                    return []
                cursor = self._conn.execute(sql, params or [])
                rows = [dict(row) for row in cursor.fetchall()]
                self._conn.commit()
                return rows
            except (sqlite3.Error, OverflowError) as e:
                logger.error(f"SQLite query failed: {e}")
                raise StoreError(f"SQLite query failed: {e}") from e

    async def initialize(self) -> None:
        """Create the events table and indexes if missing."""
        await asyncio.to_thread(self._run, SCHEMA, None, True)
        logger.info(f"Event store ready at {self.path}")

    async def insert(self, event: Event) -> None:
        await asyncio.to_thread(self._run, INSERT_SQL, _event_params(event))

    async def query(self, query: EventQuery) -> list[Event]:
        sql, params = build_query_sql(query)
        rows = await asyncio.to_thread(self._run, sql, params)
        return [_row_to_event(row) for row in rows]

    async def first_visits(self, site: str, visitor_ids: list[str]) -> dict[str, int]:
        if not visitor_ids:
            return {}
        sql, params = build_first_visits_sql(site, visitor_ids)
        rows = await asyncio.to_thread(self._run, sql, params)
        return _first_visit_map(rows)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class D1EventStore(EventStore):
    """Event store backed by a Cloudflare D1 database."""

    max_query_params = 100

    def __init__(
        self,
        d1_database_id: str,
        cf_account_id: str,
        cf_api_token: str,
        timeout: float = 30.0,
    ):
        self.database_id = d1_database_id
        self.account_id = cf_account_id
        self.api_token = cf_api_token
        self.timeout = timeout
        self.base_url = f"https://api.cloudflare.com/client/v4/accounts/{cf_account_id}/d1/database/{d1_database_id}"

    async def _query(self, sql: str, params: Optional[list] = None) -> list[dict]:
        """Execute a SQL query against D1."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/query",
                    headers={
                        "Authorization": f"Bearer {self.api_token}",
                        "Content-Type": "application/json",
                    },
                    json={"sql": sql, "params": params or []},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"D1 request failed: {e}")
            raise StoreError(f"D1 request failed: {e}") from e

        if not data.get("success"):
            logger.error(f"D1 query failed: {data.get('errors')}")
            raise StoreError(f"D1 query failed: {data.get('errors')}")

        results = data.get("result", [])
        if results and len(results) > 0:
            return results[0].get("results", [])
        return []

    async def initialize(self) -> None:
        """Create the events table and indexes if missing."""
        for statement in SCHEMA.split(";"):
            if statement.strip():
                await self._query(statement.strip())

    async def insert(self, event: Event) -> None:
        await self._query(INSERT_SQL, _event_params(event))

    async def query(self, query: EventQuery) -> list[Event]:
        sql, params = build_query_sql(query)
        rows = await self._query(sql, params)
        return [_row_to_event(row) for row in rows]

    async def first_visits(self, site: str, visitor_ids: list[str]) -> dict[str, int]:
        if not visitor_ids:
            return {}
        sql, params = build_first_visits_sql(site, visitor_ids)
        return _first_visit_map(await self._query(sql, params))
