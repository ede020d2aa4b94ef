"""SQLite database operations for the Facade Finder."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from .models import CaptureStatus, FacadeReport, PageCapture, SiteInfo

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    domain TEXT NOT NULL UNIQUE,
    category TEXT,
    rank INTEGER,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS audit_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER NOT NULL REFERENCES sites(id),
    started_at TEXT NOT NULL,
    completed_at TEXT,
    final_url TEXT,
    total_requests INTEGER DEFAULT 0,
    total_tasks INTEGER DEFAULT 0,
    not_applicable BOOLEAN,
    facade_products INTEGER DEFAULT 0,
    error TEXT,
    status TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facade_products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES audit_sessions(id),
    product TEXT NOT NULL,
    display_name TEXT,
    category TEXT,
    transfer_size REAL,
    blocking_time REAL,
    start_of_product_requests REAL,
    facades TEXT
);

CREATE TABLE IF NOT EXISTS facade_resources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL REFERENCES facade_products(id),
    url TEXT NOT NULL,
    transfer_size REAL,
    blocking_time REAL,
    main_thread_time REAL
);

CREATE INDEX IF NOT EXISTS idx_sessions_site ON audit_sessions(site_id);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON audit_sessions(status);
CREATE INDEX IF NOT EXISTS idx_products_session ON facade_products(session_id);
CREATE INDEX IF NOT EXISTS idx_products_product ON facade_products(product);
CREATE INDEX IF NOT EXISTS idx_resources_product ON facade_resources(product_id);
"""


class Database:
    """Async SQLite database for audit results."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database connection and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("Database connected: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def upsert_site(self, site: SiteInfo) -> int:
        """Insert a site or return its existing ID."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            "SELECT id FROM sites WHERE domain = ?", (site.domain,)
        )
        row = await cursor.fetchone()
        if row:
            return row[0]

        cursor = await self._conn.execute(
            "INSERT INTO sites (url, domain, category, rank) VALUES (?, ?, ?, ?)",
            (site.url, site.domain, site.category, site.rank),
        )
        await self._conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def has_session(self, site_domain: str) -> bool:
        """Check if a successful audit session already exists for this site."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            """
            SELECT 1 FROM audit_sessions a
            JOIN sites s ON a.site_id = s.id
            WHERE s.domain = ? AND a.status = ?
            LIMIT 1
            """,
            (site_domain, CaptureStatus.SUCCESS.value),
        )
        return await cursor.fetchone() is not None

    async def save_audit(self, capture: PageCapture, report: FacadeReport | None) -> int:
        """Save a capture's session row and, when audited, its facade products."""
        assert self._conn is not None

        site_id = await self.upsert_site(capture.site)
        rows = report.rows if report else []

        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO audit_sessions (
                    site_id, started_at, completed_at, final_url,
                    total_requests, total_tasks, not_applicable,
                    facade_products, error, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    site_id,
                    capture.started_at,
                    capture.completed_at,
                    capture.final_url,
                    len(capture.requests),
                    len(capture.tasks),
                    report.not_applicable if report else None,
                    len(rows),
                    capture.error,
                    capture.status.value,
                ),
            )
            session_id = cur.lastrowid

            for row in rows:
                await cur.execute(
                    """
                    INSERT INTO facade_products (
                        session_id, product, display_name, category,
                        transfer_size, blocking_time,
                        start_of_product_requests, facades
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        row.product_name,
                        row.product,
                        row.category,
                        row.transfer_size,
                        row.blocking_time,
                        row.start_of_product_requests,
                        ", ".join(row.facades),
                    ),
                )
                product_id = cur.lastrowid
                await cur.executemany(
                    """
                    INSERT INTO facade_resources (
                        product_id, url, transfer_size, blocking_time, main_thread_time
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (product_id, item.url, item.transfer_size,
                         item.blocking_time, item.main_thread_time)
                        for item in row.items
                    ],
                )

        await self._conn.commit()
        logger.debug(
            "Saved session %d: %s (%s) — %d facadable products",
            session_id, capture.site.domain, capture.status.value, len(rows),
        )
        return session_id  # type: ignore[return-value]

    async def get_product_totals(self) -> list[dict]:
        """Per-product site count and total transfer size across all sessions."""
        assert self._conn is not None
        cursor = await self._conn.execute(
            """
            SELECT p.product, COUNT(DISTINCT a.site_id) AS sites,
                   SUM(p.transfer_size) AS transfer_size,
                   SUM(p.blocking_time) AS blocking_time
            FROM facade_products p
            JOIN audit_sessions a ON p.session_id = a.id
            GROUP BY p.product
            ORDER BY sites DESC, transfer_size DESC
            """
        )
        return [dict(row) for row in await cursor.fetchall()]

    async def get_stats(self) -> dict:
        """Get basic audit statistics."""
        assert self._conn is not None
        stats = {}

        cursor = await self._conn.execute("SELECT COUNT(*) FROM sites")
        stats["total_sites"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute("SELECT COUNT(*) FROM audit_sessions")
        stats["total_sessions"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM audit_sessions WHERE status = ?",
            (CaptureStatus.SUCCESS.value,),
        )
        stats["successful_sessions"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM audit_sessions WHERE not_applicable = 0"
        )
        stats["sessions_with_facades"] = (await cursor.fetchone())[0]

        cursor = await self._conn.execute("SELECT COUNT(*) FROM facade_products")
        stats["facade_products"] = (await cursor.fetchone())[0]

        return stats
