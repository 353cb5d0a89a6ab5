"""
Reference Store — Lookup Interface

All reference data goes through this interface: product codes, the
blacklist, era tables, and the verification log. Swap backends by
changing KITVERIFY_STORE in env.

The engine only ever reads through exact-code lookups and
(subject, kind) era lookups. Writes are limited to the lookup counter
and the verification log, both fire-and-forget.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterator, Optional

from kitverify.defaults import DEFAULT_ERA_DATA
from kitverify.logging import get_logger
from kitverify.models import BlacklistRecord, EraWindow, ProductCodeRecord

logger = get_logger("reference")


def _brand_filter_active(brand_filter: Optional[str]) -> bool:
    return bool(brand_filter) and brand_filter.lower() != "all"


class ReferenceStore(ABC):
    """Abstract base for reference data backends."""

    kind: str = "abstract"

    @abstractmethod
    async def lookup_product_code(
        self, code: str, brand_filter: Optional[str] = None,
    ) -> Optional[ProductCodeRecord]:
        """Exact-code lookup, optionally restricted to one brand."""
        ...

    @abstractmethod
    async def lookup_blacklist(self, code: str) -> Optional[BlacklistRecord]:
        """Exact-code lookup in the counterfeit blacklist."""
        ...

    @abstractmethod
    async def lookup_era_reference(self, subject: str, kind: str) -> list[EraWindow]:
        """Era windows for a team or brand, ordered by start year."""
        ...

    @abstractmethod
    async def increment_lookup_count(self, code: str) -> None:
        ...

    @abstractmethod
    async def log_verification(self, entry: dict) -> None:
        ...


# ============================================================
# IN-MEMORY STORE
# ============================================================

class InMemoryReferenceStore(ReferenceStore):
    """Dict-backed store. Used for tests and for seeding other stores."""

    kind = "memory"

    def __init__(
        self,
        products: Optional[list[ProductCodeRecord]] = None,
        blacklist: Optional[list[BlacklistRecord]] = None,
    ):
        self.products: dict[str, ProductCodeRecord] = {}
        self.blacklist: dict[str, BlacklistRecord] = {}
        self.eras: dict[tuple[str, str], list[EraWindow]] = {}
        self.verification_logs: list[dict] = []
        for record in products or []:
            self.add_product(record)
        for record in blacklist or []:
            self.add_blacklist(record)

    def add_product(self, record: ProductCodeRecord) -> None:
        self.products[record.code.strip().upper()] = record

    def add_blacklist(self, record: BlacklistRecord) -> None:
        self.blacklist[record.code.strip().upper()] = record

    def add_era_windows(self, subject: str, kind: str, windows: list[EraWindow]) -> None:
        key = (kind, subject.strip().lower())
        self.eras[key] = sorted(windows, key=lambda w: w.start_year)

    async def lookup_product_code(
        self, code: str, brand_filter: Optional[str] = None,
    ) -> Optional[ProductCodeRecord]:
        record = self.products.get(code)
        if record is None:
            return None
        if _brand_filter_active(brand_filter) and record.brand.lower() != brand_filter.lower():
            return None
        return record

    async def lookup_blacklist(self, code: str) -> Optional[BlacklistRecord]:
        return self.blacklist.get(code)

    async def lookup_era_reference(self, subject: str, kind: str) -> list[EraWindow]:
        return list(self.eras.get((kind, subject.strip().lower()), []))

    async def increment_lookup_count(self, code: str) -> None:
        record = self.products.get(code)
        if record is not None:
            self.products[code] = replace(record, lookup_count=record.lookup_count + 1)

    async def log_verification(self, entry: dict) -> None:
        self.verification_logs.append(entry)


# ============================================================
# SQLITE STORE
# ============================================================

class SQLiteReferenceStore(ReferenceStore):
    """
    SQLite-backed store. Queries run in a worker thread so the event
    loop never blocks on disk I/O.
    """

    kind = "sqlite"

    _PRODUCT_COLUMNS = (
        "code", "brand", "team", "season", "kit_type", "variant", "verified",
        "verification_source", "primary_color", "sponsor", "technology", "tier",
        "label_position_era", "expected_suffix_digit", "country_of_manufacture",
        "lookup_count",
    )

    def __init__(self, db_path: str = "kitverify.db"):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS product_codes (
                    code TEXT PRIMARY KEY,
                    brand TEXT NOT NULL,
                    team TEXT,
                    season TEXT,
                    kit_type TEXT,
                    variant TEXT,
                    verified INTEGER NOT NULL DEFAULT 0,
                    verification_source TEXT NOT NULL DEFAULT 'community',
                    primary_color TEXT,
                    sponsor TEXT,
                    technology TEXT,
                    tier TEXT,
                    label_position_era TEXT,
                    expected_suffix_digit INTEGER,
                    country_of_manufacture TEXT,
                    lookup_count INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS blacklist_codes (
                    code TEXT PRIMARY KEY,
                    brand TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    severity TEXT NOT NULL DEFAULT 'high',
                    legitimate_use TEXT,
                    reported_count INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS era_references (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subject TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    value TEXT NOT NULL,
                    start_year INTEGER NOT NULL,
                    end_year INTEGER,
                    mismatch TEXT NOT NULL DEFAULT 'fail',
                    tier TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_era_subject
                ON era_references(kind, subject)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS verification_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code_checked TEXT NOT NULL,
                    brand_filter TEXT,
                    result_type TEXT NOT NULL,
                    confidence_score INTEGER NOT NULL,
                    signals_used TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

    # --- Writes used for seeding and administration ---

    def add_product(self, record: ProductCodeRecord) -> None:
        row = record.to_dict()
        row["code"] = row["code"].strip().upper()
        row["verified"] = int(row["verified"])
        cols = ", ".join(self._PRODUCT_COLUMNS)
        marks = ", ".join("?" for _ in self._PRODUCT_COLUMNS)
        with self._lock, self._connect() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO product_codes ({cols}) VALUES ({marks})",
                tuple(row[c] for c in self._PRODUCT_COLUMNS),
            )

    def add_blacklist(self, record: BlacklistRecord) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO blacklist_codes
                   (code, brand, reason, severity, legitimate_use, reported_count)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (record.code.strip().upper(), record.brand, record.reason,
                 record.severity, record.legitimate_use, record.reported_count),
            )

    def add_era_windows(self, subject: str, kind: str, windows: list[EraWindow]) -> None:
        with self._lock, self._connect() as conn:
            conn.executemany(
                """INSERT INTO era_references
                   (subject, kind, value, start_year, end_year, mismatch, tier)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (subject.strip().lower(), kind, w.value, w.start_year,
                     w.end_year, w.mismatch, w.tier)
                    for w in windows
                ],
            )

    def seed_era_defaults(
        self, data: dict[str, dict[str, list[EraWindow]]] = DEFAULT_ERA_DATA,
    ) -> int:
        """Load default era tables for subjects that have no rows yet."""
        seeded = 0
        for kind, subjects in data.items():
            for subject, windows in subjects.items():
                if self._era_rows(subject, kind):
                    continue
                self.add_era_windows(subject, kind, windows)
                seeded += len(windows)
        if seeded:
            logger.info(f"Seeded {seeded} default era windows", extra={"store": self.kind})
        return seeded

    # --- Synchronous queries ---

    def _product_row(self, code: str, brand_filter: Optional[str]) -> Optional[ProductCodeRecord]:
        with self._connect() as conn:
            if _brand_filter_active(brand_filter):
                row = conn.execute(
                    "SELECT * FROM product_codes WHERE code = ? AND lower(brand) = lower(?)",
                    (code, brand_filter),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM product_codes WHERE code = ?", (code,),
                ).fetchone()
        return ProductCodeRecord.from_row(dict(row)) if row else None

    def _blacklist_row(self, code: str) -> Optional[BlacklistRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM blacklist_codes WHERE code = ?", (code,),
            ).fetchone()
        return BlacklistRecord.from_row(dict(row)) if row else None

    def _era_rows(self, subject: str, kind: str) -> list[EraWindow]:
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT value, start_year, end_year, mismatch, tier
                   FROM era_references WHERE kind = ? AND subject = ?
                   ORDER BY start_year ASC, id ASC""",
                (kind, subject.strip().lower()),
            ).fetchall()
        return [
            EraWindow(
                value=r["value"], start_year=r["start_year"], end_year=r["end_year"],
                mismatch=r["mismatch"], tier=r["tier"],
            )
            for r in rows
        ]

    def _increment(self, code: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                "UPDATE product_codes SET lookup_count = lookup_count + 1 WHERE code = ?",
                (code,),
            )

    def _insert_log(self, entry: dict) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """INSERT INTO verification_logs
                   (code_checked, brand_filter, result_type, confidence_score,
                    signals_used, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    entry["code"],
                    entry.get("brand_filter"),
                    entry["verdict"],
                    entry["confidence_score"],
                    json.dumps(entry.get("signals", [])),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def get_verification_logs(self, limit: int = 20) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM verification_logs ORDER BY id DESC LIMIT ?", (limit,),
            ).fetchall()
        return [
            {**dict(r), "signals_used": json.loads(r["signals_used"])}
            for r in rows
        ]

    # --- Async interface ---

    async def lookup_product_code(
        self, code: str, brand_filter: Optional[str] = None,
    ) -> Optional[ProductCodeRecord]:
        return await asyncio.to_thread(self._product_row, code, brand_filter)

    async def lookup_blacklist(self, code: str) -> Optional[BlacklistRecord]:
        return await asyncio.to_thread(self._blacklist_row, code)

    async def lookup_era_reference(self, subject: str, kind: str) -> list[EraWindow]:
        return await asyncio.to_thread(self._era_rows, subject, kind)

    async def increment_lookup_count(self, code: str) -> None:
        await asyncio.to_thread(self._increment, code)

    async def log_verification(self, entry: dict) -> None:
        await asyncio.to_thread(self._insert_log, entry)


# ============================================================
# ERA LOOKUP WITH DEFAULT FALLBACK
# ============================================================

class EraReference:
    """
    Era lookups for the signal evaluators.

    Store rows win. When the store has nothing for a (subject, kind)
    pair, or the store call times out or fails, the seeded default
    tables answer instead.
    """

    def __init__(
        self,
        store: ReferenceStore,
        defaults: Optional[dict[str, dict[str, list[EraWindow]]]] = None,
        timeout: Optional[float] = None,
    ):
        self._store = store
        self._defaults = DEFAULT_ERA_DATA if defaults is None else defaults
        self.timeout = timeout

    def default_windows(self, subject: str, kind: str) -> list[EraWindow]:
        return list(self._defaults.get(kind, {}).get(subject.strip().lower(), []))

    async def windows(self, subject: Optional[str], kind: str) -> list[EraWindow]:
        if not subject:
            return []
        try:
            rows = await asyncio.wait_for(
                self._store.lookup_era_reference(subject, kind), self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"era:{kind} lookup timed out after {self.timeout}s, using defaults",
                extra={"lookup": f"era:{kind}", "subject": subject},
            )
            rows = None
        except Exception as e:
            logger.warning(
                f"era:{kind} lookup failed, using defaults: {e}",
                extra={
                    "lookup": f"era:{kind}", "subject": subject,
                    "error": str(e), "error_type": type(e).__name__,
                },
            )
            rows = None
        if rows:
            return rows
        return self.default_windows(subject, kind)


# ============================================================
# FACTORY
# ============================================================

def get_store(store_kind: str = "sqlite", db_path: str = "kitverify.db",
              seed_defaults: bool = True) -> ReferenceStore:
    """Factory — returns the configured reference store."""
    if store_kind == "sqlite":
        store = SQLiteReferenceStore(db_path=db_path)
        if seed_defaults:
            store.seed_era_defaults()
        return store
    elif store_kind == "memory":
        return InMemoryReferenceStore()
    else:
        raise ValueError(f"Unknown reference store: {store_kind}")
