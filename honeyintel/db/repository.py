import asyncio
import os
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from honeyintel.core.config import settings
from honeyintel.core.logging import get_logger
from honeyintel.engine.merger import union
from honeyintel.models.schemas import (
    ExtractionResult,
    IntelligenceRecord,
    SessionRecord,
    SessionState,
)

logger = get_logger(__name__)


class SessionStore:
    """
    Per-session accumulator backed by SQLite.

    Every write goes through a read-merge-write under one lock and one
    immediate transaction, so concurrent turns of the same session cannot lose
    each other's findings and the stored record never shrinks.
    """

    def __init__(self, db_path: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.db_path = db_path or settings.DATABASE_PATH
        self.ttl_seconds = settings.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.executor = ThreadPoolExecutor(max_workers=5)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    state TEXT NOT NULL,
                    intelligence TEXT NOT NULL,
                    turn_count INTEGER DEFAULT 0,
                    last_turn_key TEXT,
                    callback_sent INTEGER DEFAULT 0,
                    created_at REAL,
                    updated_at REAL
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, fn, *args)

    def _is_expired(self, updated_at: float, now: float) -> bool:
        return self.ttl_seconds > 0 and now - updated_at > self.ttl_seconds

    def _read(self, conn: sqlite3.Connection, session_id: str, now: float) -> Optional[SessionRecord]:
        row = conn.execute("SELECT * FROM sessions WHERE session_id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        if self._is_expired(row["updated_at"], now):
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            logger.info("Session expired", extra={"session_id": session_id})
            return None
        return SessionRecord(
            session_id=row["session_id"],
            state=SessionState(row["state"]),
            intelligence=IntelligenceRecord.model_validate_json(row["intelligence"]),
            turn_count=row["turn_count"],
            last_turn_key=row["last_turn_key"],
            callback_sent=bool(row["callback_sent"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _write(self, conn: sqlite3.Connection, session: SessionRecord):
        conn.execute(
            """
            INSERT OR REPLACE INTO sessions
                (session_id, state, intelligence, turn_count, last_turn_key, callback_sent, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.state.value,
                session.intelligence.model_dump_json(),
                session.turn_count,
                session.last_turn_key,
                1 if session.callback_sent else 0,
                session.created_at,
                session.updated_at,
            ),
        )

    def _update(self, session_id: str, change) -> SessionRecord:
        """Atomic read-modify-write. `change` maps the current record to the new one."""
        now = time.time()
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("BEGIN IMMEDIATE")
                    current = self._read(conn, session_id, now) or SessionRecord(
                        session_id=session_id, created_at=now, updated_at=now
                    )
                    updated = change(current).model_copy(update={"updated_at": now})
                    self._write(conn, updated)
            finally:
                conn.close()
        return updated

    # --- accumulator contract ---

    async def get(self, session_id: str) -> Optional[IntelligenceRecord]:
        return await self._run(self._get_sync, session_id)

    def _get_sync(self, session_id: str) -> Optional[IntelligenceRecord]:
        session = self._load_sync(session_id, create=False)
        return session.intelligence if session is not None else None

    async def set(self, session_id: str, record: ExtractionResult) -> IntelligenceRecord:
        return await self._run(self._set_sync, session_id, record)

    def _set_sync(self, session_id: str, record: ExtractionResult) -> IntelligenceRecord:
        # Unioned with what is stored, a stale writer can only add
        session = self._update(
            session_id,
            lambda current: current.model_copy(update={"intelligence": union(current.intelligence, record)}),
        )
        return session.intelligence

    # --- sessions ---

    async def load(self, session_id: str) -> SessionRecord:
        return await self._run(self._load_sync, session_id)

    async def find(self, session_id: str) -> Optional[SessionRecord]:
        return await self._run(self._load_sync, session_id, False)

    def _load_sync(self, session_id: str, create: bool = True) -> Optional[SessionRecord]:
        now = time.time()
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    session = self._read(conn, session_id, now)
            finally:
                conn.close()
        if session is None and create:
            return SessionRecord(session_id=session_id, created_at=now, updated_at=now)
        return session

    async def merge(self, session_id: str, record: ExtractionResult, turn_key: Optional[str] = None) -> SessionRecord:
        return await self._run(self._merge_sync, session_id, record, turn_key)

    def _merge_sync(self, session_id: str, record: ExtractionResult, turn_key: Optional[str] = None) -> SessionRecord:
        def change(current: SessionRecord) -> SessionRecord:
            redelivered = turn_key is not None and turn_key == current.last_turn_key
            state = SessionState.FLAGGED if current.state is SessionState.FLAGGED else SessionState.ACTIVE
            return current.model_copy(update={
                "state": state,
                "intelligence": union(current.intelligence, record),
                "turn_count": current.turn_count if redelivered else current.turn_count + 1,
                "last_turn_key": turn_key if turn_key is not None else current.last_turn_key,
            })

        session = self._update(session_id, change)
        logger.info("Session merged", extra={
            "session_id": session_id,
            "state": session.state.value,
            "turn_count": session.turn_count,
            "counts": session.intelligence.counts(),
        })
        return session

    async def flag(self, session_id: str) -> SessionRecord:
        return await self._run(self._flag_sync, session_id)

    def _flag_sync(self, session_id: str) -> SessionRecord:
        return self._update(
            session_id,
            lambda current: current.model_copy(update={"state": SessionState.FLAGGED}),
        )

    async def mark_callback(self, session_id: str, sent: bool) -> SessionRecord:
        return await self._run(self._mark_callback_sync, session_id, sent)

    def _mark_callback_sync(self, session_id: str, sent: bool) -> SessionRecord:
        return self._update(
            session_id,
            lambda current: current.model_copy(update={"callback_sent": sent}),
        )

    async def claim_callback(self, session_id: str) -> Optional[SessionRecord]:
        """Sets the sent flag only if it was clear. Returns None when another caller holds it."""
        return await self._run(self._claim_callback_sync, session_id)

    def _claim_callback_sync(self, session_id: str) -> Optional[SessionRecord]:
        claimed = []

        def change(current: SessionRecord) -> SessionRecord:
            if current.callback_sent:
                return current
            claimed.append(True)
            return current.model_copy(update={"callback_sent": True})

        session = self._update(session_id, change)
        return session if claimed else None

    async def purge_expired(self) -> int:
        return await self._run(self._purge_expired_sync)

    def _purge_expired_sync(self) -> int:
        if self.ttl_seconds <= 0:
            return 0
        cutoff = time.time() - self.ttl_seconds
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    purged = conn.execute("DELETE FROM sessions WHERE updated_at < ?", (cutoff,)).rowcount
            finally:
                conn.close()
        if purged:
            logger.info("Purged expired sessions", extra={"purged": purged})
        return purged

    async def get_stats(self) -> Dict[str, Any]:
        return await self._run(self._get_stats_sync)

    def _get_stats_sync(self) -> Dict[str, Any]:
        self._purge_expired_sync()
        with self._lock:
            conn = self._connect()
            try:
                total_sessions = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
                flagged = conn.execute(
                    "SELECT COUNT(*) FROM sessions WHERE state = ?", (SessionState.FLAGGED.value,)
                ).fetchone()[0]
                callbacks_sent = conn.execute(
                    "SELECT COUNT(*) FROM sessions WHERE callback_sent = 1"
                ).fetchone()[0]
                rows = conn.execute("SELECT intelligence FROM sessions").fetchall()
            finally:
                conn.close()

        totals = IntelligenceRecord().counts()
        upi_counts: Dict[str, int] = {}
        for row in rows:
            intel = IntelligenceRecord.model_validate_json(row["intelligence"])
            for wire, count in intel.counts().items():
                totals[wire] += count
            for upi in intel.upi_ids:
                upi_counts[upi] = upi_counts.get(upi, 0) + 1

        top_upi = sorted(upi_counts, key=lambda value: (-upi_counts[value], value))[:5]
        return {
            "total_sessions": total_sessions,
            "scams_detected": flagged,
            "callbacks_sent": callbacks_sent,
            "intelligence_totals": totals,
            "top_upi_ids": top_upi,
        }
