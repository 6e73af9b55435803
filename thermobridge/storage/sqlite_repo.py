from __future__ import annotations
import aiosqlite
from datetime import datetime, timezone
from typing import List, Optional
from ..domain.models import Reading


def _ts(dt: datetime) -> str:
    # Stored as UTC ISO text so lexical order matches time order
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteRepository:
    def __init__(self, path: str, timeout: float = 5.0) -> None:
        self._path = path
        self._timeout = timeout

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self._path, timeout=self._timeout)

    async def init(self) -> None:
        async with self._connect() as db:
            # CHECKs mirror the LM35 schema bounds; the controller's range is wider
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS readings (
                    ts_utc TEXT NOT NULL,
                    temp REAL CHECK (temp IS NULL OR (temp >= -50 AND temp <= 150)),
                    led INTEGER NOT NULL DEFAULT 0 CHECK (led IN (0, 1))
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_readings_ts ON readings(ts_utc)")
            await db.commit()

    async def insert_reading(self, r: Reading) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO readings(ts_utc,temp,led) VALUES (?,?,?)",
                (_ts(r.ts_utc), None if r.temp is None else float(r.temp), int(r.led)),
            )
            await db.commit()

    async def query_history(self, since: datetime, limit: int) -> List[Reading]:
        async with self._connect() as db:
            cur = await db.execute(
                """
                SELECT ts_utc,temp,led
                FROM readings
                WHERE ts_utc >= ? AND temp IS NOT NULL
                ORDER BY ts_utc ASC
                LIMIT ?
                """,
                (_ts(since), limit),
            )
            rows = await cur.fetchall()
        return [
            Reading(ts_utc=datetime.fromisoformat(ts), temp=float(temp), led=int(led))
            for ts, temp, led in rows
        ]

    async def aggregate_since(self, since: datetime) -> Optional[dict]:
        async with self._connect() as db:
            cur = await db.execute(
                """
                SELECT COUNT(*), AVG(temp), MIN(temp), MAX(temp),
                       SUM(CASE WHEN led = 1 THEN 1 ELSE 0 END)
                FROM readings
                WHERE ts_utc >= ? AND temp IS NOT NULL
                """,
                (_ts(since),),
            )
            row = await cur.fetchone()
        if row is None or not row[0]:
            return None
        count, avg, mn, mx, led_on = row
        return {
            "count": int(count),
            "avgTemp": float(avg),
            "minTemp": float(mn),
            "maxTemp": float(mx),
            "ledOnCount": int(led_on or 0),
        }

    async def ping(self) -> bool:
        try:
            async with self._connect() as db:
                await db.execute("SELECT 1")
            return True
        except Exception:
            return False
