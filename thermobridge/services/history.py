from __future__ import annotations
import asyncio
import logging
import re
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from ..core.timeutil import now_utc, to_iso_z
from ..domain.interfaces import Repository

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_ONE_DECIMAL = Decimal("0.1")


def format_temp(value: float) -> str:
    # ties round away from zero on the exact binary value: 20.25 -> "20.3"
    return str(Decimal(value).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


class HistoryQueryError(Exception):
    """A history or stats query could not be answered."""


class HistoryService:
    def __init__(
        self,
        repo: Repository,
        default_minutes: int = 120,
        max_minutes: int = 24 * 60,
        max_rows: int = 1000,
        stats_window_minutes: int = 24 * 60,
        timeout_s: float = 10.0,
    ) -> None:
        self._repo = repo
        self._default_minutes = default_minutes
        self._max_minutes = max_minutes
        self._max_rows = max_rows
        self._stats_window = stats_window_minutes
        self._timeout = timeout_s

    def clamp_minutes(self, minutes: Any = None) -> int:
        if minutes is None or minutes == "":
            return self._default_minutes
        if isinstance(minutes, str):
            # leading integer prefix: "1.5" -> 1, "90m" -> 90
            m = _LEADING_INT.match(minutes)
            if m is None:
                raise HistoryQueryError(f"Invalid minutes value: {minutes!r}")
            value = int(m.group(1))
        else:
            try:
                value = int(minutes)
            except (TypeError, ValueError, OverflowError):
                raise HistoryQueryError(f"Invalid minutes value: {minutes!r}")
        return max(0, min(value, self._max_minutes))

    async def history(self, minutes: Any = None) -> list[dict]:
        window = self.clamp_minutes(minutes)
        since = now_utc() - timedelta(minutes=window)
        logger.info("History query since %s (%d min)", to_iso_z(since), window)

        try:
            rows = await asyncio.wait_for(
                self._repo.query_history(since, self._max_rows), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise HistoryQueryError(f"History query timed out after {self._timeout:g}s")
        except Exception as e:
            raise HistoryQueryError(str(e)) from e

        logger.info("History query returned %d rows", len(rows))
        return [
            {"ts": to_iso_z(r.ts_utc), "temp": format_temp(r.temp), "led": int(r.led)}
            for r in rows
        ]

    async def stats(self) -> dict:
        since = now_utc() - timedelta(minutes=self._stats_window)
        try:
            agg: Optional[dict] = await asyncio.wait_for(
                self._repo.aggregate_since(since), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise HistoryQueryError(f"Stats query timed out after {self._timeout:g}s")
        except Exception as e:
            raise HistoryQueryError(str(e)) from e
        return agg or {}
