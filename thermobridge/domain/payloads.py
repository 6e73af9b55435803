"""Parsing of raw device and viewer payloads.

Every parser returns ``None`` for input that must be dropped; callers decide
how to log it.
"""
from __future__ import annotations

import math
from typing import Any, Optional


def parse_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        try:
            value = float(str(raw).strip())
        except (TypeError, ValueError):
            return None
    if not math.isfinite(value):
        return None
    return value


def parse_in_range(raw: Any, lo: float, hi: float) -> Optional[float]:
    value = parse_number(raw)
    if value is None or value < lo or value > hi:
        return None
    return value


def parse_temperature(raw: Any, lo: float = -55.0, hi: float = 150.0) -> Optional[float]:
    return parse_in_range(raw, lo, hi)


def parse_threshold(raw: Any, lo: float = 0.0, hi: float = 100.0) -> Optional[float]:
    return parse_in_range(raw, lo, hi)


def parse_led(raw: Any) -> int:
    # The device reports "1"/"0" or "ON"/"OFF"; anything unrecognised means off.
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = str(raw).strip() if raw is not None else ""
    return 1 if text in ("1", "ON") else 0
