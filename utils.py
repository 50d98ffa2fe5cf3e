#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from datetime import datetime, timezone
import ipaddress
from typing import Optional


def now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def now_utc_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def fmt_epoch_utc(ts: Optional[int]) -> str:
    if ts is None:
        return "-"
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    except (OverflowError, OSError, ValueError):
        return str(ts)


def clamp(n: int, lo: int, hi: int) -> int:
    if n < lo:
        return lo
    if n > hi:
        return hi
    return n


def is_ip_address(text: str) -> bool:
    """True for a bare IPv4 or IPv6 literal (no prefix length, no port)."""
    try:
        ipaddress.ip_address(text)
        return True
    except ValueError:
        return False


def human_int(n: int) -> str:
    return f"{n:,}".replace(",", " ")
