#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# timeparse.py

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from utils import now_ts

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}$")
OFFSET_RE = re.compile(r"^(?P<sign>[+-])(?P<hh>\d{2}):?(?P<mm>\d{2})$")

UNIT_SECONDS = {"w": 7 * 86400, "d": 86400, "h": 3600, "m": 60, "s": 1}


def _lift_time(instant: int, bantime_seconds: Optional[int], now: int) -> int:
    # a past instant is the ban start, a future one is already the lift time
    if instant >= now:
        return instant
    if bantime_seconds is None:
        return instant
    return instant + bantime_seconds


def _parse_offset(field: str) -> Optional[timezone]:
    m = OFFSET_RE.match(field)
    if not m:
        return None
    delta = timedelta(hours=int(m.group("hh")), minutes=int(m.group("mm")))
    if m.group("sign") == "-":
        delta = -delta
    try:
        return timezone(delta)
    except ValueError:
        return None


def _last_timestamp(fields: List[str]) -> Optional[int]:
    """
    Epoch of the last "YYYY-MM-DD HH:MM:SS [+HHMM]" run among fields.
    fail2ban prints "<start> + <bantime> = <end>", so the last run is the end.
    """
    found: Optional[int] = None
    for i in range(len(fields) - 1):
        if not DATE_RE.match(fields[i]) or not TIME_RE.match(fields[i + 1]):
            continue
        tz = timezone.utc
        if i + 2 < len(fields):
            off = _parse_offset(fields[i + 2])
            if off is not None:
                tz = off
        try:
            dt = datetime.strptime(f"{fields[i]} {fields[i + 1]}", "%Y-%m-%d %H:%M:%S")
        except ValueError:
            continue
        found = int(dt.replace(tzinfo=tz).timestamp())
    return found


def resolve_expiry(token: str, bantime_seconds: Optional[int], now: Optional[int] = None) -> Optional[int]:
    """
    Absolute UTC epoch at which a ban lifts, or None when the token holds
    neither a plain epoch nor a recognizable date/time.
    """
    if now is None:
        now = now_ts()
    text = token.strip()
    if not text:
        return None
    if text.isdigit():
        return _lift_time(int(text), bantime_seconds, now)
    instant = _last_timestamp(text.split())
    if instant is None:
        return None
    return _lift_time(instant, bantime_seconds, now)


def parse_duration_string(text: str) -> Optional[int]:
    """
    "1d2h3m4s" -> 93784, "90" -> 90, "1h 30m" -> 5400, "abc" -> None.
    Units w/d/h/m/s, any case; trailing bare digits count as seconds.
    """
    total = 0
    digits = ""
    matched = False
    for ch in text.strip():
        if ch.isdigit():
            digits += ch
            continue
        if ch.isspace():
            continue
        unit = UNIT_SECONDS.get(ch.lower())
        if unit is None or not digits:
            return None
        total += int(digits) * unit
        digits = ""
        matched = True
    if digits:
        total += int(digits)
        matched = True
    if not matched:
        return None
    return total


def _duration_tokens(seconds: int) -> List[str]:
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    out: List[str] = []
    if days:
        out.append(f"{days}d")
    if hours:
        out.append(f"{hours}h")
    if minutes:
        out.append(f"{minutes}m")
    if not out:
        out.append(f"{secs}s")
    return out


def format_duration(seconds: int) -> str:
    return " ".join(_duration_tokens(seconds))


def format_duration_compact(seconds: int) -> str:
    return "".join(_duration_tokens(seconds))


def remaining(expiry_epoch: Optional[int], now: Optional[int] = None) -> Optional[int]:
    if expiry_epoch is None:
        return None
    if now is None:
        now = now_ts()
    return max(0, expiry_epoch - now)
