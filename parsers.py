#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import List, Optional, Set, Tuple

from model import BanEntry, TimeValue
from timeparse import resolve_expiry
from utils import is_ip_address

# Example `fail2ban-client status`:
#   Status
#   |- Number of jail:	2
#   `- Jail list:	nginx-http-auth, sshd
JAIL_LIST_MARKER = "Jail list:"

# Example `fail2ban-client status sshd`:
#   `- Actions
#      |- Currently banned:	2
#      |- Total banned:	17
#      `- Banned IP list:	192.0.2.10 2001:db8::1
CURRENTLY_BANNED_MARKER = "Currently banned:"
TOTAL_BANNED_MARKER = "Total banned:"
BANNED_LIST_MARKER = "Banned IP list:"

# characters some fail2ban versions wrap list items in
_TOKEN_STRIP = "[]()'\""


def parse_jail_names(status_text: str) -> List[str]:
    for line in status_text.splitlines():
        if JAIL_LIST_MARKER not in line:
            continue
        tail = line.split(JAIL_LIST_MARKER, 1)[1]
        return [j.strip() for j in tail.split(",") if j.strip()]
    return []


def parse_optional_int(text: str) -> Optional[int]:
    s = text.strip()
    if not s.isdigit():
        return None
    return int(s)


def parse_time_value(text: str) -> TimeValue:
    """bantime/findtime as printed by `get <jail> <setting>`; seconds only for plain integers."""
    raw = text.strip()
    return TimeValue(raw_text=raw, seconds=parse_optional_int(raw))


def _int_after(line: str, marker: str) -> Optional[int]:
    tail = line.split(marker, 1)[1].strip()
    parts = tail.split()
    if not parts:
        return None
    return parse_optional_int(parts[0])


def parse_ban_counts(jail_status_text: str) -> Tuple[Optional[int], Optional[int]]:
    """
    Returns (currently_banned, total_banned); either is None if absent or malformed.
    """
    current: Optional[int] = None
    total: Optional[int] = None
    for line in jail_status_text.splitlines():
        if CURRENTLY_BANNED_MARKER in line:
            current = _int_after(line, CURRENTLY_BANNED_MARKER)
        elif TOTAL_BANNED_MARKER in line:
            total = _int_after(line, TOTAL_BANNED_MARKER)
    return (current, total)


def _clean_token(token: str) -> str:
    return token.strip(_TOKEN_STRIP)


def extract_addresses(text: str) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for token in text.replace(",", " ").split():
        tok = _clean_token(token)
        if tok and is_ip_address(tok) and tok not in seen:
            seen.add(tok)
            out.append(tok)
    return out


def parse_banned_ip_list(jail_status_text: str) -> List[str]:
    """Addresses after the "Banned IP list:" marker of `status <jail>`."""
    idx = jail_status_text.find(BANNED_LIST_MARKER)
    if idx < 0:
        return []
    return extract_addresses(jail_status_text[idx + len(BANNED_LIST_MARKER):])


def parse_banned_addresses_with_times(text: str, bantime_seconds: Optional[int]) -> List[BanEntry]:
    """
    Parse `get <jail> banip --with-time`, e.g.

        192.0.2.10 	2026-01-29 12:00:00 + 600 = 2026-01-29 12:10:00

    Every address token starts an entry; the non-address tokens up to the
    next address are that entry's ban-time text.
    """
    entries: List[BanEntry] = []
    seen: Set[str] = set()
    current: Optional[str] = None
    pending: List[str] = []

    def flush() -> None:
        if current is None or current in seen:
            return
        seen.add(current)
        raw = " ".join(pending) if pending else None
        expiry = resolve_expiry(raw, bantime_seconds) if raw else None
        entries.append(BanEntry(ip=current, expiry_epoch=expiry, raw_time_text=raw))

    for token in text.replace(",", " ").split():
        tok = _clean_token(token)
        if tok and is_ip_address(tok):
            flush()
            current = tok
            pending = []
        elif current is not None and tok:
            pending.append(tok)
    flush()
    return entries
