#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from typing import List, Optional

from model import BanEntry, JailState, SortMode
from timeparse import format_duration_compact, parse_duration_string, remaining


def project(
    jail: Optional[JailState],
    search: str,
    sort_mode: SortMode,
    now: Optional[int] = None,
) -> List[BanEntry]:
    """
    Visible, selectable entries of one jail: the jail's own BanEntry objects,
    filtered by case-insensitive address substring and sorted. Recompute it
    whenever the snapshot, query or sort mode changes; never keep it around.
    """
    if jail is None:
        return []
    items = list(jail.bans)
    if search:
        s = search.lower()
        items = [e for e in items if s in e.ip.lower()]

    if sort_mode == SortMode.BY_TIME_LEFT:
        def key(e: BanEntry):
            left = remaining(e.expiry_epoch, now)
            # unknown remaining time sorts last
            return (left is None, left or 0, e.ip)
        items.sort(key=key)
    else:
        items.sort(key=lambda e: e.ip)
    return items


def time_left_label(entry: BanEntry, now: Optional[int] = None) -> str:
    left = remaining(entry.expiry_epoch, now)
    if left is not None:
        return f"{format_duration_compact(left)} left"
    if entry.raw_time_text:
        dur = parse_duration_string(entry.raw_time_text)
        if dur is not None:
            return f"~{format_duration_compact(dur)}"
        return entry.raw_time_text
    return "-"
