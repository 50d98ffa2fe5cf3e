#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# tui.py

from __future__ import annotations

import curses
from typing import List, Optional, Tuple

from model import DetailsState, Focus, Rect
from utils import clamp, now_utc_str

MIN_H = 12
MIN_W = 50
INPUT_TIMEOUT_MS = 200


def safe_addnstr(win, y: int, x: int, s: str, n: int, attr: int = 0) -> None:
    try:
        maxy, maxx = win.getmaxyx()
        if y < 0 or y >= maxy or x < 0 or x >= maxx:
            return
        if n <= 0:
            return
        # clip to available width
        avail = maxx - x
        if avail <= 0:
            return
        n2 = min(n, avail)
        win.addnstr(y, x, s, n2, attr)
    except curses.error:
        # writing the bottom-right cell raises after the text is drawn
        return


def _read_key(stdscr) -> int:
    ch = stdscr.getch()
    if ch != 27:
        return ch
    # only bytes already queued can belong to an escape sequence
    stdscr.nodelay(True)
    try:
        return _read_escape(stdscr)
    finally:
        stdscr.timeout(INPUT_TIMEOUT_MS)


def _read_escape(stdscr) -> int:
    ch = 27
    nxt = stdscr.getch()
    if nxt == -1:
        return ch
    if nxt != 91:  # '['
        # a separate key pressed after Esc; leave it for the next read
        curses.ungetch(nxt)
        return ch
    third = stdscr.getch()
    if third == -1:
        return ch
    if third == 65:
        return curses.KEY_UP
    if third == 66:
        return curses.KEY_DOWN
    if third == 67:
        return curses.KEY_RIGHT
    if third == 68:
        return curses.KEY_LEFT
    if third == 72:
        return curses.KEY_HOME
    if third == 70:
        return curses.KEY_END
    if third in (49, 52, 53, 54):
        fourth = stdscr.getch()
        if fourth == 126:
            if third == 49:
                return curses.KEY_HOME
            if third == 52:
                return curses.KEY_END
            if third == 53:
                return curses.KEY_PPAGE
            if third == 54:
                return curses.KEY_NPAGE
    return ch


def _calc_layout(h: int, w: int) -> Tuple[Rect, Rect, Rect]:
    """
    Returns (jails, details, bans) panel rects.
    Header uses rows 0-1, footer the last two rows.
    """
    body_y = 2
    body_h = max(3, h - 4)
    left_w = max(20, (w * 35) // 100)
    jails_h = max(3, (body_h * 55) // 100)
    jails = Rect(0, body_y, left_w, jails_h)
    details = Rect(0, body_y + jails_h, left_w, max(3, body_h - jails_h))
    bans = Rect(left_w, body_y, max(3, w - left_w), body_h)
    return (jails, details, bans)


def draw_box(win, r: Rect, title: str, active: bool) -> None:
    attr = curses.A_BOLD if active else curses.A_DIM
    if r.width < 2 or r.height < 2:
        return
    horiz = "+" + "-" * (r.width - 2) + "+"
    safe_addnstr(win, r.y, r.x, horiz, r.width, attr)
    safe_addnstr(win, r.y + r.height - 1, r.x, horiz, r.width, attr)
    for y in range(r.y + 1, r.y + r.height - 1):
        safe_addnstr(win, y, r.x, "|", 1, attr)
        safe_addnstr(win, y, r.x + r.width - 1, "|", 1, attr)
    if title:
        safe_addnstr(win, r.y, r.x + 2, f" {title} ", max(0, r.width - 4), attr)


def draw_list(win, r: Rect, rows: List[str], selected: Optional[int], offset: int, active: bool, empty: str) -> int:
    """Draws rows inside r's border; returns the scroll offset used."""
    inner = r.inner()
    max_rows = inner.height
    total = len(rows)
    if total == 0:
        safe_addnstr(win, inner.y, inner.x, empty, inner.width, curses.A_DIM)
        return 0
    cursor = clamp(selected if selected is not None else 0, 0, total - 1)
    # keep the cursor visible
    if cursor < offset:
        offset = cursor
    if cursor >= offset + max_rows:
        offset = max(0, cursor - max_rows + 1)
    offset = clamp(offset, 0, max(0, total - max_rows))

    hl = curses.A_REVERSE | curses.A_BOLD if active else curses.A_REVERSE
    for i in range(max_rows):
        idx = offset + i
        if idx >= total:
            break
        is_sel = selected is not None and idx == cursor
        line = ("> " if is_sel else "  ") + rows[idx]
        attr = hl if is_sel else 0
        if is_sel:
            safe_addnstr(win, inner.y + i, inner.x, " " * inner.width, inner.width, attr)
        safe_addnstr(win, inner.y + i, inner.x, line, inner.width, attr)
    return offset


def draw_header(stdscr, app, w: int) -> None:
    title, counts = app.header_lines()
    safe_addnstr(stdscr, 0, 0, title, w - 1, curses.A_BOLD)
    ts = now_utc_str()
    if w - len(ts) - 1 > len(title) + 1:
        safe_addnstr(stdscr, 0, w - len(ts) - 1, ts, len(ts), curses.A_DIM)
    safe_addnstr(stdscr, 1, 0, counts, w - 1, 0)


def draw_footer(stdscr, app, h: int, w: int) -> None:
    help_line, status = app.footer_lines()
    safe_addnstr(stdscr, h - 2, 0, help_line, w - 1, curses.A_DIM)
    safe_addnstr(stdscr, h - 1, 0, " " * (w - 1), w - 1, curses.A_REVERSE)
    safe_addnstr(stdscr, h - 1, 0, status, w - 1, curses.A_REVERSE)


def draw_modal(stdscr, app, h: int, w: int) -> None:
    view = app.modal_view()
    if view is None:
        app.confirm_rect = None
        app.cancel_rect = None
        return
    title, lines, yes, no = view
    mw = clamp((w * 60) // 100, min(30, w), w)
    mh = min(h, len(lines) + 4)
    box = Rect((w - mw) // 2, (h - mh) // 2, mw, mh)
    inner = box.inner()
    for y in range(box.y, box.y + box.height):
        safe_addnstr(stdscr, y, box.x, " " * box.width, box.width, 0)
    draw_box(stdscr, box, title, True)
    for i, line in enumerate(lines[: max(0, inner.height - 1)]):
        x = inner.x + max(0, (inner.width - len(line)) // 2)
        safe_addnstr(stdscr, inner.y + i, x, line, inner.width, 0)

    # buttons split the last inner row in halves
    row_y = inner.y + inner.height - 1
    half = inner.width // 2
    confirm = Rect(inner.x, row_y, half, 1)
    cancel = Rect(inner.x + half, row_y, inner.width - half, 1)
    for r, label, attr in ((confirm, yes, curses.A_REVERSE | curses.A_BOLD), (cancel, no, curses.A_REVERSE)):
        text = label.center(r.width)
        safe_addnstr(stdscr, r.y, r.x, text, r.width, attr)
    app.confirm_rect = confirm
    app.cancel_rect = cancel


def draw_details_overlay(stdscr, ds: DetailsState) -> None:
    h, w = stdscr.getmaxyx()
    # centered box with margin
    box = Rect(4, 2, max(10, w - 8), max(5, h - 4))
    for y in range(box.y, box.y + box.height):
        safe_addnstr(stdscr, y, box.x, " " * box.width, box.width, 0)
    draw_box(stdscr, box, ds.title, True)
    inner = box.inner()
    total = len(ds.lines)
    ds.cursor = clamp(ds.cursor, 0, max(0, total - 1))
    if ds.cursor < ds.offset:
        ds.offset = ds.cursor
    if ds.cursor >= ds.offset + inner.height:
        ds.offset = max(0, ds.cursor - inner.height + 1)
    ds.offset = clamp(ds.offset, 0, max(0, total - inner.height))
    for i in range(inner.height):
        idx = ds.offset + i
        line = ds.lines[idx] if idx < total else ""
        attr = curses.A_REVERSE if idx == ds.cursor and idx < total else 0
        safe_addnstr(stdscr, inner.y + i, inner.x, line, inner.width, attr)
    hint = " ESC/q close  Up/Down/PgUp/PgDn/Home/End scroll "
    safe_addnstr(stdscr, box.y + box.height - 1, box.x + 2, hint, box.width - 4, curses.A_BOLD)


def draw_screen(stdscr, app, h: int, w: int) -> None:
    if h < MIN_H or w < MIN_W:
        app.jails_rect = app.bans_rect = None
        app.confirm_rect = app.cancel_rect = None
        safe_addnstr(stdscr, 0, 0, f"terminal too small ({w}x{h}, need {MIN_W}x{MIN_H})", w - 1, curses.A_BOLD)
        return

    jails_r, details_r, bans_r = _calc_layout(h, w)
    draw_header(stdscr, app, w)

    jails_active = app.focus == Focus.JAILS
    draw_box(stdscr, jails_r, "Jails", jails_active)
    app.jails_offset = draw_list(
        stdscr, jails_r, app.jail_rows(), app.selected_jail_index, app.jails_offset, jails_active, "No jails found"
    )
    app.jails_rect = jails_r

    draw_box(stdscr, bans_r, app.bans_title(), not jails_active)
    empty = "No banned IPs" if app.selected_jail() is not None else "Select a jail"
    app.bans_offset = draw_list(
        stdscr, bans_r, app.ban_rows(), app.selected_row_index, app.bans_offset, not jails_active, empty
    )
    app.bans_rect = bans_r

    draw_box(stdscr, details_r, "Details", False)
    inner = details_r.inner()
    for i, line in enumerate(app.detail_lines()[: inner.height]):
        safe_addnstr(stdscr, inner.y + i, inner.x, line, inner.width, 0)

    draw_footer(stdscr, app, h, w)
    draw_modal(stdscr, app, h, w)
    if app.log_view.open:
        draw_details_overlay(stdscr, app.log_view)


def _setup_screen(stdscr) -> None:
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    try:
        curses.use_default_colors()
    except curses.error:
        # terminals without color support
        pass
    curses.raw()
    stdscr.keypad(True)
    # bounded wait for input, so the auto-refresh timer is checked regularly
    stdscr.timeout(INPUT_TIMEOUT_MS)
    curses.mousemask(curses.BUTTON1_PRESSED | curses.BUTTON1_CLICKED)
    curses.mouseinterval(0)


def run_tui(stdscr, app) -> None:
    _setup_screen(stdscr)

    app.refresh()

    while True:
        app.tick()

        h, w = stdscr.getmaxyx()
        stdscr.erase()
        draw_screen(stdscr, app, h, w)
        stdscr.refresh()

        ch = _read_key(stdscr)
        if ch == -1 or ch == curses.KEY_RESIZE:
            continue
        if ch == curses.KEY_MOUSE:
            try:
                _, x, y, _, bstate = curses.getmouse()
            except curses.error:
                continue
            if app.handle_mouse(x, y, bstate):
                break
            continue
        if app.handle_key(ch):
            break
