#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# app.py

from __future__ import annotations

import curses
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, List, Optional, Tuple

from fail2ban_client import ExternalToolError, Fail2banClient, Runner, SnapshotFetcher
from model import (
    BanEntry,
    ConfirmUnban,
    ConfirmUnbanAll,
    DetailsState,
    Event,
    Focus,
    JailState,
    Modal,
    NewBanInput,
    Rect,
    SortMode,
    TimeValue,
    UnbanAllStep,
)
from timeparse import format_duration
from utils import clamp, fmt_epoch_utc, human_int, is_ip_address, now_ts, now_utc_str
from view import project, time_left_label

UNBAN_BATCH_SIZE = 50
MIN_REFRESH_INTERVAL = 0.5
REFRESH_FAILED = "Refresh failed"

KEY_CTRL_C = 3
KEY_TAB = 9
KEY_ESC = 27
ENTER_KEYS = (10, 13, curses.KEY_ENTER)
BACKSPACE_KEYS = (curses.KEY_BACKSPACE, 127, 8)
UP_KEYS = (curses.KEY_UP, ord("k"))
DOWN_KEYS = (curses.KEY_DOWN, ord("j"))
CONFIRM_KEYS = (ord("y"), ord("Y")) + ENTER_KEYS
CANCEL_KEYS = (ord("n"), ord("N"), KEY_ESC)
LEFT_PRESS = curses.BUTTON1_PRESSED | curses.BUTTON1_CLICKED

HELP = "q quit  r refresh  a auto  s sort  / filter  c clear  b ban  u unban  X unban all  l log  tab panel"


@dataclass
class AppConfig:
    client: str = "fail2ban-client"
    sudo: bool = False
    refresh_interval: float = 5.0
    auto_refresh: bool = True
    sort_mode: SortMode = SortMode.BY_IP
    search: str = ""
    log_size: int = 500


def _printable(ch: int) -> Optional[str]:
    if 0 <= ch <= 255:
        c = chr(ch)
        if c.isprintable():
            return c
    return None


def _time_value_str(tv: TimeValue) -> str:
    if tv.seconds is None:
        return tv.raw_text or "n/a"
    return f"{format_duration(tv.seconds)} ({tv.seconds}s)"


def _opt(n: Optional[int]) -> str:
    return "-" if n is None else human_int(n)


class App:
    """
    Owns all UI state and turns key presses, mouse presses and timer ticks
    into state changes and fail2ban-client commands. Rendering lives in tui.py,
    which reads the query API below and writes back the painted geometry.
    """
    def __init__(self, cfg: AppConfig, runner: Optional[Runner] = None):
        self.cfg = cfg
        self.runner: Runner = runner if runner is not None else Fail2banClient(cfg.client, sudo=cfg.sudo)
        self.fetcher = SnapshotFetcher(self.runner)
        self.events: Deque[Event] = deque(maxlen=max(10, cfg.log_size))

        self.jails: List[JailState] = []
        self.selected_jail_index: Optional[int] = None
        self.selected_row_index: Optional[int] = None
        self.focus = Focus.JAILS
        self.modal: Optional[Modal] = None
        self.search = cfg.search
        self.search_active = False
        self.sort_mode = cfg.sort_mode
        self.auto_refresh = cfg.auto_refresh
        self.refresh_interval = max(MIN_REFRESH_INTERVAL, float(cfg.refresh_interval))
        self.last_refresh: float = time.monotonic()
        self.last_refresh_wall: str = ""
        self.status = ""
        self.log_view = DetailsState()

        # geometry of the last paint (set by the renderer)
        self.jails_rect: Optional[Rect] = None
        self.bans_rect: Optional[Rect] = None
        self.jails_offset = 0
        self.bans_offset = 0
        self.confirm_rect: Optional[Rect] = None
        self.cancel_rect: Optional[Rect] = None

    # ---- event log ----

    def log_sys(self, kind: str, ip: str, msg: str, jail: str = "", src: str = "sys") -> None:
        self.events.append(Event(ts=now_ts(), src=src, kind=kind, ip=ip, jail=jail, msg=msg))

    def set_status(self, msg: str) -> None:
        self.status = msg

    def get_events_lines(self, max_lines: int = 200) -> List[str]:
        out: List[str] = []
        for ev in list(self.events)[-max_lines:]:
            j = f" jail={ev.jail}" if ev.jail else ""
            ip = f" {ev.ip}" if ev.ip else ""
            out.append(f"{fmt_epoch_utc(ev.ts)} {ev.src:<7} {ev.kind:<4}{ip}{j} {ev.msg}")
        return out

    # ---- selection ----

    def selected_jail(self) -> Optional[JailState]:
        if self.selected_jail_index is None:
            return None
        if 0 <= self.selected_jail_index < len(self.jails):
            return self.jails[self.selected_jail_index]
        return None

    def projection(self) -> List[BanEntry]:
        return project(self.selected_jail(), self.search, self.sort_mode)

    def selected_entry(self) -> Optional[BanEntry]:
        proj = self.projection()
        if self.selected_row_index is None or not (0 <= self.selected_row_index < len(proj)):
            return None
        return proj[self.selected_row_index]

    def _jail_by_name(self, name: str) -> Optional[JailState]:
        for jail in self.jails:
            if jail.name == name:
                return jail
        return None

    def _reset_rows(self) -> None:
        self.selected_row_index = 0 if self.projection() else None

    def _clamp_row(self) -> None:
        n = len(self.projection())
        if n == 0:
            self.selected_row_index = None
        else:
            self.selected_row_index = clamp(self.selected_row_index or 0, 0, n - 1)

    def move_jail(self, delta: int) -> None:
        if not self.jails:
            return
        cur = self.selected_jail_index or 0
        self.selected_jail_index = clamp(cur + delta, 0, len(self.jails) - 1)
        self._reset_rows()

    def move_row(self, delta: int) -> None:
        n = len(self.projection())
        if n == 0:
            self.selected_row_index = None
            return
        cur = self.selected_row_index or 0
        self.selected_row_index = clamp(cur + delta, 0, n - 1)

    def move(self, delta: int) -> None:
        if self.focus == Focus.JAILS:
            self.move_jail(delta)
        else:
            self.move_row(delta)

    def _page_size(self) -> int:
        rect = self.jails_rect if self.focus == Focus.JAILS else self.bans_rect
        if rect is None:
            return 10
        return max(1, rect.inner().height)

    # ---- snapshot ----

    def _replace_snapshot(self, jails: List[JailState], keep_selection: bool) -> None:
        prev_jail = self.selected_jail()
        prev_entry = self.selected_entry()
        self.jails = jails
        if not jails:
            self.selected_jail_index = None
            self.selected_row_index = None
            return
        self.selected_jail_index = 0
        self._reset_rows()
        if not keep_selection or prev_jail is None:
            return
        # re-derive the previous selection by identity, never by stale index
        for i, jail in enumerate(jails):
            if jail.name == prev_jail.name:
                self.selected_jail_index = i
                break
        self._reset_rows()
        if prev_entry is not None:
            for i, entry in enumerate(self.projection()):
                if entry.ip == prev_entry.ip:
                    self.selected_row_index = i
                    break

    def refresh(self, announce: bool = True, keep_selection: bool = False, now: Optional[float] = None) -> bool:
        """
        Replace the snapshot with a fresh one. On failure the previous
        snapshot stays untouched and the error goes to the status line.
        """
        self.last_refresh = time.monotonic() if now is None else now
        try:
            jails = self.fetcher.fetch()
        except ExternalToolError as e:
            self.log_sys("ERR", "", f"refresh failed: {e}", src="refresh")
            self.set_status(f"{REFRESH_FAILED}: {e}")
            return False

        for warning in self.fetcher.warnings:
            self.log_sys("WARN", "", warning, src="refresh")
        self._replace_snapshot(jails, keep_selection)
        self.last_refresh_wall = now_utc_str()
        total = sum(j.ban_count for j in jails)
        self.log_sys("INFO", "", f"refreshed: {len(jails)} jails, {total} banned", src="refresh")
        # a quiet refresh still replaces a stale failure message
        if announce or self.status.startswith(REFRESH_FAILED):
            if jails:
                self.set_status(f"Refreshed: {len(jails)} jails, {total} banned")
            else:
                self.set_status("No jails reported by fail2ban-client")
        return True

    def tick(self, now: Optional[float] = None) -> bool:
        """Auto-refresh when the interval has elapsed; True if a refresh ran."""
        if not self.auto_refresh:
            return False
        if now is None:
            now = time.monotonic()
        if now - self.last_refresh < self.refresh_interval:
            return False
        self.refresh(announce=False, keep_selection=True, now=now)
        return True

    # ---- commands ----

    def _command(self, jail: str, ip: str, *args: str) -> str:
        line = " ".join(args)
        self.log_sys("CMD", ip, line, jail=jail, src="cmd")
        try:
            return self.runner(*args)
        except ExternalToolError as e:
            self.log_sys("ERR", ip, f"{line} failed: {e}", jail=jail, src="cmd")
            raise

    def request_unban(self) -> None:
        jail = self.selected_jail()
        entry = self.selected_entry()
        if jail is None or entry is None:
            self.set_status("No banned IP selected")
            return
        self.modal = ConfirmUnban(jail=jail.name, ip=entry.ip)

    def request_unban_all(self) -> None:
        jail = self.selected_jail()
        if jail is None:
            self.set_status("No jail selected")
            return
        if not jail.bans:
            self.set_status(f"No banned IPs in {jail.name}")
            return
        self.modal = ConfirmUnbanAll(jail=jail.name, step=UnbanAllStep.FIRST)

    def request_ban(self) -> None:
        jail = self.selected_jail()
        if jail is None:
            self.set_status("No jail selected")
            return
        self.modal = NewBanInput(jail=jail.name)

    def cancel_modal(self) -> None:
        self.modal = None
        self.set_status("Action canceled")

    def confirm_unban(self, modal: ConfirmUnban) -> None:
        # closes whatever the outcome; a failed unban is reported, not retried
        self.modal = None
        try:
            self._command(modal.jail, modal.ip, "set", modal.jail, "unbanip", modal.ip)
        except ExternalToolError as e:
            self.set_status(f"Unban failed for {modal.ip}: {e}")
            return
        self.set_status(f"Unbanned {modal.ip} from {modal.jail}")
        self.refresh(announce=False)

    def unban_all(self, jail_name: str) -> None:
        self.modal = None
        jail = self._jail_by_name(jail_name)
        ips = [e.ip for e in jail.bans] if jail is not None else []
        removed = 0
        for start in range(0, len(ips), UNBAN_BATCH_SIZE):
            batch = ips[start:start + UNBAN_BATCH_SIZE]
            try:
                self._command(jail_name, "", "set", jail_name, "unbanip", *batch)
            except ExternalToolError as e:
                # earlier batches stay unbanned
                self.set_status(f"Unban all in {jail_name} failed after {removed} of {len(ips)} IPs: {e}")
                return
            removed += len(batch)
        self.set_status(f"Unbanned {removed} IPs from {jail_name}")
        self.refresh(announce=False)

    def submit_ban(self, modal: NewBanInput) -> None:
        text = modal.input.strip()
        if not text:
            self.modal = replace(modal, error="Enter an IP address")
            return
        if not is_ip_address(text):
            self.modal = replace(modal, error=f"Invalid IP address: {text!r}")
            return
        try:
            self._command(modal.jail, text, "set", modal.jail, "banip", text)
        except ExternalToolError as e:
            self.modal = replace(modal, error=str(e))
            return
        self.modal = None
        self.set_status(f"Banned {text} in {modal.jail}")
        self.refresh(announce=False)

    # ---- keyboard ----

    def handle_key(self, ch: int) -> bool:
        """Returns True when the application should exit."""
        if ch == KEY_CTRL_C:
            return True
        if self.log_view.open:
            self._handle_log_key(ch)
            return False
        if self.modal is not None:
            self._handle_modal_key(ch)
            return False
        if self.search_active:
            self._handle_search_key(ch)
            return False
        return self._handle_browse_key(ch)

    def _handle_browse_key(self, ch: int) -> bool:
        if ch in (ord("q"), ord("Q")):
            return True
        if ch in (ord("r"), ord("R")):
            self.refresh()
        elif ch == ord("a"):
            self.auto_refresh = not self.auto_refresh
            self.set_status(f"Auto-refresh {'on' if self.auto_refresh else 'off'}")
        elif ch == ord("s"):
            self.sort_mode = SortMode.BY_TIME_LEFT if self.sort_mode == SortMode.BY_IP else SortMode.BY_IP
            self._reset_rows()
            self.set_status(f"Sort by {self.sort_mode.value}")
        elif ch == ord("b"):
            self.request_ban()
        elif ch == ord("/"):
            self.search_active = True
            self.set_status("Type to filter, Enter apply, Esc stop editing")
        elif ch in (ord("c"), KEY_ESC):
            self.search = ""
            self._reset_rows()
            self.set_status("Filter cleared")
        elif ch == KEY_TAB:
            self.focus = Focus.BANS if self.focus == Focus.JAILS else Focus.JAILS
        elif ch in UP_KEYS:
            self.move(-1)
        elif ch in DOWN_KEYS:
            self.move(1)
        elif ch == curses.KEY_PPAGE:
            self.move(-self._page_size())
        elif ch == curses.KEY_NPAGE:
            self.move(self._page_size())
        elif ch == curses.KEY_HOME:
            self.move(-(1 << 30))
        elif ch == curses.KEY_END:
            self.move(1 << 30)
        elif ch in ENTER_KEYS:
            if self.focus == Focus.JAILS:
                self.focus = Focus.BANS
            else:
                self.request_unban()
        elif ch in (ord("u"), ord("U")):
            self.request_unban()
        elif ch == ord("X"):
            self.request_unban_all()
        elif ch == ord("l"):
            self.open_log_view()
        return False

    def _handle_search_key(self, ch: int) -> None:
        if ch in ENTER_KEYS:
            self.search_active = False
            self._reset_rows()
            self.set_status("Filter applied")
            return
        if ch == KEY_ESC:
            # stop editing; what was typed stays active
            self.search_active = False
            self._clamp_row()
            self.set_status("Filter canceled")
            return
        if ch in BACKSPACE_KEYS:
            self.search = self.search[:-1]
        else:
            c = _printable(ch)
            if c is None:
                return
            self.search += c
        self._clamp_row()

    def _handle_modal_key(self, ch: int) -> None:
        modal = self.modal
        if isinstance(modal, NewBanInput):
            self._handle_ban_input_key(modal, ch)
        elif isinstance(modal, ConfirmUnban):
            if ch in CONFIRM_KEYS:
                self.confirm_unban(modal)
            elif ch in CANCEL_KEYS:
                self.cancel_modal()
        elif isinstance(modal, ConfirmUnbanAll):
            if ch in CONFIRM_KEYS:
                if modal.step == UnbanAllStep.FIRST:
                    self.modal = replace(modal, step=UnbanAllStep.FINAL)
                    self.set_status(f"Unban all in {modal.jail}: second confirmation required")
                else:
                    self.unban_all(modal.jail)
            elif ch in CANCEL_KEYS:
                self.cancel_modal()
        else:
            raise TypeError(f"unhandled modal: {modal!r}")

    def _handle_ban_input_key(self, modal: NewBanInput, ch: int) -> None:
        if ch == KEY_ESC:
            self.cancel_modal()
        elif ch in ENTER_KEYS:
            self.submit_ban(modal)
        elif ch in BACKSPACE_KEYS:
            self.modal = replace(modal, input=modal.input[:-1], error=None)
        else:
            c = _printable(ch)
            if c is not None:
                self.modal = replace(modal, input=modal.input + c, error=None)

    # ---- event log viewer ----

    def open_log_view(self) -> None:
        ds = self.log_view
        ds.title = "event log"
        ds.lines = self.get_events_lines(max_lines=len(self.events)) or ["(no events)"]
        ds.cursor = len(ds.lines) - 1
        ds.offset = 0
        ds.open = True

    def _handle_log_key(self, ch: int) -> None:
        ds = self.log_view
        page = max(1, (self.jails_rect.height if self.jails_rect else 12) - 2)
        if ch in (KEY_ESC, ord("q"), ord("l")):
            ds.open = False
        elif ch in UP_KEYS:
            ds.cursor -= 1
        elif ch in DOWN_KEYS:
            ds.cursor += 1
        elif ch == curses.KEY_PPAGE:
            ds.cursor -= page
        elif ch == curses.KEY_NPAGE:
            ds.cursor += page
        elif ch == curses.KEY_HOME:
            ds.cursor = 0
        elif ch == curses.KEY_END:
            ds.cursor = max(0, len(ds.lines) - 1)
        ds.cursor = clamp(ds.cursor, 0, max(0, len(ds.lines) - 1))

    # ---- mouse ----

    @staticmethod
    def _list_index(rect: Optional[Rect], offset: int, x: int, y: int, n: int) -> Optional[int]:
        if rect is None or n == 0:
            return None
        inner = rect.inner()
        if not inner.contains(x, y):
            return None
        idx = offset + (y - inner.y)
        if idx >= n:
            return None
        return idx

    def _modal_confirm_key(self) -> int:
        if isinstance(self.modal, NewBanInput):
            return 10
        return ord("y")

    def handle_mouse(self, x: int, y: int, bstate: int) -> bool:
        if not bstate & LEFT_PRESS:
            return False
        if self.log_view.open or self.search_active:
            return False
        if self.modal is not None:
            if self.confirm_rect is not None and self.confirm_rect.contains(x, y):
                return self.handle_key(self._modal_confirm_key())
            if self.cancel_rect is not None and self.cancel_rect.contains(x, y):
                return self.handle_key(KEY_ESC)
            return False

        idx = self._list_index(self.jails_rect, self.jails_offset, x, y, len(self.jails))
        if idx is not None:
            self.focus = Focus.JAILS
            self.selected_jail_index = idx
            self._reset_rows()
            return False

        jail = self.selected_jail()
        proj = self.projection()
        idx = self._list_index(self.bans_rect, self.bans_offset, x, y, len(proj))
        if jail is not None and idx is not None:
            # a click on a ban is an unban request, not just a selection
            self.focus = Focus.BANS
            self.selected_row_index = idx
            self.modal = ConfirmUnban(jail=jail.name, ip=proj[idx].ip)
        return False

    # ---- query API for the renderer ----

    def total_banned(self) -> int:
        return sum(j.ban_count for j in self.jails)

    def header_lines(self) -> List[str]:
        updated = self.last_refresh_wall or "-"
        return [
            "Fail2Ban Sentinel  live jail scanner & remover",
            f"Jails: {len(self.jails)}  Total Banned: {human_int(self.total_banned())}  Updated: {updated}",
        ]

    def jail_rows(self) -> List[str]:
        return [f"{j.name}  [{j.ban_count}]" for j in self.jails]

    def ban_rows(self) -> List[str]:
        proj = self.projection()
        if not proj:
            return []
        width = max(len(e.ip) for e in proj)
        return [f"{e.ip:<{width}}  {time_left_label(e)}" for e in proj]

    def bans_title(self) -> str:
        jail = self.selected_jail()
        if jail is None:
            return "Banned IPs"
        shown = len(self.projection())
        if self.search:
            return f"Banned IPs - {jail.name} ({shown}/{jail.ban_count})"
        return f"Banned IPs - {jail.name} ({shown})"

    def detail_lines(self) -> List[str]:
        jail = self.selected_jail()
        if jail is None:
            return ["No jail selected"]
        lines = [
            f"Jail: {jail.name}",
            f"Currently banned: {_opt(jail.currently_banned)}",
            f"Total banned: {_opt(jail.total_banned)}",
            f"Ban time: {_time_value_str(jail.bantime)}",
            f"Find time: {_time_value_str(jail.findtime)}",
            f"Max retry: {_opt(jail.max_retry)}",
        ]
        entry = self.selected_entry()
        if entry is not None:
            lines.append("")
            lines.append(f"Selected: {entry.ip}")
            lines.append(f"  expires: {fmt_epoch_utc(entry.expiry_epoch)}")
            if entry.raw_time_text:
                lines.append(f"  raw: {entry.raw_time_text}")
        return lines

    def footer_lines(self) -> List[str]:
        cursor = "_" if self.search_active else ""
        auto = f"on ({self.refresh_interval:g}s)" if self.auto_refresh else "off"
        state = f"filter=/{self.search}{cursor}  sort={self.sort_mode.value}  auto={auto}"
        return [HELP, f"{state}   {self.status}"]

    def modal_view(self) -> Optional[Tuple[str, List[str], str, str]]:
        """(title, lines, confirm label, cancel label) of the open modal."""
        modal = self.modal
        if modal is None:
            return None
        if isinstance(modal, ConfirmUnban):
            return (
                "Confirm Unban",
                [f"Unban {modal.ip} from {modal.jail}?", "", "Press y/n or click a button"],
                "Confirm",
                "Cancel",
            )
        if isinstance(modal, ConfirmUnbanAll):
            jail = self._jail_by_name(modal.jail)
            n = jail.ban_count if jail is not None else 0
            if modal.step == UnbanAllStep.FIRST:
                return (
                    "Unban All",
                    [f"Unban ALL {n} IPs in {modal.jail}?", "", "A second confirmation follows"],
                    "Continue",
                    "Cancel",
                )
            return (
                "Unban All - Final",
                [f"Really unban all {n} IPs in {modal.jail}?", "", "This cannot be undone"],
                "Unban all",
                "Cancel",
            )
        if isinstance(modal, NewBanInput):
            lines = [f"Ban an IP in {modal.jail}", "", f"IP: {modal.input}_"]
            if modal.error:
                lines.append(f"Error: {modal.error}")
            return ("Ban IP", lines, "Ban", "Cancel")
        raise TypeError(f"unhandled modal: {modal!r}")
