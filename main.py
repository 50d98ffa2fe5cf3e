#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import argparse
import curses
import os
import sys

from app import App, AppConfig
from model import SortMode
from tui import run_tui

SORT_CHOICES = {"ip": SortMode.BY_IP, "time": SortMode.BY_TIME_LEFT}


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Fail2Ban Sentinel: live jail scanner & remover (ncurses TUI)")
    p.add_argument("--client", default="fail2ban-client", help="path to fail2ban-client")
    p.add_argument("--sudo", action="store_true", help="run fail2ban-client through 'sudo -n'")
    p.add_argument("--interval", type=float, default=5.0, help="auto-refresh interval seconds")
    p.add_argument("--auto-refresh", dest="auto_refresh", action="store_true", default=True, help="enable auto-refresh (default)")
    p.add_argument("--no-auto-refresh", dest="auto_refresh", action="store_false", help="disable auto-refresh")
    p.add_argument("--sort", choices=sorted(SORT_CHOICES), default="ip", help="initial sort of banned IPs")
    p.add_argument("--filter", default="", help="initial address filter")
    p.add_argument("--log-size", type=int, default=500, help="in-memory event log capacity")
    return p


def main(argv: list[str]) -> int:
    args = build_arg_parser().parse_args(argv)

    cfg = AppConfig(
        client=str(args.client),
        sudo=bool(args.sudo),
        refresh_interval=float(args.interval),
        auto_refresh=bool(args.auto_refresh),
        sort_mode=SORT_CHOICES[args.sort],
        search=str(args.filter),
        log_size=int(args.log_size),
    )

    # short escape delay so Esc closes modals promptly
    os.environ.setdefault("ESCDELAY", "25")

    app = App(cfg)
    try:
        curses.wrapper(lambda stdscr: run_tui(stdscr, app))
    except KeyboardInterrupt:
        pass
    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
