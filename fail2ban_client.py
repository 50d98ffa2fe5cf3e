#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# fail2ban_client.py

from __future__ import annotations

import subprocess
from typing import Callable, List, Optional, Sequence, Tuple

from model import BanEntry, JailState, TimeValue
from parsers import (
    parse_ban_counts,
    parse_banned_addresses_with_times,
    parse_banned_ip_list,
    parse_jail_names,
    parse_optional_int,
    parse_time_value,
)


class ExternalToolError(RuntimeError):
    def __init__(self, message: str, args_: Sequence[str] = (), returncode: Optional[int] = None):
        super().__init__(message)
        self.args_ = tuple(args_)
        self.returncode = returncode


Runner = Callable[..., str]


class Fail2banClient:
    """
    Runs the control tool synchronously and returns its stdout.
    Raises ExternalToolError when it cannot be started or exits non-zero.
    """
    def __init__(self, executable: str = "fail2ban-client", sudo: bool = False):
        self.executable = executable
        self.sudo = sudo

    def command(self, *args: str) -> List[str]:
        cmd = [self.executable, *args]
        if self.sudo:
            cmd = ["sudo", "-n", *cmd]
        return cmd

    def run(self, *args: str) -> str:
        cmd = self.command(*args)
        try:
            # undecodable bytes (e.g. a latin-1 log path) become U+FFFD
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ExternalToolError(f"failed to execute {self.executable}: {e}", args) from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            stdout = (proc.stdout or "").strip()
            msg = stderr or stdout or f"{self.executable} exited with status {proc.returncode}"
            raise ExternalToolError(msg, args, proc.returncode)
        return proc.stdout

    __call__ = run


class SnapshotFetcher:
    """
    Builds one snapshot (sorted list of JailState) from a sequence of
    control-tool queries. Only the top-level `status` failure is fatal;
    per-jail query failures fall back and are reported in `warnings`.
    """
    def __init__(self, runner: Runner):
        self.runner = runner
        self.warnings: List[str] = []

    def _query(self, *args: str) -> Optional[str]:
        try:
            return self.runner(*args)
        except ExternalToolError as e:
            self.warnings.append(f"{' '.join(args)}: {e}")
            return None

    def _time_value(self, jail: str, setting: str) -> TimeValue:
        out = self._query("get", jail, setting)
        if out is None:
            return TimeValue.not_available()
        return parse_time_value(out)

    def fetch_jail(self, jail: str) -> JailState:
        status = self._query("status", jail)
        current, total = parse_ban_counts(status) if status is not None else (None, None)

        bantime = self._time_value(jail, "bantime")
        findtime = self._time_value(jail, "findtime")
        maxretry_out = self._query("get", jail, "maxretry")
        max_retry = parse_optional_int(maxretry_out) if maxretry_out is not None else None

        with_time = self._query("get", jail, "banip", "--with-time")
        if with_time is not None:
            bans = parse_banned_addresses_with_times(with_time, bantime.seconds)
        else:
            bans = [BanEntry(ip=ip) for ip in parse_banned_ip_list(status or "")]

        return JailState(
            name=jail,
            bans=bans,
            bantime=bantime,
            findtime=findtime,
            max_retry=max_retry,
            currently_banned=current,
            total_banned=total,
        )

    def fetch(self) -> List[JailState]:
        self.warnings = []
        # a failing top-level status propagates: the caller keeps its last snapshot
        status = self.runner("status")
        jails = [self.fetch_jail(name) for name in parse_jail_names(status)]
        jails.sort(key=snapshot_order)
        return jails


def snapshot_order(jail: JailState) -> Tuple[int, str]:
    # busiest jail first, then by name
    return (-jail.ban_count, jail.name)
