#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class Focus(Enum):
    JAILS = "jails"
    BANS = "bans"


class SortMode(Enum):
    BY_IP = "ip"
    BY_TIME_LEFT = "time"


class UnbanAllStep(Enum):
    FIRST = "first"
    FINAL = "final"


@dataclass(frozen=True)
class TimeValue:
    raw_text: str
    seconds: Optional[int] = None

    @classmethod
    def not_available(cls) -> "TimeValue":
        return cls(raw_text="n/a", seconds=None)


@dataclass(frozen=True)
class BanEntry:
    ip: str
    expiry_epoch: Optional[int] = None
    raw_time_text: Optional[str] = None


@dataclass
class JailState:
    name: str
    bans: List[BanEntry] = field(default_factory=list)
    bantime: TimeValue = field(default_factory=TimeValue.not_available)
    findtime: TimeValue = field(default_factory=TimeValue.not_available)
    max_retry: Optional[int] = None
    currently_banned: Optional[int] = None
    total_banned: Optional[int] = None

    @property
    def ban_count(self) -> int:
        return len(self.bans)


# ---- modals (exactly one may be open) ----

@dataclass(frozen=True)
class ConfirmUnban:
    jail: str
    ip: str


@dataclass(frozen=True)
class ConfirmUnbanAll:
    jail: str
    step: UnbanAllStep = UnbanAllStep.FIRST


@dataclass(frozen=True)
class NewBanInput:
    jail: str
    input: str = ""
    error: Optional[str] = None


Modal = Union[ConfirmUnban, ConfirmUnbanAll, NewBanInput]


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def inner(self) -> "Rect":
        """Area inside a one-cell border."""
        return Rect(
            x=self.x + 1,
            y=self.y + 1,
            width=max(0, self.width - 2),
            height=max(0, self.height - 2),
        )


@dataclass
class Event:
    ts: int
    src: str            # "cmd" | "refresh" | "sys"
    kind: str           # "INFO" | "WARN" | "ERR" | "CMD"
    ip: str = ""
    jail: str = ""
    msg: str = ""


@dataclass
class DetailsState:
    open: bool = False
    title: str = ""
    lines: List[str] = field(default_factory=list)
    cursor: int = 0
    offset: int = 0
