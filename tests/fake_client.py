from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from fail2ban_client import ExternalToolError

STATUS_TWO = "Status\n|- Number of jail:\t2\n`- Jail list:\tnginx, sshd\n"
STATUS_ONE = "Status\n|- Number of jail:\t1\n`- Jail list:\tsshd\n"
STATUS_NONE = "Status\n|- Number of jail:\t0\n`- Jail list:\t\n"


def jail_status(ips: List[str], total: int = 0) -> str:
    return (
        "Status for the jail: x\n"
        "|- Filter\n"
        "|  |- Currently failed:\t0\n"
        "|  |- Total failed:\t3\n"
        "|  `- File list:\t/var/log/auth.log\n"
        "`- Actions\n"
        f"   |- Currently banned:\t{len(ips)}\n"
        f"   |- Total banned:\t{total or len(ips)}\n"
        f"   `- Banned IP list:\t{' '.join(ips)}\n"
    )


def jail_responses(name: str, bans: List[Tuple[str, str]], bantime: str = "600") -> Dict[Tuple[str, ...], object]:
    """Canned answers for every per-jail query; bans are (ip, time text) pairs."""
    with_time = "\n".join(f"{ip} \t{t}".rstrip() for ip, t in bans)
    return {
        ("status", name): jail_status([ip for ip, _ in bans]),
        ("get", name, "bantime"): f"{bantime}\n",
        ("get", name, "findtime"): "600\n",
        ("get", name, "maxretry"): "5\n",
        ("get", name, "banip", "--with-time"): with_time + "\n",
    }


class FakeRunner:
    """Stands in for Fail2banClient: maps argument tuples to output or errors and records calls."""
    def __init__(self, responses=None, fallback: Optional[Callable[..., str]] = None):
        self.responses: Dict[Tuple[str, ...], object] = dict(responses or {})
        self.fallback = fallback
        self.calls: List[Tuple[str, ...]] = []

    def __call__(self, *args: str) -> str:
        self.calls.append(args)
        if args in self.responses:
            resp = self.responses[args]
        elif self.fallback is not None:
            return self.fallback(*args)
        else:
            raise ExternalToolError(f"unexpected command: {' '.join(args)}", args, 255)
        if isinstance(resp, Exception):
            raise resp
        return str(resp)

    def count(self, *args: str) -> int:
        return sum(1 for c in self.calls if c == args)

    def calls_starting(self, *prefix: str) -> List[Tuple[str, ...]]:
        return [c for c in self.calls if c[: len(prefix)] == prefix]
