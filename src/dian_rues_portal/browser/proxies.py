from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyConfig:
    server: str
    username: str
    password: str

    def as_playwright(self) -> dict[str, str]:
        return {"server": self.server, "username": self.username, "password": self.password}


def parse_proxy(entry: str) -> ProxyConfig:
    """
    Parse a pool entry in `ip:port:username:password` form.
    """
    parts = (entry or "").strip().split(":")
    if len(parts) != 4 or not all(parts[:2]):
        raise ValueError(f"Proxy entry must look like ip:port:username:password (got {entry!r})")
    host, port, username, password = parts
    return ProxyConfig(server=f"http://{host}:{port}", username=username, password=password)


class ProxyPool:
    """
    Round-robin over a fixed list of proxies.

    The cursor lives for the process only; it starts at a random offset so short-lived
    processes do not all hammer the first entry.
    """

    def __init__(self, entries: Iterable[str], *, start: Optional[int] = None) -> None:
        self._proxies: list[ProxyConfig] = []
        for entry in entries:
            try:
                self._proxies.append(parse_proxy(entry))
            except ValueError:
                logger.warning("Skipping malformed proxy entry.")
        if start is None:
            start = random.randrange(len(self._proxies)) if self._proxies else 0
        self._cursor = start

    def __len__(self) -> int:
        return len(self._proxies)

    def next(self) -> Optional[ProxyConfig]:
        if not self._proxies:
            return None
        proxy = self._proxies[self._cursor % len(self._proxies)]
        self._cursor = (self._cursor + 1) % len(self._proxies)
        return proxy
