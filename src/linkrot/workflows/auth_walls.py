"""Auth-wall heuristic for collaboration platforms that hide pages behind login.

GitHub answers 404 (sometimes 403) for pages that exist but need a signed-in
user, so a 404 there is ambiguous between "gone" and "private". When enabled,
this heuristic resolves the ambiguity toward "skip".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Tuple
from urllib.parse import urlparse

from .checker_config import AUTH_WALL_HOSTS, AUTH_WALL_PATH_PATTERNS, AUTH_WALL_STATUS_CODES


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _canonical_host(host: str) -> str:
    host = host.strip().lower().rstrip(".")
    return host[4:] if host.startswith("www.") else host


@dataclass(frozen=True)
class AuthWallRule:
    host: str
    path: str
    _regex: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", _canonical_host(self.host))
        try:
            object.__setattr__(self, "_regex", re.compile(self.path))
        except re.error as exc:
            raise ValueError(f"Invalid auth-wall path regex {self.path!r}: {exc}") from exc

    def matches(self, host: str, path: str) -> bool:
        if _canonical_host(host) != self.host:
            return False
        return self._regex is not None and self._regex.search(path or "/") is not None

    @classmethod
    def parse(cls, raw: Any) -> "AuthWallRule":
        if isinstance(raw, AuthWallRule):
            return raw
        if isinstance(raw, Mapping) and raw.get("host") and raw.get("path"):
            return cls(str(raw["host"]), str(raw["path"]))
        raise ValueError(f"Unsupported auth-wall rule: {raw!r}")


class AuthHeuristic:
    """Decide whether a failed response on an auth-walled host should be skipped."""

    def __init__(
        self,
        rules: Iterable[Any] = AUTH_WALL_PATH_PATTERNS,
        *,
        hosts: Iterable[str] = AUTH_WALL_HOSTS,
        statuses: Iterable[int] = AUTH_WALL_STATUS_CODES,
        enabled: bool = True,
    ) -> None:
        self.rules: Tuple[AuthWallRule, ...] = tuple(AuthWallRule.parse(rule) for rule in rules)
        self.hosts = frozenset(_canonical_host(h) for h in hosts)
        self.statuses = frozenset(int(s) for s in statuses)
        self.enabled = enabled

    def is_auth_walled_host(self, url: str) -> bool:
        return _canonical_host(_host(url)) in self.hosts

    def matching_rules(self, url: str) -> List[AuthWallRule]:
        try:
            parsed = urlparse(url)
        except ValueError:
            return []
        host = parsed.hostname or ""
        return [rule for rule in self.rules if rule.matches(host, parsed.path)]

    def skip_reason(self, url: str, status: int) -> Optional[str]:
        """Return a skip reason, or None when normal status rules apply."""

        if not self.enabled or status < 400:
            return None
        if self.matching_rules(url):
            return "auth_wall_path"
        if status in self.statuses and self.is_auth_walled_host(url):
            return f"auth_wall_status_{status}"
        return None


__all__ = ["AuthWallRule", "AuthHeuristic"]
