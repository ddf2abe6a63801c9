"""Exclusion policy: URLs that must never be network-checked.

Rules are plain data (``{"kind": ..., "pattern": ...}``) evaluated as an
unordered set: any single match excludes the URL. Adding a rule never requires
touching the verifier.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Tuple

from .checker_config import DEFAULT_EXCLUSION_RULES

RULE_KINDS = ("prefix", "substring", "regex")


@dataclass(frozen=True)
class ExclusionRule:
    kind: str
    pattern: str
    _regex: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.kind not in RULE_KINDS:
            raise ValueError(f"Unknown exclusion rule kind: {self.kind!r}")
        if self.kind == "regex":
            try:
                object.__setattr__(self, "_regex", re.compile(self.pattern))
            except re.error as exc:
                raise ValueError(f"Invalid exclusion regex {self.pattern!r}: {exc}") from exc

    def matches(self, url: str) -> bool:
        if self.kind == "prefix":
            return url.startswith(self.pattern)
        if self.kind == "substring":
            return self.pattern in url
        return self._regex is not None and self._regex.search(url) is not None

    @classmethod
    def parse(cls, raw: Any) -> "ExclusionRule":
        """Accept a rule, a ``{"kind", "pattern"}`` mapping, or a bare regex string."""

        if isinstance(raw, ExclusionRule):
            return raw
        if isinstance(raw, str):
            return cls("regex", raw)
        if isinstance(raw, Mapping):
            kind = str(raw.get("kind") or "regex").strip().lower()
            pattern = raw.get("pattern")
            if not isinstance(pattern, str) or not pattern:
                raise ValueError(f"Exclusion rule needs a non-empty pattern: {dict(raw)!r}")
            return cls(kind, pattern)
        raise ValueError(f"Unsupported exclusion rule: {raw!r}")


def load_rules_file(path: Path) -> List[ExclusionRule]:
    """Load extra rules from a JSON list of rule mappings or regex strings."""

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid exclusion rules file {path}: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError(f"Exclusion rules file {path} must contain a JSON list")
    return [ExclusionRule.parse(item) for item in data]


class ExclusionPolicy:
    """Union of exclusion rules."""

    def __init__(self, rules: Iterable[Any] = ()) -> None:
        self.rules: Tuple[ExclusionRule, ...] = tuple(ExclusionRule.parse(rule) for rule in rules)

    @classmethod
    def default(cls, additional: Iterable[Any] = ()) -> "ExclusionPolicy":
        return cls([*DEFAULT_EXCLUSION_RULES, *additional])

    @classmethod
    def from_config(cls, config: Any) -> "ExclusionPolicy":
        extra: List[Any] = []
        exclusions_path = getattr(config, "exclusions_path", None)
        if exclusions_path is not None:
            extra.extend(load_rules_file(Path(exclusions_path)))
        extra.extend(getattr(config, "additional_exclusion_rules", None) or [])
        return cls.default(extra)

    def matching_rules(self, url: str) -> List[ExclusionRule]:
        return [rule for rule in self.rules if rule.matches(url)]

    def excludes(self, url: str) -> bool:
        return any(rule.matches(url) for rule in self.rules)

    def __len__(self) -> int:
        return len(self.rules)


__all__ = ["ExclusionRule", "ExclusionPolicy", "load_rules_file", "RULE_KINDS"]
