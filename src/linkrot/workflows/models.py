"""Data model shared by the extractor, verifier and coordinator."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.keys import (
    K_BROKEN_LINKS,
    K_EXCLUDED_LINKS,
    K_FILE,
    K_IGNORED_LINKS,
    K_LINE,
    K_SKIPPED_LINKS,
    K_STATUS,
    K_SUCCESS,
    K_TIMESTAMP,
    K_TOTAL_BROKEN,
    K_TOTAL_FILES,
    K_TOTAL_LINKS,
    K_UNIQUE_LINKS,
    K_URL,
)
from .checker_config import (
    BATCH_SIZE,
    DEFAULT_USER_AGENT,
    MAX_RETRIES,
    MAX_WORKERS,
    REQUEST_TIMEOUT_MS,
    RETRY_BASE_DELAY_MS,
    UNIT_CONCURRENCY,
    WORKER_THRESHOLD,
)

PROGRAMMATIC_FILE = "programmatic"


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class LinkTask:
    url: str
    location: SourceLocation


@dataclass(frozen=True)
class Broken:
    url: str
    status: Union[int, str]
    location: SourceLocation

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_URL: self.url,
            K_STATUS: self.status,
            K_FILE: self.location.file,
            K_LINE: self.location.line,
        }


@dataclass(frozen=True)
class Skipped:
    url: str
    reason: str


@dataclass(frozen=True)
class Ignored:
    url: str


VerificationOutcome = Union[Broken, Skipped, Ignored]


@dataclass
class CheckAttempt:
    """Transient state of one HTTP request issued by the verifier."""

    method: str
    attempt: int
    timeout: float


@dataclass
class ChunkResult:
    """Aggregated result of one batch of tasks; only broken links are kept."""

    broken: List[Broken] = field(default_factory=list)
    skipped: int = 0
    ignored: int = 0

    def add(self, outcome: VerificationOutcome) -> None:
        if isinstance(outcome, Broken):
            self.broken.append(outcome)
        elif isinstance(outcome, Skipped):
            self.skipped += 1
        else:
            self.ignored += 1

    def merge(self, other: "ChunkResult") -> None:
        self.broken.extend(other.broken)
        self.skipped += other.skipped
        self.ignored += other.ignored


@dataclass
class CheckerConfig:
    """Configuration parameters for a link verification run."""

    max_workers: int = MAX_WORKERS
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    max_retries: int = MAX_RETRIES
    batch_size: int = BATCH_SIZE
    ignore_auth_walls: bool = False
    additional_exclusion_rules: List[Any] = field(default_factory=list)
    retry_base_delay_ms: int = RETRY_BASE_DELAY_MS
    unit_concurrency: int = UNIT_CONCURRENCY
    worker_threshold: int = WORKER_THRESHOLD
    explicit_links_only: bool = False
    extended_cleanup: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    exclusions_path: Optional[Path] = None

    @property
    def request_timeout(self) -> float:
        return max(0.001, self.request_timeout_ms / 1000.0)

    @property
    def retry_base_delay(self) -> float:
        return max(0.0, self.retry_base_delay_ms / 1000.0)

    @classmethod
    def from_env(cls, **overrides: Any) -> "CheckerConfig":
        """Build a config from LINKROT_* environment variables; keyword overrides win."""

        exclusions_env = os.getenv("LINKROT_EXCLUSIONS_PATH", "").strip()
        values: Dict[str, Any] = {
            "max_workers": max(1, _env_int("LINKROT_MAX_WORKERS", MAX_WORKERS)),
            "request_timeout_ms": max(1, _env_int("LINKROT_REQUEST_TIMEOUT_MS", REQUEST_TIMEOUT_MS)),
            "max_retries": max(0, _env_int("LINKROT_MAX_RETRIES", MAX_RETRIES)),
            "batch_size": max(1, _env_int("LINKROT_BATCH_SIZE", BATCH_SIZE)),
            "retry_base_delay_ms": max(0, _env_int("LINKROT_RETRY_BASE_DELAY_MS", RETRY_BASE_DELAY_MS)),
            "unit_concurrency": max(1, _env_int("LINKROT_UNIT_CONCURRENCY", UNIT_CONCURRENCY)),
            "ignore_auth_walls": _env_bool("LINKROT_IGNORE_AUTH_WALLS", "0"),
            "explicit_links_only": _env_bool("LINKROT_EXPLICIT_LINKS_ONLY", "0"),
            "extended_cleanup": _env_bool("LINKROT_EXTENDED_CLEANUP", "0"),
            "exclusions_path": Path(exclusions_env) if exclusions_env else None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass
class RunReport:
    """Final result of a run; built once by the coordinator."""

    broken_links: List[Broken] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    total_files: int = 0
    total_links: int = 0
    unique_links: int = 0
    excluded_links: int = 0
    skipped_links: int = 0
    ignored_links: int = 0

    @property
    def total_broken_links(self) -> int:
        return len(self.broken_links)

    @property
    def success(self) -> bool:
        return not self.broken_links

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_TIMESTAMP: self.timestamp,
            K_TOTAL_FILES: self.total_files,
            K_TOTAL_LINKS: self.total_links,
            K_UNIQUE_LINKS: self.unique_links,
            K_EXCLUDED_LINKS: self.excluded_links,
            K_SKIPPED_LINKS: self.skipped_links,
            K_IGNORED_LINKS: self.ignored_links,
            K_TOTAL_BROKEN: self.total_broken_links,
            K_BROKEN_LINKS: [link.to_dict() for link in self.broken_links],
            K_SUCCESS: self.success,
        }
