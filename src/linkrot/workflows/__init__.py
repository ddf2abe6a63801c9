"""High-level exports for the link verification workflows."""

from .auth_walls import AuthHeuristic, AuthWallRule
from .coordinator import (
    LinkCoordinator,
    LinkrotError,
    WorkerPoolError,
    check_lines,
    check_url,
    check_urls,
)
from .exclusion import ExclusionPolicy, ExclusionRule
from .extractor import LinkExtractor, extract_links
from .models import (
    Broken,
    CheckerConfig,
    Ignored,
    LinkTask,
    RunReport,
    Skipped,
    SourceLocation,
    VerificationOutcome,
)
from .normalizer import normalize_url, normalize_url_extended
from .verifier import LinkVerifier, retry_delay

__all__ = [
    "AuthHeuristic",
    "AuthWallRule",
    "Broken",
    "CheckerConfig",
    "ExclusionPolicy",
    "ExclusionRule",
    "Ignored",
    "LinkCoordinator",
    "LinkExtractor",
    "LinkTask",
    "LinkVerifier",
    "LinkrotError",
    "RunReport",
    "Skipped",
    "SourceLocation",
    "VerificationOutcome",
    "WorkerPoolError",
    "check_lines",
    "check_url",
    "check_urls",
    "extract_links",
    "normalize_url",
    "normalize_url_extended",
    "retry_delay",
]
