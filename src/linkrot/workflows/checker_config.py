"""Link checker defaults (thresholds, status codes, exclusion and auth-wall data).

Centralizes static defaults so the verifier and coordinator carry no embedded
magic strings. These are baseline constants used to build a CheckerConfig and
an ExclusionPolicy; callers can append their own rules on top of them.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_USER_AGENT = "linkrot/0.1.0"
DEFAULT_REPORT_PATH = Path("link-check-report.json")

# Verifier defaults
REQUEST_TIMEOUT_MS = 15000
MAX_RETRIES = 2
RETRY_BASE_DELAY_MS = 1000

# Only these statuses condemn a link; everything else (403, 429, 5xx, ...) passes.
BROKEN_STATUS_CODES = frozenset({404, 410})
METHOD_NOT_ALLOWED = 405
DNS_ERROR = "DNS_ERROR"
CONNECTION_REFUSED = "CONNECTION_REFUSED"

# Coordinator defaults
WORKER_THRESHOLD = 50
BATCH_SIZE = 100
MAX_WORKERS = 8
WORKERS_PER_CPU = 2
CHUNKS_PER_WORKER = 3
MIN_CHUNK_SIZE = 10
UNIT_CONCURRENCY = 20

# Document discovery
DOCUMENT_SUFFIXES = (".md",)
SKIP_DIRECTORIES = frozenset({"node_modules", ".git"})

# Exclusion rules: any single match drops the URL before it is checked.
DEFAULT_EXCLUSION_RULES = [
    # Non-http schemes and in-page anchors
    {"kind": "prefix", "pattern": "mailto:"},
    {"kind": "prefix", "pattern": "tel:"},
    {"kind": "prefix", "pattern": "#"},
    {"kind": "prefix", "pattern": "javascript:"},
    # Loopback hosts
    {"kind": "substring", "pattern": "localhost"},
    {"kind": "substring", "pattern": "127.0.0.1"},
    # Placeholder domains and values
    {"kind": "substring", "pattern": "example.com"},
    {"kind": "substring", "pattern": "hoge.com"},
    {"kind": "substring", "pattern": "APP_PATH"},
    {"kind": "substring", "pattern": "hook.us1.make.com/xxxxx"},
    {"kind": "substring", "pattern": "xxxxx"},
    {"kind": "substring", "pattern": "xxxx.github.io"},
    # Template syntax
    {"kind": "regex", "pattern": r"your-.*-id"},
    {"kind": "regex", "pattern": r"your-[\w-]+"},
    {"kind": "regex", "pattern": r"\{\{.*\}\}"},
    {"kind": "regex", "pattern": r"\{[\w-]+\}"},
    {"kind": "regex", "pattern": r"\[[\w\s]+\]"},
    # Japanese documentation placeholders (user name, repository name, "here")
    {"kind": "substring", "pattern": "GitHubユーザー名"},
    {"kind": "substring", "pattern": "ユーザー名.github.io"},
    {"kind": "substring", "pattern": "[ユーザー名]"},
    {"kind": "substring", "pattern": "[リポジトリ名]"},
    {"kind": "substring", "pattern": "<ココ>"},
    {"kind": "regex", "pattern": r"github\.io.*リポジトリ名"},
]

# Auth walls: hosts where a 403/404 usually means "log in" rather than "gone".
AUTH_WALL_HOSTS = frozenset({"github.com", "www.github.com"})
AUTH_WALL_STATUS_CODES = frozenset({403, 404})
AUTH_WALL_PATH_PATTERNS = [
    {"host": "github.com", "path": r"^/orgs/[^/]+/(teams|people|settings|billing|dashboard)(/|$)"},
    {"host": "github.com", "path": r"^/organizations/[^/]+/settings(/|$)"},
    {"host": "github.com", "path": r"^/enterprises/[^/]+/settings(/|$)"},
    {"host": "github.com", "path": r"^/settings(/|$)"},
    {"host": "github.com", "path": r"^/notifications(/|$)"},
    {"host": "github.com", "path": r"^/codespaces(/|$)"},
    {"host": "github.com", "path": r"^/[^/]+/[^/]+/settings(/|$)"},
    {"host": "github.com", "path": r"^/[^/]+/[^/]+/security/advisories/new(/|$)"},
]
