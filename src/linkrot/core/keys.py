"""Shared report keys to avoid magic strings across linkrot modules."""

from __future__ import annotations

# Broken-link entry keys
K_URL = "url"
K_STATUS = "status"
K_FILE = "file"
K_LINE = "line"

# Run report keys (wire format kept stable for CI consumers)
K_TIMESTAMP = "timestamp"
K_TOTAL_FILES = "totalFiles"
K_TOTAL_LINKS = "totalLinks"
K_UNIQUE_LINKS = "uniqueLinks"
K_EXCLUDED_LINKS = "excludedLinks"
K_SKIPPED_LINKS = "skippedLinks"
K_IGNORED_LINKS = "ignoredLinks"
K_TOTAL_BROKEN = "totalBrokenLinks"
K_BROKEN_LINKS = "brokenLinks"
K_SUCCESS = "success"
