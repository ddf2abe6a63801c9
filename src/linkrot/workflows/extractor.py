"""Pull candidate URLs out of a single line of markdown/HTML text."""

from __future__ import annotations

import re
from typing import Callable, Set

from .normalizer import is_http_url, normalize_url, normalize_url_extended

# [label](target)
MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")
# [label](target1](target2) - a common authoring slip; the first target wins
DOUBLED_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\(([^)]+)\]\(([^)]+)\)")
IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE)
ANCHOR_HREF = re.compile(r"""<a[^>]+href=["']([^"']+)["'][^>]*>""", re.IGNORECASE)
# Bare URL, ends at whitespace or an unescaped ")"
BARE_URL = re.compile(r"https?://(?:\\.|[^\s)\\])+")


class LinkExtractor:
    """Apply the five surface patterns to a line and union the results."""

    def __init__(self, *, explicit_links_only: bool = False, extended_cleanup: bool = False) -> None:
        self.explicit_links_only = explicit_links_only
        self.normalize: Callable[[str], str] = normalize_url_extended if extended_cleanup else normalize_url

    def _keep_http(self, raw: str, links: Set[str]) -> None:
        url = self.normalize(raw)
        if is_http_url(url):
            links.add(url)

    def extract(self, line: str) -> Set[str]:
        links: Set[str] = set()
        if not line:
            return links
        for match in MARKDOWN_LINK.finditer(line):
            self._keep_http(match.group(2), links)
        for match in DOUBLED_MARKDOWN_LINK.finditer(line):
            self._keep_http(match.group(2), links)
        for match in IMG_SRC.finditer(line):
            self._keep_http(match.group(1), links)
        if not self.explicit_links_only:
            for match in BARE_URL.finditer(line):
                url = self.normalize(match.group(0))
                if url:
                    links.add(url)
        for match in ANCHOR_HREF.finditer(line):
            self._keep_http(match.group(1), links)
        return links


def extract_links(line: str, *, explicit_links_only: bool = False, extended_cleanup: bool = False) -> Set[str]:
    """Return the set of normalized URLs found on ``line``."""

    extractor = LinkExtractor(explicit_links_only=explicit_links_only, extended_cleanup=extended_cleanup)
    return extractor.extract(line)


__all__ = ["LinkExtractor", "extract_links"]
