"""Strip authoring and markup residue from raw URL captures.

Each step is a (pattern, replacement) pair applied in order; later steps assume
the earlier ones already ran. The whole pipeline is repeated until the string
stops changing, so ``normalize_url(normalize_url(x)) == normalize_url(x)``.
Normalization never raises: unrecognized garbage comes back trimmed as far as
the rules allow, and the scheme check in the extractor is the only gate.
"""

from __future__ import annotations

import re
from typing import List, Pattern, Tuple

_Step = Tuple[Pattern[str], str]

_BASE_RULES = [
    # Quote-and-tag residue: \"..., \">..., unterminated <tag, trailing >...
    (r'\\"[^"]*$', ""),
    (r'\\">.*$', ""),
    (r"<[^>]*$", ""),
    (r">[^>]*$", ""),
    (r'\\".*$', ""),
    # Duplicated markdown link tail: ](...
    (r"\]\([^)]*$", ""),
    # Markdown image sizing: =WxH, =xH, =Wx
    (r"\s*=[0-9]+x[0-9]*$", ""),
    (r"\s*=x[0-9]+$", ""),
    # Trailing titles and stray quotes
    (r'\s*"[^"]*"$', ""),
    (r"\s*'[^']*'$", ""),
    (r'"\s*$', ""),
    (r"'\s*$", ""),
    (r">\s*$", ""),
    # Backticks
    (r"`+$", ""),
    (r"^`+", ""),
    # Trailing punctuation runs
    (r"[.,;!?]+$", ""),
]

_SCRIPT_RULES = [
    # "></script> and similar closing-tag remnants
    (r"""["']?\s*>?\s*</[A-Za-z][\w-]*>.*$""", ""),
    # Statement terminators with or without a trailing // comment
    (r"\s*;\s*//.*$", ""),
    (r";+\s*$", ""),
    # Object-literal arguments: ',{...  or  ",{...
    (r"""["']\s*,\s*\{.*$""", ""),
    # Prose after the URL that opens with a backtick-quoted phrase
    (r"\s+`[^`]*`.*$", ""),
]


def _compile(rules: List[Tuple[str, str]]) -> List[_Step]:
    return [(re.compile(pattern), repl) for pattern, repl in rules]


BASE_STEPS: List[_Step] = _compile(_BASE_RULES)
EXTENDED_STEPS: List[_Step] = _compile(_SCRIPT_RULES) + BASE_STEPS


def _apply(url: str, steps: List[_Step]) -> str:
    for pattern, repl in steps:
        url = pattern.sub(repl, url)
    return url.strip()


def _normalize(url: str, steps: List[_Step]) -> str:
    current = (url or "").strip()
    # Every step only removes text, so this terminates.
    while True:
        cleaned = _apply(current, steps)
        if cleaned == current:
            return cleaned
        current = cleaned


def normalize_url(url: str) -> str:
    """Return ``url`` with markdown/HTML residue removed."""

    return _normalize(url, BASE_STEPS)


def normalize_url_extended(url: str) -> str:
    """Like :func:`normalize_url`, but also strips embedded script fragments."""

    return _normalize(url, EXTENDED_STEPS)


def is_http_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


__all__ = [
    "BASE_STEPS",
    "EXTENDED_STEPS",
    "normalize_url",
    "normalize_url_extended",
    "is_http_url",
]
