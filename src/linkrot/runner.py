from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple

from .workflows.checker_config import DEFAULT_REPORT_PATH, DOCUMENT_SUFFIXES, SKIP_DIRECTORIES
from .workflows.coordinator import LinkCoordinator
from .workflows.models import CheckerConfig, RunReport, SourceLocation

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BROKEN = 1
EXIT_INPUT_ERROR = 2
EXIT_FATAL = 3


def parse_manifest_lines(lines: Iterable[str]) -> List[str]:
    urls: List[str] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            continue
        if any(ch.isspace() for ch in line):
            raise ValueError(f"Invalid manifest line (inline metadata not allowed): {raw_line.rstrip()}")
        urls.append(line)
    return urls


def load_manifest(path_or_dash: str, *, stdin: Optional[TextIO] = None) -> List[str]:
    if path_or_dash == "-":
        stream = stdin or sys.stdin
        return parse_manifest_lines(stream.read().splitlines())
    path = Path(path_or_dash)
    if not path.exists():
        raise FileNotFoundError(f"Manifest not found: {path}")
    return parse_manifest_lines(path.read_text(encoding="utf-8").splitlines())


def find_documents(target: Path, suffixes: Sequence[str] = DOCUMENT_SUFFIXES) -> List[Path]:
    """Return markdown files under ``target`` (or ``target`` itself), skipping vendored dirs."""

    if not target.exists():
        raise FileNotFoundError(f"Target not found: {target}")
    if target.is_file():
        return [target] if target.name.endswith(tuple(suffixes)) else []
    found: List[Path] = []
    for entry in sorted(target.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            if entry.name in SKIP_DIRECTORIES:
                continue
            found.extend(find_documents(entry, suffixes))
        elif entry.is_file() and entry.name.endswith(tuple(suffixes)):
            found.append(entry)
    return found


def iter_document_lines(paths: Iterable[Path]) -> Iterator[Tuple[str, SourceLocation]]:
    """Yield ``(line, location)`` pairs; unreadable documents contribute nothing."""

    for path in paths:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Error reading file %s: %s", path, exc)
            continue
        for index, line in enumerate(content.split("\n"), start=1):
            yield line, SourceLocation(str(path), index)


def write_report(report: RunReport, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def render_report(report: RunReport) -> str:
    lines: List[str] = []
    if not report.broken_links:
        lines.append("All links are working!")
        lines.append(
            f"({report.unique_links} unique links, {report.excluded_links} excluded, "
            f"{report.skipped_links} skipped, {report.ignored_links} ignored)"
        )
        return "\n".join(lines) + "\n"
    lines.append(f"Found {report.total_broken_links} broken links:")
    for link in report.broken_links:
        lines.append(f"  - {link.url}")
        lines.append(f"    Status: {link.status}")
        lines.append(f"    File: {link.location}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def _exit_code(report: RunReport, soft_fail: bool) -> int:
    if report.broken_links and not soft_fail:
        return EXIT_BROKEN
    return EXIT_OK


def _maybe_write(report: RunReport, report_path: Optional[Path]) -> Optional[Path]:
    if report_path is None and not report.broken_links:
        return None
    path = report_path or DEFAULT_REPORT_PATH
    write_report(report, path)
    logger.info("Report saved to %s", path)
    return path


def run_check(
    target: Path,
    config: CheckerConfig,
    *,
    report_path: Optional[Path] = None,
    soft_fail: bool = False,
    coordinator: Optional[LinkCoordinator] = None,
) -> Tuple[RunReport, int]:
    """Check every markdown document under ``target``.

    The JSON report is written when links are broken, or always when
    ``report_path`` is given.
    """

    documents = find_documents(target)
    logger.info("Found %d markdown files", len(documents))
    coordinator = coordinator or LinkCoordinator(config)
    report = coordinator.run(iter_document_lines(documents), total_files=len(documents))
    _maybe_write(report, report_path)
    return report, _exit_code(report, soft_fail)


def run_url_list(
    urls: Sequence[str],
    config: CheckerConfig,
    *,
    report_path: Optional[Path] = None,
    soft_fail: bool = False,
    coordinator: Optional[LinkCoordinator] = None,
) -> Tuple[RunReport, int]:
    coordinator = coordinator or LinkCoordinator(config)
    report = coordinator.check_urls(urls)
    _maybe_write(report, report_path)
    return report, _exit_code(report, soft_fail)
