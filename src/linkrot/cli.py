from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .runner import (
    EXIT_BROKEN,
    EXIT_FATAL,
    EXIT_INPUT_ERROR,
    EXIT_OK,
    load_manifest,
    render_report,
    run_check,
    run_url_list,
)
from .workflows.coordinator import LinkCoordinator, WorkerPoolError
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.models import Broken, CheckerConfig, Skipped

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """linkrot (markdown link checker)

Usage:
  linkrot check [TARGET] [--ignore-github-auth] [--explicit-links-only] [--report <FILE>] [--json] [--soft-fail]
  linkrot url <url>
  linkrot urls <urls.txt|-> [--report <FILE>] [--json] [--soft-fail]
  linkrot doctor

Common options:
  --ignore-github-auth   Skip GitHub pages that need a signed-in user.
  --explicit-links-only  Only check [text](url), <a href>, <img src> links.
  --report <FILE>        Always write the JSON report to FILE.
  --json                 Print the JSON report to stdout only.
  --soft-fail            Exit 0 even if broken links were found.

Discoverability:
  --help-full     Expanded help + env vars + exit codes.
  --find <query>  Search commands, flags, env vars.
  --doctor        Run environment diagnostics and exit.
"""


def _help_full() -> str:
    return """linkrot: find dead links in markdown documents

Commands:
  check    Walk a file or directory (*.md, skipping node_modules/.git) and check every link.
  url      Check a single URL.
  urls     Check URLs from a line-based manifest (file or stdin).
  doctor   Print environment diagnostics.

Reported as broken:
  404 Not Found, 410 Gone, DNS_ERROR (unknown host), CONNECTION_REFUSED (server down)

Never reported:
  403 Forbidden, 429 Too Many Requests, 5xx, timeouts and TLS errors

Tuning options (check/urls):
  --max-workers N       Cap on parallel worker processes (default 8).
  --timeout-ms N        Per-request timeout (default 15000).
  --max-retries N       Extra attempts after a network error (default 2).
  --batch-size N        Concurrent requests for small runs (default 100).
  --exclude REGEX       Extra exclusion rule (repeatable).
  --exclude-file FILE   JSON list of extra exclusion rules.
  --extended-cleanup    Also strip script fragments from captured URLs.

Environment variables:
  LINKROT_MAX_WORKERS, LINKROT_REQUEST_TIMEOUT_MS, LINKROT_MAX_RETRIES,
  LINKROT_BATCH_SIZE, LINKROT_RETRY_BASE_DELAY_MS, LINKROT_UNIT_CONCURRENCY,
  LINKROT_IGNORE_AUTH_WALLS, LINKROT_EXPLICIT_LINKS_ONLY, LINKROT_EXTENDED_CLEANUP,
  LINKROT_EXCLUSIONS_PATH, LINKROT_REPORT_PATH

Exit codes:
  0 all links fine (or --soft-fail), 1 broken links, 2 input error, 3 fatal error
"""


_FIND_INDEX = [
    ("command", "check", "Check every link in markdown files under a target."),
    ("command", "url", "Check a single URL."),
    ("command", "urls", "Check URLs from a manifest file or stdin."),
    ("command", "doctor", "Print environment diagnostics."),
    ("flag", "--ignore-github-auth", "Skip GitHub pages behind login (403/404, settings, teams)."),
    ("flag", "--explicit-links-only", "Ignore bare URLs; only markdown/HTML links."),
    ("flag", "--extended-cleanup", "Strip script fragments from captured URLs."),
    ("flag", "--exclude", "Extra exclusion regex."),
    ("flag", "--exclude-file", "JSON list of extra exclusion rules."),
    ("flag", "--report", "Write the JSON report to this file."),
    ("flag", "--json", "Print the JSON report to stdout only."),
    ("flag", "--soft-fail", "Exit 0 even if links are broken."),
    ("flag", "--help-full", "Expanded help, env vars, exit codes."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("flag", "--doctor", "Run environment diagnostics and exit."),
    ("env", "LINKROT_MAX_WORKERS", "Cap on worker processes."),
    ("env", "LINKROT_REQUEST_TIMEOUT_MS", "Per-request timeout in milliseconds."),
    ("env", "LINKROT_MAX_RETRIES", "Retries after network errors."),
    ("env", "LINKROT_BATCH_SIZE", "Concurrency for small runs."),
    ("env", "LINKROT_IGNORE_AUTH_WALLS", "Enable the GitHub auth-wall heuristic."),
    ("env", "LINKROT_EXCLUSIONS_PATH", "JSON file with extra exclusion rules."),
    ("env", "LINKROT_REPORT_PATH", "Default report path."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else (logging.WARNING if quiet else logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def _build_config(
    *,
    ignore_github_auth: bool = False,
    explicit_links_only: bool = False,
    extended_cleanup: bool = False,
    max_workers: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    max_retries: Optional[int] = None,
    batch_size: Optional[int] = None,
    exclude: Optional[List[str]] = None,
    exclude_file: Optional[Path] = None,
) -> CheckerConfig:
    config = CheckerConfig.from_env(
        max_workers=max_workers,
        request_timeout_ms=timeout_ms,
        max_retries=max_retries,
        batch_size=batch_size,
        exclusions_path=exclude_file,
    )
    # Flags can only switch these on; the environment may already have.
    config.ignore_auth_walls = config.ignore_auth_walls or ignore_github_auth
    config.explicit_links_only = config.explicit_links_only or explicit_links_only
    config.extended_cleanup = config.extended_cleanup or extended_cleanup
    config.additional_exclusion_rules = list(exclude or [])
    return config


def _resolve_report_path(report: Optional[Path]) -> Optional[Path]:
    if report is not None:
        return report
    env_path = os.getenv("LINKROT_REPORT_PATH", "").strip()
    return Path(env_path) if env_path else None


def _load_coordinator(config: CheckerConfig, json_out: bool) -> LinkCoordinator:
    try:
        return LinkCoordinator(config)
    except (OSError, ValueError) as exc:
        if not json_out:
            typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT_ERROR)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run environment diagnostics and exit."),
) -> None:
    load_dotenv(override=False)
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if doctor:
        report = build_doctor_report()
        typer.echo(format_doctor_report(report))
        raise typer.Exit(code=0 if report.get("ok", True) else 2)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print environment diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("check", add_help_option=True)
def check_cmd(
    target: Path = typer.Argument(Path("."), help="Directory or markdown file to check."),
    ignore_github_auth: bool = typer.Option(False, "--ignore-github-auth", help="Skip GitHub pages behind login."),
    explicit_links_only: bool = typer.Option(False, "--explicit-links-only", help="Ignore bare URLs."),
    extended_cleanup: bool = typer.Option(False, "--extended-cleanup", help="Strip script fragments from URLs."),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", min=1, help="Cap on worker processes."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1, help="Per-request timeout."),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=0, help="Retries after network errors."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Concurrency for small runs."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Extra exclusion regex (repeatable)."),
    exclude_file: Optional[Path] = typer.Option(None, "--exclude-file", help="JSON list of exclusion rules."),
    report: Optional[Path] = typer.Option(None, "--report", help="Always write the JSON report here."),
    json_out: bool = typer.Option(False, "--json", help="Print the JSON report to stdout only."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if links are broken."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every checked URL."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings."),
) -> None:
    _configure_logging(verbose, quiet or json_out)
    config = _build_config(
        ignore_github_auth=ignore_github_auth,
        explicit_links_only=explicit_links_only,
        extended_cleanup=extended_cleanup,
        max_workers=max_workers,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        batch_size=batch_size,
        exclude=exclude,
        exclude_file=exclude_file,
    )
    coordinator = _load_coordinator(config, json_out)
    try:
        run_report, exit_code = run_check(
            target,
            config,
            report_path=_resolve_report_path(report),
            soft_fail=soft_fail,
            coordinator=coordinator,
        )
    except FileNotFoundError as exc:
        if not json_out:
            typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT_ERROR)
    except WorkerPoolError as exc:
        if not json_out:
            typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    if json_out:
        sys.stdout.write(json.dumps(run_report.to_dict(), ensure_ascii=False) + "\n")
    else:
        typer.echo(render_report(run_report))
    raise typer.Exit(code=exit_code)


@app.command("url", add_help_option=True)
def url_cmd(
    url: str = typer.Argument(..., help="URL to check."),
    ignore_github_auth: bool = typer.Option(False, "--ignore-github-auth", help="Skip GitHub pages behind login."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1, help="Per-request timeout."),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=0, help="Retries after network errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log retries and decisions."),
) -> None:
    _configure_logging(verbose, False)
    config = _build_config(ignore_github_auth=ignore_github_auth, timeout_ms=timeout_ms, max_retries=max_retries)
    outcome = _load_coordinator(config, False).check_url(url)
    if outcome is None:
        typer.echo(f"excluded: {url}")
        raise typer.Exit(code=EXIT_OK)
    if isinstance(outcome, Broken):
        typer.echo(f"broken: {url} ({outcome.status})")
        raise typer.Exit(code=EXIT_BROKEN)
    if isinstance(outcome, Skipped):
        typer.echo(f"skipped: {url} ({outcome.reason})")
    else:
        typer.echo(f"ok: {url}")
    raise typer.Exit(code=EXIT_OK)


@app.command("urls", add_help_option=True)
def urls_cmd(
    path_or_dash: str = typer.Argument(..., help="Path to manifest or '-' for stdin."),
    ignore_github_auth: bool = typer.Option(False, "--ignore-github-auth", help="Skip GitHub pages behind login."),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", min=1, help="Cap on worker processes."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1, help="Per-request timeout."),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", min=0, help="Retries after network errors."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Concurrency for small runs."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Extra exclusion regex (repeatable)."),
    exclude_file: Optional[Path] = typer.Option(None, "--exclude-file", help="JSON list of exclusion rules."),
    report: Optional[Path] = typer.Option(None, "--report", help="Always write the JSON report here."),
    json_out: bool = typer.Option(False, "--json", help="Print the JSON report to stdout only."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if links are broken."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every checked URL."),
) -> None:
    _configure_logging(verbose, json_out)
    try:
        urls = load_manifest(path_or_dash)
    except (OSError, ValueError) as exc:
        if not json_out:
            typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT_ERROR)
    config = _build_config(
        ignore_github_auth=ignore_github_auth,
        max_workers=max_workers,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        batch_size=batch_size,
        exclude=exclude,
        exclude_file=exclude_file,
    )
    coordinator = _load_coordinator(config, json_out)
    try:
        run_report, exit_code = run_url_list(
            urls,
            config,
            report_path=_resolve_report_path(report),
            soft_fail=soft_fail,
            coordinator=coordinator,
        )
    except WorkerPoolError as exc:
        if not json_out:
            typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    if json_out:
        sys.stdout.write(json.dumps(run_report.to_dict(), ensure_ascii=False) + "\n")
    else:
        typer.echo(render_report(run_report))
    raise typer.Exit(code=exit_code)
