from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .checker_config import DEFAULT_REPORT_PATH
from .coordinator import default_executor, resolve_worker_count
from .exclusion import ExclusionPolicy
from .models import CheckerConfig


def _check_writable(path: Path) -> bool:
    try:
        if path.exists():
            return os.access(path, os.W_OK)
        parent = path.parent if str(path.parent) else Path(".")
        if not parent.exists():
            return False
        return os.access(parent, os.W_OK)
    except OSError:
        return False


def _probe_pool(executor_factory: Callable[[int], Any]) -> Optional[str]:
    """Start and stop a one-worker pool; return an error string on failure."""

    try:
        executor = executor_factory(1)
        try:
            executor.submit(os.getpid).result(timeout=30)
        finally:
            executor.shutdown(wait=True)
    except Exception as exc:
        return f"{type(exc).__name__}: {exc}"
    return None


def build_doctor_report(
    *,
    config: Optional[CheckerConfig] = None,
    report_path: Optional[Path] = None,
    executor_factory: Callable[[int], Any] = default_executor,
) -> Dict[str, Any]:
    config = config or CheckerConfig.from_env()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = value
        report["checks"].append(entry)
        if not status and level in {"warn", "fatal"}:
            report["ok"] = False

    add_check("aiohttp", True, detail="HTTP client available", level="info", value=aiohttp.__version__)

    workers = resolve_worker_count(config)
    add_check(
        "workers",
        True,
        detail=f"cpu_count={os.cpu_count() or 1}, max_workers={config.max_workers}",
        level="info",
        value=str(workers),
    )

    pool_error = _probe_pool(executor_factory)
    add_check(
        "worker_pool",
        pool_error is None,
        detail=pool_error or "Process pool starts and answers",
        remedy="Large runs need a working process pool; check /dev/shm and process limits.",
        level="fatal",
    )

    if config.exclusions_path is not None:
        try:
            policy = ExclusionPolicy.from_config(config)
            add_check(
                "LINKROT_EXCLUSIONS_PATH",
                True,
                detail=f"{config.exclusions_path} ({len(policy)} rules total)",
                level="warn",
            )
        except (OSError, ValueError) as exc:
            add_check(
                "LINKROT_EXCLUSIONS_PATH",
                False,
                detail=f"{config.exclusions_path}: {exc}",
                remedy="Point LINKROT_EXCLUSIONS_PATH at a JSON list of rules.",
                level="warn",
            )
    else:
        add_check("LINKROT_EXCLUSIONS_PATH", True, detail="Using built-in exclusion rules", level="info")

    target = Path(report_path or os.getenv("LINKROT_REPORT_PATH") or DEFAULT_REPORT_PATH)
    add_check(
        "LINKROT_REPORT_PATH",
        _check_writable(target),
        detail=str(target),
        remedy="Create the report directory or set LINKROT_REPORT_PATH to a writable location.",
        level="warn",
    )

    add_check(
        "LINKROT_IGNORE_AUTH_WALLS",
        True,
        detail="GitHub auth-wall heuristic " + ("enabled" if config.ignore_auth_walls else "disabled"),
        level="info",
    )
    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("linkrot doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
