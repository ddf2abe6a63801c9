from __future__ import annotations

import asyncio
import errno
import logging
import socket
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional, Tuple

import aiohttp

from .auth_walls import AuthHeuristic
from .checker_config import BROKEN_STATUS_CODES, CONNECTION_REFUSED, DNS_ERROR, METHOD_NOT_ALLOWED
from .models import (
    Broken,
    CheckAttempt,
    CheckerConfig,
    ChunkResult,
    Ignored,
    LinkTask,
    Skipped,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)

# Failures that leave us without any HTTP response; these are retried.
NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)

ProgressHook = Callable[[int, int, LinkTask, VerificationOutcome], None]


def retry_delay(attempt: int, base: float) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1-based): base, 2*base, ..."""

    return base * max(1, attempt)


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    stack = [exc]
    while stack:
        err = stack.pop()
        if err is None or id(err) in seen:
            continue
        seen.add(id(err))
        yield err
        stack.extend([getattr(err, "os_error", None), err.__cause__, err.__context__])


def classify_network_error(exc: BaseException) -> Optional[str]:
    """Return DNS_ERROR / CONNECTION_REFUSED for conclusive failures, else None."""

    for err in _error_chain(exc):
        if isinstance(err, socket.gaierror):
            return DNS_ERROR
        if isinstance(err, ConnectionRefusedError) or getattr(err, "errno", None) == errno.ECONNREFUSED:
            return CONNECTION_REFUSED
    return None


class LinkVerifier:
    """HEAD-then-GET reachability check with linear retry backoff.

    Outcomes are asymmetric: only 404/410, DNS failure and
    connection refusal are Broken; every other status or unresolved error is
    Ignored.
    """

    def __init__(
        self,
        config: CheckerConfig,
        *,
        auth_heuristic: Optional[AuthHeuristic] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.config = config
        self.auth = auth_heuristic or AuthHeuristic(enabled=config.ignore_auth_walls)
        self._sleep = sleep or asyncio.sleep

    def _open_session(self, limit: int) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(limit=limit)
        headers = {"User-Agent": self.config.user_agent}
        return aiohttp.ClientSession(connector=connector, headers=headers)

    async def _request(self, session: aiohttp.ClientSession, attempt: CheckAttempt, url: str) -> int:
        timeout = aiohttp.ClientTimeout(total=attempt.timeout)
        async with session.request(attempt.method, url, timeout=timeout, allow_redirects=True) as resp:
            return resp.status

    async def _probe(self, session: aiohttp.ClientSession, url: str, attempt_no: int) -> int:
        timeout = self.config.request_timeout
        status = await self._request(session, CheckAttempt("HEAD", attempt_no, timeout), url)
        if not 200 <= status < 300 and status != METHOD_NOT_ALLOWED:
            status = await self._request(session, CheckAttempt("GET", attempt_no, timeout), url)
        return status

    def resolve_status(self, task: LinkTask, status: int) -> VerificationOutcome:
        reason = self.auth.skip_reason(task.url, status)
        if reason:
            logger.debug("Skipping %s (%s, status %s)", task.url, reason, status)
            return Skipped(task.url, reason)
        if status in BROKEN_STATUS_CODES:
            return Broken(task.url, status, task.location)
        return Ignored(task.url)

    def resolve_error(self, task: LinkTask, exc: BaseException) -> VerificationOutcome:
        kind = classify_network_error(exc)
        if kind:
            return Broken(task.url, kind, task.location)
        logger.debug("Giving up on %s after %s: %s", task.url, type(exc).__name__, exc)
        return Ignored(task.url)

    async def _verify(self, session: aiohttp.ClientSession, task: LinkTask) -> VerificationOutcome:
        max_attempts = self.config.max_retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                status = await self._probe(session, task.url, attempt)
            except (aiohttp.InvalidURL, ValueError) as exc:
                logger.debug("Not a requestable URL %s: %s", task.url, exc)
                return Ignored(task.url)
            except NETWORK_ERRORS as exc:
                if attempt >= max_attempts:
                    return self.resolve_error(task, exc)
                logger.info("  Retry %d/%d: %s", attempt, self.config.max_retries, task.url)
                await self._sleep(retry_delay(attempt, self.config.retry_base_delay))
                continue
            return self.resolve_status(task, status)
        return Ignored(task.url)

    async def verify(self, session: aiohttp.ClientSession, task: LinkTask) -> VerificationOutcome:
        """Check one task; never raises for per-URL failures."""

        try:
            return await self._verify(session, task)
        except Exception as exc:
            logger.warning("Unexpected error while checking %s: %s", task.url, exc)
            return Ignored(task.url)

    async def verify_one(self, task: LinkTask) -> VerificationOutcome:
        async with self._open_session(1) as session:
            return await self.verify(session, task)

    async def verify_many(
        self,
        tasks: Iterable[LinkTask],
        *,
        concurrency: Optional[int] = None,
        progress_hook: Optional[ProgressHook] = None,
    ) -> ChunkResult:
        """Check ``tasks`` with at most ``concurrency`` requests in flight."""

        pending_tasks = list(tasks)
        result = ChunkResult()
        if not pending_tasks:
            return result
        limit = max(1, concurrency or self.config.unit_concurrency)
        semaphore = asyncio.Semaphore(limit)

        async with self._open_session(limit) as session:

            async def _bounded(task: LinkTask) -> Tuple[LinkTask, VerificationOutcome]:
                async with semaphore:
                    logger.debug("Checking: %s", task.url)
                    return task, await self.verify(session, task)

            futures = [asyncio.create_task(_bounded(task)) for task in pending_tasks]
            total = len(futures)
            step = max(1, total // 10)
            completed = 0
            for future in asyncio.as_completed(futures):
                task, outcome = await future
                result.add(outcome)
                completed += 1
                if completed % step == 0 or completed == total:
                    logger.info("Progress: %d%% (%d/%d)", completed * 100 // total, completed, total)
                if progress_hook is not None:
                    try:
                        progress_hook(completed, total, task, outcome)
                    except Exception as exc:
                        logger.debug("Progress hook failed: %s", exc)
        return result


__all__ = [
    "LinkVerifier",
    "NETWORK_ERRORS",
    "classify_network_error",
    "retry_delay",
]
