"""Run-wide deduplication and work distribution for link verification.

Small runs are checked in the calling event loop. Larger runs are split into
chunks and fanned out to a process pool; every execution unit runs its own
event loop and HTTP session and hands back one aggregated ChunkResult (only
Broken outcomes plus counters) per chunk.
"""

from __future__ import annotations

import asyncio
import logging
import math
import multiprocessing
import os
import sys
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .checker_config import CHUNKS_PER_WORKER, MIN_CHUNK_SIZE, WORKERS_PER_CPU
from .exclusion import ExclusionPolicy
from .extractor import LinkExtractor
from .models import (
    PROGRAMMATIC_FILE,
    CheckerConfig,
    ChunkResult,
    LinkTask,
    RunReport,
    SourceLocation,
    VerificationOutcome,
)
from .verifier import LinkVerifier

logger = logging.getLogger(__name__)

VerifierFactory = Callable[[CheckerConfig], LinkVerifier]
ExecutorFactory = Callable[[int], Executor]


class LinkrotError(RuntimeError):
    """Base class for run-level failures."""


class WorkerPoolError(LinkrotError):
    """The execution-unit pool could not be started or broke mid-run."""


def resolve_worker_count(config: CheckerConfig, cpu_count: Optional[int] = None) -> int:
    cpus = cpu_count or os.cpu_count() or 1
    return max(1, min(config.max_workers, cpus * WORKERS_PER_CPU))


def chunk_size_for(total: int, workers: int) -> int:
    return max(MIN_CHUNK_SIZE, math.ceil(total / (max(1, workers) * CHUNKS_PER_WORKER)))


def partition(tasks: Sequence[LinkTask], size: int) -> List[List[LinkTask]]:
    size = max(1, size)
    return [list(tasks[i:i + size]) for i in range(0, len(tasks), size)]


def default_executor(workers: int) -> Executor:
    # spawn: children must not inherit the parent's running event loop
    return ProcessPoolExecutor(max_workers=workers, mp_context=multiprocessing.get_context("spawn"))


def _configure_unit_logging(level: int) -> None:
    # A spawned unit starts with an unconfigured root logger.
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def _run_chunk(
    chunk: List[LinkTask],
    config: CheckerConfig,
    verifier_factory: VerifierFactory,
    log_level: int = logging.WARNING,
) -> ChunkResult:
    """Entry point of one execution unit."""

    _configure_unit_logging(log_level)
    verifier = verifier_factory(config)
    return asyncio.run(verifier.verify_many(chunk, concurrency=config.unit_concurrency))


@dataclass
class CollectedTasks:
    """Deduplicated tasks plus the counters gathered while building them."""

    tasks: List[LinkTask]
    total_links: int = 0
    unique_links: int = 0
    excluded_links: int = 0
    documents: int = 0


class LinkCoordinator:
    """Own the dedup set for one run and choose an execution strategy by volume."""

    def __init__(
        self,
        config: Optional[CheckerConfig] = None,
        *,
        exclusion_policy: Optional[ExclusionPolicy] = None,
        verifier_factory: VerifierFactory = LinkVerifier,
        executor_factory: ExecutorFactory = default_executor,
    ) -> None:
        self.config = config or CheckerConfig()
        self.exclusion_policy = exclusion_policy or ExclusionPolicy.from_config(self.config)
        self.extractor = LinkExtractor(
            explicit_links_only=self.config.explicit_links_only,
            extended_cleanup=self.config.extended_cleanup,
        )
        self.verifier_factory = verifier_factory
        self.executor_factory = executor_factory

    def _admit(
        self,
        url: str,
        location: SourceLocation,
        seen: Dict[str, LinkTask],
        excluded: Set[str],
    ) -> None:
        if url in seen or url in excluded:
            return
        if self.exclusion_policy.excludes(url):
            excluded.add(url)
            return
        seen[url] = LinkTask(url, location)

    def collect_tasks(self, lines: Iterable[Tuple[str, SourceLocation]]) -> CollectedTasks:
        """Extract, exclude and deduplicate; the first location of a URL wins."""

        seen: Dict[str, LinkTask] = {}
        excluded: Set[str] = set()
        files: Set[str] = set()
        total = 0
        for text, location in lines:
            files.add(location.file)
            for url in self.extractor.extract(text):
                total += 1
                self._admit(url, location, seen, excluded)
        logger.info("Found %d total links (%d unique, %d excluded)", total, len(seen) + len(excluded), len(excluded))
        return CollectedTasks(
            tasks=list(seen.values()),
            total_links=total,
            unique_links=len(seen) + len(excluded),
            excluded_links=len(excluded),
            documents=len(files),
        )

    def collect_url_tasks(self, urls: Iterable[str]) -> CollectedTasks:
        """Build tasks from an explicit URL list, bypassing extraction."""

        seen: Dict[str, LinkTask] = {}
        excluded: Set[str] = set()
        total = 0
        for index, raw in enumerate(urls):
            url = (raw or "").strip()
            if not url:
                continue
            total += 1
            self._admit(url, SourceLocation(PROGRAMMATIC_FILE, index + 1), seen, excluded)
        return CollectedTasks(
            tasks=list(seen.values()),
            total_links=total,
            unique_links=len(seen) + len(excluded),
            excluded_links=len(excluded),
        )

    async def verify_tasks(self, tasks: Sequence[LinkTask]) -> ChunkResult:
        if len(tasks) <= self.config.worker_threshold:
            logger.info("Checking %d links in a single pool of %d", len(tasks), self.config.batch_size)
            verifier = self.verifier_factory(self.config)
            return await verifier.verify_many(tasks, concurrency=self.config.batch_size)
        return await self._verify_with_workers(tasks)

    async def _verify_with_workers(self, tasks: Sequence[LinkTask]) -> ChunkResult:
        workers = resolve_worker_count(self.config)
        size = chunk_size_for(len(tasks), workers)
        chunks = partition(tasks, size)
        logger.info("Using %d workers with %d chunks (%d tasks per chunk)", workers, len(chunks), size)
        try:
            executor = self.executor_factory(workers)
        except (OSError, ValueError, NotImplementedError, ImportError) as exc:
            raise WorkerPoolError(f"Unable to start {workers} worker(s): {exc}") from exc

        merged = ChunkResult()
        loop = asyncio.get_running_loop()
        log_level = logging.getLogger().getEffectiveLevel()
        try:
            try:
                futures = [
                    loop.run_in_executor(executor, _run_chunk, chunk, self.config, self.verifier_factory, log_level)
                    for chunk in chunks
                ]
            except (OSError, RuntimeError) as exc:
                raise WorkerPoolError(f"Unable to submit work to the worker pool: {exc}") from exc
            for future in asyncio.as_completed(futures):
                try:
                    chunk_result = await future
                except Exception as exc:
                    raise WorkerPoolError(f"Worker pool failed: {exc}") from exc
                merged.merge(chunk_result)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return merged

    def _build_report(self, collected: CollectedTasks, result: ChunkResult, total_files: Optional[int]) -> RunReport:
        report = RunReport(
            broken_links=list(result.broken),
            total_files=collected.documents if total_files is None else total_files,
            total_links=collected.total_links,
            unique_links=collected.unique_links,
            excluded_links=collected.excluded_links,
            skipped_links=result.skipped,
            ignored_links=result.ignored,
        )
        logger.info(
            "Link check completed: %d broken, %d skipped, %d ignored",
            report.total_broken_links,
            report.skipped_links,
            report.ignored_links,
        )
        return report

    async def run_async(
        self,
        lines: Iterable[Tuple[str, SourceLocation]],
        *,
        total_files: Optional[int] = None,
    ) -> RunReport:
        collected = self.collect_tasks(lines)
        result = await self.verify_tasks(collected.tasks)
        return self._build_report(collected, result, total_files)

    def run(self, lines: Iterable[Tuple[str, SourceLocation]], *, total_files: Optional[int] = None) -> RunReport:
        """Full pipeline over ``(text, location)`` lines."""

        return asyncio.run(self.run_async(lines, total_files=total_files))

    async def check_urls_async(self, urls: Iterable[str]) -> RunReport:
        collected = self.collect_url_tasks(urls)
        result = await self.verify_tasks(collected.tasks)
        return self._build_report(collected, result, 0)

    def check_urls(self, urls: Iterable[str]) -> RunReport:
        """Batch check of an explicit URL list."""

        return asyncio.run(self.check_urls_async(urls))

    async def check_url_async(self, url: str) -> Optional[VerificationOutcome]:
        url = (url or "").strip()
        if self.exclusion_policy.excludes(url):
            logger.debug("Excluded by policy: %s", url)
            return None
        verifier = self.verifier_factory(self.config)
        return await verifier.verify_one(LinkTask(url, SourceLocation(PROGRAMMATIC_FILE, 1)))

    def check_url(self, url: str) -> Optional[VerificationOutcome]:
        """Check a single URL; returns None when the URL is excluded."""

        return asyncio.run(self.check_url_async(url))


def check_url(url: str, config: Optional[CheckerConfig] = None) -> Optional[VerificationOutcome]:
    return LinkCoordinator(config).check_url(url)


def check_urls(urls: Iterable[str], config: Optional[CheckerConfig] = None) -> RunReport:
    return LinkCoordinator(config).check_urls(urls)


def check_lines(
    lines: Iterable[Tuple[str, SourceLocation]],
    config: Optional[CheckerConfig] = None,
    *,
    total_files: Optional[int] = None,
) -> RunReport:
    return LinkCoordinator(config).run(lines, total_files=total_files)


__all__ = [
    "CollectedTasks",
    "LinkCoordinator",
    "LinkrotError",
    "WorkerPoolError",
    "check_lines",
    "check_url",
    "check_urls",
    "chunk_size_for",
    "default_executor",
    "partition",
    "resolve_worker_count",
]
