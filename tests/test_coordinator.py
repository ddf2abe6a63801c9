import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from linkrot.workflows import coordinator as coordinator_module
from linkrot.workflows.coordinator import (
    LinkCoordinator,
    WorkerPoolError,
    chunk_size_for,
    partition,
    resolve_worker_count,
)
from linkrot.workflows.models import Broken, CheckerConfig, Ignored, LinkTask, SourceLocation
from linkrot.workflows.verifier import LinkVerifier


class RecordingVerifier(LinkVerifier):
    """Answers 404 for URLs under /dead/ or on dead.example, 200 otherwise."""

    requested = []
    lock = threading.Lock()

    async def _request(self, session, attempt, url):
        with RecordingVerifier.lock:
            RecordingVerifier.requested.append(url)
        if "dead.example" in url or "/dead/" in url:
            return 404
        return 200


@pytest.fixture(autouse=True)
def _reset_recorder():
    RecordingVerifier.requested = []
    yield
    RecordingVerifier.requested = []


def _thread_pool(workers):
    return ThreadPoolExecutor(max_workers=workers)


def _coordinator(**config_kwargs):
    return LinkCoordinator(
        CheckerConfig(**config_kwargs),
        verifier_factory=RecordingVerifier,
        executor_factory=_thread_pool,
    )


def test_duplicates_across_documents_become_one_task():
    lines = [
        (f"see https://dup.test/page line {i}", SourceLocation(f"doc{d}.md", i + 1))
        for d in range(5)
        for i in range(40)
    ]
    collected = _coordinator().collect_tasks(lines)
    assert collected.total_links == 200
    assert collected.unique_links == 1
    assert collected.documents == 5
    assert collected.tasks == [LinkTask("https://dup.test/page", SourceLocation("doc0.md", 1))]


def test_excluded_urls_never_reach_the_verifier():
    lines = [
        ("[a](https://example.com/x) http://localhost:3000/y", SourceLocation("a.md", 1)),
        ("[ok](https://ok.test/)", SourceLocation("a.md", 2)),
    ]
    report = _coordinator().run(lines)
    assert set(RecordingVerifier.requested) == {"https://ok.test/"}
    assert report.excluded_links == 2
    assert report.unique_links == 3
    assert report.ignored_links == 1


def test_dead_link_reported_once_with_first_location():
    lines = [
        ("[dead](https://dead.example/a)", SourceLocation("guide.md", 3)),
        ("again https://dead.example/a", SourceLocation("other.md", 9)),
    ]
    report = _coordinator().run(lines, total_files=2)
    assert report.broken_links == [Broken("https://dead.example/a", 404, SourceLocation("guide.md", 3))]
    assert report.total_broken_links == 1
    assert report.total_files == 2
    assert not report.success


def test_large_runs_are_distributed_and_merged():
    urls = [f"https://site.test/{'dead' if i % 3 == 0 else 'live'}/{i}" for i in range(30)]
    lines = [(url, SourceLocation("big.md", i + 1)) for i, url in enumerate(urls)]
    coordinator = _coordinator(worker_threshold=5, max_workers=2)
    report = coordinator.run(lines)
    assert {b.url for b in report.broken_links} == {u for u in urls if "/dead/" in u}
    assert report.ignored_links == 20
    assert set(RecordingVerifier.requested) == set(urls)
    # dead links get HEAD then GET, live ones only HEAD
    assert len(RecordingVerifier.requested) == 40


def test_executor_start_failure_is_fatal():
    def _broken_pool(workers):
        raise OSError("no processes for you")

    coordinator = LinkCoordinator(
        CheckerConfig(worker_threshold=1),
        verifier_factory=RecordingVerifier,
        executor_factory=_broken_pool,
    )
    with pytest.raises(WorkerPoolError):
        coordinator.check_urls(["https://a.test/1", "https://a.test/2"])


def test_chunk_failure_is_fatal():
    def _exploding_factory(config):
        raise RuntimeError("worker crashed")

    coordinator = LinkCoordinator(
        CheckerConfig(worker_threshold=1),
        verifier_factory=_exploding_factory,
        executor_factory=_thread_pool,
    )
    with pytest.raises(WorkerPoolError):
        coordinator.check_urls(["https://a.test/1", "https://a.test/2"])


def test_check_urls_uses_programmatic_locations():
    report = _coordinator().check_urls(["https://dead.example/a", "https://dead.example/a", "https://example.com/"])
    assert report.total_links == 3
    assert report.unique_links == 2
    assert report.excluded_links == 1
    assert report.broken_links == [Broken("https://dead.example/a", 404, SourceLocation("programmatic", 1))]
    assert report.to_dict()["totalBrokenLinks"] == 1


def test_check_url_returns_none_when_excluded():
    coordinator = _coordinator()
    assert coordinator.check_url("mailto:someone@mail.test") is None
    assert RecordingVerifier.requested == []
    assert coordinator.check_url("https://ok.test/") == Ignored("https://ok.test/")


def test_sizing_helpers():
    assert resolve_worker_count(CheckerConfig(max_workers=8), cpu_count=2) == 4
    assert resolve_worker_count(CheckerConfig(max_workers=3), cpu_count=16) == 3
    assert chunk_size_for(30, 2) == 10
    assert chunk_size_for(600, 4) == 50
    tasks = [LinkTask(f"https://a.test/{i}", SourceLocation("a.md", i)) for i in range(25)]
    chunks = partition(tasks, 10)
    assert [len(c) for c in chunks] == [10, 10, 5]


class OfflineVerifier(LinkVerifier):
    """Module-level stub so spawned worker processes can import it."""

    async def _request(self, session, attempt, url):
        return 404 if "/dead/" in url else 200


def test_large_run_on_real_process_pool():
    urls = [f"https://site.test/{'dead' if i % 5 == 0 else 'live'}/{i}" for i in range(60)]
    coordinator = LinkCoordinator(
        CheckerConfig(worker_threshold=5, max_workers=2),
        verifier_factory=OfflineVerifier,
    )
    report = coordinator.check_urls(urls)
    assert {b.url for b in report.broken_links} == {u for u in urls if "/dead/" in u}
    assert report.total_broken_links == 12
    assert report.ignored_links == 48


def test_units_receive_parent_log_level(monkeypatch):
    levels = []
    monkeypatch.setattr(coordinator_module, "_configure_unit_logging", levels.append)
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", logging.INFO)

    urls = [f"https://site.test/live/{i}" for i in range(12)]
    _coordinator(worker_threshold=5, max_workers=2).check_urls(urls)

    assert levels
    assert set(levels) == {logging.INFO}


def test_unconfigured_unit_gets_basic_config(monkeypatch):
    calls = []
    monkeypatch.setattr(logging.getLogger(), "handlers", [])
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    coordinator_module._configure_unit_logging(logging.DEBUG)

    assert calls and calls[0]["level"] == logging.DEBUG
