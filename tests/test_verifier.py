import asyncio
import errno
import socket
from typing import Callable, List, Tuple, Union

import aiohttp

from linkrot.workflows.checker_config import CONNECTION_REFUSED, DNS_ERROR
from linkrot.workflows.models import Broken, CheckerConfig, Ignored, LinkTask, Skipped, SourceLocation
from linkrot.workflows.verifier import LinkVerifier, classify_network_error, retry_delay

Script = Callable[[str, int], Union[int, BaseException]]


class ScriptedVerifier(LinkVerifier):
    """Verifier whose transport answers from a (method, attempt) script."""

    def __init__(self, config: CheckerConfig, script: Script) -> None:
        self.sleeps: List[float] = []
        self.calls: List[Tuple[str, int]] = []

        async def _record_sleep(delay: float) -> None:
            self.sleeps.append(delay)

        super().__init__(config, sleep=_record_sleep)
        self.script = script

    async def _request(self, session, attempt, url):
        self.calls.append((attempt.method, attempt.attempt))
        outcome = self.script(attempt.method, attempt.attempt)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _task(url: str = "https://dead.example/a") -> LinkTask:
    return LinkTask(url, SourceLocation("docs/readme.md", 7))


def _check(script: Script, url: str = "https://dead.example/a", **config_kwargs):
    verifier = ScriptedVerifier(CheckerConfig(**config_kwargs), script)
    outcome = asyncio.run(verifier.verify_one(_task(url)))
    return outcome, verifier


def test_retry_delay_is_linear():
    assert retry_delay(1, 1.0) == 1.0
    assert retry_delay(2, 1.0) == 2.0
    assert retry_delay(3, 0.5) == 1.5


def test_404_is_broken_after_get_fallback():
    outcome, verifier = _check(lambda method, attempt: 404)
    assert outcome == Broken("https://dead.example/a", 404, SourceLocation("docs/readme.md", 7))
    assert verifier.calls == [("HEAD", 1), ("GET", 1)]


def test_410_is_broken():
    outcome, _ = _check(lambda method, attempt: 410)
    assert isinstance(outcome, Broken)
    assert outcome.status == 410


def test_head_405_skips_get_and_is_ignored():
    outcome, verifier = _check(lambda method, attempt: 405)
    assert outcome == Ignored("https://dead.example/a")
    assert verifier.calls == [("HEAD", 1)]


def test_head_failure_rescued_by_get():
    outcome, verifier = _check(lambda method, attempt: 404 if method == "HEAD" else 200)
    assert outcome == Ignored("https://dead.example/a")
    assert verifier.calls == [("HEAD", 1), ("GET", 1)]


def test_forbidden_rate_limited_and_server_errors_are_not_broken():
    for status in (403, 429, 500, 503):
        outcome, _ = _check(lambda method, attempt, status=status: status, url="https://site.test/page")
        assert isinstance(outcome, Ignored)


def test_timeout_on_every_attempt_is_ignored():
    outcome, verifier = _check(lambda method, attempt: asyncio.TimeoutError())
    assert outcome == Ignored("https://dead.example/a")
    assert verifier.calls == [("HEAD", 1), ("HEAD", 2), ("HEAD", 3)]
    assert verifier.sleeps == [1.0, 2.0]


def test_dns_failure_is_broken_after_retries():
    outcome, verifier = _check(
        lambda method, attempt: socket.gaierror(socket.EAI_NONAME, "Name or service not known"),
        max_retries=1,
        retry_base_delay_ms=250,
    )
    assert outcome == Broken("https://dead.example/a", DNS_ERROR, SourceLocation("docs/readme.md", 7))
    assert len(verifier.calls) == 2
    assert verifier.sleeps == [0.25]


def test_connection_refused_is_broken():
    refused = aiohttp.ClientOSError(errno.ECONNREFUSED, "Connect call failed")
    outcome, _ = _check(lambda method, attempt: refused)
    assert isinstance(outcome, Broken)
    assert outcome.status == CONNECTION_REFUSED


def test_recovery_on_retry():
    outcome, verifier = _check(lambda method, attempt: asyncio.TimeoutError() if attempt == 1 else 200)
    assert outcome == Ignored("https://dead.example/a")
    assert verifier.sleeps == [1.0]


def test_invalid_url_is_ignored_without_retry():
    outcome, verifier = _check(lambda method, attempt: ValueError("bad url"))
    assert isinstance(outcome, Ignored)
    assert verifier.calls == [("HEAD", 1)]


def test_unexpected_exception_is_ignored():
    outcome, _ = _check(lambda method, attempt: KeyError("boom"))
    assert isinstance(outcome, Ignored)


def test_auth_wall_skip_when_enabled():
    url = "https://github.com/orgs/acme/teams/core"
    outcome, _ = _check(lambda method, attempt: 404, url=url, ignore_auth_walls=True)
    assert outcome == Skipped(url, "auth_wall_path")
    outcome, _ = _check(lambda method, attempt: 404, url=url)
    assert isinstance(outcome, Broken)


def test_classify_network_error_walks_cause_chain():
    try:
        try:
            raise socket.gaierror(socket.EAI_NONAME, "unknown host")
        except socket.gaierror as inner:
            raise aiohttp.ClientError("cannot connect") from inner
    except aiohttp.ClientError as exc:
        assert classify_network_error(exc) == DNS_ERROR
    assert classify_network_error(ConnectionRefusedError()) == CONNECTION_REFUSED
    assert classify_network_error(asyncio.TimeoutError()) is None


def test_verify_many_aggregates_and_reports_progress():
    statuses = {"https://a.test/ok": 200, "https://a.test/gone": 410, "https://github.com/settings": 404}

    class PerUrl(ScriptedVerifier):
        async def _request(self, session, attempt, url):
            return statuses[url]

    verifier = PerUrl(CheckerConfig(ignore_auth_walls=True), lambda method, attempt: 200)
    seen = []

    def hook(done, total, task, outcome):
        seen.append((done, total))
        raise RuntimeError("hook failures must not stop the batch")

    tasks = [LinkTask(url, SourceLocation("a.md", i + 1)) for i, url in enumerate(statuses)]
    result = asyncio.run(verifier.verify_many(tasks, concurrency=2, progress_hook=hook))
    assert [b.url for b in result.broken] == ["https://a.test/gone"]
    assert result.skipped == 1
    assert result.ignored == 1
    assert sorted(seen) == [(1, 3), (2, 3), (3, 3)]


def test_verify_many_empty():
    verifier = ScriptedVerifier(CheckerConfig(), lambda method, attempt: 200)
    result = asyncio.run(verifier.verify_many([]))
    assert result.broken == []
    assert verifier.calls == []


def test_non_2xx_head_falls_back_to_get():
    for status in (300, 304):
        outcome, verifier = _check(
            lambda method, attempt, status=status: status if method == "HEAD" else 404,
        )
        assert verifier.calls == [("HEAD", 1), ("GET", 1)]
        assert isinstance(outcome, Broken)

    outcome, verifier = _check(lambda method, attempt: 204)
    assert verifier.calls == [("HEAD", 1)]
    assert isinstance(outcome, Ignored)
