import json
from pathlib import Path

from typer.testing import CliRunner

from linkrot import cli
from linkrot.workflows.coordinator import LinkCoordinator, WorkerPoolError
from linkrot.workflows.verifier import LinkVerifier

runner = CliRunner()


class DeadExampleVerifier(LinkVerifier):
    async def _request(self, session, attempt, url):
        return 404 if "dead.example" in url else 200


def _offline(monkeypatch):
    monkeypatch.delenv("LINKROT_REPORT_PATH", raising=False)
    monkeypatch.setattr(cli, "LinkCoordinator", lambda config: LinkCoordinator(config, verifier_factory=DeadExampleVerifier))


def test_no_args_prints_minimal_help():
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 0
    assert "linkrot check" in result.output


def test_help_full_and_find():
    result = runner.invoke(cli.app, ["--help-full"])
    assert result.exit_code == 0
    assert "Exit codes" in result.output

    result = runner.invoke(cli.app, ["--find", "auth"])
    assert result.exit_code == 0
    assert "--ignore-github-auth" in result.output
    assert "LINKROT_IGNORE_AUTH_WALLS" in result.output


def test_check_reports_broken_links(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)
    doc = tmp_path / "readme.md"
    doc.write_text("[dead](https://dead.example/a)\n[ok](https://ok.test/)\n", encoding="utf-8")
    out = tmp_path / "report.json"

    result = runner.invoke(cli.app, ["check", str(tmp_path), "--report", str(out)])

    assert result.exit_code == 1
    assert "Found 1 broken links:" in result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["brokenLinks"][0]["url"] == "https://dead.example/a"
    assert payload["brokenLinks"][0]["line"] == 1


def test_check_json_and_soft_fail(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)
    (tmp_path / "readme.md").write_text("https://dead.example/a\n", encoding="utf-8")
    out = tmp_path / "report.json"

    result = runner.invoke(cli.app, ["check", str(tmp_path), "--json", "--soft-fail", "--report", str(out)])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["totalBrokenLinks"] == 1
    assert payload["success"] is False


def test_check_missing_target_is_input_error(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)
    result = runner.invoke(cli.app, ["check", str(tmp_path / "missing")])
    assert result.exit_code == 2


def test_check_worker_pool_failure_is_fatal(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)

    def _fail(*args, **kwargs):
        raise WorkerPoolError("pool died")

    monkeypatch.setattr(cli, "run_check", _fail)
    result = runner.invoke(cli.app, ["check", str(tmp_path)])
    assert result.exit_code == 3


def test_bad_exclusion_file_is_input_error(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("LINKROT_REPORT_PATH", raising=False)
    bad = tmp_path / "rules.json"
    bad.write_text("{oops", encoding="utf-8")
    result = runner.invoke(cli.app, ["check", str(tmp_path), "--exclude-file", str(bad)])
    assert result.exit_code == 2


def test_url_command(monkeypatch):
    _offline(monkeypatch)
    result = runner.invoke(cli.app, ["url", "mailto:someone@mail.test"])
    assert result.exit_code == 0
    assert "excluded" in result.output

    result = runner.invoke(cli.app, ["url", "https://dead.example/a"])
    assert result.exit_code == 1
    assert "broken: https://dead.example/a (404)" in result.output

    result = runner.invoke(cli.app, ["url", "https://ok.test/"])
    assert result.exit_code == 0
    assert "ok: https://ok.test/" in result.output


def test_urls_command_reads_stdin(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)
    out = tmp_path / "report.json"
    result = runner.invoke(
        cli.app,
        ["urls", "-", "--report", str(out)],
        input="# manifest\nhttps://ok.test/\nhttps://dead.example/gone\n",
    )
    assert result.exit_code == 1
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["brokenLinks"] == [
        {"url": "https://dead.example/gone", "status": 404, "file": "programmatic", "line": 2}
    ]


def test_urls_command_rejects_bad_manifest(tmp_path: Path, monkeypatch):
    _offline(monkeypatch)
    manifest = tmp_path / "urls.txt"
    manifest.write_text("https://ok.test/ extra\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["urls", str(manifest)])
    assert result.exit_code == 2


def test_invalid_exclusion_regex_is_input_error(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("LINKROT_REPORT_PATH", raising=False)
    result = runner.invoke(cli.app, ["check", str(tmp_path), "--exclude", "("])
    assert result.exit_code == 2

    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps([{"kind": "regex", "pattern": "[unclosed"}]), encoding="utf-8")
    result = runner.invoke(cli.app, ["check", str(tmp_path), "--exclude-file", str(rules)])
    assert result.exit_code == 2
