import json
import textwrap
from contextlib import contextmanager
from pathlib import Path

from click.testing import CliRunner

from replaykit.cli import cli
from replaykit.dom.snapshot import SnapshotDocument
from replaykit.utils.logger import set_log_level

PAGE = textwrap.dedent(
    """
    <form>
      <label for="email">Email address</label>
      <input id="email" name="email" placeholder="you@example.com">
      <button type="submit">Sign in</button>
    </form>
    """
)


def write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(textwrap.dedent(text), encoding="utf-8")
    return p


def test_config_prints_effective_settings(monkeypatch):
    monkeypatch.setenv("FINDER_TIMEOUT_MS", "750")
    result = CliRunner().invoke(cli, ["config"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["FINDER_TIMEOUT_MS"] == 750
    assert data["BROWSER_TYPE"] == "chromium"


def test_validate_counts_every_document(tmp_path: Path):
    write(
        tmp_path,
        "flows.yaml",
        """
        title: a
        steps:
          - {id: s1, event: click, bundle: {tag: a, xpath: /a}}
        ---
        tag: button
        xpath: /button
        """,
    )
    result = CliRunner().invoke(cli, ["validate", str(tmp_path)])
    assert result.exit_code == 0
    assert result.stdout.count("OK  ") == 2


def test_validate_fails_on_invalid_file(tmp_path: Path):
    good = write(tmp_path, "good.yaml", "tag: a\nxpath: /a\n")
    bad = write(tmp_path, "bad.yaml", "- {id: x, event: click, bundle: {tag: a}}\n")
    result = CliRunner().invoke(cli, ["validate", str(good), str(bad)])
    assert result.exit_code == 1
    assert "ERR" in result.stdout and "OK  " in result.stdout


def test_capture_prints_bundle_and_label(tmp_path: Path):
    html = write(tmp_path, "page.html", PAGE)
    result = CliRunner().invoke(cli, ["capture", str(html), "--selector", "#email", "--url", "https://shop.test/login"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["label"] == "Email Address"
    assert data["bundle"]["id"] == "email"
    assert data["bundle"]["page_url"] == "https://shop.test/login"
    assert data["bundle"]["xpath"] == "/form/input"


def test_capture_unknown_selector(tmp_path: Path):
    html = write(tmp_path, "page.html", PAGE)
    result = CliRunner().invoke(cli, ["capture", str(html), "-s", "#nope"])
    assert result.exit_code == 1


def test_resolve_reports_strategy_and_exit_code(tmp_path: Path):
    html = write(tmp_path, "page.html", PAGE)
    moved = write(tmp_path, "bundle.yaml", "tag: input\nxpath: /div/form/input\nname: email\n")
    missing = write(tmp_path, "missing.yaml", "tag: input\nxpath: /div/input\nid: gone\n")

    ok = CliRunner().invoke(cli, ["resolve", str(html), str(moved), "--timeout-ms", "0"])
    assert ok.exit_code == 0
    data = json.loads(ok.stdout)
    assert data["found"] is True
    assert data["strategy"] == "name"
    assert data["xpath"] == "/form/input"

    nope = CliRunner().invoke(cli, ["resolve", str(html), str(missing), "--timeout-ms", "0"])
    assert nope.exit_code == 1
    assert json.loads(nope.stdout)["found"] is False


def test_resolve_writes_json_log(tmp_path: Path):
    html = write(tmp_path, "page.html", PAGE)
    bundle = write(tmp_path, "bundle.yaml", "tag: input\nxpath: /form/input\n")
    log_file = tmp_path / "logs" / "run.jsonl"
    try:
        result = CliRunner().invoke(
            cli, ["--log-level", "DEBUG", "resolve", str(html), str(bundle), "--log-json", str(log_file)]
        )
    finally:
        set_log_level("INFO")
    assert result.exit_code == 0
    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert lines and all("run_id" in line for line in lines)


def test_resolve_live_uses_the_browser_host(tmp_path: Path, monkeypatch):
    import replaykit.dom.playwright_host as playwright_host

    opened = []

    @contextmanager
    def fake_open_page(url=None, settings=None):
        opened.append(url)
        yield SnapshotDocument(PAGE, url=url)

    monkeypatch.setattr(playwright_host, "open_page", fake_open_page)
    bundle = write(tmp_path, "bundle.yaml", "tag: button\nxpath: /form/button\n")
    result = CliRunner().invoke(cli, ["resolve", "--live", "https://shop.test/login", str(bundle), "--timeout-ms", "0"])
    assert result.exit_code == 0
    assert opened == ["https://shop.test/login"]
    assert json.loads(result.stdout)["strategy"] == "xpath"


def test_resolve_rejects_missing_snapshot(tmp_path: Path):
    bundle = write(tmp_path, "bundle.yaml", "tag: a\nxpath: /a\n")
    result = CliRunner().invoke(cli, ["resolve", str(tmp_path / "absent.html"), str(bundle)])
    assert result.exit_code == 2
