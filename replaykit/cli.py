# replaykit/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Local helpers around capture and resolution:

  replaykit config                     effective settings as JSON
  replaykit validate FILES...          check step / bundle files
  replaykit capture PAGE.html -s CSS   bundle + label for an element
  replaykit resolve PAGE.html B.yaml   where does a bundle land today?

`resolve --live URL` runs the same resolution against a real browser page.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from replaykit.capture.bundle import BundleBuilder
from replaykit.core.loader import load_bundle, load_file
from replaykit.core.models import LocatorBundle, Scenario
from replaykit.dom.snapshot import SnapshotDocument
from replaykit.selectors.finder import ElementFinder, FinderOptions
from replaykit.selectors.paths import build_xpath
from replaykit.utils.config import get_settings
from replaykit.utils.logger import (
    attach_file_logger,
    bound,
    detach_file_logger,
    get_logger,
    set_colorized,
    set_log_level,
)


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _expand(targets: List[str]) -> List[Path]:
    paths: List[Path] = []
    for p in (Path(t).resolve() for t in targets):
        if p.is_dir():
            paths.extend(sorted(list(p.rglob("*.yaml")) + list(p.rglob("*.yml")) + list(p.rglob("*.json"))))
        else:
            paths.append(p)
    return paths


def _bundle_json(bundle: LocatorBundle) -> Dict[str, Any]:
    data = bundle.model_dump(mode="json", exclude_none=True)
    data["classes"] = sorted(bundle.classes)
    return data


def _resolve_on(host, bundle: LocatorBundle, options: FinderOptions) -> Dict[str, Any]:
    finder = ElementFinder(host, host, options=options)
    outcome = finder.find(bundle)
    return {
        "found": outcome.found,
        "strategy": outcome.strategy,
        "confidence": outcome.confidence,
        "attempts": outcome.attempts,
        "elapsed_ms": round(outcome.elapsed_ms, 1),
        "attempted": outcome.attempted,
        "xpath": build_xpath(host, host, outcome.node) if outcome.found else None,
    }


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
@click.option("--color/--no-color", default=None, help="Force-enable/disable colorized console output")
@click.version_option(package_name="replaykit")
def cli(log_level: Optional[str], color: Optional[bool]):
    _ = get_settings()
    if log_level:
        set_log_level(log_level.upper())
    if color is not None:
        set_colorized(color)


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars)."""
    s = get_settings()
    _echo_json(s.model_dump(mode="json"))


@cli.command("validate")
@click.argument("targets", nargs=-1, required=True)
def cmd_validate(targets: List[str]):
    """Validate step or bundle files (YAML multi-doc or JSON); directories are searched."""
    paths = _expand(list(targets))
    if not paths:
        click.echo("No files to validate.")
        sys.exit(2)

    ok = True
    for fp in paths:
        try:
            for doc in load_file(fp):
                if isinstance(doc, Scenario):
                    title = doc.title or "<untitled>"
                    click.echo(f"OK  {fp}  ->  {title} ({len(doc.steps)} steps)")
                else:
                    click.echo(f"OK  {fp}  ->  bundle <{doc.tag}> {doc.xpath}")
        except Exception as e:
            ok = False
            click.echo(f"ERR {fp}  ->  {e}")

    sys.exit(0 if ok else 1)


@cli.command("capture")
@click.argument("html", type=click.Path(dir_okay=False, exists=True))
@click.option("--selector", "-s", required=True, help="CSS selector of the element to capture (first match)")
@click.option("--url", default=None, help="Page URL to record in the bundle (default: file URI)")
def cmd_capture(html: str, selector: str, url: Optional[str]):
    """Build the locator bundle and label for one element of an HTML snapshot."""
    kwargs = {"url": url} if url else {}
    doc = SnapshotDocument.from_file(html, **kwargs)
    matches = doc.query(selector)
    if not matches:
        click.echo(f"ERR no element matches {selector!r} in {html}")
        sys.exit(1)

    report = BundleBuilder(doc, doc).build_with_report(matches[0])
    _echo_json(
        {
            "label": report.label,
            "quality": report.quality,
            "warnings": report.warnings,
            "bundle": _bundle_json(report.bundle),
        }
    )


@cli.command("resolve")
@click.argument("target")
@click.argument("bundle_file", type=click.Path(dir_okay=False, exists=True))
@click.option("--timeout-ms", type=int, default=None, help="Override FINDER_TIMEOUT_MS")
@click.option("--visible/--no-visible", default=None, help="Override FINDER_REQUIRE_VISIBLE")
@click.option("--live", is_flag=True, default=False, help="TARGET is a URL opened in a Playwright browser")
@click.option("--log-json", type=click.Path(dir_okay=False), default=None, help="Also write this run's logs as JSON lines")
def cmd_resolve(
    target: str,
    bundle_file: str,
    timeout_ms: Optional[int],
    visible: Optional[bool],
    live: bool,
    log_json: Optional[str],
):
    """
    Resolve a bundle against an HTML snapshot (or a live page with --live).

    Examples:
      replaykit resolve page.html bundles/login.yaml --timeout-ms 500
      replaykit resolve --live https://example.org bundles/login.yaml
    """
    log = get_logger(__name__)
    bundle = load_bundle(bundle_file)
    options = FinderOptions.from_settings()
    if timeout_ms is not None:
        options.timeout_ms = timeout_ms
    if visible is not None:
        options.require_visible = visible

    handler = attach_file_logger(log_json) if log_json else None
    try:
        with bound(run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")):
            if live:
                from replaykit.dom.playwright_host import open_page  # local import: playwright is only needed here

                with open_page(target) as host:
                    result = _resolve_on(host, bundle, options)
            else:
                if not Path(target).is_file():
                    raise click.BadParameter(f"{target} is not a file", param_hint="TARGET")
                result = _resolve_on(SnapshotDocument.from_file(target), bundle, options)
    finally:
        if handler is not None:
            detach_file_logger(handler)

    log.debug(f"resolve {bundle.xpath} -> {result['strategy'] or 'no match'}")
    _echo_json(result)
    sys.exit(0 if result["found"] else 1)


def main() -> None:
    cli(prog_name="replaykit")


if __name__ == "__main__":
    main()
