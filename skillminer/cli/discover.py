"""CLI command for skill discovery — propose skills from session history."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from ..discovery.models import ExistingSkill
    from ..discovery.pipeline import DiscoveryReport

from .main import main


def _load_existing_skills(path: Path | None) -> list[ExistingSkill]:
    """Read a JSON list of ``{"name", "description"}`` objects."""
    from ..discovery.models import ExistingSkill

    if path is None:
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise click.BadParameter(f"cannot read {path}: {e}", param_hint="--existing-skills") from e
    if not isinstance(data, list):
        raise click.BadParameter("expected a JSON list", param_hint="--existing-skills")
    return [
        ExistingSkill(name=str(item.get("name", "")), description=str(item.get("description", "")))
        for item in data
        if isinstance(item, dict)
    ]


def _print_report(report: DiscoveryReport) -> None:
    scan = report.scan
    click.echo(
        f"Projects: {scan.total_projects}  |  Sessions: {scan.total_sessions}  |  "
        f"New: {scan.new_sessions}  |  Modified: {scan.modified_sessions}  |  "
        f"Unchanged: {scan.skipped_sessions}  |  Excluded: {scan.excluded_sessions}"
    )
    if scan.failures:
        click.echo(f"Failed sessions: {scan.failed_sessions}")
        for failure in scan.failures[:5]:
            click.echo(f"  {failure.session_key}: {failure.reason}")
    if scan.dry_run:
        click.echo("\nDry run: nothing was read.")
        return
    if report.removed_noise:
        click.echo(f"Filtered {len(report.removed_noise)} ubiquitous pattern(s)")

    if not report.candidates and not report.cluster_candidates:
        click.echo("\nNo skill candidates found.")
        return

    if report.candidates:
        click.echo(f"\n{'=' * 60}\nPattern candidates\n{'=' * 60}")
        for i, c in enumerate(report.candidates, start=1):
            click.echo(
                f"{i:2d}. {c.suggested_name:40s} score {c.score:.3f}  "
                f"{len(c.evidence.projects)} project(s), {c.evidence.total_occurrences} hits"
            )
            click.echo(f"    {c.suggested_description}")

    if report.cluster_candidates:
        click.echo(f"\n{'=' * 60}\nPrompt clusters ({report.clustering_method})\n{'=' * 60}")
        for i, cc in enumerate(report.cluster_candidates, start=1):
            click.echo(
                f"{i:2d}. {cc.suggested_name:40s} score {cc.score:.3f}  "
                f"{cc.cluster_size} prompts, {len(cc.evidence.projects)} project(s)"
            )
            click.echo(f"    {cc.label}")


@main.command()
@click.option(
    "--claude-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Corpus root containing projects/. Defaults to ~/.claude.",
)
@click.option("--rescan", is_flag=True, default=False, help="Ignore watermarks and rescan everything.")
@click.option("--dry-run", is_flag=True, default=False, help="Only report which sessions would be read.")
@click.option("--exclude", "exclude", multiple=True, help="Project slug to skip (repeatable).")
@click.option("--allow", "allow", multiple=True, help="Only scan these project slugs (repeatable).")
@click.option(
    "--existing-skills",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help='JSON list of {"name", "description"} used to skip known skills.',
)
@click.option("--max-candidates", type=int, default=None, help="Cap on pattern candidates.")
@click.option("--no-clusters", is_flag=True, default=False, help="Skip semantic prompt clustering.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print drafts as JSON.")
def discover(
    claude_dir: Path | None,
    rescan: bool,
    dry_run: bool,
    exclude: tuple[str, ...],
    allow: tuple[str, ...],
    existing_skills: Path | None,
    max_candidates: int | None,
    no_clusters: bool,
    as_json: bool,
) -> None:
    """Discover skill candidates from past coding sessions.

    Scans session transcripts incrementally (only new content since the last
    run), finds recurring tool workflows, shell habits and request types, and
    prints ranked candidates with their evidence. Nothing is installed.

    \b
    Examples:
        skillminer discover                     # New sessions since last run
        skillminer discover --rescan            # Whole history
        skillminer discover --exclude scratch   # Skip a project
        skillminer discover --json > drafts.json
    """
    from ..config import DISCOVERY_DEFAULTS
    from ..discovery.pipeline import DiscoveryPipeline

    config = DISCOVERY_DEFAULTS
    if claude_dir is not None:
        config = replace(config, claude_dir=claude_dir)
    if max_candidates is not None:
        config = replace(config, max_candidates=max_candidates)

    pipeline = DiscoveryPipeline(config, existing_skills=_load_existing_skills(existing_skills))
    report = asyncio.run(
        pipeline.run(
            force_rescan=rescan,
            dry_run=dry_run,
            exclude_projects=exclude,
            allow_projects=allow or None,
            include_clusters=not no_clusters,
        )
    )

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in report.drafts], indent=2))
        return
    _print_report(report)
