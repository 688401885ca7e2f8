"""
Main CLI entry point for merged PR release tracking.
"""

import click
from dotenv import load_dotenv

from ..shared_utilities import configure_logging, get_logger
from ..shared_utilities.telemetry import trace_function
from .analyzer import ReleaseAnalyzer, parse_change_reference
from .config import load_config
from .errors import ReleaseTrackerError
from .output_formatter import AnalysisFormatter
from .release_calendar import ReleaseCalendar, WorkbookCalendarSource

# Load environment variables from .env file
load_dotenv()


@click.command()
@click.option(
    "--pr",
    "pr_reference",
    help="PR number or https://github.com/<owner>/<repo>/pull/<number> URL",
)
@click.option("--commit", "commit_sha", help="Analyse a commit SHA instead of a PR")
@click.option(
    "--compare-version",
    "compare_tag",
    help="List the commits a release tag (e.g. v2.40.1) added over the previous release",
)
@click.option(
    "--calendar",
    "calendar_path",
    type=click.Path(dir_okay=False),
    help="Release calendar workbook (.xlsx) with GA dates",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
    show_default=True,
)
@click.option(
    "-o",
    "--output",
    "output_file",
    type=click.Path(),
    help="Output file (default: stdout)",
)
@click.option(
    "--no-related",
    is_flag=True,
    help="Skip ticket lookup for related backport PRs",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: PR_BOT_LOG_LEVEL or INFO)",
)
@click.option(
    "--token",
    envvar=["PR_BOT_GITHUB_TOKEN", "GITHUB_TOKEN"],
    help="GitHub token (or set PR_BOT_GITHUB_TOKEN / GITHUB_TOKEN)",
)
@trace_function("merged_pr_tracker_main")
def main(
    pr_reference: str | None,
    commit_sha: str | None,
    compare_tag: str | None,
    calendar_path: str | None,
    config_file: str | None,
    output_format: str,
    output_file: str | None,
    no_related: bool,
    log_level: str | None,
    token: str | None,
) -> None:
    """
    Find the release branches and versions that contain a merged change.

    Examples:

        # Analyse a PR of the configured repository
        merged-pr-tracker --pr 1234

        # Analyse a PR of another repository
        merged-pr-tracker --pr https://github.com/openshift/assisted-installer/pull/42

        # Include GA status from the release calendar, as JSON
        merged-pr-tracker --pr 1234 --calendar ga.xlsx --format json

        # Analyse a bare commit
        merged-pr-tracker --commit 1a2b3c4d

        # Show what a release added over the previous one
        merged-pr-tracker --compare-version v2.40.1
    """
    configure_logging(level=log_level)
    logger = get_logger(__name__)

    if sum(bool(value) for value in (pr_reference, commit_sha, compare_tag)) != 1:
        raise click.UsageError(
            "Provide exactly one of --pr, --commit or --compare-version"
        )

    reference = None
    if pr_reference:
        try:
            reference = parse_change_reference(pr_reference)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--pr") from e

    try:
        config = load_config(
            config_file, github_token=token, calendar_path=calendar_path
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if reference is not None and reference.owner and reference.repository:
        config = config.for_repository(reference.owner, reference.repository)

    calendar = None
    if config.calendar_path:
        calendar = ReleaseCalendar(WorkbookCalendarSource(config.calendar_path))

    analyzer = ReleaseAnalyzer(config, calendar=calendar)
    formatter = AnalysisFormatter()

    try:
        if reference is not None:
            result = analyzer.analyze_pull_request(
                reference.number, include_related=not no_related
            )
        elif compare_tag:
            result = analyzer.compare_version(compare_tag)
        else:
            result = analyzer.analyze_commit(commit_sha)
    except ReleaseTrackerError as e:
        logger.error(f"Analysis failed: {e}")
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from e

    if output_file:
        formatter.save_to_file(result, output_file, output_format)
        click.echo(f"Output saved to {output_file}")
    else:
        click.echo(formatter.render(result, output_format))


if __name__ == "__main__":
    main()
